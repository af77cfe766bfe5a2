"""Query audit log - one append-only record per question or search.

Records are only patched afterwards to attach feedback or mark clicked
citations. Every read and write is scoped by the tenant id.
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.access.policy import require_privilege
from backend.app.db.models import Org, QueryLog
from backend.app.errors import InvalidInputError, NotFoundError
from backend.app.models.access import Caller, PrivilegeName
from backend.app.models.audit import (
    Feedback,
    PopularSearch,
    QueryAuditRecord,
    QueryHistoryItem,
    QueryType,
    RecentSearch,
)

logger = logging.getLogger(__name__)

MAX_QUERY_CHARS = 2000
MAX_COMMENT_CHARS = 500
HISTORY_LIMIT = 50
RECENT_SEARCH_LIMIT = 10


async def log_query(session: AsyncSession, record: QueryAuditRecord) -> UUID:
    """Write an audit record and bump the tenant's activity counters.

    Questions also increment the tenant query count, in the same
    transaction.
    """
    row = QueryLog(
        org_id=record.org_id,
        user_id=record.user_id,
        query=record.query[:MAX_QUERY_CHARS],
        query_type=record.query_type.value,
        user_department=record.user_department,
        user_role=record.user_role,
        cited_chunks=[c.model_dump(mode="json") for c in record.cited_chunks],
        search_results=[r.model_dump(mode="json") for r in record.search_results],
        result_count=record.result_count,
        response=record.response,
        response_time_ms=record.response_time_ms,
        ai_model=record.ai_model,
        status=record.status.value,
        error_message=record.error_message,
    )
    session.add(row)

    values: dict[str, object] = {"last_activity": datetime.now(UTC)}
    if record.query_type == QueryType.question:
        values["query_count"] = Org.query_count + 1
    await session.execute(update(Org).where(Org.org_id == record.org_id).values(**values))

    await session.flush()
    audit_id = row.audit_id
    await session.commit()
    return audit_id


async def record_query_safely(session: AsyncSession, record: QueryAuditRecord) -> UUID | None:
    """Best-effort ``log_query``: failures are logged and yield None."""
    try:
        return await log_query(session, record)
    except Exception:
        logger.warning(f"Failed to log query for org {record.org_id}", exc_info=True)
        await session.rollback()
        return None


async def _get_own_record(session: AsyncSession, caller: Caller, audit_id: UUID) -> QueryLog | None:
    result = await session.execute(
        select(QueryLog).where(
            QueryLog.audit_id == audit_id,
            QueryLog.org_id == caller.org_id,
            QueryLog.user_id == caller.user_id,
        )
    )
    return result.scalar_one_or_none()


async def attach_feedback(
    session: AsyncSession,
    caller: Caller,
    audit_id: UUID,
    feedback: Feedback | str,
    rating: int | None = None,
    comment: str | None = None,
) -> None:
    """Attach the caller's feedback to one of their own audit records.

    Raises:
        InvalidInputError: Unknown feedback value, rating outside 1-5, comment too long
        NotFoundError: No such record for the caller in their tenant
    """
    try:
        feedback = Feedback(feedback)
    except ValueError as e:
        raise InvalidInputError(f"Invalid feedback type: {feedback}") from e
    if rating is not None and not 1 <= rating <= 5:
        raise InvalidInputError("Rating must be between 1 and 5.")
    if comment is not None and len(comment) > MAX_COMMENT_CHARS:
        raise InvalidInputError(f"Feedback comment cannot exceed {MAX_COMMENT_CHARS} characters.")

    row = await _get_own_record(session, caller, audit_id)
    if row is None:
        raise NotFoundError(f"Query not found: {audit_id}")

    row.feedback = feedback.value
    if rating is not None:
        row.rating = rating
    if comment is not None:
        row.feedback_comment = comment
    await session.commit()


async def mark_clicked(
    session: AsyncSession,
    caller: Caller,
    audit_id: UUID,
    document_id: UUID,
) -> bool:
    """Mark the cited chunks or search hits of a document as clicked.

    Unknown audit ids and documents are ignored.

    Returns:
        True when at least one cited chunk or search hit was marked
    """
    row = await _get_own_record(session, caller, audit_id)
    if row is None:
        logger.debug(f"Ignoring click for unknown query {audit_id}")
        return False

    target = str(document_id)
    cited, cited_marked = _mark_document(row.cited_chunks, target)
    results, results_marked = _mark_document(row.search_results, target)

    if cited_marked or results_marked:
        # New lists so the JSON columns are flagged dirty
        row.cited_chunks = cited
        row.search_results = results
        await session.commit()
    return cited_marked or results_marked


def _mark_document(items: list[dict] | None, target: str) -> tuple[list[dict], bool]:
    marked = False
    updated = []
    for item in items or []:
        if item.get("document_id") == target and not item.get("clicked"):
            item = {**item, "clicked": True}
            marked = True
        updated.append(item)
    return updated, marked


async def list_user_history(
    session: AsyncSession,
    caller: Caller,
    *,
    limit: int = HISTORY_LIMIT,
) -> list[QueryHistoryItem]:
    """Most recent queries of the caller in their tenant.

    Raises:
        PermissionDeniedError: Caller lacks view_search_history
    """
    require_privilege(caller, PrivilegeName.view_search_history)

    result = await session.execute(
        select(QueryLog)
        .where(QueryLog.org_id == caller.org_id, QueryLog.user_id == caller.user_id)
        .order_by(QueryLog.created_at.desc())
        .limit(limit)
    )
    return [
        QueryHistoryItem(
            audit_id=row.audit_id,
            query=row.query,
            query_type=row.query_type,
            response=row.response,
            feedback=row.feedback,
            rating=row.rating,
            created_at=row.created_at,
        )
        for row in result.scalars().all()
    ]


async def recent_searches(
    session: AsyncSession,
    caller: Caller,
    *,
    limit: int = RECENT_SEARCH_LIMIT,
) -> list[RecentSearch]:
    """Latest distinct searches of the caller, compared case-insensitively."""
    result = await session.execute(
        select(QueryLog)
        .where(
            QueryLog.org_id == caller.org_id,
            QueryLog.user_id == caller.user_id,
            QueryLog.query_type == QueryType.search.value,
        )
        .order_by(QueryLog.created_at.desc())
        .limit(limit)
    )

    seen: set[str] = set()
    searches = []
    for row in result.scalars().all():
        normalized = row.query.strip().lower()
        if normalized in seen:
            continue
        seen.add(normalized)
        searches.append(
            RecentSearch(query=row.query, result_count=row.result_count, created_at=row.created_at)
        )
    return searches


async def popular_searches(
    session: AsyncSession,
    org_id: UUID,
    *,
    limit: int = RECENT_SEARCH_LIMIT,
) -> list[PopularSearch]:
    """Most frequent search texts of a tenant, lower-cased, most frequent first."""
    normalized = func.lower(QueryLog.query)
    hits = func.count()
    result = await session.execute(
        select(normalized, hits, func.max(QueryLog.created_at))
        .where(QueryLog.org_id == org_id, QueryLog.query_type == QueryType.search.value)
        .group_by(normalized)
        .order_by(hits.desc(), normalized)
        .limit(limit)
    )
    return [
        PopularSearch(query=query, count=count, last_searched=last)
        for query, count, last in result.all()
    ]
