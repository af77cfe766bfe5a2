"""Document search - ranked, access filtered keyword search with an audit trail."""

import logging
import math
import time

from sqlalchemy import Text, cast, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.access.policy import require_privilege, visible_documents_clause
from backend.app.access.service import load_caller, require_tenant
from backend.app.audit.query_log import MAX_QUERY_CHARS, record_query_safely
from backend.app.db.context import RequestContext
from backend.app.db.models import Doc
from backend.app.docs.retriever import rank_documents
from backend.app.errors import InvalidInputError, SearchError
from backend.app.models.access import Caller, PrivilegeName
from backend.app.models.audit import QueryAuditRecord, QueryStatus, QueryType, SearchResultRef
from backend.app.models.docs import DocumentStatus
from backend.app.models.search import SearchHit, SearchPage
from backend.app.utils.metrics import record_search

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50
SUGGESTION_LIMIT = 5
SUGGESTION_SOURCE_DOCS = 5
MIN_SUGGESTION_WORD = 4


def _search_record(caller: Caller, query: str, **fields: object) -> QueryAuditRecord:
    return QueryAuditRecord(
        query=query[:MAX_QUERY_CHARS],
        query_type=QueryType.search,
        user_id=caller.user_id,
        org_id=caller.org_id,
        user_department=caller.department,
        user_role=caller.org_role,
        **fields,
    )


async def search_documents(
    session: AsyncSession,
    ctx: RequestContext,
    query: str,
    *,
    category: str | None = None,
    department: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> SearchPage:
    """One page of the caller's visible documents ranked by relevance.

    Every search is audited with a snapshot of the returned hits. A failed
    search is audited as an error before it is raised.

    Raises:
        InvalidInputError: Empty query, no tenant, or bad paging
        NotFoundError: Tenant or user absent
        PermissionDeniedError: Caller lacks view_documents
        SearchError: The document store failed
    """
    if not query or not query.strip():
        raise InvalidInputError("Search query cannot be empty.")
    if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
        raise InvalidInputError(f"Page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}.")
    require_tenant(ctx)
    query = query.strip()
    start = time.monotonic()

    caller = await load_caller(ctx, session)
    require_privilege(caller, PrivilegeName.view_documents)

    try:
        ranked = await rank_documents(
            session, caller, query, None, category=category, department=department
        )
    except SQLAlchemyError as e:
        logger.error(f"Search failed for org {caller.org_id}: {e}")
        await session.rollback()
        await record_query_safely(
            session,
            _search_record(
                caller,
                query,
                response_time_ms=int((time.monotonic() - start) * 1000),
                status=QueryStatus.error,
                error_message=str(e),
            ),
        )
        record_search("error")
        raise SearchError("Search failed. Please try again.") from e

    offset = (page - 1) * limit
    hits = [
        SearchHit(
            document_id=s.doc.doc_id,
            title=s.doc.title,
            description=s.doc.description or "",
            category=s.doc.category,
            department=s.doc.department,
            tags=list(s.doc.tags or []),
            file_name=s.doc.file_name,
            hash=s.doc.hash,
            score=s.score,
            created_at=s.doc.created_at,
        )
        for s in ranked[offset : offset + limit]
    ]
    total = len(ranked)
    response_time_ms = int((time.monotonic() - start) * 1000)

    audit_id = await record_query_safely(
        session,
        _search_record(
            caller,
            query,
            search_results=[
                SearchResultRef(document_id=hit.document_id, document_title=hit.title, rank=rank)
                for rank, hit in enumerate(hits, start=offset + 1)
            ],
            result_count=total,
            response_time_ms=response_time_ms,
        ),
    )
    record_search("success")

    logger.info(
        f"Search completed with {total} results in {response_time_ms}ms for org {caller.org_id}"
    )
    return SearchPage(
        documents=hits,
        total=total,
        page=page,
        pages=math.ceil(total / limit),
        audit_id=audit_id,
    )


async def suggest_terms(session: AsyncSession, caller: Caller, partial: str) -> list[str]:
    """Title words and tags of matching visible documents that contain ``partial``."""
    needle = partial.strip().lower()
    if not needle:
        return []
    pattern = f"%{needle}%"

    result = await session.execute(
        select(Doc)
        .where(
            Doc.org_id == caller.org_id,
            Doc.status == DocumentStatus.active.value,
            visible_documents_clause(caller),
            or_(Doc.title.ilike(pattern), cast(Doc.tags, Text).ilike(pattern)),
        )
        .order_by(Doc.created_at.desc())
        .limit(SUGGESTION_SOURCE_DOCS)
    )

    suggestions: dict[str, None] = {}
    for doc in result.scalars().all():
        for word in doc.title.lower().split():
            if len(word) >= MIN_SUGGESTION_WORD and needle in word:
                suggestions[word] = None
        for tag in doc.tags or []:
            if needle in tag.lower():
                suggestions[tag] = None
    return list(suggestions)[:SUGGESTION_LIMIT]
