"""Document retriever - tenant and access filtered lexical search."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import ColumnElement, Text, cast, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.access.policy import visible_documents_clause
from backend.app.db.models import Doc, DocChunk
from backend.app.docs.tokens import query_terms, tokenize
from backend.app.models.access import Caller
from backend.app.models.docs import CandidateDocument, DocumentStatus, RetrievedChunk

logger = logging.getLogger(__name__)

# Field weights for relevance scoring
TITLE_WEIGHT = 10
TAGS_WEIGHT = 8
DESCRIPTION_WEIGHT = 5
CONTENT_WEIGHT = 3


@dataclass(frozen=True)
class ScoredDocument:
    """Document row with its relevance score."""

    doc: Doc
    score: int


def score_document(terms: Sequence[str], doc: Doc) -> int:
    """Weighted count of query terms present in each document field.

    A term scores once per field it appears in: title 10, tags 8,
    description 5, content 3.
    """
    title = set(tokenize(doc.title))
    tags = set(tokenize(" ".join(doc.tags or [])))
    description = set(tokenize(doc.description or ""))
    content = set(tokenize(doc.content or ""))

    score = 0
    for term in terms:
        if term in title:
            score += TITLE_WEIGHT
        if term in tags:
            score += TAGS_WEIGHT
        if term in description:
            score += DESCRIPTION_WEIGHT
        if term in content:
            score += CONTENT_WEIGHT
    return score


def _match_clause(terms: Sequence[str]) -> ColumnElement[bool]:
    conditions = []
    for term in terms:
        pattern = f"%{term}%"
        conditions.extend(
            [
                Doc.title.ilike(pattern),
                Doc.description.ilike(pattern),
                Doc.content.ilike(pattern),
                cast(Doc.tags, Text).ilike(pattern),
            ]
        )
    return or_(*conditions)


async def rank_documents(
    session: AsyncSession,
    caller: Caller,
    query: str,
    limit: int | None,
    *,
    category: str | None = None,
    department: str | None = None,
) -> list[ScoredDocument]:
    """Active, visible documents of the caller's tenant matching the query.

    The SQL filter is a coarse substring prefilter; scoring on whole tokens
    decides the final set. Sorted by score descending, then newest first,
    then id. A ``limit`` of None keeps every match.
    """
    terms = query_terms(query)
    if not terms or (limit is not None and limit <= 0):
        return []

    stmt = select(Doc).where(
        Doc.org_id == caller.org_id,
        Doc.status == DocumentStatus.active.value,
        visible_documents_clause(caller),
        _match_clause(terms),
    )
    if category:
        stmt = stmt.where(Doc.category == category)
    if department:
        stmt = stmt.where(Doc.department == department)
    result = await session.execute(stmt)
    docs = list(result.scalars().all())

    scored = [ScoredDocument(doc=doc, score=score_document(terms, doc)) for doc in docs]
    scored = [s for s in scored if s.score > 0]

    # Stable sorts, least significant key first
    scored.sort(key=lambda s: str(s.doc.doc_id))
    scored.sort(key=lambda s: s.doc.created_at, reverse=True)
    scored.sort(key=lambda s: s.score, reverse=True)

    return scored if limit is None else scored[:limit]


def to_retrieved_chunk(
    doc: Doc,
    text: str,
    chunk_index: int,
    start_page: int | None = None,
    end_page: int | None = None,
) -> RetrievedChunk:
    return RetrievedChunk(
        text=text,
        chunk_index=chunk_index,
        start_page=start_page,
        end_page=end_page,
        document_id=doc.doc_id,
        document_title=doc.title,
        document_hash=doc.hash,
        document_description=doc.description or "",
        document_tags=list(doc.tags or []),
        document_category=doc.category,
        file_name=doc.file_name,
    )


def _from_row(doc: Doc, chunk: DocChunk) -> RetrievedChunk:
    return to_retrieved_chunk(doc, chunk.text, chunk.chunk_index, chunk.start_page, chunk.end_page)


async def _leading_chunks(
    session: AsyncSession,
    doc_ids: Sequence[UUID],
    per_doc: int,
) -> dict[UUID, list[DocChunk]]:
    """First ``per_doc`` chunks of each document, by chunk index."""
    grouped: dict[UUID, list[DocChunk]] = {doc_id: [] for doc_id in doc_ids}
    if not doc_ids:
        return grouped

    result = await session.execute(
        select(DocChunk)
        .where(DocChunk.doc_id.in_(doc_ids), DocChunk.chunk_index < per_doc)
        .order_by(DocChunk.doc_id, DocChunk.chunk_index)
    )
    for chunk in result.scalars().all():
        grouped[chunk.doc_id].append(chunk)
    return grouped


async def find_relevant_chunks(
    session: AsyncSession,
    caller: Caller,
    query: str,
    *,
    limit: int = 5,
    chunks_per_doc: int = 3,
) -> list[RetrievedChunk]:
    """Chunks of the top ``limit`` documents that match the query and are visible.

    At most ``chunks_per_doc`` leading chunks per document, in document rank
    order. Search failures are logged and yield an empty list.

    Args:
        session: Async database session
        caller: Resolved requesting user (carries the tenant id)
        query: Free-text question or search string
        limit: Number of documents to take chunks from
        chunks_per_doc: Leading chunks emitted per document

    Returns:
        List of RetrievedChunk in rank order
    """
    try:
        ranked = await rank_documents(session, caller, query, limit)
        doc_ids = [s.doc.doc_id for s in ranked]
        chunks_by_doc = await _leading_chunks(session, doc_ids, chunks_per_doc)
    except SQLAlchemyError:
        logger.warning(
            f"Chunk search failed for org {caller.org_id}; continuing without context",
            exc_info=True,
        )
        await session.rollback()
        return []

    retrieved: list[RetrievedChunk] = []
    for scored in ranked:
        for chunk in chunks_by_doc[scored.doc.doc_id]:
            retrieved.append(_from_row(scored.doc, chunk))

    logger.debug(
        f"Found {len(retrieved)} relevant chunks from {len(ranked)} documents "
        f"for org {caller.org_id}"
    )
    return retrieved


async def find_candidate_documents(
    session: AsyncSession,
    caller: Caller,
    query: str,
    *,
    limit: int = 6,
) -> list[CandidateDocument]:
    """Metadata of the best matching visible documents, for manual selection."""
    try:
        ranked = await rank_documents(session, caller, query, limit)
    except SQLAlchemyError:
        logger.warning(f"Candidate search failed for org {caller.org_id}", exc_info=True)
        await session.rollback()
        return []

    return [
        CandidateDocument(
            document_id=s.doc.doc_id,
            title=s.doc.title,
            description=s.doc.description or "",
            category=s.doc.category,
            tags=list(s.doc.tags or []),
            file_name=s.doc.file_name,
            hash=s.doc.hash,
        )
        for s in ranked
    ]


async def load_selected_chunks(
    session: AsyncSession,
    caller: Caller,
    document_ids: Sequence[UUID],
    *,
    chunks_per_doc: int = 3,
    content_chars: int = 1000,
) -> list[RetrievedChunk]:
    """Chunks of caller-selected active documents, filtered by tenant and visibility.

    Inactive documents and documents the caller cannot see are silently
    skipped. A document without chunks contributes its leading
    ``content_chars`` of content as a single chunk 0. Order follows the selection.
    """
    if not document_ids:
        return []

    result = await session.execute(
        select(Doc).where(
            Doc.org_id == caller.org_id,
            Doc.doc_id.in_(list(document_ids)),
            Doc.status == DocumentStatus.active.value,
            visible_documents_clause(caller),
        )
    )
    docs = {doc.doc_id: doc for doc in result.scalars().all()}
    ordered = [docs[doc_id] for doc_id in dict.fromkeys(document_ids) if doc_id in docs]

    chunks_by_doc = await _leading_chunks(session, [d.doc_id for d in ordered], chunks_per_doc)

    retrieved: list[RetrievedChunk] = []
    for doc in ordered:
        chunks = chunks_by_doc[doc.doc_id]
        if chunks:
            retrieved.extend(_from_row(doc, chunk) for chunk in chunks)
        elif doc.content:
            retrieved.append(to_retrieved_chunk(doc, doc.content[:content_chars], 0))
    return retrieved
