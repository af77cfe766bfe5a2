"""Question answering service - ties access, retrieval, generation and audit together.

Both entry points validate input before any retrieval work, resolve the
caller inside their tenant, and write one audit record per question,
including failed ones. Audit failures never fail the response.
"""

import logging
import time
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.access.policy import require_privilege
from backend.app.access.service import load_caller, require_tenant
from backend.app.audit.query_log import MAX_QUERY_CHARS, record_query_safely
from backend.app.citations.builder import build_citations, cited_chunks_for_audit
from backend.app.config import Settings, get_settings
from backend.app.db.context import RequestContext
from backend.app.docs.retriever import (
    find_candidate_documents,
    find_relevant_chunks,
    load_selected_chunks,
)
from backend.app.errors import InvalidInputError
from backend.app.graph.builder import build_graph
from backend.app.models.access import Caller, PrivilegeName
from backend.app.models.answer import AnswerResponse, Citation, SelectDocumentsResponse
from backend.app.models.audit import QueryAuditRecord, QueryStatus, QueryType
from backend.app.qa.orchestrator import (
    AnswerOrchestrator,
    GeneratedAnswer,
    SelectDocuments,
)
from backend.app.utils.metrics import record_answer

logger = logging.getLogger(__name__)

NO_SELECTION_MESSAGE = "No accessible documents were found for your selection."


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _validate_question(ctx: RequestContext, question: str) -> str:
    if not question or not question.strip():
        raise InvalidInputError("Question cannot be empty.")
    require_tenant(ctx)
    return question.strip()


def _audit_record(
    caller: Caller,
    question: str,
    *,
    response: str | None = None,
    citations: Sequence[Citation] = (),
    result_count: int = 0,
    response_time_ms: int | None = None,
    ai_model: str | None = None,
    status: QueryStatus = QueryStatus.success,
    error_message: str | None = None,
) -> QueryAuditRecord:
    return QueryAuditRecord(
        query=question[:MAX_QUERY_CHARS],
        query_type=QueryType.question,
        user_id=caller.user_id,
        org_id=caller.org_id,
        user_department=caller.department,
        user_role=caller.org_role,
        cited_chunks=cited_chunks_for_audit(citations),
        result_count=result_count,
        response=response,
        response_time_ms=response_time_ms,
        ai_model=ai_model,
        status=status,
        error_message=error_message,
    )


async def _select_documents(
    session: AsyncSession,
    caller: Caller,
    question: str,
    start: float,
    settings: Settings,
) -> SelectDocumentsResponse:
    candidates = await find_candidate_documents(
        session, caller, question, limit=settings.candidate_doc_limit
    )
    response = SelectDocumentsResponse(candidates=candidates)
    response.audit_id = await record_query_safely(
        session,
        _audit_record(
            caller,
            question,
            response=response.message,
            result_count=len(candidates),
            response_time_ms=_elapsed_ms(start),
        ),
    )
    record_answer("select_documents")
    return response


async def answer_question(
    session: AsyncSession,
    ctx: RequestContext,
    question: str,
    orchestrator: AnswerOrchestrator,
    *,
    preferred_model: str | None = None,
    settings: Settings | None = None,
) -> AnswerResponse | SelectDocumentsResponse:
    """Answer a question from the caller's visible documents.

    Flow:
        1. Validate input, resolve caller, check query_ai
        2. No provider configured -> candidate documents for manual selection
        3. Retrieve chunks, run the orchestrator
        4. Build citations and graph from the chunks actually used
        5. Audit (best effort)

    Raises:
        InvalidInputError: Empty question or no tenant
        NotFoundError: Tenant or user absent
        PermissionDeniedError: Caller lacks query_ai
        ProviderFatalError: Fatal provider failure (audited as error first)
    """
    settings = settings or get_settings()
    start = time.monotonic()

    question = _validate_question(ctx, question)
    caller = await load_caller(ctx, session)
    require_privilege(caller, PrivilegeName.query_ai)

    try:
        if not orchestrator.configured:
            return await _select_documents(session, caller, question, start, settings)

        chunks = await find_relevant_chunks(
            session,
            caller,
            question,
            limit=settings.retrieval_doc_limit,
            chunks_per_doc=settings.retrieval_chunks_per_doc,
        )
        logger.debug(f"Found {len(chunks)} relevant chunks for org {caller.org_id}")

        outcome = await orchestrator.answer(question, chunks, preferred_model)
        if isinstance(outcome, SelectDocuments):
            return await _select_documents(session, caller, question, start, settings)

        citations = build_citations(
            outcome.used_chunks, excerpt_chars=settings.citation_excerpt_chars
        )

        plan = None
        if settings.graph_plan_enabled and isinstance(outcome, GeneratedAnswer):
            plan = await orchestrator.propose_graph_plan(
                question, outcome.used_chunks, preferred_model
            )
        graph = build_graph(
            question,
            outcome.used_chunks,
            plan,
            max_chunks=settings.graph_max_chunks,
            max_keywords=settings.graph_max_keywords,
        )

        mode = "generated" if isinstance(outcome, GeneratedAnswer) else "extractive"
        model_used = outcome.model if isinstance(outcome, GeneratedAnswer) else None
        response_time_ms = _elapsed_ms(start)

    except Exception as e:
        logger.error(f"AI question answering failed for org {caller.org_id}: {e}")
        await record_query_safely(
            session,
            _audit_record(
                caller,
                question,
                response_time_ms=_elapsed_ms(start),
                status=QueryStatus.error,
                error_message=str(e),
            ),
        )
        raise

    audit_id = await record_query_safely(
        session,
        _audit_record(
            caller,
            question,
            response=outcome.text,
            citations=citations,
            result_count=len(chunks),
            response_time_ms=response_time_ms,
            ai_model=model_used,
        ),
    )
    record_answer(mode)

    logger.info(
        f"AI question answered ({mode}) in {response_time_ms}ms with "
        f"{len(citations)} citations for org {caller.org_id}"
    )

    return AnswerResponse(
        mode=mode,
        answer=outcome.text,
        citations=citations,
        graph=graph,
        audit_id=audit_id,
        model_used=model_used,
        response_time_ms=response_time_ms,
    )


async def answer_question_with_selected_documents(
    session: AsyncSession,
    ctx: RequestContext,
    question: str,
    document_ids: Sequence[UUID],
    orchestrator: AnswerOrchestrator,
    *,
    preferred_model: str | None = None,
    settings: Settings | None = None,
) -> AnswerResponse:
    """Answer only from documents the caller picked.

    Selected documents the caller cannot see are skipped. Provider failures
    of any kind degrade to an excerpt answer.

    Raises:
        InvalidInputError: Empty question, no tenant or empty selection
        NotFoundError: Tenant or user absent
        PermissionDeniedError: Caller lacks query_ai
    """
    settings = settings or get_settings()
    start = time.monotonic()

    question = _validate_question(ctx, question)
    if not document_ids:
        raise InvalidInputError("Please select at least one document.")

    caller = await load_caller(ctx, session)
    require_privilege(caller, PrivilegeName.query_ai)

    chunks = await load_selected_chunks(
        session,
        caller,
        document_ids,
        chunks_per_doc=settings.retrieval_chunks_per_doc,
    )

    if not chunks:
        response_time_ms = _elapsed_ms(start)
        audit_id = await record_query_safely(
            session,
            _audit_record(
                caller, question, response=NO_SELECTION_MESSAGE, response_time_ms=response_time_ms
            ),
        )
        record_answer("extractive")
        return AnswerResponse(
            mode="extractive",
            answer=NO_SELECTION_MESSAGE,
            citations=[],
            graph=build_graph(question, []),
            audit_id=audit_id,
            response_time_ms=response_time_ms,
        )

    outcome = await orchestrator.answer_selected(question, chunks, preferred_model)

    citations = build_citations(outcome.used_chunks, excerpt_chars=settings.citation_excerpt_chars)
    graph = build_graph(question, outcome.used_chunks)
    mode = "generated" if isinstance(outcome, GeneratedAnswer) else "extractive"
    model_used = outcome.model if isinstance(outcome, GeneratedAnswer) else None
    response_time_ms = _elapsed_ms(start)

    audit_id = await record_query_safely(
        session,
        _audit_record(
            caller,
            question,
            response=outcome.text,
            citations=citations,
            result_count=len(chunks),
            response_time_ms=response_time_ms,
            ai_model=model_used,
        ),
    )
    record_answer(mode)

    return AnswerResponse(
        mode=mode,
        answer=outcome.text,
        citations=citations,
        graph=graph,
        audit_id=audit_id,
        model_used=model_used,
        response_time_ms=response_time_ms,
    )
