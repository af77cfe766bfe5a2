"""QA endpoints - ask, ask with selected documents, feedback, clicks, history."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.access.service import load_caller
from backend.app.api.auth import get_current_context
from backend.app.api.deps import get_orchestrator
from backend.app.audit.query_log import (
    attach_feedback,
    list_user_history,
    mark_clicked,
)
from backend.app.db.context import RequestContext
from backend.app.db.engine import get_session
from backend.app.models.answer import AnswerResponse, SelectDocumentsResponse
from backend.app.models.audit import QueryHistoryItem
from backend.app.qa.orchestrator import AnswerOrchestrator
from backend.app.qa.service import answer_question, answer_question_with_selected_documents

router = APIRouter(prefix="/qa", tags=["qa"])
logger = logging.getLogger(__name__)


class AskRequest(BaseModel):
    """Request body for POST /qa/ask."""

    question: str = Field(..., description="Natural-language question")
    preferred_model: str | None = Field(None, description="Model tried before the fallbacks")


class AskSelectedRequest(BaseModel):
    """Request body for POST /qa/ask/selected."""

    question: str
    document_ids: list[UUID] = Field(default_factory=list)
    preferred_model: str | None = None


class FeedbackRequest(BaseModel):
    """Request body for POST /qa/{audit_id}/feedback.

    Values are checked by the audit service so bad input maps to 400.
    """

    feedback: str
    rating: int | None = None
    comment: str | None = None


class ClickRequest(BaseModel):
    """Request body for POST /qa/{audit_id}/click."""

    document_id: UUID


class ClickResponse(BaseModel):
    marked: bool


class HistoryResponse(BaseModel):
    """Response for GET /qa/history."""

    items: list[QueryHistoryItem]


@router.post("/ask", response_model=AnswerResponse | SelectDocumentsResponse)
async def ask(
    request: AskRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    orchestrator: Annotated[AnswerOrchestrator, Depends(get_orchestrator)],
) -> AnswerResponse | SelectDocumentsResponse:
    """Answer a question from the caller's visible documents.

    Returns ``mode=select_documents`` with candidates when the AI service is
    unavailable.
    """
    return await answer_question(
        session, ctx, request.question, orchestrator, preferred_model=request.preferred_model
    )


@router.post("/ask/selected", response_model=AnswerResponse)
async def ask_selected(
    request: AskSelectedRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    orchestrator: Annotated[AnswerOrchestrator, Depends(get_orchestrator)],
) -> AnswerResponse:
    """Answer a question from documents the caller picked."""
    return await answer_question_with_selected_documents(
        session,
        ctx,
        request.question,
        request.document_ids,
        orchestrator,
        preferred_model=request.preferred_model,
    )


@router.post("/{audit_id}/feedback", status_code=status.HTTP_204_NO_CONTENT)
async def feedback(
    audit_id: UUID,
    request: FeedbackRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> None:
    """Attach feedback (helpful, not_helpful, incorrect) to an answered question."""
    caller = await load_caller(ctx, session)
    await attach_feedback(
        session,
        caller,
        audit_id,
        request.feedback,
        rating=request.rating,
        comment=request.comment,
    )


@router.post("/{audit_id}/click", response_model=ClickResponse)
async def click(
    audit_id: UUID,
    request: ClickRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ClickResponse:
    """Record that the caller opened a cited document."""
    caller = await load_caller(ctx, session)
    marked = await mark_clicked(session, caller, audit_id, request.document_id)
    return ClickResponse(marked=marked)


@router.get("/history", response_model=HistoryResponse)
async def history(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> HistoryResponse:
    """Most recent questions of the caller."""
    caller = await load_caller(ctx, session)
    items = await list_user_history(session, caller, limit=limit)
    return HistoryResponse(items=items)

