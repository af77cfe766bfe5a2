"""Document endpoints - POST /docs, GET /docs/{doc_id}/status."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.api.auth import get_current_context
from backend.app.api.deps import get_background_session_factory
from backend.app.db.context import RequestContext
from backend.app.db.engine import get_session
from backend.app.docs.ingest import get_document_status, process_document, upload_document
from backend.app.models.docs import (
    AccessLevel,
    DocumentCategory,
    DocumentMetadata,
    DocumentStatusView,
    DocumentSummary,
    UploadedFile,
)

router = APIRouter(prefix="/docs", tags=["docs"])
logger = logging.getLogger(__name__)


class CreateDocRequest(BaseModel):
    """Request body for POST /docs."""

    file_name: str = Field(..., min_length=1, max_length=255, description="Original file name")
    content_type: str = Field("text/plain", description="MIME type of the file")
    text: str = Field(..., min_length=1, description="File content")
    title: str | None = Field(None, max_length=200, description="Defaults to the file name")
    description: str = Field("", max_length=1000)
    tags: list[str] = Field(default_factory=list)
    category: DocumentCategory = DocumentCategory.other
    department: str = "General"
    access_level: AccessLevel = AccessLevel.public


@router.post("", response_model=DocumentSummary, status_code=status.HTTP_202_ACCEPTED)
async def create_doc(
    request: CreateDocRequest,
    background_tasks: BackgroundTasks,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    session_factory: Annotated[
        async_sessionmaker[AsyncSession], Depends(get_background_session_factory)
    ],
) -> DocumentSummary:
    """Upload a document; extraction and chunking run after the response.

    Poll GET /docs/{doc_id}/status until it leaves ``processing``.
    """
    summary = await upload_document(
        session,
        ctx,
        UploadedFile(
            file_name=request.file_name,
            content_type=request.content_type,
            data=request.text.encode("utf-8"),
        ),
        DocumentMetadata(
            title=request.title,
            description=request.description,
            tags=request.tags,
            category=request.category,
            department=request.department,
            access_level=request.access_level,
        ),
    )

    background_tasks.add_task(process_document, summary.doc_id, summary.org_id, session_factory)
    return summary


@router.get("/{doc_id}/status", response_model=DocumentStatusView)
async def doc_status(
    doc_id: UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentStatusView:
    """Processing status of a document visible to the caller."""
    return await get_document_status(session, ctx, doc_id)
