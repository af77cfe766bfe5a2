"""Document domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    """Document lifecycle status."""

    processing = "processing"
    active = "active"
    archived = "archived"
    failed = "failed"


class AccessLevel(str, Enum):
    """Who may see a document."""

    public = "public"
    department = "department"
    private = "private"


class DocumentCategory(str, Enum):
    """Document category."""

    policy = "policy"
    procedure = "procedure"
    technical = "technical"
    hr = "hr"
    finance = "finance"
    legal = "legal"
    training = "training"
    marketing = "marketing"
    product = "product"
    other = "other"


class Chunk(BaseModel):
    """Ordered slice of a document's extracted text."""

    text: str
    chunk_index: int = Field(..., ge=0)
    start_page: int | None = None
    end_page: int | None = None


class UploadedFile(BaseModel):
    """Raw uploaded file handed over by the transport layer."""

    file_name: str = Field(..., min_length=1)
    content_type: str = "text/plain"
    data: bytes


class DocumentMetadata(BaseModel):
    """User-supplied metadata for an upload."""

    title: str | None = Field(None, max_length=200)
    description: str = Field("", max_length=1000)
    tags: list[str] = Field(default_factory=list)
    category: DocumentCategory = DocumentCategory.other
    department: str = "General"
    access_level: AccessLevel = AccessLevel.public


class DocumentSummary(BaseModel):
    """Document metadata without content or chunks."""

    doc_id: UUID
    org_id: UUID
    uploaded_by: UUID
    hash: str
    title: str
    description: str
    tags: list[str]
    category: DocumentCategory
    department: str
    access_level: AccessLevel
    status: DocumentStatus
    file_name: str
    created_at: datetime


class DocumentStatusView(BaseModel):
    """Polled processing status of a document."""

    status: DocumentStatus
    error: str | None = None
    updated_at: datetime | None = None


class RetrievedChunk(BaseModel):
    """Chunk annotated with its owning document, as returned by retrieval."""

    text: str
    chunk_index: int
    start_page: int | None = None
    end_page: int | None = None
    document_id: UUID
    document_title: str
    document_hash: str
    document_description: str = ""
    document_tags: list[str] = Field(default_factory=list)
    document_category: str = "other"
    file_name: str = ""


class CandidateDocument(BaseModel):
    """Document offered for manual selection when the model is unavailable."""

    document_id: UUID
    title: str
    description: str
    category: str
    tags: list[str]
    file_name: str
    hash: str
