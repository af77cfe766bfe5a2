"""Document search response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class SearchHit(BaseModel):
    """Document metadata of one ranked search result."""

    document_id: UUID
    title: str
    description: str
    category: str
    department: str
    tags: list[str] = Field(default_factory=list)
    file_name: str
    hash: str
    score: int
    created_at: datetime


class SearchPage(BaseModel):
    """One page of search results."""

    documents: list[SearchHit]
    total: int
    page: int
    pages: int
    audit_id: UUID | None = None
