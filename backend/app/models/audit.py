"""Query audit domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class QueryType(str, Enum):
    """Kind of audited query."""

    search = "search"
    question = "question"


class QueryStatus(str, Enum):
    """Outcome of an audited query."""

    success = "success"
    error = "error"


class Feedback(str, Enum):
    """User feedback on an answer."""

    helpful = "helpful"
    not_helpful = "not_helpful"
    incorrect = "incorrect"


class CitedChunk(BaseModel):
    """Snapshot of a cited chunk at query time."""

    document_id: UUID
    document_title: str
    chunk_index: int
    excerpt: str
    clicked: bool = False


class SearchResultRef(BaseModel):
    """Snapshot of a ranked search hit at query time."""

    document_id: UUID
    document_title: str
    rank: int
    clicked: bool = False


class QueryAuditRecord(BaseModel):
    """Snapshot written once per query."""

    query: str = Field(..., max_length=2000)
    query_type: QueryType = QueryType.question
    user_id: UUID
    org_id: UUID
    user_department: str
    user_role: str
    cited_chunks: list[CitedChunk] = Field(default_factory=list)
    search_results: list[SearchResultRef] = Field(default_factory=list)
    result_count: int = 0
    response: str | None = None
    response_time_ms: int | None = None
    ai_model: str | None = None
    status: QueryStatus = QueryStatus.success
    error_message: str | None = None


class QueryHistoryItem(BaseModel):
    """Entry of a user's query history."""

    audit_id: UUID
    query: str
    query_type: QueryType
    response: str | None
    feedback: Feedback | None
    rating: int | None
    created_at: datetime


class RecentSearch(BaseModel):
    """Distinct recent search of a user."""

    query: str
    result_count: int
    created_at: datetime


class PopularSearch(BaseModel):
    """Search text with how often it was issued in the tenant."""

    query: str
    count: int
    last_searched: datetime
