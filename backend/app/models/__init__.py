"""Models package - re-exports for convenience."""

from backend.app.models.access import (
    ALL_PRIVILEGES,
    Caller,
    OrgSettings,
    PrivilegeName,
    Role,
    UserProfile,
)
from backend.app.models.answer import (
    AnswerResponse,
    Citation,
    GraphEdge,
    GraphNode,
    GraphPlan,
    KnowledgeGraph,
    SelectDocumentsResponse,
)
from backend.app.models.audit import (
    CitedChunk,
    Feedback,
    QueryAuditRecord,
    QueryHistoryItem,
    QueryStatus,
    QueryType,
)
from backend.app.models.docs import (
    AccessLevel,
    CandidateDocument,
    Chunk,
    DocumentCategory,
    DocumentMetadata,
    DocumentStatus,
    DocumentStatusView,
    DocumentSummary,
    RetrievedChunk,
    UploadedFile,
)

__all__ = [
    # Access
    "ALL_PRIVILEGES",
    "Caller",
    "OrgSettings",
    "PrivilegeName",
    "Role",
    "UserProfile",
    # Documents
    "AccessLevel",
    "CandidateDocument",
    "Chunk",
    "DocumentCategory",
    "DocumentMetadata",
    "DocumentStatus",
    "DocumentStatusView",
    "DocumentSummary",
    "RetrievedChunk",
    "UploadedFile",
    # Answers
    "AnswerResponse",
    "Citation",
    "GraphEdge",
    "GraphNode",
    "GraphPlan",
    "KnowledgeGraph",
    "SelectDocumentsResponse",
    # Audit
    "CitedChunk",
    "Feedback",
    "QueryAuditRecord",
    "QueryHistoryItem",
    "QueryStatus",
    "QueryType",
]
