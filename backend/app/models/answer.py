"""Response models for question answering: citations, graph, answers."""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from backend.app.models.docs import CandidateDocument


class Citation(BaseModel):
    """User-facing source reference for one used chunk."""

    document_id: UUID
    title: str
    hash: str = ""
    chunk_index: int
    excerpt: str = Field(..., description="Chunk text truncated to the excerpt limit")
    relevance_score: float = Field(..., ge=0.0, le=1.0)


class GraphNode(BaseModel):
    """Node of the knowledge graph; layer 0 question, 1 document, 2 chunk, 3 keyword."""

    id: str
    type: Literal["question", "document", "chunk", "keyword"]
    label: str
    layer: int
    document_id: str | None = None
    angle: float | None = None
    distance: float | None = None
    relevance: float | None = None
    hash: str | None = None
    tags: list[str] = Field(default_factory=list)
    category: str | None = None
    excerpt: str | None = None
    count: int | None = None


class GraphEdge(BaseModel):
    """Directed edge between two graph nodes."""

    source: str
    target: str
    type: Literal["question-doc", "doc-chunk", "chunk-keyword", "doc-doc"]
    strength: float | None = None
    reason: str | None = None


class KnowledgeGraph(BaseModel):
    """Layered graph built from the chunks behind an answer."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)


class ChunkRef(BaseModel):
    """Chunk selected by a graph plan."""

    document_title: str = Field(..., alias="documentTitle")
    chunk_index: int = Field(..., alias="chunkIndex")

    model_config = {"populate_by_name": True}


class DocLink(BaseModel):
    """Document link proposed by a graph plan."""

    source_title: str = Field(..., alias="sourceTitle")
    target_title: str = Field(..., alias="targetTitle")
    reason: str = ""

    model_config = {"populate_by_name": True}


class GraphPlan(BaseModel):
    """Model-proposed selection of keywords, chunks and document links."""

    keywords: list[str] = Field(default_factory=list)
    chunk_refs: list[ChunkRef] = Field(default_factory=list, alias="chunkRefs")
    doc_links: list[DocLink] = Field(default_factory=list, alias="docLinks")

    model_config = {"populate_by_name": True}


class AnswerResponse(BaseModel):
    """Answer with its grounding."""

    mode: Literal["generated", "extractive"]
    answer: str
    citations: list[Citation] = Field(default_factory=list)
    graph: KnowledgeGraph
    audit_id: UUID | None = None
    model_used: str | None = None
    response_time_ms: int


class SelectDocumentsResponse(BaseModel):
    """Degraded mode: the caller picks 1-2 documents to answer from."""

    mode: Literal["select_documents"] = "select_documents"
    message: str = (
        "AI service is unavailable. Select 1-2 documents to answer from specific sources."
    )
    candidates: list[CandidateDocument] = Field(default_factory=list)
    audit_id: UUID | None = None
