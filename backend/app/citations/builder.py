"""Citation building from the chunks behind an answer."""

from collections.abc import Sequence

from backend.app.models.answer import Citation
from backend.app.models.audit import CitedChunk
from backend.app.models.docs import RetrievedChunk

EXCERPT_CHARS = 200


def relevance_for_position(position: int) -> float:
    """1.0 for the first chunk, 0.1 less per rank, floored at 0."""
    return max(0.0, round(1.0 - 0.1 * position, 1))


def excerpt_of(text: str, limit: int = EXCERPT_CHARS) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def build_citations(
    used_chunks: Sequence[RetrievedChunk],
    *,
    excerpt_chars: int = EXCERPT_CHARS,
) -> list[Citation]:
    """Map used chunks to citations, one per chunk, preserving rank order.

    Args:
        used_chunks: Chunks that actually grounded the answer
        excerpt_chars: Excerpt length before the "..." suffix

    Returns:
        List of Citation, never longer than ``used_chunks``
    """
    return [
        Citation(
            document_id=chunk.document_id,
            title=chunk.document_title,
            hash=chunk.document_hash,
            chunk_index=chunk.chunk_index,
            excerpt=excerpt_of(chunk.text, excerpt_chars),
            relevance_score=relevance_for_position(position),
        )
        for position, chunk in enumerate(used_chunks)
    ]


def cited_chunks_for_audit(citations: Sequence[Citation]) -> list[CitedChunk]:
    """Snapshot of citations stored on the query audit record."""
    return [
        CitedChunk(
            document_id=citation.document_id,
            document_title=citation.title,
            chunk_index=citation.chunk_index,
            excerpt=citation.excerpt,
        )
        for citation in citations
    ]
