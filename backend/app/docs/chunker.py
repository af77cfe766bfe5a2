"""Document chunker - overlapping, sentence-aligned windows."""

from collections.abc import Iterator
from dataclasses import dataclass

from backend.app.models.docs import Chunk

CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200

_BREAK_CHARS = ".?!\n"


@dataclass(frozen=True)
class TextSpan:
    """Half-open character range ``[start, end)`` of the source text."""

    start: int
    end: int


def iter_spans(
    text: str,
    *,
    size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
) -> Iterator[TextSpan]:
    """Walk the text in fixed windows, snapping cuts to sentence breaks.

    Pure generator with no I/O. Consecutive spans overlap by ``overlap``
    characters (less when a window was snapped short), the first span starts
    at 0 and the last one ends at ``len(text)``.

    Strategy:
        1. Take the window ``[start, start + size)``
        2. If the window ends before the text does, find the last ``.``,
           ``?``, ``!`` or newline in it; when that break lies in the second
           half of the window, cut right after it
        3. Next window starts at ``end - overlap``; when that does not move
           forward, start at ``end`` instead
        4. Stop once a window reaches the end of the text
    """
    if size <= 0:
        raise ValueError("size must be positive")
    if overlap < 0:
        raise ValueError("overlap must not be negative")

    length = len(text)
    start = 0

    while start < length:
        end = min(start + size, length)

        if end < length:
            window = text[start:end]
            last_break = max(window.rfind(ch) for ch in _BREAK_CHARS)
            if last_break > size // 2:
                end = start + last_break + 1

        yield TextSpan(start=start, end=end)

        if end >= length:
            return

        next_start = end - overlap
        if next_start <= start:
            next_start = end
        start = next_start


def chunk_text(
    text: str,
    *,
    size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
) -> list[Chunk]:
    """Chunk document text into ordered, trimmed segments.

    Whitespace-only windows are dropped; indices stay contiguous from 0.

    Args:
        text: Extracted document text
        size: Target window in characters (default 1000)
        overlap: Characters shared with the previous window (default 200)

    Returns:
        List of Chunk with chunk_index 0, 1, 2, ...
    """
    if not text or not text.strip():
        return []

    chunks: list[Chunk] = []
    for span in iter_spans(text, size=size, overlap=overlap):
        piece = text[span.start : span.end].strip()
        if not piece:
            continue
        chunks.append(Chunk(text=piece, chunk_index=len(chunks)))

    return chunks
