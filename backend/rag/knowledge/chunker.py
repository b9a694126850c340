"""Split long text into bounded, overlapping chunks."""

import math

from backend.rag.errors import RagValidationError

# Earlier entries win when two boundaries end at the same offset.
_BOUNDARIES = ("\n\n", ". ", "? ", "! ", "\n")


def estimate_tokens(text: str) -> int:
    """Rough token count for budgeting: one token per four characters."""
    return math.ceil(len(text) / 4)


def _snap_to_boundary(text: str, start: int, end: int, chunk_size: int) -> int:
    """Pull ``end`` back to the last sentence or paragraph break in the tail.

    Only the last 20% of the window is searched so chunks never shrink below
    80% of the target size.
    """
    search_start = start + int(chunk_size * 0.8)
    window = text[search_start:end]
    best = -1
    for sep in _BOUNDARIES:
        pos = window.rfind(sep)
        if pos == -1:
            continue
        # Keep the punctuation (or the paragraph break) in this chunk
        cut = pos + (len(sep) if sep.isspace() else 1)
        best = max(best, cut)
    if best <= 0:
        return end
    return search_start + best


def chunk_spans(text: str, chunk_size: int = 1000, overlap: int = 150) -> list[tuple[int, int]]:
    """Return ``(start, end)`` offsets of each chunk of ``text``.

    Consecutive spans touch or overlap, so together they cover every
    character of the input. Whitespace-only input yields no spans.

    Args:
        text: Text to split.
        chunk_size: Target chunk length in characters.
        overlap: Characters repeated at the start of the next chunk.

    Returns:
        Offsets in document order.
    """
    if chunk_size <= 0:
        raise RagValidationError("chunk_size must be positive")
    if not 0 <= overlap < chunk_size:
        raise RagValidationError("overlap must be >= 0 and smaller than chunk_size")
    if not text.strip():
        return []

    spans: list[tuple[int, int]] = []
    length = len(text)
    start = 0
    while start < length:
        end = min(start + chunk_size, length)
        if end < length:
            end = _snap_to_boundary(text, start, end, chunk_size)
        spans.append((start, end))
        if end >= length:
            break
        start = max(end - overlap, start + 1)
    return spans


def chunk(text: str, chunk_size: int = 1000, overlap: int = 150) -> list[str]:
    """Split ``text`` into overlapping chunks.

    Chunks are exact slices of the input; slices made only of whitespace are
    skipped since they carry nothing to embed.
    """
    return [
        text[start:end]
        for start, end in chunk_spans(text, chunk_size, overlap)
        if text[start:end].strip()
    ]
