from __future__ import annotations

import logging
import re
from typing import List

from .models import TextChunk

logger = logging.getLogger(__name__)

SENTENCE_END_RE = re.compile(r"[.!?]\s+")
FOCUS_OPEN = "[FOCUS]"
FOCUS_CLOSE = "[/FOCUS]"


def truncate_document(document: str, max_text_length: int) -> str:
    """Cap the amount of text a single analysis will look at."""
    if max_text_length > 0 and len(document) > max_text_length:
        logger.debug(
            "Truncating document from %s to %s characters",
            len(document),
            max_text_length,
        )
        return document[:max_text_length]
    return document


def segment(
    document: str,
    max_chunk_size: int = 500,
    overlap_size: int = 50,
    sentence_search_slack: int = 50,
    max_text_length: int = 5000,
) -> List[TextChunk]:
    """Split a document into overlapping, sentence-aware windows.

    Each window is at most ``max_chunk_size`` characters, except that the cut may
    move up to ``sentence_search_slack`` characters forward to land just after a
    sentence terminator. Consecutive windows share ``overlap_size`` characters so
    the union of ``[start_index, end_index)`` covers the whole (truncated) text.
    """
    text = truncate_document(document, max_text_length)
    max_chunk_size = max(1, max_chunk_size)
    if len(text) <= max_chunk_size:
        return [TextChunk(chunk_id=0, text=text, start_index=0, end_index=len(text))]

    overlap = max(0, min(overlap_size, max_chunk_size - 1))
    chunks: List[TextChunk] = []
    start = 0
    chunk_id = 0

    while start < len(text):
        naive_end = min(start + max_chunk_size, len(text))
        end = naive_end
        if naive_end < len(text):
            boundary = find_sentence_end(text, start, naive_end, sentence_search_slack)
            # Refuse boundaries that would leave a runt window.
            if boundary > start + max_chunk_size / 2:
                end = boundary

        chunks.append(
            TextChunk(
                chunk_id=chunk_id,
                text=text[start:end],
                start_index=start,
                end_index=end,
                context=build_context(text, start, end, overlap),
            )
        )
        chunk_id += 1
        if end >= len(text):
            break
        start = max(end - overlap, start + 1)

    return chunks


def find_sentence_end(text: str, start: int, target: int, slack: int) -> int:
    """Return the last sentence boundary in ``[start, target + slack]``, else ``target``."""
    limit = min(target + max(0, slack), len(text))
    search_end = min(target + 2 * max(0, slack), len(text))
    boundary = target
    for match in SENTENCE_END_RE.finditer(text, start, search_end):
        position = match.end()
        if position > limit:
            break
        boundary = position
    return boundary


def build_context(text: str, start: int, end: int, overlap: int) -> str:
    """Wrap the focus region in sentinels with up to ``overlap`` chars either side."""
    before = text[max(0, start - overlap) : start]
    after = text[end : min(len(text), end + overlap)]
    return f"{before}{FOCUS_OPEN}{text[start:end]}{FOCUS_CLOSE}{after}"
