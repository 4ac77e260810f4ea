from __future__ import annotations

import zlib


def content_hash(text: str, context: str | None = None) -> str:
    """Return a fast, deterministic (non-cryptographic) key for ``text``.

    Collisions are tolerated; see :mod:`draft_assist.errors`.
    """
    payload = text if not context else f"{context}\x00{text}"
    data = payload.encode("utf-8")
    return f"{zlib.crc32(data):08x}{len(data):x}"


def word_count(text: str) -> int:
    return len(text.split())


def has_significant_changes(new_text: str, old_text: str | None) -> bool:
    """Decide whether ``new_text`` differs enough from ``old_text`` to re-run the model.

    Triggers when the length changes by more than ``max(10, 5%)`` characters or
    the word count changes by more than ``max(2, 10%)`` words.
    """
    if not old_text:
        return True

    length_diff = abs(len(new_text) - len(old_text))
    if length_diff > max(10, len(old_text) * 0.05):
        return True

    old_words = word_count(old_text)
    word_diff = abs(word_count(new_text) - old_words)
    return word_diff > max(2, old_words * 0.1)
