"""Flesch Reading Ease scoring.

score = 206.835 - 1.015 * ASL - 84.6 * ASW, where ASL is the average sentence
length in words and ASW the average number of syllables per word.
"""

from __future__ import annotations

import re
from typing import List

from .models import ReadabilityResult

MIN_WORDS = 30

_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w\s]")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_SILENT_ENDING_RE = re.compile(r"(?:[^laeiouy]es|ed|[^laeiouy]e)$")
_VOWEL_GROUP_RE = re.compile(r"[aeiouy]+")

_BANDS = (
    (90, "very-easy", "green", "Very Easy"),
    (80, "easy", "green", "Easy"),
    (70, "fairly-easy", "yellow", "Fairly Easy"),
    (60, "standard", "yellow", "Standard"),
    (50, "fairly-difficult", "red", "Fairly Difficult"),
    (30, "difficult", "red", "Difficult"),
)


def calculate_flesch_reading_ease(text: str) -> ReadabilityResult | None:
    """Score ``text``; returns None when it has fewer than 30 words."""
    clean = _WHITESPACE_RE.sub(" ", text).strip()
    words = _words(clean)
    if len(words) < MIN_WORDS:
        return None

    sentence_count = max(
        1, sum(1 for sentence in _SENTENCE_SPLIT_RE.split(clean) if sentence.strip())
    )
    syllables = sum(count_syllables(word) for word in words)
    average_sentence_length = len(words) / sentence_count
    average_syllables = syllables / len(words)

    raw = 206.835 - 1.015 * average_sentence_length - 84.6 * average_syllables
    score = max(0, min(100, round(raw)))
    return ReadabilityResult(score=score, **_band(score))


def count_syllables(word: str) -> int:
    """Approximate syllables by counting vowel groups."""
    word = word.lower()
    if len(word) <= 2:
        return 1
    word = _SILENT_ENDING_RE.sub("", word)
    if word.startswith("y"):
        word = word[1:]
    return max(1, len(_VOWEL_GROUP_RE.findall(word)))


def _words(text: str) -> List[str]:
    stripped = _NON_WORD_RE.sub(" ", text.lower())
    return stripped.split()


def _band(score: int) -> dict[str, str]:
    for floor, level, color, description in _BANDS:
        if score >= floor:
            return {"level": level, "color": color, "description": description}
    return {"level": "very-difficult", "color": "red", "description": "Very Difficult"}
