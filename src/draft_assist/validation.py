from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Type, TypeVar

from .errors import SuggestionValidationError
from .models import (
    CandidateSuggestion,
    Category,
    ImportanceClass,
    Severity,
    Span,
    Suggestion,
)

logger = logging.getLogger(__name__)

_E = TypeVar("_E", bound=Enum)


def classify_importance(severity: Severity, confidence: float) -> ImportanceClass:
    """Derive the importance tier used for ordering and emphasis."""
    if severity is Severity.ERROR:
        return ImportanceClass.CRITICAL
    if severity is Severity.WARNING and confidence > 0.8:
        return ImportanceClass.IMPORTANT
    if confidence > 0.7:
        return ImportanceClass.IMPORTANT
    return ImportanceClass.MINOR


def validate(
    candidate: CandidateSuggestion,
    document: str,
    chunk_offset: int = 0,
    *,
    chunk_end: int | None = None,
    lenient: bool = False,
) -> Suggestion:
    """Turn a raw candidate into a canonical :class:`Suggestion` or raise.

    Chunk-local indices are shifted by ``chunk_offset``. The remapped span must
    lie inside ``[chunk_offset, chunk_end)`` and slice exactly ``original_text``
    out of ``document``. With ``lenient`` the exact text is searched for inside
    the chunk region when the stated indices are wrong.

    Raises:
        SuggestionValidationError: when the candidate cannot be accepted.
    """
    category = _coerce(Category, candidate.category, "category")
    severity = _coerce(Severity, candidate.severity, "severity")

    if not candidate.original_text:
        raise SuggestionValidationError("original text is empty")
    if not candidate.suggested_text:
        raise SuggestionValidationError("suggested text is empty")
    if not candidate.explanation or not candidate.explanation.strip():
        raise SuggestionValidationError("explanation is empty")
    if candidate.suggested_text == candidate.original_text:
        raise SuggestionValidationError("suggested text equals original text")

    confidence = _coerce_confidence(candidate.confidence)

    region_end = len(document) if chunk_end is None else min(chunk_end, len(document))
    try:
        start = chunk_offset + int(candidate.start_index)
        end = chunk_offset + int(candidate.end_index)
    except (TypeError, ValueError) as exc:
        raise SuggestionValidationError("indices are not integers") from exc

    if not _locates(document, start, end, chunk_offset, region_end, candidate.original_text):
        if not lenient:
            raise SuggestionValidationError(
                f"span [{start}, {end}) does not match original text"
            )
        start, end = _relocate(document, candidate.original_text, chunk_offset, region_end)
        logger.debug("Relocated candidate %r to [%s, %s)", candidate.original_text, start, end)

    suggestion_id = candidate.candidate_id or (
        f"{candidate.source.value}-{start}-{end}-{category.value}"
    )
    return Suggestion(
        id=suggestion_id,
        category=category,
        severity=severity,
        span=Span(start, end),
        original_text=candidate.original_text,
        suggested_text=candidate.suggested_text,
        explanation=candidate.explanation.strip(),
        confidence=confidence,
        importance=classify_importance(severity, confidence),
        source=candidate.source,
        contextual_reason=candidate.contextual_reason or None,
        alternatives=tuple(
            option for option in candidate.alternatives if option and option.strip()
        ),
    )


def _locates(
    document: str, start: int, end: int, region_start: int, region_end: int, text: str
) -> bool:
    if not (region_start <= start < end <= region_end):
        return False
    return document[start:end] == text


def _relocate(document: str, text: str, region_start: int, region_end: int) -> tuple[int, int]:
    position = document.find(text, region_start, region_end)
    if position == -1:
        raise SuggestionValidationError("original text not found in chunk region")
    return position, position + len(text)


def _coerce(enum_cls: Type[_E], value: object, label: str) -> _E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise SuggestionValidationError(f"unknown {label} {value!r}") from exc


def _coerce_confidence(value: object) -> float:
    try:
        confidence = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise SuggestionValidationError("confidence is not a number") from exc
    if math.isnan(confidence) or not 0.0 <= confidence <= 1.0:
        raise SuggestionValidationError(f"confidence {confidence} outside [0, 1]")
    return confidence
