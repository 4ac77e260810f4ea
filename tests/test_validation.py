import pytest

from draft_assist.errors import SuggestionValidationError
from draft_assist.models import CandidateSuggestion, ImportanceClass, Severity
from draft_assist.validation import classify_importance, validate

DOC = "Intro text. The data are wrong here. Closing words."


def _candidate(**overrides) -> CandidateSuggestion:
    fields = dict(
        category="grammar",
        severity="error",
        original_text="are",
        suggested_text="is",
        explanation="Treat data as singular here.",
        start_index=9,
        end_index=12,
        confidence=0.8,
    )
    fields.update(overrides)
    return CandidateSuggestion(**fields)


def test_chunk_local_indices_are_remapped():
    """Indices are shifted by the chunk offset into document coordinates."""
    suggestion = validate(_candidate(), DOC, chunk_offset=12)

    assert (suggestion.span.start, suggestion.span.end) == (21, 24)
    assert DOC[21:24] == "are"
    assert suggestion.importance is ImportanceClass.CRITICAL


@pytest.mark.parametrize(
    "overrides",
    [
        {"original_text": ""},
        {"suggested_text": ""},
        {"explanation": "   "},
        {"suggested_text": "are"},
        {"confidence": 1.5},
        {"confidence": -0.1},
        {"category": "poetry"},
        {"severity": "fatal"},
    ],
)
def test_malformed_candidates_are_rejected(overrides):
    """Empty fields, no-op edits, bad confidence and unknown enums are rejected."""
    with pytest.raises(SuggestionValidationError):
        validate(_candidate(**overrides), DOC, chunk_offset=12)


def test_mismatched_text_is_rejected_in_strict_mode():
    """A hallucinated position fails the exact-slice check."""
    with pytest.raises(SuggestionValidationError):
        validate(_candidate(start_index=0, end_index=3), DOC, chunk_offset=12)


def test_span_outside_originating_chunk_is_rejected():
    """Suggestions landing in context-only padding are discarded."""
    candidate = _candidate(original_text="Closing", start_index=25, end_index=32)
    with pytest.raises(SuggestionValidationError):
        validate(candidate, DOC, chunk_offset=12, chunk_end=36)


def test_lenient_mode_relocates_within_chunk():
    """Lenient mode finds the exact text inside the chunk region instead."""
    suggestion = validate(
        _candidate(start_index=0, end_index=3), DOC, chunk_offset=12, chunk_end=36, lenient=True
    )

    assert DOC[suggestion.span.start : suggestion.span.end] == "are"
    assert suggestion.span.start == 21


def test_importance_classification_table():
    """Severity and confidence map onto the three tiers."""
    assert classify_importance(Severity.ERROR, 0.1) is ImportanceClass.CRITICAL
    assert classify_importance(Severity.WARNING, 0.85) is ImportanceClass.IMPORTANT
    assert classify_importance(Severity.WARNING, 0.75) is ImportanceClass.IMPORTANT
    assert classify_importance(Severity.SUGGESTION, 0.75) is ImportanceClass.IMPORTANT
    assert classify_importance(Severity.SUGGESTION, 0.7) is ImportanceClass.MINOR
    assert classify_importance(Severity.WARNING, 0.5) is ImportanceClass.MINOR
