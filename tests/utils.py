from __future__ import annotations

from draft_assist.errors import GenerationError
from draft_assist.generation import SuggestionGenerator
from draft_assist.models import (
    CandidateSuggestion,
    Category,
    ImportanceClass,
    Severity,
    Span,
    Suggestion,
    SuggestionSource,
)


def make_suggestion(
    start: int,
    end: int,
    *,
    category: Category = Category.STYLE,
    importance: ImportanceClass = ImportanceClass.MINOR,
    confidence: float = 0.5,
    source: SuggestionSource = SuggestionSource.MODEL,
    sid: str | None = None,
) -> Suggestion:
    """Build a suggestion with placeholder text for ordering/merging tests."""
    return Suggestion(
        id=sid or f"{source.value}-{start}-{end}-{category.value}",
        category=category,
        severity=Severity.SUGGESTION,
        span=Span(start, end),
        original_text="x" * (end - start),
        suggested_text="y",
        explanation="because",
        confidence=confidence,
        importance=importance,
        source=source,
    )


SENTENCE = "The quick brown fox jumps over the lazy dog. "


class ScriptedGenerator(SuggestionGenerator):
    """Suggests "quick" -> "fast" and "lazy" -> "sleepy" plus one bogus span per chunk."""

    def __init__(self, fail_chunks: tuple[int, ...] = (), hang: bool = False) -> None:
        self.fail_chunks = fail_chunks
        self.hang = hang
        self.calls: list[int] = []

    async def generate_for_chunk(self, chunk, document_context=None, cancel=None):
        self.calls.append(chunk.chunk_id)
        if self.hang and cancel is not None:
            await cancel.wait()
            return []
        if chunk.chunk_id in self.fail_chunks:
            raise GenerationError(f"chunk {chunk.chunk_id} exploded")
        return [
            _candidate(chunk.text, "quick", "fast"),
            _candidate(chunk.text, "lazy", "sleepy"),
            CandidateSuggestion(
                category="word-choice",
                severity="suggestion",
                original_text="slow",
                suggested_text="fast",
                explanation="Hallucinated position.",
                start_index=0,
                end_index=4,
                confidence=0.8,
            ),
        ]


def _candidate(text: str, original: str, replacement: str) -> CandidateSuggestion:
    start = text.find(original)
    return CandidateSuggestion(
        category="word-choice",
        severity="suggestion",
        original_text=original,
        suggested_text=replacement,
        explanation=f"Prefer {replacement!r}.",
        start_index=start,
        end_index=start + len(original),
        confidence=0.8,
    )
