from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple


class Category(str, Enum):
    """Kind of writing issue a suggestion addresses."""

    GRAMMAR = "grammar"
    SPELLING = "spelling"
    STYLE = "style"
    CLARITY = "clarity"
    CONCISENESS = "conciseness"
    ACTIVE_VOICE = "active-voice"
    WORD_CHOICE = "word-choice"
    SENTENCE_STRUCTURE = "sentence-structure"
    TONE = "tone"


class Severity(str, Enum):
    """How serious an issue is, ordered error > warning > suggestion."""

    ERROR = "error"
    WARNING = "warning"
    SUGGESTION = "suggestion"


class ImportanceClass(str, Enum):
    """Display/merge priority tier derived from severity and confidence."""

    CRITICAL = "critical"
    IMPORTANT = "important"
    MINOR = "minor"

    @property
    def rank(self) -> int:
        return _IMPORTANCE_RANK[self]


_IMPORTANCE_RANK = {
    ImportanceClass.CRITICAL: 0,
    ImportanceClass.IMPORTANT: 1,
    ImportanceClass.MINOR: 2,
}


class SuggestionSource(str, Enum):
    RULE_ENGINE = "rule-engine"
    MODEL = "model"


@dataclass(frozen=True, slots=True)
class Span:
    """Half-open character interval ``[start, end)`` into a document."""

    start: int
    end: int

    def overlaps(self, other: "Span") -> bool:
        return not (self.end <= other.start or other.end <= self.start)

    def shifted(self, offset: int) -> "Span":
        return Span(self.start + offset, self.end + offset)


@dataclass(frozen=True, slots=True)
class Suggestion:
    """A validated edit proposal expressed in document-global coordinates."""

    id: str
    category: Category
    severity: Severity
    span: Span
    original_text: str
    suggested_text: str
    explanation: str
    confidence: float
    importance: ImportanceClass
    source: SuggestionSource
    contextual_reason: str | None = None
    alternatives: Tuple[str, ...] = ()

    @property
    def dedupe_key(self) -> Tuple[int, int, Category]:
        return (self.span.start, self.span.end, self.category)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        payload: dict[str, Any] = {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.value,
            "start": self.span.start,
            "end": self.span.end,
            "original_text": self.original_text,
            "suggested_text": self.suggested_text,
            "explanation": self.explanation,
            "confidence": self.confidence,
            "importance": self.importance.value,
            "source": self.source.value,
        }
        if self.contextual_reason:
            payload["contextual_reason"] = self.contextual_reason
        if self.alternatives:
            payload["alternatives"] = list(self.alternatives)
        return payload


@dataclass(slots=True)
class CandidateSuggestion:
    """Unvalidated suggestion as produced by the rule engine or the model.

    ``start_index``/``end_index`` are relative to the originating chunk.
    """

    category: Category | str
    severity: Severity | str
    original_text: str
    suggested_text: str
    explanation: str
    start_index: int
    end_index: int
    confidence: float
    source: SuggestionSource = SuggestionSource.MODEL
    candidate_id: str | None = None
    contextual_reason: str | None = None
    alternatives: List[str] = field(default_factory=list)


@dataclass(slots=True)
class TextChunk:
    """A window over a document; ``context`` is prompt-only padding."""

    chunk_id: int
    text: str
    start_index: int
    end_index: int
    context: str | None = None


@dataclass(slots=True)
class CacheEntry:
    suggestions: List[Suggestion]
    created_at: float


@dataclass(slots=True)
class ReadabilityResult:
    """Flesch Reading Ease score with its display band."""

    score: int
    level: str
    color: str
    description: str


@dataclass(slots=True)
class AnalysisSummary:
    total_issues: int
    per_category_counts: Dict[str, int]
    readability: ReadabilityResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_issues": self.total_issues,
            "per_category_counts": dict(self.per_category_counts),
            "readability": (
                None
                if self.readability is None
                else {
                    "score": self.readability.score,
                    "level": self.readability.level,
                    "color": self.readability.color,
                    "description": self.readability.description,
                }
            ),
        }


@dataclass(slots=True)
class AnalysisResult:
    suggestions: List[Suggestion]
    summary: AnalysisSummary

    def to_dict(self) -> dict[str, Any]:
        return {
            "suggestions": [suggestion.to_dict() for suggestion in self.suggestions],
            "summary": self.summary.to_dict(),
        }


@dataclass(slots=True)
class HybridResult:
    """Immediate answer from the hybrid orchestrator."""

    suggestions: List[Suggestion]
    still_enriching: bool
