from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Sequence

from .errors import SuggestionValidationError
from .models import CandidateSuggestion, Category, Severity, Suggestion, SuggestionSource
from .validation import validate

logger = logging.getLogger(__name__)

Replacement = str | Callable[[re.Match[str]], str]


@dataclass(frozen=True, slots=True)
class Rule:
    """A pattern plus either a ``\\g<n>`` template or a replacement function."""

    pattern: re.Pattern[str]
    replacement: Replacement
    category: Category
    explanation: str

    def render(self, match: re.Match[str]) -> str:
        if callable(self.replacement):
            return self.replacement(match)
        return match.expand(self.replacement)

    @property
    def severity(self) -> Severity:
        if self.category in (Category.GRAMMAR, Category.SPELLING):
            return Severity.ERROR
        return Severity.SUGGESTION


def _swap_ie(match: re.Match[str]) -> str:
    return match.group(0).replace("ie", "ei", 1)


DEFAULT_RULES: tuple[Rule, ...] = (
    Rule(
        re.compile(r"\bthere\s+is\s+(\w+)\s+(\w+s)\b", re.IGNORECASE),
        r"there are \g<1> \g<2>",
        Category.GRAMMAR,
        'Use "there are" with plural nouns',
    ),
    Rule(
        re.compile(r"\byour\s+welcome\b", re.IGNORECASE),
        "you're welcome",
        Category.GRAMMAR,
        "Use \"you're\" (you are) instead of \"your\"",
    ),
    Rule(
        re.compile(r"\bits\s+a\s+good\s+idea\b", re.IGNORECASE),
        "it's a good idea",
        Category.GRAMMAR,
        "Use \"it's\" (it is) instead of \"its\"",
    ),
    Rule(
        re.compile(r"\b(recieve|recieved|recieving)\b", re.IGNORECASE),
        _swap_ie,
        Category.SPELLING,
        'Remember: "i before e except after c"',
    ),
    Rule(
        re.compile(r"\bvery\s+(\w+)\b", re.IGNORECASE),
        r"\g<1>",
        Category.STYLE,
        'Consider removing "very" for more concise writing',
    ),
    Rule(
        re.compile(r"\bin\s+order\s+to\b", re.IGNORECASE),
        "to",
        Category.CLARITY,
        'Simply use "to" instead of "in order to"',
    ),
)


class RuleEngine:
    """Deterministic, synchronous suggestion source over the whole document."""

    def __init__(
        self, rules: Sequence[Rule] = DEFAULT_RULES, confidence: float = 0.9
    ) -> None:
        self._rules = tuple(rules)
        self._confidence = confidence

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def quick_suggestions(self, document: str) -> List[Suggestion]:
        """Apply every rule in order and return one suggestion per match."""
        suggestions: List[Suggestion] = []
        for rule_index, rule in enumerate(self._rules):
            for match in rule.pattern.finditer(document):
                candidate = CandidateSuggestion(
                    category=rule.category,
                    severity=rule.severity,
                    original_text=match.group(0),
                    suggested_text=rule.render(match),
                    explanation=rule.explanation,
                    start_index=match.start(),
                    end_index=match.end(),
                    confidence=self._confidence,
                    source=SuggestionSource.RULE_ENGINE,
                    candidate_id=f"rule-{rule_index}-{match.start()}",
                )
                try:
                    suggestions.append(validate(candidate, document))
                except SuggestionValidationError as exc:
                    # e.g. "very" followed by a replacement identical to the match
                    logger.debug("Rule %s match dropped: %s", rule_index, exc.reason)
        return suggestions


def quick_suggestions(document: str) -> List[Suggestion]:
    """Run the default rule set over ``document``."""
    return RuleEngine().quick_suggestions(document)
