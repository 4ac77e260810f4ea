from __future__ import annotations

from typing import Dict, Iterable, List, Sequence, Set, Tuple

from .models import AnalysisSummary, Category, ReadabilityResult, Suggestion


def aggregate(
    per_chunk_results: Sequence[Sequence[Suggestion]],
    confidence_threshold: float = 0.1,
) -> List[Suggestion]:
    """Flatten per-chunk suggestions, drop duplicates and order them."""
    flattened = [suggestion for chunk in per_chunk_results for suggestion in chunk]
    return sort_suggestions(deduplicate(flattened), confidence_threshold)


def deduplicate(suggestions: Iterable[Suggestion]) -> List[Suggestion]:
    """Keep the first suggestion seen for each ``(start, end, category)`` key."""
    seen: Set[Tuple[int, int, Category]] = set()
    unique: List[Suggestion] = []
    for suggestion in suggestions:
        key = suggestion.dedupe_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(suggestion)
    return unique


def compare_suggestions(
    a: Suggestion, b: Suggestion, confidence_threshold: float = 0.1
) -> int:
    """Order by importance tier, then confidence (when clearly apart), then position."""
    rank_diff = a.importance.rank - b.importance.rank
    if rank_diff != 0:
        return rank_diff
    confidence_diff = b.confidence - a.confidence
    if abs(confidence_diff) > confidence_threshold:
        return -1 if confidence_diff < 0 else 1
    return a.span.start - b.span.start


def sort_suggestions(
    suggestions: Iterable[Suggestion], confidence_threshold: float = 0.1
) -> List[Suggestion]:
    """Stable insertion sort using :func:`compare_suggestions`.

    The confidence threshold makes the comparator non-transitive, so every
    adjacent pair of the result is kept in order explicitly; re-sorting a
    sorted list is then a no-op.
    """
    ordered: List[Suggestion] = []
    for suggestion in suggestions:
        position = len(ordered)
        while (
            position > 0
            and compare_suggestions(suggestion, ordered[position - 1], confidence_threshold)
            < 0
        ):
            position -= 1
        ordered.insert(position, suggestion)
    return ordered


def merge_with_rules(
    rule_suggestions: Sequence[Suggestion],
    model_suggestions: Sequence[Suggestion],
    confidence_threshold: float = 0.1,
) -> List[Suggestion]:
    """Combine both sources; model spans overlapping any rule span are dropped."""
    merged = list(rule_suggestions)
    for candidate in model_suggestions:
        if any(candidate.span.overlaps(rule.span) for rule in rule_suggestions):
            continue
        merged.append(candidate)
    return sort_suggestions(deduplicate(merged), confidence_threshold)


def summarize(
    suggestions: Sequence[Suggestion], readability: ReadabilityResult | None = None
) -> AnalysisSummary:
    counts: Dict[str, int] = {category.value: 0 for category in Category}
    for suggestion in suggestions:
        counts[suggestion.category.value] += 1
    return AnalysisSummary(
        total_issues=len(suggestions),
        per_category_counts=counts,
        readability=readability,
    )
