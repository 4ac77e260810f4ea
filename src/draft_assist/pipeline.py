from __future__ import annotations

import logging
from typing import List, Sequence

from .aggregation import aggregate, merge_with_rules, summarize
from .cache import ResultCache
from .cancellation import CancelToken
from .config import DraftAssistConfig
from .errors import GenerationError, SuggestionValidationError
from .generation import NoOpGenerator, SuggestionGenerator
from .governor import AnalysisGovernor
from .models import AnalysisResult, CandidateSuggestion, Suggestion, TextChunk
from .readability import calculate_flesch_reading_ease
from .rules import RuleEngine
from .segmentation import segment, truncate_document
from .textutils import content_hash
from .validation import validate

logger = logging.getLogger(__name__)


class SuggestionPipeline:
    """Wires segmentation, generation, validation, aggregation and caching.

    One instance is meant to be built at process start; its cache and governor
    are the only mutable shared state.
    """

    def __init__(
        self,
        config: DraftAssistConfig | None = None,
        generator: SuggestionGenerator | None = None,
        *,
        rule_engine: RuleEngine | None = None,
        cache: ResultCache | None = None,
        governor: AnalysisGovernor | None = None,
    ) -> None:
        self._config = config or DraftAssistConfig()
        self._generator = generator or NoOpGenerator()
        self._rules = rule_engine or RuleEngine(confidence=self._config.rule_confidence)
        self._cache = cache or ResultCache(
            ttl_seconds=self._config.cache_ttl_seconds,
            max_size=self._config.max_cache_size,
            eviction_fraction=self._config.cache_eviction_fraction,
        )
        self._governor = governor or AnalysisGovernor.from_config(self._config)

    @property
    def config(self) -> DraftAssistConfig:
        return self._config

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def governor(self) -> AnalysisGovernor:
        return self._governor

    def segment(self, document: str) -> List[TextChunk]:
        cfg = self._config
        return segment(
            document,
            max_chunk_size=cfg.max_chunk_size,
            overlap_size=cfg.overlap_size,
            sentence_search_slack=cfg.sentence_search_slack,
            max_text_length=cfg.max_text_length,
        )

    def quick_suggestions(self, document: str) -> List[Suggestion]:
        return self._rules.quick_suggestions(document)

    async def generate_model_suggestions(
        self, document: str, context: str | None = None
    ) -> List[Suggestion]:
        """Return the aggregated model suggestions, from cache when possible.

        Raises:
            CapacityError: when the governor is full.
            AnalysisAbortedError: on timeout or cancellation.
        """
        text = truncate_document(document, self._config.max_text_length)
        key = content_hash(text, context)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s (%s suggestions)", key, len(cached))
            return cached
        logger.debug("Cache miss for %s", key)

        async def work(token: CancelToken) -> List[Suggestion]:
            return await self._model_pass(text, context, key, token)

        return await self._governor.run(work)

    async def analyze(self, text: str, context: str | None = None) -> AnalysisResult:
        """Analyze ``text`` and return suggestions with a per-category summary.

        Text shorter than ``min_text_length`` (ignoring surrounding whitespace)
        yields an empty result rather than an error.
        """
        if len(text.strip()) < self._config.min_text_length:
            logger.debug("Text too short for analysis (%s chars)", len(text.strip()))
            return AnalysisResult(suggestions=[], summary=summarize([]))

        model_suggestions = await self.generate_model_suggestions(text, context)
        if self._config.include_rule_suggestions:
            suggestions = merge_with_rules(
                self.quick_suggestions(text),
                model_suggestions,
                self._config.confidence_tie_threshold,
            )
        else:
            suggestions = model_suggestions
        return AnalysisResult(
            suggestions=suggestions,
            summary=summarize(suggestions, calculate_flesch_reading_ease(text)),
        )

    async def _model_pass(
        self, text: str, context: str | None, key: str, token: CancelToken
    ) -> List[Suggestion]:
        chunks = self.segment(text)
        per_chunk: List[List[Suggestion]] = []
        for chunk in chunks:
            token.raise_if_cancelled()
            try:
                candidates = await self._generator.generate_for_chunk(chunk, context, token)
            except GenerationError as exc:
                logger.warning("Chunk %s of run %s failed: %s", chunk.chunk_id, token.run_id, exc)
                candidates = []
            token.raise_if_cancelled()
            per_chunk.append(self._validate_chunk(candidates, text, chunk))

        suggestions = aggregate(per_chunk, self._config.confidence_tie_threshold)
        # A cancelled run must never populate the cache.
        token.raise_if_cancelled()
        self._cache.put(key, suggestions)
        logger.info(
            "Run %s produced %s suggestions from %s chunks",
            token.run_id,
            len(suggestions),
            len(chunks),
        )
        return suggestions

    def _validate_chunk(
        self, candidates: Sequence[CandidateSuggestion], document: str, chunk: TextChunk
    ) -> List[Suggestion]:
        accepted: List[Suggestion] = []
        for candidate in candidates:
            try:
                accepted.append(
                    validate(
                        candidate,
                        document,
                        chunk.start_index,
                        chunk_end=chunk.end_index,
                        lenient=self._config.lenient_relocation,
                    )
                )
            except SuggestionValidationError as exc:
                logger.warning(
                    "Dropping candidate %r from chunk %s: %s",
                    candidate.original_text,
                    chunk.chunk_id,
                    exc.reason,
                )
        return accepted


def apply_suggestion(document: str, suggestion: Suggestion) -> str:
    """Return ``document`` with the suggestion's span replaced.

    Every other suggestion computed for the old text is stale afterwards.
    """
    return (
        document[: suggestion.span.start]
        + suggestion.suggested_text
        + document[suggestion.span.end :]
    )
