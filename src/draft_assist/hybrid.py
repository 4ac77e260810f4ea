from __future__ import annotations

import asyncio
import logging
from typing import Callable, List

from .aggregation import merge_with_rules
from .errors import DraftAssistError
from .models import HybridResult, Suggestion
from .pipeline import SuggestionPipeline
from .textutils import has_significant_changes

logger = logging.getLogger(__name__)

SuggestionListener = Callable[[List[Suggestion]], None]


class HybridOrchestrator:
    """Instant rule suggestions plus a background model enrichment pass.

    :meth:`get_suggestions` never waits on the network. When the text has moved
    far enough from what the model last saw, and no pass is in flight, a new
    pass is scheduled on the running event loop; its merged result is handed
    to subscribers rather than returned.
    """

    def __init__(self, pipeline: SuggestionPipeline) -> None:
        self._pipeline = pipeline
        self._listeners: List[SuggestionListener] = []
        self._last_model_text = ""
        self._enrichment: asyncio.Task[None] | None = None

    @property
    def enriching(self) -> bool:
        return self._enrichment is not None

    def subscribe(self, listener: SuggestionListener) -> Callable[[], None]:
        """Register ``listener`` for enriched results; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_suggestions(self, document: str) -> HybridResult:
        quick = self._pipeline.quick_suggestions(document)
        if self._enrichment is None and has_significant_changes(
            document, self._last_model_text
        ):
            self._start_enrichment(document, quick)
        return HybridResult(suggestions=quick, still_enriching=self.enriching)

    async def wait_for_enrichment(self) -> None:
        task = self._enrichment
        if task is not None:
            await asyncio.shield(task)

    def _start_enrichment(self, document: str, quick: List[Suggestion]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; skipping model enrichment")
            return
        self._last_model_text = document
        self._enrichment = loop.create_task(self._enrich(document, quick))

    async def _enrich(self, document: str, quick: List[Suggestion]) -> None:
        try:
            model_suggestions = await self._pipeline.generate_model_suggestions(document)
            merged = merge_with_rules(
                quick,
                model_suggestions,
                self._pipeline.config.confidence_tie_threshold,
            )
            self._publish(merged)
        except DraftAssistError as exc:
            # Rule suggestions already returned remain the answer for this text.
            logger.warning("Model enrichment failed: %s", exc)
        except Exception:
            logger.exception("Model enrichment crashed")
        finally:
            self._enrichment = None

    def _publish(self, suggestions: List[Suggestion]) -> None:
        logger.debug("Publishing %s enriched suggestions", len(suggestions))
        for listener in list(self._listeners):
            try:
                listener(list(suggestions))
            except Exception:
                logger.exception("Suggestion listener %r failed", listener)
