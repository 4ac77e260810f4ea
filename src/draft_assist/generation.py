from __future__ import annotations

import asyncio
import functools
import json
import logging
import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .cancellation import CancelToken
from .errors import GenerationError
from .llm.openai_client import CompletionClient, GenerationMetadata
from .models import CandidateSuggestion, Category, Severity, SuggestionSource, TextChunk

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert writing assistant. You review one focus passage at a time "
    "and propose specific, actionable edits.\n"
    "Your responsibilities:\n"
    "- Report grammar and spelling errors with severity \"error\".\n"
    "- Report style, clarity, conciseness, active-voice, word-choice, "
    "sentence-structure and tone issues with severity \"warning\" or \"suggestion\".\n"
    "- Only suggest changes that genuinely improve the writing.\n"
    "- Quote originalText exactly as it appears in the focus passage.\n"
    "- Never suggest edits to the surrounding context; it is for reference only.\n"
    "- Output a single JSON object and nothing else."
)

USER_PROMPT_TEMPLATE = (
    "{context_block}"
    "Analyze the focus passage between the ----- markers.\n"
    "startIndex and endIndex are 0-based character offsets into the focus passage "
    "(endIndex exclusive), so focus[startIndex:endIndex] == originalText.\n"
    "-----\n"
    "{focus}\n"
    "-----\n"
    "Respond with JSON in exactly this shape:\n"
    '{{"suggestions": [{{"type": "{categories}", '
    '"severity": "error|warning|suggestion", "originalText": "...", '
    '"suggestedText": "...", "explanation": "...", "startIndex": 0, '
    '"endIndex": 0, "confidence": 0.0, "contextualReason": "...", '
    '"alternativeOptions": ["..."]}}]}}\n'
    "confidence is between 0.0 and 1.0. Return an empty list when nothing needs to change."
)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")

# Abandoned calls must not hold up event-loop shutdown, so model calls do not
# run on the loop's default executor.
_MODEL_CALLS = ThreadPoolExecutor(thread_name_prefix="draft-assist-model")


class ModelSuggestion(BaseModel):
    """One suggestion as the model is asked to emit it."""

    model_config = ConfigDict(populate_by_name=True)

    category: Category = Field(..., alias="type")
    severity: Severity
    original_text: str = Field(..., alias="originalText")
    suggested_text: str = Field(..., alias="suggestedText")
    explanation: str
    start_index: int = Field(..., alias="startIndex")
    end_index: int = Field(..., alias="endIndex")
    confidence: float
    contextual_reason: str | None = Field(default=None, alias="contextualReason")
    alternative_options: List[str] | None = Field(
        default=None, alias="alternativeOptions"
    )


class ModelSuggestionBatch(BaseModel):
    suggestions: List[ModelSuggestion] = Field(default_factory=list)


RESPONSE_SCHEMA: Dict[str, Any] = ModelSuggestionBatch.model_json_schema(by_alias=True)


class SuggestionGenerator(ABC):
    """Produces chunk-local candidate suggestions for one chunk at a time."""

    @abstractmethod
    async def generate_for_chunk(
        self,
        chunk: TextChunk,
        document_context: str | None = None,
        cancel: CancelToken | None = None,
    ) -> List[CandidateSuggestion]:
        """Return candidates whose indices are relative to ``chunk.text``."""
        raise NotImplementedError

    async def _run_blocking(
        self,
        func: Callable[..., Any],
        cancel: CancelToken | None,
        /,
        **kwargs: Any,
    ) -> Tuple[bool, Any]:
        """Run ``func`` on a worker thread, giving up early if ``cancel`` fires.

        Returns ``(completed, result)``. An abandoned call keeps running on its
        thread until it notices the token; its eventual result or error is
        discarded.
        """
        loop = asyncio.get_running_loop()
        call = loop.run_in_executor(_MODEL_CALLS, functools.partial(func, **kwargs))
        if cancel is None:
            return True, await _unwrap(call)

        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {call, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
        if call not in done:
            call.add_done_callback(_discard_outcome)
            return False, None
        return True, await _unwrap(call)


class NoOpGenerator(SuggestionGenerator):
    """Generator that never suggests anything (rule-only mode)."""

    async def generate_for_chunk(
        self,
        chunk: TextChunk,
        document_context: str | None = None,
        cancel: CancelToken | None = None,
    ) -> List[CandidateSuggestion]:
        return []


class CallableGenerator(SuggestionGenerator):
    """Adapt a blocking ``(chunk, document_context) -> candidates`` callable."""

    def __init__(
        self,
        func: Callable[[TextChunk, str | None], List[CandidateSuggestion]],
    ) -> None:
        self._func = func

    async def generate_for_chunk(
        self,
        chunk: TextChunk,
        document_context: str | None = None,
        cancel: CancelToken | None = None,
    ) -> List[CandidateSuggestion]:
        if cancel is not None and cancel.cancelled:
            return []
        try:
            completed, result = await self._run_blocking(
                _call_positional, cancel, func=self._func, chunk=chunk, context=document_context
            )
        except GenerationError as exc:
            logger.warning("No suggestions for chunk=%s: %s", chunk.chunk_id, exc)
            return []
        if not completed:
            return []
        return list(result or [])


class OpenAISuggestionGenerator(SuggestionGenerator):
    """Generator backed by a :class:`CompletionClient` returning JSON text."""

    def __init__(
        self,
        client: CompletionClient,
        *,
        max_focus_chars: int = 2000,
        max_context_chars: int = 1000,
        max_prompt_chars: int = 4000,
        system_prompt: str = SYSTEM_PROMPT,
        user_prompt_template: str = USER_PROMPT_TEMPLATE,
    ) -> None:
        self._client = client
        self._max_focus_chars = max_focus_chars
        self._max_context_chars = max_context_chars
        self._max_prompt_chars = max_prompt_chars
        self._system_prompt = system_prompt
        self._user_prompt_template = user_prompt_template

    async def generate_for_chunk(
        self,
        chunk: TextChunk,
        document_context: str | None = None,
        cancel: CancelToken | None = None,
    ) -> List[CandidateSuggestion]:
        if cancel is not None and cancel.cancelled:
            return []
        user_prompt = self.build_user_prompt(chunk, document_context)
        metadata = GenerationMetadata(
            run_id=cancel.run_id if cancel is not None else "adhoc",
            chunk_id=chunk.chunk_id,
            start_index=chunk.start_index,
            char_count=len(chunk.text),
            abort=cancel.thread_event if cancel is not None else None,
            deadline=cancel.deadline if cancel is not None else None,
        )
        logger.info(
            "Requesting suggestions run=%s chunk=%s span=[%s, %s)",
            metadata.run_id,
            chunk.chunk_id,
            chunk.start_index,
            chunk.end_index,
        )
        try:
            completed, raw = await self._run_blocking(
                self._client.complete,
                cancel,
                system_prompt=self._system_prompt,
                user_prompt=user_prompt,
                metadata=metadata,
                response_schema=RESPONSE_SCHEMA,
            )
            if not completed:
                logger.info(
                    "Abandoned chunk=%s of run=%s after cancellation",
                    chunk.chunk_id,
                    metadata.run_id,
                )
                return []
            return self.parse_response(raw, chunk)
        except GenerationError as exc:
            logger.warning(
                "No suggestions for chunk=%s of run=%s: %s",
                chunk.chunk_id,
                metadata.run_id,
                exc,
            )
            return []

    def build_user_prompt(self, chunk: TextChunk, document_context: str | None) -> str:
        """Embed the focus text and whatever context fits in the prompt budget."""
        focus = _truncate_tail(chunk.text, self._max_focus_chars)
        categories = "|".join(category.value for category in Category)
        skeleton = self._user_prompt_template.format(
            context_block="", focus=focus, categories=categories
        )
        budget = min(
            self._max_context_chars, max(0, self._max_prompt_chars - len(skeleton))
        )
        context_block = _format_context(chunk.context, document_context, budget)
        return self._user_prompt_template.format(
            context_block=context_block, focus=focus, categories=categories
        )

    @staticmethod
    def parse_response(raw: Any, chunk: TextChunk) -> List[CandidateSuggestion]:
        """Validate the model's JSON output against the schema and convert it.

        A surrounding Markdown code fence is tolerated; anything else around the
        JSON document is a schema failure.

        Raises:
            GenerationError: when the output is not a JSON object matching the schema.
        """
        if not isinstance(raw, str):
            raise GenerationError("model output is not text")
        payload = _CODE_FENCE_RE.sub("", raw.strip())
        try:
            batch = ModelSuggestionBatch.model_validate_json(payload)
        except (json.JSONDecodeError, ValidationError) as exc:
            raise GenerationError(f"model output failed schema validation: {exc}") from exc

        candidates: List[CandidateSuggestion] = []
        for index, item in enumerate(batch.suggestions):
            candidates.append(
                CandidateSuggestion(
                    category=item.category,
                    severity=item.severity,
                    original_text=item.original_text,
                    suggested_text=item.suggested_text,
                    explanation=item.explanation,
                    start_index=item.start_index,
                    end_index=item.end_index,
                    confidence=item.confidence,
                    source=SuggestionSource.MODEL,
                    candidate_id=f"model-{chunk.start_index}-{index}",
                    contextual_reason=item.contextual_reason,
                    alternatives=list(item.alternative_options or []),
                )
            )
        return candidates


def _format_context(
    surrounding: str | None, document_context: str | None, budget: int
) -> str:
    if budget <= 0:
        return ""
    lines: List[str] = []
    remaining = budget
    if document_context and document_context.strip():
        note = _truncate_tail(document_context.strip(), remaining)
        remaining -= len(note)
        lines.append(f"Document context: {note}\n")
    if surrounding and remaining > 0:
        lines.append(f"Surrounding text: {_trim_around_center(surrounding, remaining)}\n")
    if not lines:
        return ""
    return "".join(lines) + "\n"


def _truncate_tail(text: str, limit: int) -> str:
    if limit <= 0:
        return ""
    return text if len(text) <= limit else text[:limit]


def _trim_around_center(text: str, limit: int) -> str:
    """Keep the middle of ``text`` so the focus sentinels survive truncation."""
    if len(text) <= limit:
        return text
    excess = len(text) - limit
    head = excess // 2
    return text[head : head + limit]


def _call_positional(
    *, func: Callable[[TextChunk, str | None], Any], chunk: TextChunk, context: str | None
) -> Any:
    return func(chunk, context)


async def _unwrap(call: "asyncio.Future[Any]") -> Any:
    try:
        return await call
    except GenerationError:
        raise
    except Exception as exc:
        raise GenerationError(f"generation call failed: {exc}") from exc


def _discard_outcome(future: "asyncio.Future[Any]") -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.debug("Ignoring error from abandoned call: %s", future.exception())
