from __future__ import annotations

import importlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol, cast

from ..config import OpenAISettings

logger = logging.getLogger(__name__)

OpenAI: Callable[..., Any] | None = None

# Cap on the exponential back-off between attempts.
MAX_BACKOFF_SECONDS = 5.0


class CompletionCancelled(RuntimeError):
    """Raised when the owning run is cancelled before or between attempts."""


@dataclass(slots=True)
class GenerationMetadata:
    """Which chunk of which run a request belongs to, and how long it may take.

    ``abort`` is set when the owning run is cancelled; ``deadline`` is the run's
    absolute ``time.monotonic()`` deadline.
    """

    run_id: str
    chunk_id: int
    start_index: int = 0
    char_count: int | None = None
    abort: threading.Event | None = None
    deadline: float | None = None

    @property
    def aborted(self) -> bool:
        return self.abort is not None and self.abort.is_set()

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()


class CompletionClient(Protocol):
    """Anything that turns a prompt pair into raw model text."""

    def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        metadata: GenerationMetadata,
        response_schema: Mapping[str, Any] | None = None,
    ) -> str: ...


class OpenAICompletionClient:
    """OpenAI Responses API client returning structured JSON text.

    Requests are throttled to ``parallel_requests`` at a time and retried up to
    ``max_attempts`` times. Every attempt first checks the run's abort flag and
    clamps its request timeout to whatever is left of the run's deadline; the
    back-off between attempts wakes up as soon as the run is cancelled.
    """

    def __init__(self, settings: OpenAISettings, api_key: str) -> None:
        if not api_key:
            raise ValueError("OpenAI API key is required when generation is enabled.")
        self._settings = settings
        self._api_key = api_key
        self._client_factory: Callable[..., Any] = _load_openai_factory()
        self._client: Any | None = None
        self._client_lock = threading.Lock()
        self._slots: threading.BoundedSemaphore | None = None
        if settings.parallel_requests > 0:
            self._slots = threading.BoundedSemaphore(settings.parallel_requests)
        self._max_attempts = max(1, settings.max_attempts)

    @property
    def settings(self) -> OpenAISettings:
        return self._settings

    def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        metadata: GenerationMetadata,
        response_schema: Mapping[str, Any] | None = None,
    ) -> str:
        """Send one analysis request and return the model's JSON text.

        Raises:
            CompletionCancelled: when the run is cancelled or out of time.
            RuntimeError: when every attempt failed.
        """
        request = self._build_request(system_prompt, user_prompt, response_schema)
        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            timeout = self._attempt_timeout(metadata)
            try:
                text = self._send(request, timeout)
            except CompletionCancelled:
                raise
            except Exception as exc:  # pragma: no cover - network-related
                last_error = exc
                logger.warning(
                    "OpenAI analysis failed for run=%s chunk=%s (attempt %s/%s): %s",
                    metadata.run_id,
                    metadata.chunk_id,
                    attempt,
                    self._max_attempts,
                    exc,
                )
                if attempt < self._max_attempts:
                    self._backoff(attempt, metadata)
                continue
            logger.debug(
                "OpenAI analysis succeeded for run=%s chunk=%s len=%s chars",
                metadata.run_id,
                metadata.chunk_id,
                metadata.char_count,
            )
            return text
        raise RuntimeError("OpenAI analysis failed after retries.") from last_error

    def _build_request(
        self,
        system_prompt: str,
        user_prompt: str,
        response_schema: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        if response_schema is not None:
            text_format: dict[str, Any] = {
                "type": "json_schema",
                "name": "suggestion_batch",
                "schema": dict(response_schema),
                "strict": False,
            }
        else:
            text_format = {"type": "json_object"}
        return {
            "model": self._settings.model,
            "input": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "text": {"format": text_format},
            "temperature": self._settings.temperature,
            "max_output_tokens": self._settings.max_output_tokens,
            "top_p": self._settings.top_p,
        }

    def _attempt_timeout(self, metadata: GenerationMetadata) -> float:
        if metadata.aborted:
            raise CompletionCancelled(f"run {metadata.run_id} was cancelled")
        remaining = metadata.remaining()
        if remaining is None:
            return self._settings.request_timeout
        if remaining <= 0:
            raise CompletionCancelled(f"run {metadata.run_id} is out of time")
        return min(self._settings.request_timeout, remaining)

    def _send(self, request: Mapping[str, Any], timeout: float) -> str:
        if self._slots is not None:
            self._slots.acquire()
        try:
            response = self._ensure_client().responses.create(**request, timeout=timeout)
        finally:
            if self._slots is not None:
                self._slots.release()
        return _response_text(response)

    def _backoff(self, attempt: int, metadata: GenerationMetadata) -> None:
        delay = min(2 ** (attempt - 1), MAX_BACKOFF_SECONDS)
        remaining = metadata.remaining()
        if remaining is not None and remaining < delay:
            raise CompletionCancelled(f"run {metadata.run_id} is out of time")
        if metadata.abort is None:
            time.sleep(delay)
        elif metadata.abort.wait(delay):
            raise CompletionCancelled(f"run {metadata.run_id} was cancelled")

    def _ensure_client(self) -> Any:
        # complete() runs on worker threads, so build the SDK client once.
        with self._client_lock:
            if self._client is None:
                self._client = self._client_factory(
                    api_key=self._api_key,
                    base_url=self._settings.base_url,
                    organization=self._settings.organization,
                )
            return self._client


def _response_text(response: Any) -> str:
    """Return the first output text of a Responses API result."""
    text = getattr(response, "output_text", None)
    if isinstance(text, str) and text:
        return text
    for item in getattr(response, "output", None) or ():
        for segment in _field(item, "content") or ():
            value = _field(segment, "text")
            if isinstance(value, str) and value:
                return value
    raise RuntimeError("OpenAI response contains no output text.")


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _load_openai_factory() -> Callable[..., Any]:
    """Import the OpenAI client factory on first use."""
    global OpenAI
    if OpenAI is not None:
        return OpenAI
    try:  # pragma: no cover - import guard
        module = importlib.import_module("openai")
    except Exception as exc:  # pragma: no cover - handled at runtime
        raise RuntimeError(
            "openai package is not installed. Install it via 'pip install openai'."
        ) from exc
    openai_cls = getattr(module, "OpenAI", None)
    if openai_cls is None:  # pragma: no cover
        raise RuntimeError(
            "openai.OpenAI client class is unavailable in this environment."
        )
    OpenAI = cast(Callable[..., Any], openai_cls)
    return OpenAI
