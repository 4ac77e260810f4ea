from __future__ import annotations

import threading
import time

import pytest

from draft_assist.config import OpenAISettings
from draft_assist.generation import RESPONSE_SCHEMA
from draft_assist.llm import openai_client as oa_client


class DummySegment:
    def __init__(self, text: str) -> None:
        self.text = text


class DummyOutput:
    def __init__(self, text: str) -> None:
        self.content = [DummySegment(text)]


class DummyResponse:
    def __init__(self, text: str) -> None:
        self.output = [DummyOutput(text)]


def _install(monkeypatch, create) -> None:
    class DummyResponses:
        def create(self, **kwargs: object):
            return create(**kwargs)

    class DummyOpenAI:
        def __init__(self, **_: object) -> None:
            self.responses = DummyResponses()

    monkeypatch.setattr(oa_client, "OpenAI", DummyOpenAI)


def test_completion_client_requires_api_key(monkeypatch):
    """Client constructor validates that an API key is provided."""
    monkeypatch.setattr(oa_client, "OpenAI", object())
    settings = OpenAISettings(enabled=True)
    with pytest.raises(ValueError):
        oa_client.OpenAICompletionClient(settings, api_key="")


def test_completion_client_retries_then_succeeds(monkeypatch):
    """Client retries failed requests and returns the first successful output."""
    calls: list[dict[str, object]] = []

    def create(**kwargs: object):
        calls.append(kwargs)
        if len(calls) == 1:
            raise RuntimeError("transient error")
        return DummyResponse('{"suggestions": []}')

    _install(monkeypatch, create)
    monkeypatch.setattr(oa_client.time, "sleep", lambda _: None)
    client = oa_client.OpenAICompletionClient(
        OpenAISettings(enabled=True, model="gpt-4o-mini"), api_key="token"
    )

    result = client.complete(
        system_prompt="system",
        user_prompt="Analyze this",
        metadata=oa_client.GenerationMetadata(run_id="run-1", chunk_id=0),
    )

    assert result == '{"suggestions": []}'
    assert len(calls) == 2
    assert calls[1]["model"] == "gpt-4o-mini"
    assert calls[1]["text"] == {"format": {"type": "json_object"}}
    assert calls[1]["timeout"] == 60.0


def test_completion_client_requests_json_schema_output(monkeypatch):
    """A response schema is sent as a Responses API json_schema text format."""
    calls: list[dict[str, object]] = []

    def create(**kwargs: object):
        calls.append(kwargs)
        return DummyResponse('{"suggestions": []}')

    _install(monkeypatch, create)
    client = oa_client.OpenAICompletionClient(OpenAISettings(enabled=True), api_key="token")

    client.complete(
        system_prompt="system",
        user_prompt="Analyze this",
        metadata=oa_client.GenerationMetadata(run_id="run-1", chunk_id=0),
        response_schema=RESPONSE_SCHEMA,
    )

    text_format = calls[0]["text"]["format"]
    assert text_format["type"] == "json_schema"
    assert text_format["name"] == "suggestion_batch"
    assert "suggestions" in text_format["schema"]["properties"]


def test_completion_client_gives_up_after_max_attempts(monkeypatch):
    """Persistent failures surface as a RuntimeError after max_attempts tries."""
    attempts = {"count": 0}

    def create(**_: object):
        attempts["count"] += 1
        raise RuntimeError("down")

    _install(monkeypatch, create)
    monkeypatch.setattr(oa_client.time, "sleep", lambda _: None)
    client = oa_client.OpenAICompletionClient(
        OpenAISettings(enabled=True, max_attempts=2), api_key="token"
    )

    with pytest.raises(RuntimeError):
        client.complete(
            system_prompt="system",
            user_prompt="Analyze this",
            metadata=oa_client.GenerationMetadata(run_id="run-1", chunk_id=0),
        )
    assert attempts["count"] == 2


def test_cancellation_interrupts_backoff_and_stops_retries(monkeypatch):
    """Once the run is aborted no further request is issued and back-off ends early."""
    attempts = {"count": 0}

    def create(**_: object):
        attempts["count"] += 1
        raise RuntimeError("down")

    _install(monkeypatch, create)
    client = oa_client.OpenAICompletionClient(
        OpenAISettings(enabled=True, max_attempts=3), api_key="token"
    )
    abort = threading.Event()
    timer = threading.Timer(0.05, abort.set)
    timer.start()

    started = time.monotonic()
    with pytest.raises(oa_client.CompletionCancelled):
        client.complete(
            system_prompt="system",
            user_prompt="Analyze this",
            metadata=oa_client.GenerationMetadata(run_id="run-1", chunk_id=0, abort=abort),
        )
    timer.cancel()

    assert attempts["count"] == 1
    assert time.monotonic() - started < 0.9


def test_aborted_run_issues_no_request(monkeypatch):
    attempts = {"count": 0}

    def create(**_: object):
        attempts["count"] += 1
        return DummyResponse("{}")

    _install(monkeypatch, create)
    client = oa_client.OpenAICompletionClient(OpenAISettings(enabled=True), api_key="token")
    abort = threading.Event()
    abort.set()

    with pytest.raises(oa_client.CompletionCancelled):
        client.complete(
            system_prompt="system",
            user_prompt="Analyze this",
            metadata=oa_client.GenerationMetadata(run_id="run-1", chunk_id=0, abort=abort),
        )
    assert attempts["count"] == 0


def test_request_timeout_is_clamped_to_run_deadline(monkeypatch):
    """Each request may only use what is left of the run's deadline."""
    calls: list[dict[str, object]] = []

    def create(**kwargs: object):
        calls.append(kwargs)
        return DummyResponse("{}")

    _install(monkeypatch, create)
    client = oa_client.OpenAICompletionClient(
        OpenAISettings(enabled=True, request_timeout=60.0), api_key="token"
    )

    client.complete(
        system_prompt="system",
        user_prompt="Analyze this",
        metadata=oa_client.GenerationMetadata(
            run_id="run-1", chunk_id=0, deadline=time.monotonic() + 2
        ),
    )

    assert 0 < calls[0]["timeout"] <= 2


def test_response_text_prefers_output_text_then_walks_items():
    class WithOutputText:
        output_text = "direct"

    response = DummyResponse("ignored")
    response.output = [{"type": "reasoning"}, {"content": [{"text": "hello"}]}]

    assert oa_client._response_text(WithOutputText()) == "direct"
    assert oa_client._response_text(response) == "hello"
    with pytest.raises(RuntimeError):
        oa_client._response_text(DummyResponse(""))
