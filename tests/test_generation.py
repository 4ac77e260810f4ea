from __future__ import annotations

import asyncio
import json
import logging
import threading

import pytest

from draft_assist.cancellation import CancelToken
from draft_assist.errors import GenerationError
from draft_assist.generation import CallableGenerator, OpenAISuggestionGenerator
from draft_assist.models import Category, Severity, SuggestionSource, TextChunk

CHUNK = TextChunk(
    chunk_id=3,
    text="She dont like it.",
    start_index=120,
    end_index=137,
    context="before [FOCUS]She dont like it.[/FOCUS] after",
)


def _payload(**overrides) -> str:
    item = {
        "type": "grammar",
        "severity": "error",
        "originalText": "dont",
        "suggestedText": "doesn't",
        "explanation": "Subject-verb agreement.",
        "startIndex": 4,
        "endIndex": 8,
        "confidence": 0.95,
        "alternativeOptions": ["does not"],
    }
    item.update(overrides)
    return json.dumps({"suggestions": [item]})


class RecordingClient:
    def __init__(self, output: str) -> None:
        self.output = output
        self.calls: list[dict[str, object]] = []

    def complete(
        self, *, system_prompt: str, user_prompt: str, metadata, response_schema=None
    ) -> str:
        self.calls.append(
            {
                "system": system_prompt,
                "user": user_prompt,
                "metadata": metadata,
                "schema": response_schema,
            }
        )
        return self.output


def test_generator_builds_prompt_and_parses_candidates():
    """The focus text, context and schema land in the prompt; JSON becomes candidates."""
    client = RecordingClient("```json\n" + _payload() + "\n```")
    generator = OpenAISuggestionGenerator(client)

    candidates = asyncio.run(
        generator.generate_for_chunk(CHUNK, "A casual blog post.")
    )

    assert len(candidates) == 1
    candidate = candidates[0]
    assert candidate.category is Category.GRAMMAR
    assert candidate.severity is Severity.ERROR
    assert (candidate.start_index, candidate.end_index) == (4, 8)
    assert candidate.source is SuggestionSource.MODEL
    assert candidate.alternatives == ["does not"]
    assert candidate.candidate_id == "model-120-0"

    call = client.calls[0]
    assert "She dont like it." in call["user"]
    assert "Document context: A casual blog post." in call["user"]
    assert "[FOCUS]" in call["user"]
    assert "active-voice" in call["user"]
    assert "expert writing assistant" in call["system"]
    assert call["metadata"].chunk_id == 3
    assert "suggestions" in call["schema"]["properties"]


@pytest.mark.parametrize(
    "output",
    [
        "I could not find anything.",
        '{"suggestions": [{"type": "poetry"}]}',
        '{"suggestions": "nope"}',
        "{not json}",
    ],
)
def test_schema_failures_yield_no_suggestions(output):
    """Unparsable or off-schema output is tolerated as an empty chunk result."""
    generator = OpenAISuggestionGenerator(RecordingClient(output))

    assert asyncio.run(generator.generate_for_chunk(CHUNK)) == []


def test_parse_response_raises_generation_error():
    with pytest.raises(GenerationError):
        OpenAISuggestionGenerator.parse_response("[]", CHUNK)


def test_client_errors_yield_no_suggestions():
    """A failing capability call does not escape the generator."""

    class FailingClient:
        def complete(self, **_: object) -> str:
            raise RuntimeError("OpenAI analysis failed after retries.")

    generator = OpenAISuggestionGenerator(FailingClient())

    assert asyncio.run(generator.generate_for_chunk(CHUNK)) == []


def test_cancellation_abandons_outstanding_call():
    """Cancelling while the call is in flight returns at once and reaches the worker thread."""
    seen: dict[str, object] = {}
    finished = threading.Event()

    class SlowClient:
        def complete(self, *, metadata, **_: object) -> str:
            seen["metadata"] = metadata
            seen["observed"] = metadata.abort.wait(5)
            finished.set()
            return _payload()

    async def scenario():
        token = CancelToken("run-x")
        token.set_deadline(30)
        generator = OpenAISuggestionGenerator(SlowClient())
        pending = asyncio.ensure_future(generator.generate_for_chunk(CHUNK, cancel=token))
        await asyncio.sleep(0.05)
        token.cancel("timeout")
        return await asyncio.wait_for(pending, timeout=1)

    assert asyncio.run(scenario()) == []
    assert finished.wait(1)
    assert seen["observed"] is True
    assert seen["metadata"].aborted
    assert 0 < seen["metadata"].remaining() <= 30


def test_already_cancelled_token_skips_the_call():
    client = RecordingClient(_payload())
    token = CancelToken()
    token.cancel()

    assert asyncio.run(OpenAISuggestionGenerator(client).generate_for_chunk(CHUNK, cancel=token)) == []
    assert client.calls == []


def test_prompt_truncates_context_before_focus():
    """Focus text is kept whole while the context is trimmed to the budget."""
    chunk = TextChunk(
        chunk_id=0,
        text="F" * 300,
        start_index=0,
        end_index=300,
        context="C" * 2000 + "[FOCUS]" + "F" * 300 + "[/FOCUS]" + "C" * 2000,
    )
    generator = OpenAISuggestionGenerator(
        RecordingClient("{}"),
        max_focus_chars=300,
        max_context_chars=200,
        max_prompt_chars=5000,
    )

    prompt = generator.build_user_prompt(chunk, None)

    assert "F" * 300 in prompt
    assert "C" * 201 not in prompt


def test_callable_generator_errors_yield_no_suggestions(caplog):
    """A failing callable is logged and treated as an empty chunk, like the model path."""

    def explode(chunk, context):
        raise KeyError("bad")

    with caplog.at_level(logging.WARNING, logger="draft_assist.generation"):
        result = asyncio.run(CallableGenerator(explode).generate_for_chunk(CHUNK))

    assert result == []
    assert "No suggestions for chunk=3" in caplog.text
