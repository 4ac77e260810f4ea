"""Minimal example showing instant rule suggestions followed by model enrichment."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

from draft_assist.config import load_config
from draft_assist.generation import OpenAISuggestionGenerator
from draft_assist.hybrid import HybridOrchestrator
from draft_assist.llm import OpenAICompletionClient
from draft_assist.pipeline import SuggestionPipeline


async def run() -> None:
    config = load_config(Path(__file__).with_name("example_config.yaml"))
    api_key = (
        config.openai.api_key
        or os.environ.get(config.openai.api_key_env or "OPENAI_API_KEY")
        or ""
    )
    if not api_key:
        raise RuntimeError(
            "Set the OpenAI API key before running this example "
            f"({config.openai.api_key_env})."
        )

    client = OpenAICompletionClient(config.openai, api_key=api_key)
    pipeline = SuggestionPipeline(config, OpenAISuggestionGenerator(client))
    orchestrator = HybridOrchestrator(pipeline)

    sample_text = (
        "Your welcome to review the draft. The report was written by the team in order to "
        "explain why the very big budget recieved so little attention, and there is two "
        "reasons that it's findings were ignored by most of the readers who seen it."
    )
    orchestrator.subscribe(
        lambda suggestions: print(f"\nEnriched: {len(suggestions)} suggestions")
    )
    immediate = orchestrator.get_suggestions(sample_text)
    for suggestion in immediate.suggestions:
        print(f"[rule] {suggestion.original_text!r} -> {suggestion.suggested_text!r}")
    await orchestrator.wait_for_enrichment()


if __name__ == "__main__":
    asyncio.run(run())
