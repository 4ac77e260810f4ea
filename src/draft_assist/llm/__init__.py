from __future__ import annotations

from .openai_client import (
    CompletionCancelled,
    CompletionClient,
    GenerationMetadata,
    OpenAICompletionClient,
)

__all__ = [
    "CompletionCancelled",
    "CompletionClient",
    "GenerationMetadata",
    "OpenAICompletionClient",
]
