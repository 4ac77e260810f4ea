from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import yaml


@dataclass(slots=True)
class OpenAISettings:
    """Configuration block for OpenAI-powered suggestion generation."""

    enabled: bool = False
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    api_key_env: str = "OPENAI_API_KEY"
    base_url: str | None = None
    organization: str | None = None
    temperature: float = 0.3
    max_output_tokens: int = 1500
    top_p: float = 0.95
    request_timeout: float = 60.0
    parallel_requests: int = 1
    max_attempts: int = 3


@dataclass(slots=True)
class DraftAssistConfig:
    """Configuration options for the suggestion pipeline."""

    max_chunk_size: int = 500
    overlap_size: int = 50
    sentence_search_slack: int = 50
    max_text_length: int = 5000
    min_text_length: int = 50
    cache_ttl_seconds: float = 120.0
    max_cache_size: int = 20
    cache_eviction_fraction: float = 0.5
    max_concurrent_runs: int = 3
    run_timeout_seconds: float = 30.0
    stale_run_seconds: float = 300.0
    abort_grace_seconds: float = 1.0
    max_focus_chars: int = 2000
    max_context_chars: int = 1000
    max_prompt_chars: int = 4000
    confidence_tie_threshold: float = 0.1
    rule_confidence: float = 0.9
    include_rule_suggestions: bool = True
    lenient_relocation: bool = False
    openai: OpenAISettings = field(default_factory=OpenAISettings)

    def to_dict(self) -> dict[str, Any]:
        """Return a mutable dictionary representation of the configuration."""
        return dict(asdict(self))


def _build_kwargs(data: Mapping[str, Any]) -> dict[str, Any]:
    allowed = {field.name for field in fields(DraftAssistConfig)}
    kwargs = {key: data[key] for key in data if key in allowed}
    if "openai" in data:
        openai_value = data["openai"]
        if isinstance(openai_value, OpenAISettings):
            kwargs["openai"] = openai_value
        elif isinstance(openai_value, Mapping):
            kwargs["openai"] = _build_openai_settings(openai_value)
        else:
            kwargs.pop("openai", None)
    return kwargs


def _build_openai_settings(data: Mapping[str, Any]) -> OpenAISettings:
    openai_allowed = {field.name for field in fields(OpenAISettings)}
    filtered = {key: data[key] for key in data if key in openai_allowed}
    return OpenAISettings(**filtered)


def config_from_dict(data: Mapping[str, Any] | None) -> DraftAssistConfig:
    """Build a DraftAssistConfig from a dictionary-like input."""
    if data is None:
        return DraftAssistConfig()
    return DraftAssistConfig(**_build_kwargs(data))


def config_from_yaml(path: str | Path) -> DraftAssistConfig:
    """Load configuration from a YAML file."""
    contents = Path(path).read_text(encoding="utf-8")
    parsed = yaml.safe_load(contents) or {}
    if not isinstance(parsed, MutableMapping):
        raise ValueError("Configuration YAML must define a mapping.")
    return config_from_dict(parsed)


def load_config(path: str | Path | None = None) -> DraftAssistConfig:
    """Load configuration from YAML when provided, otherwise return defaults."""
    if path is None:
        return DraftAssistConfig()
    return config_from_yaml(path)
