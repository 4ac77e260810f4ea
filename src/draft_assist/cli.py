from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import asdict
from pathlib import Path

import typer
import yaml

from .config import DraftAssistConfig, OpenAISettings, load_config
from .errors import AnalysisAbortedError, CapacityError
from .generation import NoOpGenerator, OpenAISuggestionGenerator, SuggestionGenerator
from .llm import OpenAICompletionClient
from .pipeline import SuggestionPipeline
from .readability import calculate_flesch_reading_ease
from .rules import RuleEngine

app = typer.Typer(help="Draft Assist writing-suggestion CLI.", no_args_is_help=True)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def analyze(
    input_path: Path = typer.Option(
        ..., exists=True, readable=True, dir_okay=False, file_okay=True
    ),
    context: str | None = typer.Option(
        None, "--context", help="Document type/goal passed to the model."
    ),
    config: Path | None = typer.Option(None, "--config", "-c"),
    rules: bool | None = typer.Option(
        None,
        "--rules/--no-rules",
        help="Override config include_rule_suggestions flag.",
    ),
    openai_enabled: bool | None = typer.Option(
        None,
        "--openai-enabled/--openai-disabled",
        help="Toggle OpenAI-backed suggestions.",
    ),
    openai_model: str | None = typer.Option(
        None, "--openai-model", help="OpenAI model identifier (e.g., gpt-4o-mini)."
    ),
    openai_api_key: str | None = typer.Option(
        None, "--openai-api-key", help="Explicit OpenAI API key (prefer env vars)."
    ),
    openai_api_key_env: str | None = typer.Option(
        None,
        "--openai-api-key-env",
        help="Environment variable to read the OpenAI API key from.",
    ),
    openai_base_url: str | None = typer.Option(
        None, "--openai-base-url", help="Custom OpenAI base URL (Azure, proxy, etc.)."
    ),
    openai_temperature: float | None = typer.Option(
        None, "--openai-temperature", help="Sampling temperature."
    ),
    openai_request_timeout: float | None = typer.Option(
        None, "--openai-request-timeout", help="Request timeout (seconds)."
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", help="Overall analysis deadline (seconds)."
    ),
) -> None:
    """Analyze a text file and emit suggestions plus a summary as JSON."""
    cfg = load_config(config)
    if rules is not None:
        cfg.include_rule_suggestions = rules
    if timeout is not None:
        cfg.run_timeout_seconds = timeout
    _apply_openai_overrides(
        cfg.openai,
        openai_enabled,
        openai_model,
        openai_api_key,
        openai_api_key_env,
        openai_base_url,
        openai_temperature,
        openai_request_timeout,
    )
    text = input_path.read_text(encoding="utf-8")
    pipeline = SuggestionPipeline(cfg, _build_generator(cfg))
    try:
        result = asyncio.run(pipeline.analyze(text, context))
    except CapacityError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc
    except AnalysisAbortedError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=3) from exc
    typer.echo(json.dumps(result.to_dict(), indent=2))


@app.command()
def quick(
    input_path: Path = typer.Option(
        ..., exists=True, readable=True, dir_okay=False, file_okay=True
    ),
    config: Path | None = typer.Option(None, "--config", "-c"),
) -> None:
    """Print rule-engine suggestions only (no network)."""
    cfg = load_config(config)
    text = input_path.read_text(encoding="utf-8")
    suggestions = RuleEngine(confidence=cfg.rule_confidence).quick_suggestions(text)
    typer.echo(
        json.dumps({"suggestions": [item.to_dict() for item in suggestions]}, indent=2)
    )


@app.command()
def readability(
    input_path: Path = typer.Option(
        ..., exists=True, readable=True, dir_okay=False, file_okay=True
    ),
) -> None:
    """Print the Flesch Reading Ease score (null under 30 words)."""
    result = calculate_flesch_reading_ease(input_path.read_text(encoding="utf-8"))
    typer.echo(json.dumps(None if result is None else asdict(result), indent=2))


@app.command("print-config")
def print_config() -> None:
    """Print the default configuration as YAML."""
    cfg = DraftAssistConfig()
    typer.echo(yaml.safe_dump(cfg.to_dict(), sort_keys=False))


def main() -> None:
    app()


def _apply_openai_overrides(
    settings: OpenAISettings,
    openai_enabled: bool | None,
    openai_model: str | None,
    openai_api_key: str | None,
    openai_api_key_env: str | None,
    openai_base_url: str | None,
    openai_temperature: float | None,
    openai_request_timeout: float | None,
) -> None:
    """Override OpenAI settings from CLI flags."""
    if openai_enabled is not None:
        settings.enabled = openai_enabled
    if openai_model:
        settings.model = openai_model
    if openai_api_key:
        settings.api_key = openai_api_key
    if openai_api_key_env:
        settings.api_key_env = openai_api_key_env
    if openai_base_url:
        settings.base_url = openai_base_url
    if openai_temperature is not None:
        settings.temperature = openai_temperature
    if openai_request_timeout is not None:
        settings.request_timeout = openai_request_timeout


def _build_generator(config: DraftAssistConfig) -> SuggestionGenerator:
    """Instantiate the configured generator for this invocation."""
    if not config.openai.enabled:
        return NoOpGenerator()
    api_key = _resolve_openai_api_key(config.openai)
    client = OpenAICompletionClient(config.openai, api_key=api_key)
    return OpenAISuggestionGenerator(
        client,
        max_focus_chars=config.max_focus_chars,
        max_context_chars=config.max_context_chars,
        max_prompt_chars=config.max_prompt_chars,
    )


def _resolve_openai_api_key(settings: OpenAISettings) -> str:
    if settings.api_key:
        return settings.api_key
    env_value = os.environ.get(settings.api_key_env, "")
    if not env_value:
        raise typer.BadParameter(
            f"OpenAI is enabled but {settings.api_key_env} is not set.",
            param_hint="--openai-api-key",
        )
    return env_value


if __name__ == "__main__":  # pragma: no cover
    main()
