"""
draft_assist package exports convenience helpers for library consumers.
"""

from __future__ import annotations

from .config import DraftAssistConfig, config_from_dict, config_from_yaml, load_config
from .hybrid import HybridOrchestrator
from .pipeline import SuggestionPipeline, apply_suggestion
from .rules import RuleEngine, quick_suggestions
from .segmentation import segment

__all__ = [
    "DraftAssistConfig",
    "config_from_dict",
    "config_from_yaml",
    "load_config",
    "HybridOrchestrator",
    "SuggestionPipeline",
    "apply_suggestion",
    "RuleEngine",
    "quick_suggestions",
    "segment",
]

__version__ = "0.1.0"
