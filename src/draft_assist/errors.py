"""Error taxonomy for the suggestion pipeline.

Hash collisions in the result cache are an accepted limitation and have no
exception type: a collision silently serves another text's suggestions, which
the validator cannot detect because cached entries are not re-validated.
"""

from __future__ import annotations


class DraftAssistError(RuntimeError):
    """Base class for pipeline errors."""


class SuggestionValidationError(DraftAssistError):
    """Raised when a candidate suggestion is malformed or cannot be located."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class GenerationError(DraftAssistError):
    """Raised when the text-generation capability fails or returns junk."""


class AnalysisAbortedError(DraftAssistError):
    """Raised when a run is cancelled or exceeds its deadline."""

    def __init__(self, run_id: str, reason: str) -> None:
        super().__init__(f"Analysis run {run_id} aborted ({reason}).")
        self.run_id = run_id
        self.reason = reason


class CapacityError(DraftAssistError):
    """Raised when the governor refuses to admit another concurrent run."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"Too many concurrent analyses (limit {limit}); retry later."
        )
        self.limit = limit
