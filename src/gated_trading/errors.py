"""Error taxonomy for the decision pipeline."""

from __future__ import annotations


class GatedTradingError(Exception):
    """Base error."""


class ConfigRejected(GatedTradingError):
    """Raised when a candidate configuration fails validation.

    The previously accepted configuration stays in force.
    """

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or []


class StaleDataError(GatedTradingError):
    """Raised when a snapshot is missing or indicator history is insufficient."""


class ExecutionError(GatedTradingError):
    """Raised when the execution gateway fails or the outcome is unknown."""
