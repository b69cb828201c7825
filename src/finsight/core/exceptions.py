"""
Finsight exception hierarchy.

All finsight exceptions inherit from FinsightError, making it easy for callers
to catch engine-level errors while still distinguishing specific failure modes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from finsight.financial.validator import ValidationResult


class FinsightError(Exception):
    """Base exception class for all finsight errors."""


class ConfigurationError(FinsightError):
    """Raised for configuration errors (missing keys, invalid values)."""


class SourceUnavailableError(FinsightError):
    """Raised when a single data source (provider connection or collection) fails."""

    def __init__(self, source: str, message: str = ""):
        self.source = source
        super().__init__(f"Source '{source}' unavailable" + (f": {message}" if message else ""))


class MalformedRecordError(FinsightError):
    """Raised when a raw record cannot be normalized (bad date, non-finite amount)."""


class ValidationError(FinsightError):
    """Raised when computed metrics fail validation."""


class SanityBoundError(ValidationError):
    """Raised when metrics exceed a hard sanity bound and must not be displayed."""

    def __init__(self, context: str, result: ValidationResult):
        self.context = context
        self.result = result
        super().__init__(f"Sanity bound violated in {context}: {'; '.join(result.hard_violations)}")


class CacheError(FinsightError):
    """Raised for caching errors."""


class NarrativeError(FinsightError):
    """Raised when the narrative generator fails or returns malformed output."""
