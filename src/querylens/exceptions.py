"""
Package-level exception hierarchy for QueryLens.

All exceptions inherit from QueryLensError, so callers can catch every
library error with a single except clause and serialize it with to_dict().

Hierarchy:
    QueryLensError
    ├── AnalyzerError          – Errors during analysis orchestration
    │   ├── DetectorError      – A specific detector failed during execution
    │   └── ConfigurationError – Invalid analyzer or detector configuration
    └── ParseError             – Failed to load an execution plan
"""

from __future__ import annotations

from typing import Any


class QueryLensError(Exception):
    """
    Base exception for all QueryLens errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Analysis Errors ──────────────────────────────────────────────────────


class AnalyzerError(QueryLensError):
    """Errors during analysis orchestration."""
    pass


class DetectorError(AnalyzerError):
    """
    Error during detector execution.

    Only raised when the analyzer runs with fail_fast enabled; otherwise
    the failure is recorded on the detector run and analysis continues.

    Attributes:
        detector_id: The ID of the detector that failed.
        detector_version: Version of the detector.
        original_error: The underlying exception.
    """

    def __init__(
        self,
        detector_id: str,
        detector_version: str,
        original_error: Exception,
    ) -> None:
        self.detector_id = detector_id
        self.detector_version = detector_version
        self.original_error = original_error

        message = (
            f"Detector '{detector_id}' v{detector_version} failed: "
            f"{original_error.__class__.__name__}: {original_error}"
        )
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output / logging."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "detector_id": self.detector_id,
            "detector_version": self.detector_version,
            "original_error_type": self.original_error.__class__.__name__,
            "original_error_message": str(self.original_error),
        }


class ConfigurationError(AnalyzerError):
    """
    Error in analyzer or detector configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result


# ── Parse Errors ─────────────────────────────────────────────────────────


class ParseError(QueryLensError):
    """
    Failed to load an execution plan.

    Raised when plan input is not valid JSON, does not have the expected
    node shape, or exceeds the loader's resource limits.

    Attributes:
        detail: Technical details for debugging (optional).
        source: Where the error occurred (e.g., "file_read", "json_decode").
    """

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        source: str = "unknown",
    ) -> None:
        self.detail = detail
        self.source = source
        super().__init__(message)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}\n\nDetails: {self.detail}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["detail"] = self.detail
        result["source"] = self.source
        return result
