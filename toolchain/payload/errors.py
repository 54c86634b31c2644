"""
Error types for toolchain payload bundles.

This module defines the exceptions used by the payload package:
- PayloadError: Base exception
- ArchiveError: Zip archive could not be created, closed or read back
- SinkError: A destination (S3) rejected or could not receive the bundle
- ConfigError: Invalid configuration

Serializers never let these escape to producers: archive and directory
writes catch failures where they happen, log them, and report the outcome
in their result objects. Only the sink and config layers raise to callers.

Invariants:
    - All errors inherit from PayloadError
    - Errors carry a machine-readable code and a details dict
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PayloadError(Exception):
    """Base exception for all payload errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "PAYLOAD_ERROR"
        self.details = details or {}


class ArchiveError(PayloadError):
    """Zip archive operation failed.

    Raised when:
    - The in-memory archive cannot be opened
    - The central directory cannot be written on close
    - The finished buffer cannot be read back
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        entry: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="ARCHIVE_ERROR",
            details={"stage": stage, "entry": entry},
        )
        self.stage = stage
        self.entry = entry


class SinkError(PayloadError):
    """Writing the bundle to a destination failed."""

    def __init__(
        self,
        message: str,
        destination: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="SINK_ERROR",
            details={"destination": destination},
        )
        self.destination = destination


class ConfigError(PayloadError):
    """Configuration is missing or invalid."""

    def __init__(self, message: str, setting: Optional[str] = None) -> None:
        super().__init__(message, code="CONFIG_ERROR", details={"setting": setting})
        self.setting = setting
