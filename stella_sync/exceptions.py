#!/usr/bin/env python3
"""
Exception hierarchy for the plate-solve synchronization system.
Provides structured error handling across all modules.
"""

from typing import Any, Dict, Optional


class StellaSyncError(Exception):
    """Base exception for all stella-sync errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ConfigurationError(StellaSyncError):
    """Raised when configuration is invalid or missing."""
    pass


class ValidationError(StellaSyncError):
    """Raised when input validation fails."""
    pass


class ExternalToolError(StellaSyncError):
    """Raised when an external executable fails, cannot start or times out."""
    pass


class PlateSolveParseError(ExternalToolError):
    """Raised when the plate solver output lacks a required field."""
    pass


class PlanetariumUnavailableError(StellaSyncError):
    """Raised when the planetarium API cannot be reached. Fatal for the process."""
    pass


class LockHeldError(StellaSyncError):
    """Raised when another image is already being processed."""
    pass


class PeerUnreachableError(StellaSyncError):
    """Raised when the plate-solve peer server cannot be reached."""
    pass
