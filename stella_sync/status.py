#!/usr/bin/env python3
"""
Status objects for the plate-solve synchronization system.
Provides structured return values for operations.
"""

from dataclasses import dataclass
from enum import Enum
import time
from typing import Any, Dict, Generic, Optional, TypeVar


class StatusLevel(Enum):
    """Status levels for operations."""
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


T = TypeVar('T')


@dataclass
class Status(Generic[T]):
    """Generic status object for operation results."""

    level: StatusLevel
    message: str
    data: Optional[T] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: Optional[float] = None

    def __post_init__(self) -> None:
        if self.timestamp is None:
            self.timestamp = time.time()
        if self.details is None:
            self.details = {}

    @property
    def is_success(self) -> bool:
        """Check if status indicates success."""
        return self.level == StatusLevel.SUCCESS

    @property
    def is_error(self) -> bool:
        """Check if status indicates an error."""
        return self.level in (StatusLevel.ERROR, StatusLevel.CRITICAL)

    @property
    def is_warning(self) -> bool:
        """Check if status indicates a warning."""
        return self.level == StatusLevel.WARNING

    def __str__(self) -> str:
        return f"{self.level.value.upper()}: {self.message}"


@dataclass
class PlateSolveStatus(Status[Any]):
    """Status object for plate-solving operations.

    ``data`` holds a ``PlateSolveResult`` on success. On failure ``message``
    is the failure reason and ``details['reason']`` classifies it.
    """

    ra_deg: Optional[float] = None
    dec_deg: Optional[float] = None
    angle_deg: Optional[float] = None
    solving_time: Optional[float] = None
    solver_used: Optional[str] = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.data is not None:
            self.ra_deg = getattr(self.data, 'ra_deg', None)
            self.dec_deg = getattr(self.data, 'dec_deg', None)
            self.angle_deg = getattr(self.data, 'angle_deg', None)
            self.solving_time = getattr(self.data, 'solving_time', None)
            self.solver_used = getattr(self.data, 'method', None)

    @property
    def reason(self) -> Optional[str]:
        return self.details.get('reason') if self.details else None


# Factory functions for creating status objects
def success_status(message: str, data: Optional[T] = None, details: Optional[Dict[str, Any]] = None) -> Status[T]:
    """Create a success status."""
    return Status(StatusLevel.SUCCESS, message, data, details)


def warning_status(message: str, data: Optional[T] = None, details: Optional[Dict[str, Any]] = None) -> Status[T]:
    """Create a warning status."""
    return Status(StatusLevel.WARNING, message, data, details)


def error_status(message: str, data: Optional[T] = None, details: Optional[Dict[str, Any]] = None) -> Status[T]:
    """Create an error status."""
    return Status(StatusLevel.ERROR, message, data, details)


def solve_success(message: str, result: Any, details: Optional[Dict[str, Any]] = None) -> PlateSolveStatus:
    """Create a successful plate-solve status carrying a result."""
    return PlateSolveStatus(StatusLevel.SUCCESS, message, result, details)


def solve_error(message: str, reason: str, details: Optional[Dict[str, Any]] = None) -> PlateSolveStatus:
    """Create a failed plate-solve status with a reason tag."""
    merged = dict(details or {})
    merged['reason'] = reason
    return PlateSolveStatus(StatusLevel.ERROR, message, None, merged)
