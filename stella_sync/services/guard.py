#!/usr/bin/env python3
"""
Single-flight guard: at most one image in flight per process.

Two interchangeable implementations share one interface:

- FileLockGuard uses a marker file. It survives restarts, which also means
  a crash between acquire and release leaves a stale marker behind;
  clear_stale() is called at startup for that reason. The exists check and
  the marker creation are not atomic, which is fine with a single caller loop.
- MemoryGuard uses a non-blocking threading.Lock.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
import logging
from pathlib import Path
import threading
from typing import Iterator, Optional

from ..exceptions import ConfigurationError, LockHeldError
from ..utils.paths import get_lock_file


class SingleFlightGuard(ABC):

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    @abstractmethod
    def try_acquire(self) -> bool:
        """True if the guard was free and is now held by the caller."""

    @abstractmethod
    def release(self) -> None:
        """Release unconditionally."""

    @abstractmethod
    def is_held(self) -> bool:
        pass

    def clear_stale(self) -> None:
        self.release()

    @contextmanager
    def held(self) -> Iterator[None]:
        """Hold the guard for the duration of the block.

        Raises:
            LockHeldError: if the guard is already held.
        """
        if not self.try_acquire():
            raise LockHeldError(f"{self.describe()} already held")
        try:
            yield
        finally:
            self.release()

    def describe(self) -> str:
        return type(self).__name__


class FileLockGuard(SingleFlightGuard):
    """Marker file based guard."""

    def __init__(self, lock_file: Path | str, logger: Optional[logging.Logger] = None) -> None:
        super().__init__(logger=logger)
        self.lock_file = Path(lock_file)

    def try_acquire(self) -> bool:
        if self.lock_file.exists():
            return False
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        self.lock_file.touch()
        return True

    def release(self) -> None:
        self.lock_file.unlink(missing_ok=True)

    def is_held(self) -> bool:
        return self.lock_file.exists()

    def clear_stale(self) -> None:
        if self.lock_file.exists():
            self.logger.warning(f"Removing stale lock file {self.lock_file}")
        self.release()

    def describe(self) -> str:
        return f"lockFile {self.lock_file}"


class MemoryGuard(SingleFlightGuard):
    """In-process guard."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        super().__init__(logger=logger)
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        try:
            self._lock.release()
        except RuntimeError:
            # release of an unlocked lock is a no-op here
            pass

    def is_held(self) -> bool:
        return self._lock.locked()

    def describe(self) -> str:
        return "processing lock"


def create_guard(config, logger: Optional[logging.Logger] = None) -> SingleFlightGuard:
    mode = str(config.get_lock_config().get("mode", "file")).lower()
    if mode == "file":
        return FileLockGuard(get_lock_file(config), logger=logger)
    if mode == "memory":
        return MemoryGuard(logger=logger)
    raise ConfigurationError(f"Unknown lock mode: {mode}", details={"mode": mode})
