#!/usr/bin/env python3
"""
Directory watching for newly written camera frames.

DirectoryWatcher.watch() is a lazy, endless generator of new files matching
a glob pattern. Two strategies are available, chosen with watch.strategy:

- poll: rescan the directory every poll_interval seconds and report the
  newest matching file when it changes.
- events: filesystem notifications through watchdog.

Both wait settle_delay seconds before handing a file out, because capture
software (SharpCap, ASIStudio) writes files in stages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import fnmatch
import logging
from pathlib import Path
import queue
import threading
import time
from typing import Iterator, Optional, Tuple

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..exceptions import ConfigurationError
from ..utils.constants import DEFAULT_PATTERN, SEPARATOR_LINE
from ..utils.paths import pretty_path

_UNSET = object()


def matches_pattern(path: Path, root: Path, pattern: str) -> bool:
    """find -path style match: '*' also crosses directory separators."""
    candidates = [path.as_posix(), path.name]
    try:
        candidates.append(path.relative_to(root).as_posix())
    except ValueError:
        pass
    return any(fnmatch.fnmatch(c, pattern) for c in candidates)


class DirectoryWatcher(ABC):

    def __init__(self, directory: Path | str, pattern: str = DEFAULT_PATTERN,
                 recursive: bool = True, settle_delay: float = 0.5,
                 logger: Optional[logging.Logger] = None) -> None:
        self.directory = Path(directory)
        self.pattern = pattern or "*"
        self.recursive = recursive
        self.settle_delay = settle_delay
        self.logger = logger or logging.getLogger(__name__)
        self._stop_event = threading.Event()

    @abstractmethod
    def next_match(self, timeout: Optional[float] = None) -> Optional[Path]:
        """Block until a new matching file shows up.

        Returns None on timeout, on stop, or when the change was a deletion.
        """

    def start(self) -> None:
        pass

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def watch(self) -> Iterator[Path]:
        self.start()
        self.logger.info(f"watching dir {pretty_path(self.directory)} (pattern {self.pattern})")
        try:
            while not self.stopped:
                path = self.next_match(timeout=1.0)
                if path is None:
                    continue
                self.logger.info(SEPARATOR_LINE)
                if self.settle_delay > 0:
                    time.sleep(self.settle_delay)
                yield path
        finally:
            self.stop()


class PollingDirectoryWatcher(DirectoryWatcher):
    """Rescans the directory and compares the newest matching file."""

    def __init__(self, directory: Path | str, pattern: str = DEFAULT_PATTERN,
                 recursive: bool = True, settle_delay: float = 0.5,
                 poll_interval: float = 0.5, logger: Optional[logging.Logger] = None) -> None:
        super().__init__(directory, pattern, recursive, settle_delay, logger)
        self.poll_interval = poll_interval
        self._baseline = _UNSET

    def newest(self) -> Optional[Tuple[float, Path]]:
        """(mtime, path) of the most recently modified matching file."""
        iterator = self.directory.rglob("*") if self.recursive else self.directory.glob("*")
        best: Optional[Tuple[float, Path]] = None
        for path in iterator:
            if not matches_pattern(path, self.directory, self.pattern):
                continue
            try:
                if not path.is_file():
                    continue
                entry = (path.stat().st_mtime, path)
            except OSError:
                # deleted between listing and stat
                continue
            if best is None or entry > best:
                best = entry
        return best

    def next_match(self, timeout: Optional[float] = None) -> Optional[Path]:
        deadline = None if timeout is None else time.monotonic() + timeout
        # files written while the previous match was processed are skipped
        current = self.newest() if self._baseline is _UNSET else self._baseline
        while not self.stopped:
            if self._stop_event.wait(self.poll_interval):
                break
            last = self.newest()
            if last != current:
                if last is None or (current is not None and last[0] < current[0]):
                    # newest file went away: a deletion, nothing to process
                    self._baseline = last
                    return None
                self._baseline = _UNSET
                return last[1]
            if deadline is not None and time.monotonic() >= deadline:
                break
        self._baseline = current
        return None


class _QueueingHandler(FileSystemEventHandler):

    def __init__(self, watcher: "EventDirectoryWatcher") -> None:
        self.watcher = watcher

    def _offer(self, raw_path) -> None:
        path = Path(raw_path if isinstance(raw_path, str) else raw_path.decode())
        if matches_pattern(path, self.watcher.directory, self.watcher.pattern):
            self.watcher.events.put(path)

    def on_created(self, event):
        if not event.is_directory:
            self._offer(event.src_path)

    def on_moved(self, event):
        if not event.is_directory:
            self._offer(event.dest_path)


class EventDirectoryWatcher(DirectoryWatcher):
    """watchdog based watcher. Deletions are ignored."""

    def __init__(self, directory: Path | str, pattern: str = DEFAULT_PATTERN,
                 recursive: bool = True, settle_delay: float = 0.5,
                 logger: Optional[logging.Logger] = None) -> None:
        super().__init__(directory, pattern, recursive, settle_delay, logger)
        self.events: "queue.Queue[Path]" = queue.Queue()
        self.observer = None

    def start(self) -> None:
        if self.observer is not None:
            return
        self.observer = Observer()
        self.observer.schedule(_QueueingHandler(self), str(self.directory), recursive=self.recursive)
        self.observer.start()

    def stop(self) -> None:
        super().stop()
        if self.observer is not None:
            self.observer.stop()
            self.observer.join(timeout=5)
            self.observer = None

    def next_match(self, timeout: Optional[float] = None) -> Optional[Path]:
        self.start()
        try:
            path = self.events.get(timeout=timeout)
        except queue.Empty:
            return None
        if not path.exists():
            return None
        return path


def create_watcher(directory: Path | str, config, pattern: Optional[str] = None,
                   logger: Optional[logging.Logger] = None) -> DirectoryWatcher:
    w_cfg = config.get_watch_config()
    strategy = str(w_cfg.get("strategy", "poll")).lower()
    kwargs = {
        "pattern": pattern or w_cfg.get("pattern", DEFAULT_PATTERN),
        "recursive": bool(w_cfg.get("recursive", True)),
        "settle_delay": float(w_cfg.get("settle_delay", 0.5)),
        "logger": logger,
    }
    if strategy == "poll":
        return PollingDirectoryWatcher(directory, poll_interval=float(w_cfg.get("poll_interval", 0.5)), **kwargs)
    if strategy == "events":
        return EventDirectoryWatcher(directory, **kwargs)
    raise ConfigurationError(f"Unknown watch strategy: {strategy}", details={"strategy": strategy})
