from __future__ import annotations

import os
from pathlib import Path
import threading
import time

import pytest


def _touch(path: Path, mtime: float = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"SIMPLE")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.mark.parametrize(
    "rel,pattern,expected",
    [
        ("Light_Preview_test_001.fit", "*test*.fit", True),
        ("m31/2024-01-01/frame_test.fit", "*test*.fit", True),
        ("frame001.fits", "*test*.fit", False),
        ("frame001.fit", "*.fit", True),
        ("sub/frame001.fit", "sub/*.fit", True),
    ],
)
def test_matches_pattern(tmp_path: Path, rel, pattern, expected):
    from stella_sync.services.watcher import matches_pattern

    assert matches_pattern(tmp_path / rel, tmp_path, pattern) is expected


def test_newest_picks_latest_matching_file(tmp_path: Path):
    from stella_sync.services.watcher import PollingDirectoryWatcher

    now = time.time()
    _touch(tmp_path / "a_test.fit", now - 100)
    newest = _touch(tmp_path / "night" / "b_test.fit", now - 10)
    _touch(tmp_path / "c.jpg", now)

    watcher = PollingDirectoryWatcher(tmp_path, pattern="*test*.fit")
    assert watcher.newest()[1] == newest

    flat = PollingDirectoryWatcher(tmp_path, pattern="*test*.fit", recursive=False)
    assert flat.newest()[1] == tmp_path / "a_test.fit"


def test_poll_next_match_reports_new_file(tmp_path: Path):
    from stella_sync.services.watcher import PollingDirectoryWatcher

    _touch(tmp_path / "old_test.fit", time.time() - 100)
    watcher = PollingDirectoryWatcher(tmp_path, pattern="*test*.fit", poll_interval=0.05)

    assert watcher.next_match(timeout=0.2) is None

    new = tmp_path / "new_test.fit"
    timer = threading.Timer(0.1, _touch, args=(new,))
    timer.start()
    try:
        assert watcher.next_match(timeout=3.0) == new
    finally:
        timer.cancel()


def test_poll_deletion_is_not_a_match(tmp_path: Path):
    from stella_sync.services.watcher import PollingDirectoryWatcher

    _touch(tmp_path / "old_test.fit", time.time() - 100)
    latest = _touch(tmp_path / "latest_test.fit")
    watcher = PollingDirectoryWatcher(tmp_path, pattern="*test*.fit", poll_interval=0.05)
    watcher._baseline = watcher.newest()

    latest.unlink()
    assert watcher.next_match(timeout=0.5) is None


def test_watch_yields_and_stops(tmp_path: Path):
    from stella_sync.services.watcher import PollingDirectoryWatcher

    watcher = PollingDirectoryWatcher(tmp_path, pattern="*.fit", poll_interval=0.05, settle_delay=0.0)
    target = tmp_path / "frame_test.fit"
    timer = threading.Timer(0.2, _touch, args=(target,))
    timer.start()
    try:
        seen = []
        for path in watcher.watch():
            seen.append(path)
            watcher.stop()
    finally:
        timer.cancel()
    assert seen == [target]
    assert watcher.stopped


def test_event_watcher_queues_created_files(tmp_path: Path):
    from stella_sync.services.watcher import EventDirectoryWatcher

    watcher = EventDirectoryWatcher(tmp_path, pattern="*test*.fit", settle_delay=0.0)
    watcher.start()
    # the inotify watch is set up on the observer thread
    time.sleep(0.3)
    try:
        _touch(tmp_path / "ignored.jpg")
        target = _touch(tmp_path / "frame_test.fit")
        found = None
        deadline = time.time() + 5
        while found is None and time.time() < deadline:
            found = watcher.next_match(timeout=0.5)
        assert found == target
    finally:
        watcher.stop()
    assert watcher.observer is None


def test_create_watcher_strategies(config, tmp_path: Path):
    from stella_sync.exceptions import ConfigurationError
    from stella_sync.services.watcher import EventDirectoryWatcher, PollingDirectoryWatcher, create_watcher

    poll = create_watcher(tmp_path, config)
    assert isinstance(poll, PollingDirectoryWatcher)
    assert poll.pattern == "*test*.fit"
    assert poll.poll_interval == 0.5

    config.set("watch.strategy", "events")
    events = create_watcher(tmp_path, config, pattern="*.fits")
    assert isinstance(events, EventDirectoryWatcher)
    assert events.pattern == "*.fits"

    config.set("watch.strategy", "inotify")
    with pytest.raises(ConfigurationError):
        create_watcher(tmp_path, config)
