#!/usr/bin/env python3
"""
External process gateway.

Runs external executables (plate solvers, the sound player) and captures
their output. The caller blocks until the subprocess terminates.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from typing import Optional, Sequence

from .exceptions import ExternalToolError

SOUND_KINDS = ("success", "failure")


def run_command(
    args: Sequence[str],
    timeout: Optional[float] = None,
    cwd: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> str:
    """Run a command and return its captured output.

    Returns stripped stdout, or stderr when stdout is empty (some tools
    report on stderr only).

    Raises:
        ExternalToolError: if the command cannot be started, times out or
            exits with a non-zero code.
    """
    log = logger or logging.getLogger(__name__)
    cmd = [str(a) for a in args]
    log.debug("Running: %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired as e:
        raise ExternalToolError(
            f"{cmd[0]} timed out after {timeout}s", details={'command': cmd}
        ) from e
    except OSError as e:
        raise ExternalToolError(
            f"Could not start {cmd[0]}: {e}", details={'command': cmd}
        ) from e

    if proc.stdout:
        log.debug("stdout:\n%s", proc.stdout)
    if proc.stderr:
        log.debug("stderr:\n%s", proc.stderr)

    if proc.returncode != 0:
        raise ExternalToolError(
            f"{os.path.basename(cmd[0])} exited with code {proc.returncode}",
            details={
                'command': cmd,
                'returncode': proc.returncode,
                'stderr': (proc.stderr or '').strip()[-500:],
            },
        )
    return (proc.stdout or proc.stderr or '').strip()


def play_notification_sound(kind: str, config=None, logger: Optional[logging.Logger] = None) -> bool:
    """Play the success/failure cue. Never raises.

    Returns:
        bool: True if a sound was played.
    """
    log = logger or logging.getLogger(__name__)
    if kind not in SOUND_KINDS:
        log.debug(f"Unknown notification kind: {kind}")
        return False

    cfg = {}
    if config is not None:
        try:
            cfg = config.get_notifications_config()
        except Exception:
            cfg = {}
    if not cfg.get('enabled', True):
        return False

    player = cfg.get('player', '/usr/bin/afplay')
    sound = cfg.get(f'{kind}_sound')
    if not player or not sound:
        return False
    if not (os.path.exists(player) or shutil.which(player)):
        log.debug(f"Sound player not available: {player}")
        return False

    try:
        run_command([player, sound], timeout=10, logger=log)
        return True
    except ExternalToolError as e:
        log.debug(f"Could not play {kind} sound: {e}")
        return False
