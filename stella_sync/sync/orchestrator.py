#!/usr/bin/env python3
"""
Sync Orchestrator Module

This module drives the per-image workflow that keeps Stellarium in sync
with what the camera actually sees.

For every new frame:
1. Acquire the single-flight guard (busy -> the frame is dropped)
2. Check the frame still exists and stage a copy for solving
3. Ask Stellarium where it is currently pointing
4. Plate-solve the frame around that position
5. Move Stellarium to the solved position and rotate the CCD frame
6. Play a success or failure cue
7. Release the guard

Per-image failures are logged and announced with a sound; they never end
the watch loop. Stellarium being unreachable is fatal and propagates.

Dependencies:
- StellariumClient: pointing queries and updates
- PlateSolveDispatcher: local or remote plate solving
- SingleFlightGuard: one frame in flight at a time
"""

from enum import Enum
import logging
from pathlib import Path
import shutil
from typing import Any, Callable, Dict, List, Optional

from ..drivers.stellarium.client import StellariumClient
from ..exceptions import PlanetariumUnavailableError
from ..platesolve.solver import PlateSolveDispatcher, PlateSolveRequest, PlateSolver
from ..process_gateway import play_notification_sound
from ..services.guard import SingleFlightGuard, create_guard
from ..services.watcher import DirectoryWatcher
from ..status import Status, error_status, success_status, warning_status
from ..utils.constants import DEFAULT_SEARCH_RADIUS
from ..utils.paths import ensure_dir, get_upload_dir, pretty_path


class SyncState(Enum):
    """States of the per-image workflow."""
    IDLE = "idle"
    LOCK_ACQUIRED = "lock_acquired"
    QUERIED_POINTING = "queried_pointing"
    SOLVING = "solving"
    SOLVED = "solved"
    REPOSITIONED = "repositioned"
    FAILED = "failed"


class SyncOrchestrator:
    """
    Coordinates planetarium, plate solver and guard for each new frame.

    All collaborators can be injected; missing ones are built from the
    configuration.
    """

    def __init__(self, config=None, logger=None,
                 planetarium: Optional[StellariumClient] = None,
                 solver: Optional[PlateSolver] = None,
                 guard: Optional[SingleFlightGuard] = None,
                 notifier: Optional[Callable[[str], Any]] = None,
                 peer=None) -> None:
        """Initialize the orchestrator.

        Args:
            config: Optional ConfigManager instance. If None, creates default config.
            logger: Optional logger instance. If None, creates module logger.
            planetarium: Stellarium client. Defaults to a StellariumClient.
            solver: Plate solver. Defaults to a PlateSolveDispatcher.
            guard: Single-flight guard. Defaults to the one selected by lock.mode.
            notifier: Called with "success" or "failure" after each frame.
            peer: Peer solver used for the startup ping in client mode.
        """
        from ..config_manager import ConfigManager

        if config is None:
            default_config = ConfigManager()
        else:
            default_config = None

        self.config = config or default_config
        self.logger = logger or logging.getLogger(__name__)

        self.planetarium = planetarium or StellariumClient(config=self.config, logger=self.logger)
        self.solver = solver or PlateSolveDispatcher(config=self.config, logger=self.logger)
        self.guard = guard or create_guard(self.config, logger=self.logger)
        self.notifier = notifier or (
            lambda kind: play_notification_sound(kind, config=self.config, logger=self.logger)
        )
        self.peer = peer

        ps_cfg = self.config.get_plate_solve_config()
        self.search_radius: float = float(ps_cfg.get("search_radius") or DEFAULT_SEARCH_RADIUS)
        fov = ps_cfg.get("fov")
        self.fov: Optional[float] = float(fov) if fov is not None else None
        self.server_url: Optional[str] = self.config.get_peer_config().get("server_url")

        cleanup_cfg = self.config.get_cleanup_config()
        self.delete_previews: bool = bool(cleanup_cfg.get("delete_previews", True))
        self.preview_marker: str = cleanup_cfg.get("preview_marker", "Light_Preview_test_")

        self.state: SyncState = SyncState.IDLE
        self.state_history: List[SyncState] = [SyncState.IDLE]
        self.processed_count: int = 0
        self.successful_count: int = 0

    def _transition(self, state: SyncState) -> None:
        self.logger.debug(f"state {self.state.value} -> {state.value}")
        self.state = state
        self.state_history.append(state)

    def _fail(self, message: str, details: Optional[Dict[str, Any]] = None) -> Status:
        self._transition(SyncState.FAILED)
        self.logger.error(message)
        self.notifier("failure")
        return error_status(message, details=details)

    def startup_checks(self) -> None:
        """Prepare for a run.

        Clears a lock left behind by a crashed run, checks the configured
        peer server answers and checks Stellarium answers. The field of view
        comes from Stellarium when it is not configured.

        Raises:
            PeerUnreachableError: if a peer server is configured but down.
            PlanetariumUnavailableError: if Stellarium cannot be queried.
        """
        self.guard.clear_stale()

        if self.server_url:
            if self.peer is None:
                from ..platesolve.remote import RemotePlateSolver

                self.peer = RemotePlateSolver(self.server_url, config=self.config, logger=self.logger)
            self.peer.ping()

        if self.fov is None:
            self.fov = self.planetarium.estimate_fov()
            self.logger.info(f"fov: {self.fov:.2f}°")
        else:
            self.planetarium.get_current_pointing()

    def stage_image(self, image_path: Path) -> Path:
        """Copy the frame to upload_dir/tmp<ext>.

        Preview frames (name contains the preview marker) are deleted
        together with their .jpg sibling once copied.
        """
        upload_dir = ensure_dir(get_upload_dir(self.config))
        staged = upload_dir / f"tmp{image_path.suffix}"
        shutil.copyfile(image_path, staged)

        if self.delete_previews and self.preview_marker and self.preview_marker in image_path.name:
            image_path.unlink(missing_ok=True)
            image_path.with_suffix(".jpg").unlink(missing_ok=True)
            self.logger.debug(f"deleted preview {image_path.name}")
        return staged

    def process_image(self, image_path) -> Status:
        """Run the whole workflow for one frame.

        Returns:
            Status: success with the PlateSolveResult, warning when the frame
            was skipped, error when solving or repositioning failed.

        Raises:
            PlanetariumUnavailableError: Stellarium could not be queried.
        """
        path = Path(image_path)
        if not self.guard.try_acquire():
            self.logger.warning(f"{self.guard.describe()} exists, skipping {path.name}")
            return warning_status(f"Busy, skipped {path.name}", details={"reason": "busy"})

        try:
            self._transition(SyncState.LOCK_ACQUIRED)
            return self._process_locked(path)
        except PlanetariumUnavailableError:
            self._transition(SyncState.FAILED)
            raise
        except Exception as e:
            return self._fail(f"Error processing {path.name}: {e}", details={"image": str(path)})
        finally:
            self.guard.release()
            self._transition(SyncState.IDLE)

    def _process_locked(self, path: Path) -> Status:
        if not path.exists():
            self.logger.info(f"{pretty_path(path)} no longer exists, skipping")
            return warning_status(f"Image vanished: {path}", details={"reason": "missing"})

        self.processed_count += 1
        self.logger.info(f"new image: {pretty_path(path)}")
        staged = self.stage_image(path)

        pointing = self.planetarium.get_current_pointing()
        self._transition(SyncState.QUERIED_POINTING)

        request = PlateSolveRequest(
            image_path=str(staged),
            ra_deg=pointing.ra_deg,
            dec_deg=pointing.dec_deg,
            search_radius_deg=self.search_radius,
            fov_deg=self.fov,
            server_url=self.server_url,
        )
        self._transition(SyncState.SOLVING)
        status = self.solver.solve(request)
        if not status.is_success:
            return self._fail(f"platesolving failed: {status.message}", details=status.details)

        self._transition(SyncState.SOLVED)
        result = status.data
        self.planetarium.set_pointing(result.position, result.angle_deg)
        self._transition(SyncState.REPOSITIONED)

        self.successful_count += 1
        self.notifier("success")
        return success_status("Stellarium synced", data=result,
                              details={"image": str(path), "angle": result.angle_deg})

    def run_watch(self, watcher: DirectoryWatcher) -> None:
        """Process every new frame the watcher reports until it stops.

        Raises:
            PlanetariumUnavailableError: ends the loop.
        """
        try:
            for path in watcher.watch():
                self.process_image(path)
        finally:
            watcher.stop()

    def get_statistics(self) -> Status:
        stats = {
            "processed_count": self.processed_count,
            "successful_count": self.successful_count,
            "state": self.state.value,
        }
        return success_status(
            f"Statistics: {self.processed_count} images, {self.successful_count} synced",
            data=stats,
            details=stats,
        )
