#!/usr/bin/env python3
"""
Plate Solver Module

This module provides a unified interface for the plate-solving engines
stella-sync can drive: ASTAP and astrometry.net ``solve-field`` running
locally, or a peer stella-sync server solving on our behalf.

Key Features:
- Unified PlateSolveRequest -> PlateSolveStatus contract
- Factory pattern for solver instantiation
- Dispatch between local and remote solving per request
- Serialized use of the shared scratch directory

Architecture:
- Abstract base class for solver implementations
- LocalPlateSolver base owning the scratch directory
- Status-based error handling (failures never raise out of solve())
- Configuration integration

Dependencies:
- External plate-solving software (ASTAP, astrometry.net)
- Configuration management
- Status and exception handling
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import shutil
import threading
import time
from typing import Any, Dict, List, Optional, Tuple, Type

from ..coordinates import (
    SkyPosition,
    format_degrees,
    format_unit_vector,
    normalize_degrees,
    validate_declination,
)
from ..exceptions import ExternalToolError, PlateSolveParseError, ValidationError
from ..process_gateway import run_command
from ..status import PlateSolveStatus, solve_error, solve_success
from ..utils.constants import DEFAULT_SEARCH_RADIUS
from ..utils.paths import expand_path, get_plate_solve_dir
from .parsing import (
    parse_solve_field_output,
    parse_wcs_sidecar,
    solver_angle_to_planetarium,
    wcs_solution,
)


@dataclass
class PlateSolveRequest:
    """Inputs for one plate solve. Built per incoming image, consumed once."""

    image_path: str
    ra_deg: float
    dec_deg: float
    search_radius_deg: float = DEFAULT_SEARCH_RADIUS
    fov_deg: Optional[float] = None
    server_url: Optional[str] = None


class PlateSolveResult:
    """
    Container for plate-solving results.

    Attributes:
        ra_deg: Right Ascension of the field center (degrees)
        dec_deg: Declination of the field center (degrees)
        angle_deg: Field rotation in Stellarium's convention, [0, 360)
        solving_time: Time taken for solving (seconds)
        method: Solver that produced the result
    """

    def __init__(self, ra_deg: float, dec_deg: float, angle_deg: float,
                 solving_time: Optional[float] = None, method: str = "unknown"):
        self.ra_deg = float(ra_deg)
        self.dec_deg = float(dec_deg)
        self.angle_deg = normalize_degrees(float(angle_deg))
        self.solving_time = solving_time
        self.method = method

    @property
    def position(self) -> SkyPosition:
        return SkyPosition(self.ra_deg, self.dec_deg)

    def to_peer_payload(self) -> Dict[str, Any]:
        return {
            "success": True,
            "angle": self.angle_deg,
            "raDeg": self.ra_deg,
            "decDeg": self.dec_deg,
        }

    @classmethod
    def from_peer_payload(cls, payload: Dict[str, Any], solving_time: Optional[float] = None,
                          method: str = "remote") -> "PlateSolveResult":
        return cls(
            ra_deg=float(payload["raDeg"]),
            dec_deg=float(payload["decDeg"]),
            angle_deg=float(payload["angle"]),
            solving_time=solving_time,
            method=method,
        )

    def __str__(self) -> str:
        time_str = f"{self.solving_time:.1f}" if self.solving_time is not None else "None"
        return (f"PlateSolveResult(RA={self.ra_deg:.4f}°, Dec={self.dec_deg:.4f}°, "
                f"angle={self.angle_deg:.1f}°, method={self.method}, time={time_str}s)")

    def __repr__(self) -> str:
        return self.__str__()


class PlateSolver(ABC):
    """Abstract base class for plate-solving engines."""

    def __init__(self, config=None, logger=None):
        from ..config_manager import ConfigManager

        if config is None:
            default_config = ConfigManager()
        else:
            default_config = None
        self.config = config or default_config
        self.logger = logger or logging.getLogger(__name__)

    @abstractmethod
    def solve(self, request: PlateSolveRequest) -> PlateSolveStatus:
        """Solve the image of ``request``. Failures come back as error statuses."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    def get_name(self) -> str:
        pass

    def _log_solution(self, result: PlateSolveResult) -> None:
        if result.solving_time is not None:
            self.logger.info(f"platesolving took {result.solving_time:.2f}s")
        self.logger.info(
            f"solved: ra: {format_degrees(result.ra_deg)}, dec: {format_degrees(result.dec_deg)} "
            f"-> {format_unit_vector(result.position.unit_vector)}"
        )
        self.logger.info(f"rotation: {format_degrees(result.angle_deg)}")


class LocalPlateSolver(PlateSolver):
    """
    Base for solvers that run an executable on this machine.

    The scratch directory is shared by every local solver of the process,
    so solve() holds a process wide lock while it is in use.
    """

    _scratch_lock = threading.Lock()

    def __init__(self, config=None, logger=None):
        super().__init__(config=config, logger=logger)
        self.plate_solve_config = self.config.get_plate_solve_config()
        self.scratch_dir: Path = get_plate_solve_dir(self.config)
        self.validate_dec: bool = bool(self.plate_solve_config.get("validate_declination", True))

    def prepare_scratch(self, image_path: str) -> Path:
        """Empty the scratch directory and copy the image into it.

        Returns:
            Path: the copy the solver will work on
        """
        if self.scratch_dir.exists():
            shutil.rmtree(self.scratch_dir)
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        target = self.scratch_dir / Path(image_path).name
        shutil.copyfile(image_path, target)
        return target

    @abstractmethod
    def _run_solver(self, image: Path, request: PlateSolveRequest) -> Tuple[float, float, float]:
        """Run the tool on ``image``; return (ra_deg, dec_deg, raw_rotation)."""
        pass

    def solve(self, request: PlateSolveRequest) -> PlateSolveStatus:
        if not self.is_available():
            return solve_error(f"{self.get_name()} not available", reason="solver_unavailable")
        if not os.path.exists(request.image_path):
            return solve_error(f"Image file not found: {request.image_path}", reason="image_not_found")
        if self.validate_dec:
            try:
                validate_declination(request.dec_deg)
            except ValidationError as e:
                return solve_error(str(e), reason="invalid_input")

        start_time = time.time()
        with self._scratch_lock:
            try:
                image = self.prepare_scratch(request.image_path)
                ra_deg, dec_deg, raw_angle = self._run_solver(image, request)
            except PlateSolveParseError as e:
                self.logger.error(f"{self.get_name()}: {e.message}")
                return solve_error(e.message, reason="parse_error", details=e.details)
            except ExternalToolError as e:
                self.logger.error(f"{self.get_name()} failed: {e.message}")
                return solve_error(e.message, reason="tool_failed", details=e.details)
            except OSError as e:
                self.logger.error(f"{self.get_name()} scratch error: {e}")
                return solve_error(f"Scratch directory error: {e}", reason="io_error")

        result = PlateSolveResult(
            ra_deg=ra_deg,
            dec_deg=dec_deg,
            angle_deg=solver_angle_to_planetarium(raw_angle),
            solving_time=time.time() - start_time,
            method=self.get_name(),
        )
        self._log_solution(result)
        return solve_success(
            f"{self.get_name()} solving successful",
            result,
            details={"solving_time": result.solving_time, "method": result.method,
                     "raw_angle": raw_angle},
        )


class AstapSolver(LocalPlateSolver):
    """ASTAP integration. Results come from the ``.wcs`` sidecar file."""

    def __init__(self, config=None, logger=None):
        super().__init__(config=config, logger=logger)
        a_cfg = self.plate_solve_config.get("astap", {})
        self.executable_path: str = str(expand_path(a_cfg.get("executable_path", "astap")))
        self.timeout: float = float(a_cfg.get("timeout", 120))

    def get_name(self) -> str:
        return "astap"

    def is_available(self) -> bool:
        return bool(self.executable_path) and (
            os.path.exists(self.executable_path) or shutil.which(self.executable_path) is not None
        )

    def build_command(self, image: Path, request: PlateSolveRequest) -> List[str]:
        # ASTAP takes RA in hours and the south pole distance instead of Dec
        return [
            self.executable_path,
            "-ra", f"{request.ra_deg / 15.0}",
            "-spd", f"{normalize_degrees(90.0 + request.dec_deg)}",
            "-r", f"{request.search_radius_deg}",
            "-f", str(image),
        ]

    def _run_solver(self, image: Path, request: PlateSolveRequest) -> Tuple[float, float, float]:
        cmd = self.build_command(image, request)
        self.logger.info("Running astap: %s", " ".join(cmd))
        try:
            run_command(cmd, timeout=self.timeout, logger=self.logger)
        except ExternalToolError as e:
            raise ExternalToolError("error: couldn't solve for ra/dec", details=e.details) from e

        wcs_path = image.with_suffix(".wcs")
        if not wcs_path.exists():
            raise PlateSolveParseError("error: couldn't solve for ra/dec",
                                       details={"wcs_path": str(wcs_path)})
        values = parse_wcs_sidecar(wcs_path.read_text(encoding="utf-8", errors="replace"))
        return wcs_solution(values)


class SolveFieldSolver(LocalPlateSolver):
    """Local astrometry.net solver using the 'solve-field' CLI."""

    def __init__(self, config=None, logger=None):
        super().__init__(config=config, logger=logger)
        s_cfg = self.plate_solve_config.get("solve_field", {})
        self.executable_path: str = str(s_cfg.get("executable_path", "solve-field"))
        self.cpulimit: int = int(s_cfg.get("cpulimit", 20))
        self.timeout: float = float(s_cfg.get("timeout", 120))

    def get_name(self) -> str:
        return "solve-field"

    def is_available(self) -> bool:
        return bool(self.executable_path) and (
            os.path.exists(self.executable_path) or shutil.which(self.executable_path) is not None
        )

    def build_command(self, image: Path, request: PlateSolveRequest) -> List[str]:
        return [
            self.executable_path,
            "--cpulimit", str(self.cpulimit),
            "--ra", f"{request.ra_deg}",
            "--dec", f"{request.dec_deg}",
            "--radius", f"{request.search_radius_deg}",
            "--no-plots",
            "--overwrite",
            str(image),
        ]

    def _run_solver(self, image: Path, request: PlateSolveRequest) -> Tuple[float, float, float]:
        cmd = self.build_command(image, request)
        self.logger.info("Running solve-field: %s", " ".join(cmd))
        output = run_command(cmd, timeout=self.timeout, cwd=str(self.scratch_dir), logger=self.logger)
        return parse_solve_field_output(output)


class PlateSolveDispatcher(PlateSolver):
    """
    Picks the strategy per request: remote when the request names a peer
    server, the configured local solver otherwise.
    """

    def __init__(self, config=None, logger=None, local_solver: Optional[PlateSolver] = None):
        super().__init__(config=config, logger=logger)
        self.local_solver = local_solver
        self._remote_solvers: Dict[str, PlateSolver] = {}

    def get_name(self) -> str:
        return "dispatcher"

    def is_available(self) -> bool:
        return True

    def _local(self) -> Optional[PlateSolver]:
        if self.local_solver is None:
            self.local_solver = PlateSolverFactory.create_solver(config=self.config, logger=self.logger)
        return self.local_solver

    def _remote(self, server_url: str) -> PlateSolver:
        if server_url not in self._remote_solvers:
            from .remote import RemotePlateSolver

            self._remote_solvers[server_url] = RemotePlateSolver(
                server_url, config=self.config, logger=self.logger
            )
        return self._remote_solvers[server_url]

    def solve(self, request: PlateSolveRequest) -> PlateSolveStatus:
        if request.server_url:
            return self._remote(request.server_url).solve(request)
        solver = self._local()
        if solver is None:
            return solve_error("No local plate solver configured", reason="solver_unavailable")
        return solver.solve(request)


class PlateSolverFactory:
    """Factory for plate solver instances."""

    @staticmethod
    def _solver_classes() -> Dict[str, Type[PlateSolver]]:
        from .remote import RemotePlateSolver

        return {
            "astap": AstapSolver,
            "solve_field": SolveFieldSolver,
            "remote": RemotePlateSolver,
        }

    @staticmethod
    def create_solver(
        solver_type: Optional[str] = None, config=None, logger=None
    ) -> Optional[PlateSolver]:
        if config is None:
            from ..config_manager import ConfigManager

            config = ConfigManager()
        if solver_type is None:
            solver_type = config.get_plate_solve_config().get("default_solver", "astap")

        key = str(solver_type).lower().replace("-", "_")
        solver_class = PlateSolverFactory._solver_classes().get(key)
        if solver_class is None:
            (logger or logging.getLogger(__name__)).error(f"Unknown solver type: {solver_type}")
            return None
        if key == "remote":
            server_url = config.get_peer_config().get("server_url")
            if not server_url:
                (logger or logging.getLogger(__name__)).error("Remote solver needs peer.server_url")
                return None
            return solver_class(server_url, config=config, logger=logger)
        return solver_class(config=config, logger=logger)
