#!/usr/bin/env python3
"""
Peer plate-solve server.

Runs on the machine with the plate solver installed and answers the
requests of RemotePlateSolver:

    GET  /ping        -> {"success": true}
    POST /platesolve  multipart: ra, dec, search, fov, image
                      -> {"success": true, "angle", "raDeg", "decDeg"}
                         {"success": false, "error"}

Solves run one at a time because every local solver shares the scratch
directory. The server never talks to Stellarium.
"""

import logging
from pathlib import Path
import shutil
import tempfile
import threading
from typing import Optional

from fastapi import FastAPI, File, Form, UploadFile
from fastapi.responses import JSONResponse
import uvicorn

from ..exceptions import ConfigurationError
from ..platesolve.solver import PlateSolver, PlateSolverFactory, PlateSolveRequest
from ..utils.constants import DEFAULT_SEARCH_RADIUS, PeerEndpoints
from ..utils.paths import ensure_dir, get_download_dir


def _error(message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def create_app(config, solver: Optional[PlateSolver] = None,
               logger: Optional[logging.Logger] = None) -> FastAPI:
    """Build the FastAPI application.

    Raises:
        ConfigurationError: if no local solver can be created.
    """
    log = logger or logging.getLogger(__name__)
    if solver is None:
        solver_type = config.get_plate_solve_config().get("default_solver", "astap")
        if str(solver_type).lower() == "remote":
            raise ConfigurationError("The peer server needs a local solver, not 'remote'")
        solver = PlateSolverFactory.create_solver(solver_type, config=config, logger=log)
    if solver is None:
        raise ConfigurationError("No plate solver available for the peer server")

    download_dir = get_download_dir(config)
    default_radius = float(config.get_plate_solve_config().get("search_radius") or DEFAULT_SEARCH_RADIUS)
    solve_lock = threading.Lock()

    app = FastAPI(title="stella-sync peer")
    app.state.solver = solver
    app.state.download_dir = download_dir

    @app.get(PeerEndpoints.PING)
    def ping():
        return {"success": True}

    # plain def: FastAPI runs it in its threadpool, the lock serializes solves
    @app.post(PeerEndpoints.PLATESOLVE)
    def platesolve(
        ra: str = Form(...),
        dec: str = Form(...),
        search: Optional[str] = Form(None),
        fov: Optional[str] = Form(None),
        image: UploadFile = File(...),
    ):
        try:
            ra_deg = float(ra)
            dec_deg = float(dec)
            radius = float(search) if search else default_radius
            fov_deg = float(fov) if fov else None
        except ValueError as e:
            return _error(f"invalid form value: {e}", status_code=400)

        name = Path(image.filename or "").name or "upload.fit"
        # clients all upload tmp<ext>: one file per request so queued uploads stay apart
        try:
            with tempfile.NamedTemporaryFile(dir=ensure_dir(download_dir), prefix=f"{Path(name).stem}_",
                                             suffix=Path(name).suffix, delete=False) as fh:
                target = Path(fh.name)
                shutil.copyfileobj(image.file, fh)
        except OSError as e:
            log.error(f"Could not save upload {name}: {e}")
            return _error(f"could not save upload: {e}", status_code=500)
        finally:
            image.file.close()
        log.info(f"received {name} (ra {ra_deg}, dec {dec_deg}, search {radius})")

        request = PlateSolveRequest(
            image_path=str(target),
            ra_deg=ra_deg,
            dec_deg=dec_deg,
            search_radius_deg=radius,
            fov_deg=fov_deg,
        )
        try:
            with solve_lock:
                status = solver.solve(request)
        finally:
            target.unlink(missing_ok=True)

        if not status.is_success:
            log.warning(f"solve of {name} failed: {status.message}")
            return _error(status.message)
        return status.data.to_peer_payload()

    return app


def serve(config, port: Optional[int] = None, host: Optional[str] = None,
          logger: Optional[logging.Logger] = None) -> None:
    """Run the peer server until interrupted."""
    log = logger or logging.getLogger(__name__)
    peer_cfg = config.get_peer_config()
    port = int(port if port is not None else peer_cfg.get("port", 8000))
    host = host or peer_cfg.get("host", "0.0.0.0")

    app = create_app(config, logger=log)
    log.info(f"platesolve server listening on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")
