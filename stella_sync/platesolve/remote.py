#!/usr/bin/env python3
"""
Remote plate solving through a peer stella-sync server.

A low-power acquisition machine uploads the frame to a more capable peer,
which runs its local solver and answers with the same result contract.
"""

import logging
from pathlib import Path
import time
from typing import Optional

import requests

from ..exceptions import PeerUnreachableError
from ..status import PlateSolveStatus, solve_error, solve_success
from ..utils.constants import PeerEndpoints
from .solver import PlateSolver, PlateSolveRequest, PlateSolveResult


class RemotePlateSolver(PlateSolver):
    """Client side of the /platesolve peer protocol."""

    def __init__(self, server_url: str, config=None, logger=None,
                 session: Optional[requests.Session] = None):
        super().__init__(config=config, logger=logger)
        self.server_url = str(server_url).rstrip("/")
        self.timeout: float = float(self.config.get_peer_config().get("timeout", 180))
        self.session = session or requests.Session()

    def get_name(self) -> str:
        return f"remote {self.server_url}"

    def is_available(self) -> bool:
        try:
            self.ping()
            return True
        except PeerUnreachableError:
            return False

    def ping(self) -> None:
        """Check the peer is alive.

        Raises:
            PeerUnreachableError: if /ping does not answer 200.
        """
        url = f"{self.server_url}{PeerEndpoints.PING}"
        try:
            response = self.session.get(url, timeout=min(self.timeout, 10.0))
        except requests.RequestException as e:
            raise PeerUnreachableError(f"server {self.server_url} not reachable",
                                       details={"error": str(e)}) from e
        if response.status_code != 200:
            raise PeerUnreachableError(f"server {self.server_url} not reachable",
                                       details={"status_code": response.status_code})
        self.logger.info(f"server {self.server_url} is up")

    def solve(self, request: PlateSolveRequest) -> PlateSolveStatus:
        image_path = Path(request.image_path)
        if not image_path.exists():
            return solve_error(f"Image file not found: {image_path}", reason="image_not_found")

        form = {
            "ra": f"{request.ra_deg}",
            "dec": f"{request.dec_deg}",
            "search": f"{request.search_radius_deg}",
        }
        if request.fov_deg is not None:
            form["fov"] = f"{request.fov_deg}"

        url = f"{self.server_url}{PeerEndpoints.PLATESOLVE}"
        self.logger.info(f"sending {image_path.name} to {url}")
        start_time = time.time()
        try:
            with open(image_path, "rb") as fh:
                response = self.session.post(
                    url,
                    data=form,
                    files={"image": (image_path.name, fh, "application/octet-stream")},
                    timeout=self.timeout,
                )
            payload = response.json()
        except requests.RequestException as e:
            self.logger.error(f"server {self.server_url} not reachable: {e}")
            return solve_error(f"server {self.server_url} not reachable: {e}", reason="peer_unreachable")
        except ValueError as e:
            return solve_error(f"Invalid response from {url}: {e}", reason="peer_failed")

        if not isinstance(payload, dict) or not payload.get("success"):
            error = payload.get("error", "unknown error") if isinstance(payload, dict) else payload
            self.logger.error(f"server failed to solve: {error}")
            return solve_error(f"server failed to solve: {error}", reason="peer_failed")

        try:
            result = PlateSolveResult.from_peer_payload(
                payload, solving_time=time.time() - start_time, method=self.get_name()
            )
        except (KeyError, TypeError, ValueError) as e:
            return solve_error(f"Incomplete response from {url}: {e}", reason="peer_failed")

        self._log_solution(result)
        return solve_success("Remote solving successful", result,
                             details={"solving_time": result.solving_time, "method": result.method})
