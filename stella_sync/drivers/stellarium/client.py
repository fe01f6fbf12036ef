# stellarium client
"""
Stellarium Remote Control Interface Module

This module provides a high-level interface to the Remote Control plugin
HTTP API of a running Stellarium instance. Stellarium plays the role the
mount plays in a live setup: it tells us where the telescope is supposed
to point, and it is moved to the solved position after each plate solve.

Key Features:
- Current pointing retrieval (J2000 unit vector -> RA/Dec)
- Optical train (barlow / focal reducer) detection from the Oculars plugin
- Focus position and CCD rotation updates

Dependencies:
- requests for HTTP access
- Stellarium running with the Remote Control plugin enabled
"""

import json
import logging
from typing import Any, Dict, Optional

import requests

from ...coordinates import SkyPosition, format_degrees, format_unit_vector
from ...exceptions import PlanetariumUnavailableError
from ...utils.constants import (
    DEFAULT_API_URL,
    DEFAULT_BASE_FOV,
    DEFAULT_LENS_RATIOS,
    LENS_PROPERTY,
    ROTATION_PROPERTY,
    StellariumEndpoints,
)

UNAVAILABLE_MESSAGE = "stellarium not running or doesn't have the remote control plugin"


class StellariumClient:
    """
    Stellarium Remote Control client.

    Read failures are fatal for the caller: without pointing feedback there
    is nothing useful to solve against, so they are raised as
    PlanetariumUnavailableError and never retried. Write failures propagate
    as plain requests exceptions.
    """

    def __init__(self, config=None, logger=None, session: Optional[requests.Session] = None) -> None:
        """Initialize the client.

        Args:
            config: Optional ConfigManager instance. If None, creates default config.
            logger: Optional logger instance. If None, creates module logger.
            session: Optional requests session (tests pass a fake one).
        """
        from ...config_manager import ConfigManager

        if config is None:
            default_config = ConfigManager()
        else:
            default_config = None

        self.config = config or default_config
        self.logger = logger or logging.getLogger(__name__)
        self.session = session or requests.Session()

        p_cfg = self.config.get_planetarium_config()
        self.api_url: str = str(p_cfg.get("api_url", DEFAULT_API_URL)).rstrip("/")
        self.timeout: float = float(p_cfg.get("timeout", 5.0))
        self.lens_property: str = p_cfg.get("lens_property", LENS_PROPERTY)
        self.rotation_property: str = p_cfg.get("rotation_property", ROTATION_PROPERTY)
        self.lens_ratios = [float(r) for r in p_cfg.get("lens_ratios", DEFAULT_LENS_RATIOS)]
        self.base_fov: float = float(p_cfg.get("base_fov", DEFAULT_BASE_FOV))

    def _url(self, endpoint: str) -> str:
        return f"{self.api_url}/{endpoint}"

    def _get_json(self, endpoint: str) -> Dict[str, Any]:
        try:
            response = self.session.get(self._url(endpoint), timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            self.logger.error(UNAVAILABLE_MESSAGE)
            raise PlanetariumUnavailableError(
                UNAVAILABLE_MESSAGE, details={"endpoint": endpoint, "error": str(e)}
            ) from e
        if not isinstance(payload, dict):
            raise PlanetariumUnavailableError(
                f"Unexpected response from {endpoint}", details={"payload": payload}
            )
        return payload

    def get_current_pointing(self) -> SkyPosition:
        """Get where Stellarium is currently looking.

        Raises:
            PlanetariumUnavailableError: if Stellarium is unreachable or the
                view has no usable ``j2000`` field.
        """
        payload = self._get_json(StellariumEndpoints.VIEW)
        self.logger.debug(f"stellarium view: {payload}")
        try:
            # j2000 is itself a JSON encoded string: "[x, y, z]"
            raw = payload["j2000"]
            vector = json.loads(raw) if isinstance(raw, str) else raw
            position = SkyPosition.from_unit_vector(vector)
        except (KeyError, TypeError, ValueError) as e:
            raise PlanetariumUnavailableError(
                "stellarium view has no valid j2000 field", details={"payload": payload}
            ) from e

        self.logger.info(
            f"stellarium at: {format_unit_vector(vector)} -> "
            f"ra: {format_degrees(position.ra_deg)}, dec: {format_degrees(position.dec_deg)}"
        )
        return position

    def get_optical_train_ratio(self) -> float:
        """Get the magnification ratio of the selected Oculars lens.

        >1 is a barlow, <1 a focal reducer, 1 means no lens.
        """
        properties = self._get_json(StellariumEndpoints.PROPERTY_LIST)
        try:
            lens_index = int(properties[self.lens_property]["value"])
        except (KeyError, TypeError, ValueError) as e:
            raise PlanetariumUnavailableError(
                f"stellarium property {self.lens_property} not found",
                details={"property": self.lens_property},
            ) from e

        slot = lens_index + 1
        ratio = self.lens_ratios[slot] if 0 <= slot < len(self.lens_ratios) else 1.0
        if not ratio:
            ratio = 1.0

        if ratio == 1:
            self.logger.info("detected no barlow or FR")
        elif ratio > 1:
            self.logger.info(f"detected barlow {ratio}")
        else:
            self.logger.info(f"detected FR {ratio}")
        return ratio

    def estimate_fov(self) -> float:
        """Field of view in degrees derived from the optical train ratio."""
        return self.base_fov / self.get_optical_train_ratio()

    def set_pointing(self, position: SkyPosition, angle: float) -> None:
        """Move the view to ``position`` and set the CCD rotation to ``angle``."""
        x, y, z = position.unit_vector
        focus = self.session.post(
            self._url(StellariumEndpoints.FOCUS),
            data={"position": f"[{x}, {y}, {z}]"},
            timeout=self.timeout,
        )
        # the rotation is sent even if the focus request was rejected
        rotation = self.session.post(
            self._url(StellariumEndpoints.PROPERTY_SET),
            data={"id": self.rotation_property, "value": f"{angle}"},
            timeout=self.timeout,
        )
        focus.raise_for_status()
        rotation.raise_for_status()
        self.logger.debug(f"stellarium moved to {position}, rotation {format_degrees(angle)}")
