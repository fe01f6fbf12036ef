#!/usr/bin/env python3
"""
Shared constants for the plate-solve synchronization system.
"""

from __future__ import annotations

from typing import Final, Tuple


class StellariumEndpoints:
    VIEW: Final[str] = 'main/view'
    FOCUS: Final[str] = 'main/focus'
    PROPERTY_LIST: Final[str] = 'stelproperty/list'
    PROPERTY_SET: Final[str] = 'stelproperty/set'


class PeerEndpoints:
    PING: Final[str] = '/ping'
    PLATESOLVE: Final[str] = '/platesolve'


# Oculars lens index -> magnification ratio. Index -1 (no lens) maps to slot 0.
DEFAULT_LENS_RATIOS: Final[Tuple[float, ...]] = (1.0, 2.5, 0.73, 0.66, 0.6, 0.54, 1.6, 2.5)

DEFAULT_API_URL: Final[str] = 'http://127.0.0.1:8090/api'
DEFAULT_TMP_DIR: Final[str] = '/tmp/stella_sync'
DEFAULT_PATTERN: Final[str] = '*test*.fit'
DEFAULT_SEARCH_RADIUS: Final[float] = 25.0
DEFAULT_BASE_FOV: Final[float] = 1.0

LENS_PROPERTY: Final[str] = 'Oculars.selectedLensIndex'
ROTATION_PROPERTY: Final[str] = 'Oculars.selectedCCDRotationAngle'

# WCS sidecar keys written by ASTAP
WCS_RA_KEY: Final[str] = 'CRVAL1'
WCS_DEC_KEY: Final[str] = 'CRVAL2'
WCS_ROTATION_KEY: Final[str] = 'CROTA1'

SEPARATOR_LINE: Final[str] = '-' * 80
