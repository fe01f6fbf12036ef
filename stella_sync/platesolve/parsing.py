#!/usr/bin/env python3
"""
Parsers for plate solver output.

Two formats are understood.

WCS sidecar (ASTAP ``<image>.wcs``), one header card per line::

    CRVAL1  =      324.0600833 / RA of reference pixel (deg)
    CROTA1  =        12.4      / Image twist of X axis (deg)

Everything after `` / `` is a comment. The rest is split on ``=`` and kept
only when it yields exactly a key and a value. String values lose their
surrounding single quotes.

solve-field stdout, two required lines::

    Field center: (RA,Dec) = (324.060083, 57.574500) deg.
    Field rotation angle: up is 10.2 degrees E of N
"""

from __future__ import annotations

import re
from typing import Dict, Tuple

from ..coordinates import normalize_degrees
from ..exceptions import PlateSolveParseError
from ..utils.constants import WCS_DEC_KEY, WCS_RA_KEY, WCS_ROTATION_KEY

_NUMBER = r"[-+]?\d+(?:\.\d*)?(?:[eE][-+]?\d+)?"

FIELD_CENTER_PATTERN = re.compile(
    rf"Field center: \(RA,Dec\) = \(\s*({_NUMBER}),\s*({_NUMBER})\s*\) deg\."
)
FIELD_ROTATION_PATTERN = re.compile(rf"Field rotation angle: up is ({_NUMBER}) degrees")


def parse_wcs_sidecar(text: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for line in text.splitlines():
        comment_at = line.find(" / ")
        card = line if comment_at == -1 else line[:comment_at]
        parts = card.split("=")
        if len(parts) != 2:
            continue
        key = parts[0].strip()
        value = parts[1].strip().strip("'").strip()
        if key:
            values[key] = value
    return values


def wcs_solution(values: Dict[str, str]) -> Tuple[float, float, float]:
    """Extract (ra_deg, dec_deg, raw_rotation) from parsed sidecar values."""
    try:
        ra_deg = float(values[WCS_RA_KEY])
        dec_deg = float(values[WCS_DEC_KEY])
    except (KeyError, ValueError) as e:
        raise PlateSolveParseError("error: couldn't solve for ra/dec", details={"missing": str(e)}) from e
    try:
        raw_angle = float(values[WCS_ROTATION_KEY])
    except (KeyError, ValueError) as e:
        raise PlateSolveParseError("error: couldn't solve for angle", details={"missing": str(e)}) from e
    return ra_deg, dec_deg, raw_angle


def parse_solve_field_output(text: str) -> Tuple[float, float, float]:
    """Extract (ra_deg, dec_deg, raw_rotation) from solve-field stdout.

    Raises:
        PlateSolveParseError: if either required line is missing.
    """
    center = FIELD_CENTER_PATTERN.search(text or "")
    if center is None:
        raise PlateSolveParseError("error: couldn't solve for ra/dec")
    rotation = FIELD_ROTATION_PATTERN.search(text or "")
    if rotation is None:
        raise PlateSolveParseError("error: couldn't solve for angle")
    return float(center.group(1)), float(center.group(2)), float(rotation.group(1))


def solver_angle_to_planetarium(raw_angle: float) -> float:
    """Solver rotation convention -> Stellarium CCD rotation, in [0, 360)."""
    return normalize_degrees(180.0 - raw_angle)
