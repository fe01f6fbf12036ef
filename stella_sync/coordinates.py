#!/usr/bin/env python3
"""
Coordinate conversions between angle representations and J2000 unit vectors.

Stellarium reports and accepts sky directions as a J2000 unit vector
``[x, y, z]``; plate solvers work in right ascension / declination degrees.
All functions here are pure.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Sequence, Tuple

from astropy.coordinates import Angle
import astropy.units as u
import numpy as np

from .exceptions import ValidationError

UnitVector = Tuple[float, float, float]


def degrees_to_radians(deg: float) -> float:
    return deg * math.pi / 180.0


def radians_to_degrees(rad: float) -> float:
    return rad * 180.0 / math.pi


def dms_to_degrees(degs: float, mins: float = 0.0, secs: float = 0.0) -> float:
    """[deg, min, sec] -> degrees"""
    return degs + mins / 60.0 + secs / 3600.0


def hms_to_degrees(hours: float, mins: float = 0.0, secs: float = 0.0) -> float:
    """[hours, min, sec] -> degrees (24h = 360°)"""
    return dms_to_degrees(hours, mins, secs) / 24.0 * 360.0


def normalize_degrees(deg: float) -> float:
    """Reduce an angle to [0, 360)."""
    deg = math.fmod(deg, 360.0)
    if deg < 0:
        deg += 360.0
    # fmod of a tiny negative value can round up to exactly 360
    if deg >= 360.0:
        deg -= 360.0
    return deg


def validate_declination(dec_deg: float) -> float:
    if not math.isfinite(dec_deg) or abs(dec_deg) > 90.0:
        raise ValidationError(f"Declination out of range: {dec_deg}", details={'dec_deg': dec_deg})
    return dec_deg


def sky_to_unit_vector(ra_deg: float, dec_deg: float) -> UnitVector:
    """RA/Dec (degrees) -> (x, y, z) J2000 unit vector."""
    alpha = degrees_to_radians(ra_deg)
    delta = degrees_to_radians(dec_deg)
    return (
        math.cos(delta) * math.cos(alpha),
        math.cos(delta) * math.sin(alpha),
        math.sin(delta),
    )


def unit_vector_to_sky(x: float, y: float, z: float) -> Tuple[float, float]:
    """(x, y, z) J2000 vector -> RA/Dec (degrees).

    The vector does not need to be normalized. RA is returned in [0, 360),
    Dec in [-90, 90].
    """
    vec = np.array([x, y, z], dtype=float)
    norm = np.linalg.norm(vec)
    if norm == 0 or not np.isfinite(norm):
        raise ValidationError(f"Cannot convert degenerate vector {[x, y, z]}")
    vx, vy, vz = vec / norm
    ra_deg = normalize_degrees(radians_to_degrees(math.atan2(vy, vx)))
    dec_deg = normalize_degrees(radians_to_degrees(math.asin(max(-1.0, min(1.0, vz)))))
    if dec_deg > 180.0:
        dec_deg -= 360.0
    return ra_deg, dec_deg


@dataclass(frozen=True)
class SkyPosition:
    """A sky pointing direction in degrees (J2000)."""

    ra_deg: float
    dec_deg: float

    def __post_init__(self) -> None:
        object.__setattr__(self, 'ra_deg', normalize_degrees(float(self.ra_deg)))

    @classmethod
    def from_unit_vector(cls, vector: Sequence[float]) -> "SkyPosition":
        if len(vector) != 3:
            raise ValidationError(f"Expected a 3 component vector, got {list(vector)}")
        ra_deg, dec_deg = unit_vector_to_sky(*(float(c) for c in vector))
        return cls(ra_deg, dec_deg)

    @property
    def unit_vector(self) -> UnitVector:
        return sky_to_unit_vector(self.ra_deg, self.dec_deg)

    def __str__(self) -> str:
        return f"ra: {format_degrees(self.ra_deg)}, dec: {format_degrees(self.dec_deg)}"


# Pretty printers for log lines

def format_degrees(deg: float) -> str:
    """57.5712 -> '57.57°'"""
    return f"{deg:.2f}°"


def format_unit_vector(vector: Sequence[float]) -> str:
    x, y, z = vector
    return f"[j2000 | x:{x:.2f}, y:{y:.2f}, z:{z:.2f}]"


def format_ra_hms(ra_deg: float) -> str:
    """324.06 -> '21h36m14.40s'"""
    return Angle(ra_deg, unit=u.deg).to_string(unit=u.hourangle, sep='hms', precision=2)


def format_dec_dms(dec_deg: float) -> str:
    """57.5745 -> '+57d34m28.20s'"""
    return Angle(dec_deg, unit=u.deg).to_string(unit=u.deg, sep='dms', precision=2, alwayssign=True)
