"""
Core data types for position resolution.

Vectors are plain ``numpy`` arrays of shape (3,). The records below wrap them
with the quantities the tracker needs: orbital elements parsed from a TLE, an
inertial state vector produced by the propagator, and a geodetic fix handed to
the rendering layer.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from iss_tracker.config import EARTH_RADIUS_KM, GRAVITATIONAL_PARAMETER, TWO_PI
from iss_tracker.exceptions import ResolutionFailed, TrackerError


def vector(x: float, y: float, z: float) -> np.ndarray:
    """Build a 3-component float vector."""
    return np.array([x, y, z], dtype=float)


def magnitude(v: np.ndarray) -> float:
    return float(np.linalg.norm(v))


def semi_major_axis_from_mean_motion(mean_motion: float) -> float:
    """
    Kepler's third law.

    Args:
        mean_motion: Mean motion (rad/min)

    Returns:
        Semi-major axis (km)
    """
    n_rad_s = mean_motion / 60.0
    return (GRAVITATIONAL_PARAMETER / (n_rad_s * n_rad_s)) ** (1.0 / 3.0)


def rotate_z(v: np.ndarray, angle: float) -> np.ndarray:
    """
    Rotate a vector's coordinates by ``angle`` about the polar (z) axis.

    A positive angle turns the frame, not the vector: rotating inertial
    coordinates by the sidereal angle yields Earth-fixed coordinates.
    """
    c = math.cos(angle)
    s = math.sin(angle)
    return vector(c * v[0] + s * v[1], -s * v[0] + c * v[1], v[2])


def is_finite(v: np.ndarray) -> bool:
    return bool(np.all(np.isfinite(v)))


@dataclass(frozen=True)
class OrbitalElementSet:
    """
    Mean orbital elements parsed from a validated TLE.

    Angles are in radians, mean motion in radians per minute. Instances are
    never mutated; a refreshed TLE produces a new instance.
    """

    name: str
    catalog_number: int
    classification: str
    international_designator: str
    epoch: datetime
    inclination: float
    raan: float
    eccentricity: float
    arg_perigee: float
    mean_anomaly: float
    mean_motion: float
    mean_motion_dot: float
    mean_motion_ddot: float
    bstar: float
    element_set_number: int
    revolution_number: int
    line1: str
    line2: str

    @property
    def period_minutes(self) -> float:
        return TWO_PI / self.mean_motion

    @property
    def mean_motion_rev_per_day(self) -> float:
        return self.mean_motion * 1440.0 / TWO_PI

    @property
    def semi_major_axis_km(self) -> float:
        return semi_major_axis_from_mean_motion(self.mean_motion)

    def age_hours(self, now: datetime) -> float:
        """Hours elapsed between the element epoch and ``now``."""
        return (now - self.epoch).total_seconds() / 3600.0

    def __str__(self) -> str:
        return (
            f"{self.name} (#{self.catalog_number}) - Epoch: {self.epoch:%Y-%m-%d %H:%M:%S} UTC, "
            f"Inc: {math.degrees(self.inclination):.2f}°, Period: {self.period_minutes:.1f}min"
        )


@dataclass(frozen=True, eq=False)
class StateVector:
    """
    Position (km) and velocity (km/s) in the Earth-centered inertial frame.

    ``nominal`` marks the placeholder orbit returned for degenerate inputs.
    """

    position: np.ndarray
    velocity: np.ndarray
    nominal: bool = False

    @property
    def radius(self) -> float:
        return magnitude(self.position)

    @property
    def altitude(self) -> float:
        """Height above the equatorial radius (km)."""
        return self.radius - EARTH_RADIUS_KM

    @property
    def speed(self) -> float:
        return magnitude(self.velocity)

    def is_finite(self) -> bool:
        return is_finite(self.position) and is_finite(self.velocity)

    def __str__(self) -> str:
        return f"Pos: {np.round(self.position, 3)} km, Vel: {np.round(self.velocity, 5)} km/s"


class FixSource(Enum):
    """Which resolution tier produced a fix."""

    PROPAGATED = "propagated"
    LIVE = "live"
    EXTRAPOLATED = "extrapolated"


@dataclass(frozen=True)
class GeodeticFix:
    """
    Ground position of the tracked object.

    Latitude and longitude are in degrees (longitude in [-180, 180]),
    altitude in km above the WGS-84 ellipsoid. Fixes that do not come from
    propagation carry no altitude.
    """

    latitude: float
    longitude: float
    timestamp: datetime
    altitude: Optional[float] = None
    source: FixSource = FixSource.PROPAGATED
    is_ascending: Optional[bool] = None

    def as_dict(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "altitude_km": self.altitude,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source.value,
            "is_ascending": self.is_ascending,
        }

    def __str__(self) -> str:
        lat_dir = "N" if self.latitude >= 0 else "S"
        lon_dir = "E" if self.longitude >= 0 else "W"
        text = f"{abs(self.latitude):.2f}{lat_dir} {abs(self.longitude):.2f}{lon_dir}"
        if self.altitude is not None:
            text += f" {self.altitude:.1f} km"
        return f"{text} @ {self.timestamp:%H:%M} UTC ({self.source.value})"


@dataclass(frozen=True)
class LookAngles:
    """Topocentric direction from an observer: radians and km."""

    azimuth: float
    elevation: float
    range_km: float

    @property
    def azimuth_deg(self) -> float:
        return math.degrees(self.azimuth)

    @property
    def elevation_deg(self) -> float:
        return math.degrees(self.elevation)

    @property
    def is_visible(self) -> bool:
        return self.elevation > 0

    def __str__(self) -> str:
        return f"Az: {self.azimuth_deg:.1f}°, El: {self.elevation_deg:.1f}°, Range: {self.range_km:.1f} km"


@dataclass(frozen=True)
class Unavailable:
    """Terminal outcome when no resolution tier produced a fix."""

    failures: Tuple[TrackerError, ...] = field(default_factory=tuple)

    @property
    def error(self) -> ResolutionFailed:
        return ResolutionFailed(self.failures)

    def __bool__(self) -> bool:
        return False

    def __str__(self) -> str:
        return str(self.error)
