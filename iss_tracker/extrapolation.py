"""
Circular Orbit Extrapolation

Ground-track model used when no orbital elements are available: the station
is treated as moving on a circular orbit of fixed period whose latitude
oscillates sinusoidally between +/- ``MAX_LATITUDE_DEG`` while the ground
track drifts west by the difference between the orbital and Earth rotation
rates.

The orbital phase is measured in degrees from the ascending equator
crossing, so latitude = MAX_LATITUDE_DEG * sin(phase).
"""

import math
from datetime import datetime, timedelta
from typing import Optional, Tuple

from iss_tracker.cache import FixCacheEntry
from iss_tracker.config import GROUND_SPEED_DEG_PER_MIN, MAX_LATITUDE_DEG, ORBITAL_PERIOD_MINUTES
from iss_tracker.logging_config import get_logger
from iss_tracker.models import FixSource, GeodeticFix

logger = get_logger(__name__)

# Latitude change (deg) below which two fixes are treated as noise
DIRECTION_NOISE_DEG = 0.01


def wrap_longitude(longitude: float) -> float:
    """Normalize longitude into [-180, 180]."""
    while longitude > 180.0:
        longitude -= 360.0
    while longitude < -180.0:
        longitude += 360.0
    return longitude


def orbital_phase(latitude: float, is_ascending: bool) -> float:
    """
    Recover the circular-orbit phase (degrees) from a latitude.

    Latitudes beyond the model amplitude are clamped to the nearest peak.
    """
    ratio = max(-1.0, min(1.0, latitude / MAX_LATITUDE_DEG))
    base = math.degrees(math.asin(ratio))
    return base if is_ascending else 180.0 - base


def latitude_from_phase(phase: float) -> float:
    return MAX_LATITUDE_DEG * math.sin(math.radians(phase))


def phase_change(minutes: float) -> float:
    """Phase advance (degrees) over ``minutes``."""
    return minutes / ORBITAL_PERIOD_MINUTES * 360.0


def longitude_after(longitude: float, minutes: float) -> float:
    """Ground-track longitude ``minutes`` after a reference longitude."""
    return wrap_longitude(longitude - minutes * GROUND_SPEED_DEG_PER_MIN)


def is_ascending_phase(phase: float) -> bool:
    """True while latitude is increasing at ``phase``."""
    return math.cos(math.radians(phase)) > 0.0


def infer_direction(
    latitude: float,
    longitude: float,
    timestamp: datetime,
    previous: Optional[FixCacheEntry] = None,
    window_minutes: float = 10.0,
) -> bool:
    """
    Guess whether the station is on an ascending (northbound) pass.

    When the previous cached fix is recent, the sign of the latitude change
    decides. Otherwise a rough hemisphere heuristic is used: near the
    equator, western longitudes count as ascending; at higher latitudes the
    northern hemisphere counts as ascending. The heuristic is approximate and
    is often wrong near the equator.

    Args:
        latitude: Current latitude (deg)
        longitude: Current longitude (deg)
        timestamp: Time of the current fix
        previous: Last cached fix, if any
        window_minutes: Maximum age difference for the previous fix to count

    Returns:
        True if ascending
    """
    if previous is not None:
        minutes_apart = abs((timestamp - previous.time).total_seconds()) / 60.0
        if minutes_apart < window_minutes:
            lat_diff = latitude - previous.latitude
            if abs(lat_diff) > DIRECTION_NOISE_DEG:
                return lat_diff > 0

    if abs(latitude) < 30.0:
        normalized_lon = math.fmod(longitude + 180.0, 360.0) - 180.0
        return normalized_lon < 0

    return latitude > 0


def extrapolate(entry: FixCacheEntry, now: datetime) -> Tuple[GeodeticFix, float]:
    """
    Advance a cached fix to ``now`` along the circular-orbit model.

    Args:
        entry: Last cached fix
        now: Target instant

    Returns:
        Tuple of (extrapolated fix, orbital phase in degrees at ``now``)
    """
    is_ascending = entry.is_ascending
    if is_ascending is None:
        is_ascending = infer_direction(entry.latitude, entry.longitude, entry.time)

    minutes = (now - entry.time).total_seconds() / 60.0
    phase = (orbital_phase(entry.latitude, is_ascending) + phase_change(minutes)) % 360.0

    fix = GeodeticFix(
        latitude=latitude_from_phase(phase),
        longitude=longitude_after(entry.longitude, minutes),
        timestamp=now,
        source=FixSource.EXTRAPOLATED,
        is_ascending=is_ascending_phase(phase),
    )
    logger.debug(
        "Extrapolated cached fix",
        minutes_elapsed=round(minutes, 1),
        latitude=round(fix.latitude, 3),
        longitude=round(fix.longitude, 3),
    )
    return fix, phase


def track_point(fix: GeodeticFix, is_ascending: bool, minutes: float) -> GeodeticFix:
    """Circular-orbit position ``minutes`` from ``fix`` (negative for the past)."""
    phase = orbital_phase(fix.latitude, is_ascending) + phase_change(minutes)
    return GeodeticFix(
        latitude=latitude_from_phase(phase),
        longitude=longitude_after(fix.longitude, minutes),
        timestamp=fix.timestamp + timedelta(minutes=minutes),
        source=FixSource.EXTRAPOLATED,
        is_ascending=is_ascending_phase(phase),
    )
