"""
Coordinate Frame Conversion

Conversions between the Earth-centered inertial frame used by the
propagator, the Earth-fixed frame, and WGS-84 geodetic coordinates, plus
the small spherical-geometry helpers the rendering layer uses (great-circle
distance, initial bearing, observer look angles).

Angles are radians throughout this module; ``state_to_fix`` is the single
place where they are converted to the degrees carried by ``GeodeticFix``.

References:
    Vallado, D. A. (2013). Fundamentals of Astrodynamics and Applications (4th ed.).
    Aoki, S. et al. (1982). The new definition of Universal Time. A&A 105, 359-361.
"""

import math
from datetime import datetime, timezone
from typing import Tuple

import numpy as np
from sgp4.api import jday

from iss_tracker.config import (
    EARTH_ECCENTRICITY_SQ,
    EARTH_FLATTENING,
    EARTH_RADIUS_KM,
    J2000_JULIAN_DATE,
    JULIAN_DAYS_PER_CENTURY,
    MAX_ALTITUDE_KM,
    MIN_ALTITUDE_KM,
    SECONDS_PER_DAY,
    TWO_PI,
)
from iss_tracker.exceptions import NumericDegeneracy
from iss_tracker.models import FixSource, GeodeticFix, LookAngles, StateVector, magnitude, rotate_z, vector

GEODETIC_TOLERANCE = 1e-12
GEODETIC_MAX_ITER = 20


def julian_date(when: datetime) -> Tuple[float, float]:
    """
    Convert datetime to Julian date and fraction.

    Args:
        when: Datetime object; naive values are taken as UTC

    Returns:
        Tuple of (julian_day, fraction)
    """
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    when = when.astimezone(timezone.utc)

    second = when.second + when.microsecond / 1e6
    return jday(when.year, when.month, when.day, when.hour, when.minute, second)


def gmst(when: datetime) -> float:
    """
    Greenwich Mean Sidereal Time (IAU 1982 model).

    Args:
        when: Instant to evaluate

    Returns:
        Sidereal angle in radians, normalized to [0, 2π)
    """
    jd, fr = julian_date(when)
    T = (jd - J2000_JULIAN_DATE + fr) / JULIAN_DAYS_PER_CENTURY

    gmst_sec = (
        67310.54841 +
        (876600.0 * 3600.0 + 8640184.812866) * T +
        0.093104 * T * T -
        6.2e-6 * T * T * T
    )

    return (gmst_sec % SECONDS_PER_DAY) * (TWO_PI / SECONDS_PER_DAY)


def eci_to_ecef(r_eci: np.ndarray, sidereal_angle: float) -> np.ndarray:
    return rotate_z(r_eci, sidereal_angle)


def ecef_to_eci(r_ecef: np.ndarray, sidereal_angle: float) -> np.ndarray:
    return rotate_z(r_ecef, -sidereal_angle)


def ecef_to_geodetic(r_ecef: np.ndarray) -> Tuple[float, float, float]:
    """
    Earth-fixed Cartesian to WGS-84 geodetic coordinates.

    Latitude is seeded from the spherical approximation and refined by
    recomputing the prime-vertical radius of curvature until consecutive
    estimates agree to within ``GEODETIC_TOLERANCE``.

    Args:
        r_ecef: Position vector in ECEF coordinates [x, y, z] (km)

    Returns:
        Tuple of (latitude_rad, longitude_rad, altitude_km)
    """
    a = EARTH_RADIUS_KM
    e2 = EARTH_ECCENTRICITY_SQ

    x, y, z = (float(c) for c in r_ecef)
    lon = math.atan2(y, x)
    p = math.hypot(x, y)

    # Handle pole cases
    if p < 1e-10:
        b = a * (1.0 - EARTH_FLATTENING)
        lat = math.pi / 2.0 if z >= 0 else -math.pi / 2.0
        return lat, lon, abs(z) - b

    lat = math.atan2(z, p * (1.0 - e2))
    alt = 0.0

    for _ in range(GEODETIC_MAX_ITER):
        sin_lat = math.sin(lat)
        w = math.sqrt(1.0 - e2 * sin_lat * sin_lat)
        N = a / w
        # Valid at every latitude, including near the poles where p / cos(lat) is unstable
        alt = p * math.cos(lat) + z * sin_lat - a * w

        new_lat = math.atan2(z, p * (1.0 - e2 * N / (N + alt)))
        if abs(new_lat - lat) < GEODETIC_TOLERANCE:
            lat = new_lat
            break
        lat = new_lat

    sin_lat = math.sin(lat)
    w = math.sqrt(1.0 - e2 * sin_lat * sin_lat)
    alt = p * math.cos(lat) + z * sin_lat - a * w

    return lat, lon, alt


def geodetic_to_ecef(latitude: float, longitude: float, altitude: float) -> np.ndarray:
    """
    WGS-84 geodetic coordinates to Earth-fixed Cartesian.

    Args:
        latitude: Geodetic latitude (rad)
        longitude: Longitude (rad)
        altitude: Height above the ellipsoid (km)

    Returns:
        Position vector in ECEF coordinates (km)
    """
    e2 = EARTH_ECCENTRICITY_SQ
    sin_lat = math.sin(latitude)
    cos_lat = math.cos(latitude)
    N = EARTH_RADIUS_KM / math.sqrt(1.0 - e2 * sin_lat * sin_lat)

    return vector(
        (N + altitude) * cos_lat * math.cos(longitude),
        (N + altitude) * cos_lat * math.sin(longitude),
        (N * (1.0 - e2) + altitude) * sin_lat,
    )


def eci_to_geodetic(r_eci: np.ndarray, when: datetime) -> Tuple[float, float, float]:
    return ecef_to_geodetic(eci_to_ecef(r_eci, gmst(when)))


def geodetic_to_eci(latitude: float, longitude: float, altitude: float, when: datetime) -> np.ndarray:
    return ecef_to_eci(geodetic_to_ecef(latitude, longitude, altitude), gmst(when))


def state_to_fix(state: StateVector, when: datetime) -> GeodeticFix:
    """
    Convert a propagated inertial state to a geodetic fix.

    Args:
        state: Inertial state vector
        when: Instant the state is valid for

    Returns:
        GeodeticFix in degrees with altitude in km

    Raises:
        NumericDegeneracy: If the state is the nominal placeholder, not finite,
            or the resulting altitude lies outside the plausible band
    """
    if state.nominal:
        raise NumericDegeneracy("propagator returned the nominal placeholder state")
    if not state.is_finite():
        raise NumericDegeneracy(f"non-finite state vector: {state}")

    lat, lon, alt = eci_to_geodetic(state.position, when)

    if not all(math.isfinite(v) for v in (lat, lon, alt)):
        raise NumericDegeneracy("geodetic conversion produced non-finite values")
    if not MIN_ALTITUDE_KM <= alt <= MAX_ALTITUDE_KM:
        raise NumericDegeneracy(f"altitude {alt:.1f} km outside [{MIN_ALTITUDE_KM}, {MAX_ALTITUDE_KM}] km")

    return GeodeticFix(
        latitude=math.degrees(lat),
        longitude=math.degrees(lon),
        timestamp=when,
        altitude=alt,
        source=FixSource.PROPAGATED,
        is_ascending=bool(state.velocity[2] > 0.0),
    )


def great_circle_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Haversine distance between two points on a sphere of the equatorial radius.

    Args:
        lat1, lon1: First point (rad)
        lat2, lon2: Second point (rad)

    Returns:
        Distance in km
    """
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2.0) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2.0) ** 2
    return 2.0 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def initial_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial great-circle bearing from point 1 to point 2, radians clockwise from north in [0, 2π)."""
    dlon = lon2 - lon1
    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return math.atan2(y, x) % TWO_PI


def look_angles(
    observer_lat: float,
    observer_lon: float,
    observer_alt: float,
    target_eci: np.ndarray,
    when: datetime,
) -> LookAngles:
    """
    Azimuth, elevation and range from a ground observer to an inertial target.

    Args:
        observer_lat: Observer geodetic latitude (rad)
        observer_lon: Observer longitude (rad)
        observer_alt: Observer height above the ellipsoid (km)
        target_eci: Target position in the inertial frame (km)
        when: Instant of observation

    Returns:
        LookAngles with azimuth measured clockwise from north
    """
    target_ecef = eci_to_ecef(target_eci, gmst(when))
    observer_ecef = geodetic_to_ecef(observer_lat, observer_lon, observer_alt)
    dx, dy, dz = target_ecef - observer_ecef

    sin_lat = math.sin(observer_lat)
    cos_lat = math.cos(observer_lat)
    sin_lon = math.sin(observer_lon)
    cos_lon = math.cos(observer_lon)

    # East-North-Up
    east = -sin_lon * dx + cos_lon * dy
    north = -sin_lat * cos_lon * dx - sin_lat * sin_lon * dy + cos_lat * dz
    up = cos_lat * cos_lon * dx + cos_lat * sin_lon * dy + sin_lat * dz

    range_km = magnitude(vector(dx, dy, dz))
    if range_km <= 0.0:
        raise NumericDegeneracy("observer and target coincide")

    azimuth = math.atan2(east, north) % TWO_PI
    elevation = math.asin(max(-1.0, min(1.0, up / range_km)))

    return LookAngles(azimuth=azimuth, elevation=elevation, range_km=range_km)
