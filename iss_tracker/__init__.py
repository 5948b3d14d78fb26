"""
ISS Position Tracking Package

This package resolves the current ground position of the International Space
Station from published Two-Line Element (TLE) data, degrading through several
data sources when live data is unavailable.

Modules:
    tle_parser: TLE validation and parsing into orbital element sets
    propagator: Keplerian propagation with first-order J2 secular drift
    frames: Inertial, Earth-fixed and geodetic coordinate conversions
    resolver: Multi-tier position resolution with on-disk caches
    sunlight: Day/night classification against the solar terminator

References:
    Vallado, D. A. (2013). Fundamentals of Astrodynamics and Applications (4th ed.).
"""

from iss_tracker.models import GeodeticFix, Unavailable
from iss_tracker.resolver import PositionResolver, resolve_current_fix
from iss_tracker.sunlight import Daylight, classify_sunlight

__version__ = "1.0.0"

__all__ = [
    "GeodeticFix",
    "Unavailable",
    "PositionResolver",
    "resolve_current_fix",
    "Daylight",
    "classify_sunlight",
]
