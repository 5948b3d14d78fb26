"""
Tracker Configuration and Constants

This module contains the physical constants and runtime settings used
throughout the package.

Constants:
    WGS-84 ellipsoid and gravitational constants for the Keplerian/J2
    propagator and the geodetic conversion.

Circular Orbit Model:
    Nominal ISS ground-track parameters used when only a cached latitude and
    longitude are available and positions must be extrapolated without
    orbital elements.

Runtime Settings:
    TrackerConfig holds cache locations, data source endpoints and timeouts.
    Every field can be overridden through an ``ISS_TRACKER_*`` environment
    variable via ``TrackerConfig.from_env()``.

    Sources for current TLEs:
    - CelesTrak.org (public access)
    - Space-Track.org (requires free registration)
"""

import math
import os
from pathlib import Path
from typing import Tuple

from pydantic import BaseModel, Field

# WGS-84 Earth model
EARTH_RADIUS_KM: float = 6378.137  # Equatorial radius (km)
EARTH_FLATTENING: float = 1.0 / 298.257223563
EARTH_ECCENTRICITY_SQ: float = EARTH_FLATTENING * (2.0 - EARTH_FLATTENING)
GRAVITATIONAL_PARAMETER: float = 398600.4418  # km³/s²
J2: float = 1.08262668e-3  # Second zonal harmonic coefficient

# Time constants
MINUTES_PER_DAY: float = 1440.0
SECONDS_PER_DAY: float = 86400.0
JULIAN_DAYS_PER_CENTURY: float = 36525.0
J2000_JULIAN_DATE: float = 2451545.0
TWO_PI: float = 2.0 * math.pi

# Circular orbit model for cache extrapolation
ORBITAL_PERIOD_MINUTES: float = 92.68
MAX_LATITUDE_DEG: float = 51.6  # Peak latitude, close to the orbit inclination
EARTH_ROTATION_DEG_PER_MIN: float = 360.0 / MINUTES_PER_DAY
GROUND_SPEED_DEG_PER_MIN: float = 360.0 / ORBITAL_PERIOD_MINUTES - EARTH_ROTATION_DEG_PER_MIN

# Nominal low orbit returned when propagation inputs are degenerate
DEFAULT_ALTITUDE_KM: float = 400.0
DEFAULT_SPEED_KMS: float = 7.66

# Physically plausible altitude band for a tracked ISS-class object
MIN_ALTITUDE_KM: float = 100.0
MAX_ALTITUDE_KM: float = 2000.0

# ISS catalog numbers: Zarya first, Nauka as the fallback record
ISS_ZARYA_CATALOG: int = 25544
ISS_NAUKA_CATALOG: int = 49044

CELESTRAK_STATIONS_URL = "https://celestrak.org/NORAD/elements/stations.txt"
CELESTRAK_ACTIVE_URL = "https://celestrak.org/NORAD/elements/active.txt"
OPEN_NOTIFY_URL = "http://api.open-notify.org/iss-now.json"


class TrackerConfig(BaseModel):
    """Runtime settings for position resolution."""

    cache_dir: Path = Field(default_factory=lambda: Path.home() / ".iss_tracker")
    element_cache_name: str = "iss_tle_cache.json"
    fix_cache_name: str = "iss_cache.json"
    element_max_age_hours: float = Field(default=168.0, gt=0)
    catalog_urls: Tuple[str, ...] = (CELESTRAK_STATIONS_URL, CELESTRAK_ACTIVE_URL)
    catalog_numbers: Tuple[int, ...] = (ISS_ZARYA_CATALOG, ISS_NAUKA_CATALOG)
    catalog_timeout_s: float = Field(default=30.0, gt=0)
    live_fix_url: str = OPEN_NOTIFY_URL
    live_fix_timeout_s: float = Field(default=5.0, gt=0)
    direction_window_minutes: float = Field(default=10.0, gt=0)
    persist_propagated_fixes: bool = False

    @property
    def element_cache_path(self) -> Path:
        return self.cache_dir / self.element_cache_name

    @property
    def fix_cache_path(self) -> Path:
        return self.cache_dir / self.fix_cache_name

    @classmethod
    def from_env(cls) -> "TrackerConfig":
        """
        Build a configuration from ``ISS_TRACKER_*`` environment variables.

        Unset variables keep their defaults.
        """
        overrides = {}
        env_fields = {
            "ISS_TRACKER_CACHE_DIR": "cache_dir",
            "ISS_TRACKER_TLE_MAX_AGE_HOURS": "element_max_age_hours",
            "ISS_TRACKER_CATALOG_TIMEOUT": "catalog_timeout_s",
            "ISS_TRACKER_LIVE_URL": "live_fix_url",
            "ISS_TRACKER_LIVE_TIMEOUT": "live_fix_timeout_s",
        }
        for variable, field in env_fields.items():
            value = os.getenv(variable)
            if value:
                overrides[field] = value

        catalog_urls = os.getenv("ISS_TRACKER_CATALOG_URLS")
        if catalog_urls:
            overrides["catalog_urls"] = tuple(u.strip() for u in catalog_urls.split(",") if u.strip())

        return cls(**overrides)
