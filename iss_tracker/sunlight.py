"""
Day/night classification from the solar terminator.

The terminator is modelled with a spherical Earth and a sun whose declination
follows a sinusoid anchored at the vernal equinox. This is accurate to about
a degree, which is enough for choosing a day or night marker and for drawing
the terminator curve on a world map.

All angles in this module are degrees.
"""

import math
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from iss_tracker.config import SECONDS_PER_DAY

MAX_DECLINATION_DEG = 23.44
VERNAL_EQUINOX_2000 = datetime(2000, 3, 20, 7, 36, tzinfo=timezone.utc)
TROPICAL_YEAR_DAYS = 365.2425


class Daylight(Enum):
    DAY = "day"
    NIGHT = "night"


def _as_utc(when: datetime) -> datetime:
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


def solar_time_offset(when: datetime) -> float:
    """
    Longitude offset (degrees) of the sun's hour angle at ``when``.

    UTC seconds of day are shifted by twelve hours so that the offset is 360
    at 12:00 UTC, when the sun is over the prime meridian. The result lies in
    [180, 540).
    """
    when = _as_utc(when)
    seconds = when.hour * 3600 + when.minute * 60 + when.second
    return (seconds + SECONDS_PER_DAY / 2.0) * 360.0 / SECONDS_PER_DAY


def solar_declination(when: datetime) -> float:
    """Approximate solar declination (degrees) on the day of ``when``."""
    when = _as_utc(when)
    equinox = VERNAL_EQUINOX_2000 + timedelta(days=(when.year - 2000) * TROPICAL_YEAR_DAYS)
    days_since_equinox = when.timetuple().tm_yday - equinox.timetuple().tm_yday
    return MAX_DECLINATION_DEG * math.sin(math.radians(360.0 * days_since_equinox / 365.0))


def terminator_latitude(longitude: float, time_offset: float, declination: float) -> float:
    """
    Latitude (degrees) where the terminator crosses ``longitude``.

    Args:
        longitude: Longitude (deg)
        time_offset: Output of ``solar_time_offset``
        declination: Solar declination (deg)

    Returns:
        Geographic latitude of the terminator, positive north
    """
    cos_hour_angle = math.cos(math.radians(longitude + time_offset))
    tan_declination = math.tan(math.radians(declination))
    if tan_declination == 0.0:
        # Equinox: the terminator runs along the meridians 90° from the sun
        return -math.copysign(90.0, cos_hour_angle)
    return -math.degrees(math.atan(cos_hour_angle / tan_declination))


def classify_sunlight(
    latitude: float,
    longitude: float,
    reference_time: datetime,
    declination: Optional[float] = None,
) -> Daylight:
    """
    Classify a ground point as lit or dark.

    Args:
        latitude: Latitude (deg)
        longitude: Longitude (deg)
        reference_time: Instant to evaluate
        declination: Solar declination override (deg); computed from
            ``reference_time`` when omitted

    Returns:
        Daylight.DAY or Daylight.NIGHT
    """
    if declination is None:
        declination = solar_declination(reference_time)

    terminator = terminator_latitude(longitude, solar_time_offset(reference_time), declination)
    is_day = (declination >= 0 and latitude >= terminator) or (declination < 0 and latitude <= terminator)
    return Daylight.DAY if is_day else Daylight.NIGHT
