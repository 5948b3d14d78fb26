"""
Cache Files

Two independent single-file JSON caches:

- ``ElementCache`` holds the last TLE fetched from the bulk catalog together
  with its retrieval time: ``{name, line1, line2, cached_at}``.
- ``FixCache`` holds the last resolved ground position:
  ``{latitude, longitude, timestamp, orbital_phase, is_ascending}`` with the
  timestamp in Unix seconds.

Both are last-writer-wins with no locking; at most one resolution runs at a
time. Any failure to read a file (missing, unreadable, malformed) surfaces as
``CacheUnavailable`` and is treated by callers as a cache miss.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, Field, ValidationError, field_validator

from iss_tracker.exceptions import CacheUnavailable, RejectedElementSet
from iss_tracker.logging_config import get_logger
from iss_tracker.models import GeodeticFix
from iss_tracker.tle_parser import TLEParser

logger = get_logger(__name__)


class ElementCacheEntry(BaseModel):
    """Persisted TLE and the instant it was retrieved."""

    name: str = ""
    line1: str
    line2: str
    cached_at: datetime

    @field_validator("cached_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def age_hours(self, now: datetime) -> float:
        return (now - self.cached_at).total_seconds() / 3600.0

    def is_fresh(self, now: datetime, max_age_hours: float) -> bool:
        """A retrieval time in the future counts as stale."""
        return 0.0 <= self.age_hours(now) < max_age_hours


class FixCacheEntry(BaseModel):
    """Persisted last-known ground position with its circular-orbit phase."""

    latitude: float = Field(ge=-90.0, le=90.0, allow_inf_nan=False)
    longitude: float = Field(ge=-180.0, le=180.0, allow_inf_nan=False)
    timestamp: int
    orbital_phase: Optional[float] = Field(default=None, allow_inf_nan=False)
    is_ascending: Optional[bool] = None

    @field_validator("timestamp")
    @classmethod
    def _representable(cls, value: int) -> int:
        try:
            datetime.fromtimestamp(value, tz=timezone.utc)
        except (ValueError, OverflowError, OSError) as e:
            raise ValueError(f"timestamp {value} is not a valid Unix time: {e}") from e
        return value

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    @classmethod
    def from_fix(cls, fix: GeodeticFix, orbital_phase: Optional[float], is_ascending: Optional[bool]) -> "FixCacheEntry":
        return cls(
            latitude=fix.latitude,
            longitude=fix.longitude,
            timestamp=int(fix.timestamp.timestamp()),
            orbital_phase=orbital_phase,
            is_ascending=is_ascending,
        )


class _JsonFileCache:
    """Shared load/save/clear for a single JSON record on disk."""

    entry_type: Type[BaseModel] = BaseModel

    def __init__(self, path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self):
        """
        Read and validate the cached record.

        Raises:
            CacheUnavailable: If the file is missing, unreadable or malformed
        """
        if not self.path.is_file():
            raise CacheUnavailable(self.path, "no cache file")

        try:
            text = self.path.read_text(encoding="utf-8")
            return self.entry_type.model_validate_json(text)
        except (OSError, json.JSONDecodeError, ValidationError, ValueError) as e:
            raise CacheUnavailable(self.path, str(e)) from e

    def load_or_none(self):
        try:
            return self.load()
        except CacheUnavailable as e:
            logger.debug("Cache miss", path=str(self.path), reason=e.detail)
            return None

    def save(self, entry: BaseModel) -> None:
        """
        Overwrite the cache file with ``entry``.

        Raises:
            CacheUnavailable: If the file cannot be written
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(entry.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            raise CacheUnavailable(self.path, f"write failed: {e}") from e
        logger.debug("Cache written", path=str(self.path))

    def clear(self) -> bool:
        """Delete the cache file. Returns True if a file was removed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CacheUnavailable(self.path, f"delete failed: {e}") from e
        logger.info("Cache cleared", path=str(self.path))
        return True


class ElementCache(_JsonFileCache):
    """TLE cache file."""

    entry_type = ElementCacheEntry

    def load(self) -> ElementCacheEntry:
        return super().load()

    def info(self, now: Optional[datetime] = None, max_age_hours: float = 168.0) -> Optional[Dict[str, Any]]:
        """
        Describe the cached TLE.

        Args:
            now: Reference instant (defaults to the current UTC time)
            max_age_hours: Freshness threshold applied to the retrieval time

        Returns:
            Dictionary with name, catalog number, epoch, retrieval time, age and
            freshness, or None if there is no readable cache
        """
        entry = self.load_or_none()
        if entry is None:
            return None

        now = now or datetime.now(timezone.utc)
        age = entry.age_hours(now)
        info: Dict[str, Any] = {
            "name": entry.name,
            "cached_at": entry.cached_at.isoformat(),
            "age_hours": round(age, 2),
            "is_fresh": entry.is_fresh(now, max_age_hours),
            "path": str(self.path),
        }

        try:
            elements = TLEParser().parse_lines(entry.line1, entry.line2, entry.name)
        except RejectedElementSet as e:
            info["valid"] = False
            info["error"] = str(e)
        else:
            info["valid"] = True
            info["catalog_number"] = elements.catalog_number
            info["epoch"] = elements.epoch.isoformat()
            info["epoch_age_hours"] = round(elements.age_hours(now), 2)

        return info


class FixCache(_JsonFileCache):
    """Last-known position cache file."""

    entry_type = FixCacheEntry

    def load(self) -> FixCacheEntry:
        return super().load()
