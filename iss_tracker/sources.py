"""
Remote Data Sources

Two independent HTTP sources feed the resolver:

- ``CelestrakCatalogSource``: plain-text bulk TLE catalogs. Each configured
  URL is tried in order and scanned for the first listed catalog number.
- ``OpenNotifySource``: a small JSON endpoint reporting the station's
  current sub-satellite point and a Unix timestamp, with no orbital elements.

Every transport or payload failure is raised as ``SourceUnavailable``. No
retries are made; the resolver moves on to its next tier instead.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

import requests
from pydantic import BaseModel, Field, ValidationError

from iss_tracker.config import (
    CELESTRAK_ACTIVE_URL,
    CELESTRAK_STATIONS_URL,
    ISS_NAUKA_CATALOG,
    ISS_ZARYA_CATALOG,
    OPEN_NOTIFY_URL,
)
from iss_tracker.exceptions import SourceUnavailable
from iss_tracker.logging_config import get_logger
from iss_tracker.models import FixSource, GeodeticFix
from iss_tracker.tle_parser import TLELines, TLEParser

logger = get_logger(__name__)

USER_AGENT = "iss-tracker/1.0"


class IssPosition(BaseModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class OpenNotifyPayload(BaseModel):
    """Response body of the ``iss-now`` endpoint. Coordinates arrive as strings."""

    message: str
    timestamp: int
    iss_position: IssPosition


class CelestrakCatalogSource:
    """
    Bulk TLE catalog source.

    Args:
        urls: Catalog URLs, tried in order
        catalog_numbers: NORAD numbers of the tracked object, tried in order
            within each catalog
        timeout: Per-request timeout (seconds)
    """

    name = "catalog"

    def __init__(
        self,
        urls: Sequence[str] = (CELESTRAK_STATIONS_URL, CELESTRAK_ACTIVE_URL),
        catalog_numbers: Sequence[int] = (ISS_ZARYA_CATALOG, ISS_NAUKA_CATALOG),
        timeout: float = 30.0,
        parser: Optional[TLEParser] = None,
    ):
        self.urls = tuple(urls)
        self.catalog_numbers = tuple(catalog_numbers)
        self.timeout = timeout
        self.parser = parser or TLEParser()

    def download(self, url: str) -> str:
        try:
            response = requests.get(url, timeout=self.timeout, headers={"User-Agent": USER_AGENT})
            response.raise_for_status()
        except requests.RequestException as e:
            raise SourceUnavailable(url, str(e)) from e
        return response.text

    def fetch(self) -> TLELines:
        """
        Fetch the tracked object's TLE from the first catalog that lists it.

        Returns:
            Raw TLE lines (not yet validated)

        Raises:
            SourceUnavailable: If every catalog failed or none lists the object
        """
        errors = []
        for url in self.urls:
            try:
                text = self.download(url)
            except SourceUnavailable as e:
                logger.warning("Catalog fetch failed", url=url, error=e.detail)
                errors.append(e.detail)
                continue

            lines = self.parser.find_first(text, self.catalog_numbers)
            if lines is not None:
                logger.info("Fetched TLE from catalog", url=url, name=lines.name)
                return lines

            logger.warning("Catalog does not list the tracked object", url=url, catalog_numbers=self.catalog_numbers)
            errors.append(f"{url}: catalog numbers {self.catalog_numbers} not found")

        raise SourceUnavailable(self.name, "; ".join(errors) or "no catalog URLs configured")


class OpenNotifySource:
    """
    Live position source.

    Args:
        url: ``iss-now`` JSON endpoint
        timeout: Request timeout (seconds)
    """

    name = "live"

    def __init__(self, url: str = OPEN_NOTIFY_URL, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def fetch_fix(self) -> GeodeticFix:
        """
        Fetch the current sub-satellite point.

        Returns:
            GeodeticFix without altitude, timestamped by the source

        Raises:
            SourceUnavailable: On timeout, HTTP error or malformed payload
        """
        try:
            response = requests.get(self.url, timeout=self.timeout, headers={"User-Agent": USER_AGENT})
            response.raise_for_status()
            payload = OpenNotifyPayload.model_validate(response.json())
        except requests.RequestException as e:
            raise SourceUnavailable(self.url, str(e)) from e
        except (ValueError, ValidationError) as e:
            raise SourceUnavailable(self.url, f"malformed payload: {e}") from e

        if payload.message != "success":
            raise SourceUnavailable(self.url, f"unexpected message {payload.message!r}")

        fix = GeodeticFix(
            latitude=payload.iss_position.latitude,
            longitude=payload.iss_position.longitude,
            timestamp=datetime.fromtimestamp(payload.timestamp, tz=timezone.utc),
            source=FixSource.LIVE,
        )
        logger.info("Fetched live position", latitude=fix.latitude, longitude=fix.longitude)
        return fix
