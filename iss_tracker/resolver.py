"""
Position Resolution Engine

Resolves the station's current ground position by walking four tiers, most
accurate first:

1. Propagate the held element set (if it was retrieved recently enough).
2. Refresh the element set from the bulk catalog, cache it, and retry tier 1.
3. Ask the live position source for the current sub-satellite point.
4. Extrapolate the last cached fix along a circular-orbit model.

Each tier catches its own failure category and hands over to the next. The
caller sees either a ``GeodeticFix`` or an ``Unavailable`` outcome listing
what went wrong at every tier; no tracker error escapes ``resolve``.

The propagation and state-to-fix conversion are injected so the tier logic
does not depend on a particular propagation algorithm.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Union

from iss_tracker import frames, propagator
from iss_tracker.cache import ElementCache, ElementCacheEntry, FixCache, FixCacheEntry
from iss_tracker.config import TrackerConfig
from iss_tracker.exceptions import (
    CacheUnavailable,
    NumericDegeneracy,
    RejectedElementSet,
    SourceUnavailable,
    TrackerError,
)
from iss_tracker.extrapolation import extrapolate, infer_direction, orbital_phase
from iss_tracker.ground_track import predict_ground_track
from iss_tracker.logging_config import get_logger
from iss_tracker.models import GeodeticFix, OrbitalElementSet, StateVector, Unavailable
from iss_tracker.sources import CelestrakCatalogSource, OpenNotifySource
from iss_tracker.tle_parser import TLEParser

logger = get_logger(__name__)

PropagateFn = Callable[[OrbitalElementSet, datetime], StateVector]
ConvertFn = Callable[[StateVector, datetime], GeodeticFix]
Clock = Callable[[], datetime]

Resolution = Union[GeodeticFix, Unavailable]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class HeldElements:
    """The element set currently in use and the instant it was retrieved."""

    elements: OrbitalElementSet
    retrieved_at: datetime

    def age_hours(self, now: datetime) -> float:
        return (now - self.retrieved_at).total_seconds() / 3600.0

    def is_fresh(self, now: datetime, max_age_hours: float) -> bool:
        """A retrieval time in the future counts as stale."""
        return 0.0 <= self.age_hours(now) < max_age_hours


class PositionResolver:
    """
    Fallback state machine producing the current ground position.

    Args:
        config: Runtime settings (defaults to ``TrackerConfig.from_env()``)
        catalog_source: Bulk TLE source with a ``fetch() -> TLELines`` method
        live_source: Live position source with a ``fetch_fix() -> GeodeticFix`` method
        element_cache: TLE cache file
        fix_cache: Last-known position cache file
        propagate: ``(elements, when) -> StateVector``
        to_fix: ``(state, when) -> GeodeticFix``
        clock: Returns the current UTC instant
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        catalog_source=None,
        live_source=None,
        element_cache: Optional[ElementCache] = None,
        fix_cache: Optional[FixCache] = None,
        propagate: PropagateFn = propagator.propagate,
        to_fix: ConvertFn = frames.state_to_fix,
        clock: Clock = utc_now,
        parser: Optional[TLEParser] = None,
    ):
        self.config = config or TrackerConfig.from_env()
        self.parser = parser or TLEParser()
        self.catalog_source = catalog_source or CelestrakCatalogSource(
            urls=self.config.catalog_urls,
            catalog_numbers=self.config.catalog_numbers,
            timeout=self.config.catalog_timeout_s,
            parser=self.parser,
        )
        self.live_source = live_source or OpenNotifySource(
            url=self.config.live_fix_url,
            timeout=self.config.live_fix_timeout_s,
        )
        self.element_cache = element_cache or ElementCache(self.config.element_cache_path)
        self.fix_cache = fix_cache or FixCache(self.config.fix_cache_path)
        self.propagate = propagate
        self.to_fix = to_fix
        self.clock = clock
        self._held: Optional[HeldElements] = None

    @property
    def held(self) -> Optional[HeldElements]:
        return self._held

    def hold(self, elements: OrbitalElementSet, retrieved_at: datetime) -> HeldElements:
        """Replace the held element set."""
        self._held = HeldElements(elements, retrieved_at)
        logger.info(
            "Holding element set",
            name=elements.name,
            catalog_number=elements.catalog_number,
            epoch=elements.epoch.isoformat(),
            retrieved_at=retrieved_at.isoformat(),
        )
        return self._held

    def fresh_elements(self, now: datetime) -> Optional[HeldElements]:
        """
        Return the held element set if it is fresh, reloading it from the
        element cache first when the in-memory copy is missing or stale.
        """
        max_age = self.config.element_max_age_hours
        if self._held is not None and self._held.is_fresh(now, max_age):
            return self._held

        entry = self.element_cache.load_or_none()
        if entry is None:
            return None

        if not entry.is_fresh(now, max_age):
            logger.info("Cached TLE is stale", age_hours=round(entry.age_hours(now), 1))
            return None

        try:
            elements = self.parser.parse_lines(entry.line1, entry.line2, entry.name)
        except RejectedElementSet as e:
            logger.warning("Cached TLE rejected", reason=e.reason.value, detail=e.detail)
            return None

        return self.hold(elements, entry.cached_at)

    def resolve(self, now: Optional[datetime] = None) -> Resolution:
        """
        Resolve the ground position at ``now``.

        Args:
            now: Target instant (defaults to the clock)

        Returns:
            GeodeticFix from the first tier that succeeds, or Unavailable
            carrying every tier's failure
        """
        now = now or self.clock()
        failures: List[TrackerError] = []
        previous = self.fix_cache.load_or_none()

        # Tier 1
        held = self.fresh_elements(now)
        if held is not None:
            try:
                return self._record_propagated(self._propagate_held(held, now))
            except NumericDegeneracy as e:
                logger.warning("Propagation failed", tier=1, error=str(e))
                failures.append(e)
        else:
            # Tier 2
            try:
                held = self._refresh_elements(now)
            except (SourceUnavailable, RejectedElementSet) as e:
                logger.warning("Element refresh failed", tier=2, error=str(e))
                failures.append(e)
            else:
                try:
                    return self._record_propagated(self._propagate_held(held, now))
                except NumericDegeneracy as e:
                    logger.warning("Propagation of refreshed elements failed", tier=2, error=str(e))
                    failures.append(e)

        # Tier 3
        try:
            return self._live_fix(previous)
        except SourceUnavailable as e:
            logger.warning("Live position unavailable", tier=3, error=str(e))
            failures.append(e)

        # Tier 4
        try:
            return self._extrapolate_cached(now)
        except CacheUnavailable as e:
            logger.warning("No cached position to extrapolate", tier=4, error=e.detail)
            failures.append(e)

        logger.error("ISS position unavailable", failures=[str(f) for f in failures])
        return Unavailable(tuple(failures))

    def resolve_or_raise(self, now: Optional[datetime] = None) -> GeodeticFix:
        """
        Like ``resolve`` but raises instead of returning ``Unavailable``.

        Raises:
            ResolutionFailed: If every tier failed
        """
        result = self.resolve(now)
        if isinstance(result, Unavailable):
            raise result.error
        return result

    def ground_track(
        self,
        now: Optional[datetime] = None,
        points: int = 50,
        minutes_before: float = 10.0,
        minutes_after: float = 10.0,
    ) -> List[GeodeticFix]:
        """
        Predicted ground track around ``now``.

        Uses the held element set when fresh, otherwise the circular-orbit
        model anchored at the resolved fix. Returns an empty list if no
        position can be resolved.
        """
        now = now or self.clock()
        held = self.fresh_elements(now)
        if held is not None:
            return predict_ground_track(
                now,
                elements=held.elements,
                points=points,
                minutes_before=minutes_before,
                minutes_after=minutes_after,
                propagate=self.propagate,
                to_fix=self.to_fix,
            )

        fix = self.resolve(now)
        if isinstance(fix, Unavailable):
            return []
        return predict_ground_track(
            now,
            current_fix=fix,
            points=points,
            minutes_before=minutes_before,
            minutes_after=minutes_after,
        )

    def _propagate_held(self, held: HeldElements, now: datetime) -> GeodeticFix:
        try:
            state = self.propagate(held.elements, now)
            fix = self.to_fix(state, now)
        except (ValueError, ArithmeticError) as e:
            raise NumericDegeneracy(f"propagation failed: {e}") from e

        logger.debug("Propagated position", tier=1, fix=str(fix))
        return fix

    def _refresh_elements(self, now: datetime) -> HeldElements:
        lines = self.catalog_source.fetch()
        elements = self.parser.parse_lines(lines.line1, lines.line2, lines.name)

        entry = ElementCacheEntry(name=lines.name, line1=lines.line1, line2=lines.line2, cached_at=now)
        try:
            self.element_cache.save(entry)
        except CacheUnavailable as e:
            logger.warning("Could not write TLE cache", error=e.detail)

        return self.hold(elements, now)

    def _live_fix(self, previous: Optional[FixCacheEntry]) -> GeodeticFix:
        fix = self.live_source.fetch_fix()
        is_ascending = infer_direction(
            fix.latitude,
            fix.longitude,
            fix.timestamp,
            previous,
            self.config.direction_window_minutes,
        )
        phase = orbital_phase(fix.latitude, is_ascending)
        self._save_fix(FixCacheEntry.from_fix(fix, phase, is_ascending))

        logger.info("Using live position", tier=3, fix=str(fix))
        return GeodeticFix(
            latitude=fix.latitude,
            longitude=fix.longitude,
            timestamp=fix.timestamp,
            altitude=fix.altitude,
            source=fix.source,
            is_ascending=is_ascending,
        )

    def _extrapolate_cached(self, now: datetime) -> GeodeticFix:
        entry = self.fix_cache.load()
        fix, phase = extrapolate(entry, now)

        logger.info(
            "Using extrapolated position",
            tier=4,
            cache_age_minutes=round((now - entry.time).total_seconds() / 60.0, 1),
            orbital_phase=round(phase, 2),
        )
        return fix

    def _record_propagated(self, fix: GeodeticFix) -> GeodeticFix:
        if self.config.persist_propagated_fixes:
            is_ascending = fix.is_ascending if fix.is_ascending is not None else True
            phase = orbital_phase(fix.latitude, is_ascending)
            self._save_fix(FixCacheEntry.from_fix(fix, phase, is_ascending))
        logger.info("Using propagated position", tier=1, fix=str(fix))
        return fix

    def _save_fix(self, entry: FixCacheEntry) -> None:
        try:
            self.fix_cache.save(entry)
        except CacheUnavailable as e:
            logger.warning("Could not write position cache", error=e.detail)


_default_resolver: Optional[PositionResolver] = None


def get_default_resolver() -> PositionResolver:
    """Process-wide resolver configured from the environment, created on first use."""
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = PositionResolver(TrackerConfig.from_env())
    return _default_resolver


def resolve_current_fix() -> Resolution:
    """Resolve the current ISS ground position with the default resolver."""
    return get_default_resolver().resolve()
