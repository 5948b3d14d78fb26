"""
Tests for Error Recovery and Fallback Mechanisms

Tests the tier ordering of the position resolver:
- Propagation of held or cached elements
- Element refresh from the bulk catalog
- Live position fallback
- Extrapolation of the last cached fix
- Graceful degradation to an Unavailable outcome

Remote sources are replaced with in-memory fakes and caches live in a
temporary directory.

Run with:
    python -m pytest tests/test_error_recovery.py -v
"""

import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest import mock

from iss_tracker import resolver as resolver_module
from iss_tracker.cache import ElementCache, ElementCacheEntry, FixCache, FixCacheEntry
from iss_tracker.config import TrackerConfig
from iss_tracker.exceptions import (
    CacheUnavailable,
    NumericDegeneracy,
    RejectedElementSet,
    ResolutionFailed,
    SourceUnavailable,
)
from iss_tracker.models import FixSource, GeodeticFix, Unavailable
from iss_tracker.propagator import nominal_state
from iss_tracker.resolver import HeldElements, PositionResolver, get_default_resolver, resolve_current_fix
from iss_tracker.tle_parser import TLELines

ISS_NAME = "ISS (ZARYA)"
ISS_LINE1 = "1 25544U 98067A   25277.53072227  .00013328  00000+0  24133-3 0  9993"
ISS_LINE2 = "2 25544  51.6326 134.0466 0000997 163.1487 196.9533 15.49841459531997"

NOW = datetime(2025, 10, 4, 14, 0, tzinfo=timezone.utc)


class FakeCatalog:
    """Catalog source returning fixed lines or failing."""

    def __init__(self, lines=None, error=None):
        self.lines = lines
        self.error = error
        self.calls = 0

    def fetch(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.lines


class FakeLive:
    """Live source returning a fixed position or failing."""

    def __init__(self, latitude=None, longitude=None, error=None, timestamp=NOW):
        self.latitude = latitude
        self.longitude = longitude
        self.error = error
        self.timestamp = timestamp
        self.calls = 0

    def fetch_fix(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return GeodeticFix(
            latitude=self.latitude,
            longitude=self.longitude,
            timestamp=self.timestamp,
            source=FixSource.LIVE,
        )


def offline_catalog():
    return FakeCatalog(error=SourceUnavailable("catalog", "connection refused"))


def offline_live():
    return FakeLive(error=SourceUnavailable("live", "read timed out"))


class ResolverTestCase(unittest.TestCase):
    """Shared temporary cache directory and resolver factory."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.config = TrackerConfig(cache_dir=Path(self._tmp.name))
        self.element_cache = ElementCache(self.config.element_cache_path)
        self.fix_cache = FixCache(self.config.fix_cache_path)

    def tearDown(self):
        self._tmp.cleanup()

    def make_resolver(self, catalog, live, **kwargs):
        return PositionResolver(
            config=kwargs.pop("config", self.config),
            catalog_source=catalog,
            live_source=live,
            element_cache=self.element_cache,
            fix_cache=self.fix_cache,
            clock=lambda: NOW,
            **kwargs,
        )

    def cache_elements(self, hours_ago, line1=ISS_LINE1, line2=ISS_LINE2):
        self.element_cache.save(ElementCacheEntry(
            name=ISS_NAME,
            line1=line1,
            line2=line2,
            cached_at=NOW - timedelta(hours=hours_ago),
        ))

    def cache_fix(self, latitude, longitude, minutes_ago, is_ascending=None):
        self.fix_cache.save(FixCacheEntry(
            latitude=latitude,
            longitude=longitude,
            timestamp=int((NOW - timedelta(minutes=minutes_ago)).timestamp()),
            is_ascending=is_ascending,
        ))


class TestPropagationTier(ResolverTestCase):
    """Tier 1: fresh elements are propagated without touching the network."""

    def test_fresh_cached_elements(self):
        self.cache_elements(hours_ago=1)
        catalog, live = FakeCatalog(), FakeLive()
        resolver = self.make_resolver(catalog, live)

        fix = resolver.resolve()

        self.assertEqual(fix.source, FixSource.PROPAGATED)
        self.assertEqual(fix.timestamp, NOW)
        self.assertLessEqual(abs(fix.latitude), 52.0)
        self.assertGreater(fix.altitude, 350.0)
        self.assertEqual(catalog.calls, 0)
        self.assertEqual(live.calls, 0)
        self.assertEqual(resolver.held.elements.catalog_number, 25544)

    def test_propagated_fix_not_persisted(self):
        self.cache_elements(hours_ago=1)
        self.make_resolver(FakeCatalog(), FakeLive()).resolve()
        self.assertFalse(self.fix_cache.exists())

    def test_persistence_can_be_enabled(self):
        self.cache_elements(hours_ago=1)
        config = TrackerConfig(cache_dir=self.config.cache_dir, persist_propagated_fixes=True)
        fix = self.make_resolver(FakeCatalog(), FakeLive(), config=config).resolve()

        entry = self.fix_cache.load()
        self.assertAlmostEqual(entry.latitude, fix.latitude)
        self.assertEqual(entry.timestamp, int(NOW.timestamp()))
        self.assertEqual(entry.is_ascending, fix.is_ascending)

    def test_held_elements_survive_cache_loss(self):
        self.cache_elements(hours_ago=1)
        catalog = FakeCatalog()
        resolver = self.make_resolver(catalog, FakeLive())
        resolver.resolve()

        self.element_cache.clear()
        fix = resolver.resolve(NOW + timedelta(minutes=5))

        self.assertEqual(fix.source, FixSource.PROPAGATED)
        self.assertEqual(catalog.calls, 0)

    def test_strategy_error_moves_to_live(self):
        """A failing propagation strategy is reported as NumericDegeneracy and tier 2 is skipped."""
        self.cache_elements(hours_ago=1)

        def broken(elements, when):
            raise ValueError("math domain error")

        catalog, live = FakeCatalog(), FakeLive(latitude=20.0, longitude=40.0)
        resolver = self.make_resolver(catalog, live, propagate=broken)

        fix = resolver.resolve()

        self.assertEqual(fix.source, FixSource.LIVE)
        self.assertEqual(catalog.calls, 0)
        self.assertEqual(live.calls, 1)

    def test_nominal_state_moves_to_live(self):
        self.cache_elements(hours_ago=1)
        live = FakeLive(latitude=-10.0, longitude=-60.0)
        resolver = self.make_resolver(FakeCatalog(), live, propagate=lambda elements, when: nominal_state())

        self.assertEqual(resolver.resolve().source, FixSource.LIVE)


class TestRefreshTier(ResolverTestCase):
    """Tier 2: missing or stale elements are refreshed from the catalog."""

    def test_refresh_when_nothing_cached(self):
        catalog = FakeCatalog(TLELines(ISS_NAME, ISS_LINE1, ISS_LINE2))
        live = FakeLive()
        resolver = self.make_resolver(catalog, live)

        fix = resolver.resolve()

        self.assertEqual(fix.source, FixSource.PROPAGATED)
        self.assertEqual(catalog.calls, 1)
        self.assertEqual(live.calls, 0)

        entry = self.element_cache.load()
        self.assertEqual(entry.line1, ISS_LINE1)
        self.assertEqual(entry.name, ISS_NAME)
        self.assertEqual(entry.cached_at, NOW)
        self.assertEqual(resolver.held.retrieved_at, NOW)

    def test_refresh_when_stale(self):
        self.cache_elements(hours_ago=200)
        catalog = FakeCatalog(TLELines(ISS_NAME, ISS_LINE1, ISS_LINE2))

        fix = self.make_resolver(catalog, FakeLive()).resolve()

        self.assertEqual(fix.source, FixSource.PROPAGATED)
        self.assertEqual(catalog.calls, 1)
        self.assertEqual(self.element_cache.load().cached_at, NOW)

    def test_future_retrieval_time_triggers_refresh(self):
        self.cache_elements(hours_ago=-5)
        catalog = FakeCatalog(TLELines(ISS_NAME, ISS_LINE1, ISS_LINE2))

        fix = self.make_resolver(catalog, FakeLive()).resolve()

        self.assertEqual(fix.source, FixSource.PROPAGATED)
        self.assertEqual(catalog.calls, 1)
        self.assertEqual(self.element_cache.load().cached_at, NOW)

    def test_held_elements_from_the_future_are_stale(self):
        self.cache_elements(hours_ago=1)
        elements = self.make_resolver(FakeCatalog(), FakeLive()).fresh_elements(NOW).elements

        held = HeldElements(elements, NOW + timedelta(hours=2))
        self.assertFalse(held.is_fresh(NOW, 168.0))
        self.assertTrue(held.is_fresh(NOW + timedelta(hours=2), 168.0))

    def test_corrupt_cache_triggers_refresh(self):
        self.element_cache.path.write_text("{corrupt")
        catalog = FakeCatalog(TLELines(ISS_NAME, ISS_LINE1, ISS_LINE2))

        fix = self.make_resolver(catalog, FakeLive()).resolve()

        self.assertEqual(fix.source, FixSource.PROPAGATED)
        self.assertEqual(catalog.calls, 1)

    def test_rejected_download_moves_to_live(self):
        bad_line2 = ISS_LINE2[:68] + "0"
        catalog = FakeCatalog(TLELines(ISS_NAME, ISS_LINE1, bad_line2))
        live = FakeLive(latitude=10.0, longitude=10.0)

        fix = self.make_resolver(catalog, live).resolve()

        self.assertEqual(fix.source, FixSource.LIVE)
        self.assertFalse(self.element_cache.exists())


class TestLiveTier(ResolverTestCase):
    """Tier 3: the live source is used when elements cannot be obtained."""

    def test_stale_elements_and_failed_refresh(self):
        self.cache_elements(hours_ago=200)
        catalog = offline_catalog()
        live = FakeLive(latitude=-12.5, longitude=98.0)

        fix = self.make_resolver(catalog, live).resolve()

        self.assertEqual(fix.source, FixSource.LIVE)
        self.assertEqual(fix.latitude, -12.5)
        self.assertEqual(fix.longitude, 98.0)
        self.assertIsNone(fix.altitude)
        self.assertEqual(catalog.calls, 1)
        self.assertEqual(live.calls, 1)

    def test_live_fix_is_cached_with_direction(self):
        live = FakeLive(latitude=40.0, longitude=120.0)
        fix = self.make_resolver(offline_catalog(), live).resolve()

        entry = self.fix_cache.load()
        self.assertEqual(entry.latitude, 40.0)
        self.assertEqual(entry.timestamp, int(NOW.timestamp()))
        self.assertTrue(entry.is_ascending)
        self.assertTrue(fix.is_ascending)
        self.assertIsNotNone(entry.orbital_phase)

    def test_direction_from_recent_cached_fix(self):
        """A recent cached fix overrides the hemisphere heuristic."""
        self.cache_fix(latitude=10.0, longitude=-95.0, minutes_ago=2)
        live = FakeLive(latitude=5.0, longitude=-100.0)

        fix = self.make_resolver(offline_catalog(), live).resolve()

        self.assertFalse(fix.is_ascending)
        self.assertFalse(self.fix_cache.load().is_ascending)

    def test_unreadable_cached_fix_does_not_block_live(self):
        self.fix_cache.path.write_text('{"latitude": 10, "longitude": 20, "timestamp": 99999999999999}')
        live = FakeLive(latitude=-30.0, longitude=60.0)

        fix = self.make_resolver(offline_catalog(), live).resolve()

        self.assertEqual(fix.source, FixSource.LIVE)
        self.assertEqual(fix.latitude, -30.0)
        self.assertEqual(self.fix_cache.load().timestamp, int(NOW.timestamp()))


class TestExtrapolationTier(ResolverTestCase):
    """Tier 4: the cached fix is extrapolated when every source fails."""

    def test_all_sources_fail(self):
        self.cache_fix(latitude=0.0, longitude=0.0, minutes_ago=30, is_ascending=True)
        catalog, live = offline_catalog(), offline_live()

        fix = self.make_resolver(catalog, live).resolve()

        self.assertEqual(fix.source, FixSource.EXTRAPOLATED)
        self.assertEqual(fix.timestamp, NOW)
        self.assertLessEqual(abs(fix.latitude), 51.6)
        self.assertLess(fix.longitude, 0.0)
        self.assertEqual(catalog.calls, 1)
        self.assertEqual(live.calls, 1)

    def test_cached_fix_left_untouched(self):
        """Repeated extrapolation always starts from the last observed fix."""
        self.cache_fix(latitude=20.0, longitude=50.0, minutes_ago=15, is_ascending=False)
        before = self.fix_cache.path.read_text()

        resolver = self.make_resolver(offline_catalog(), offline_live())
        first = resolver.resolve()
        second = resolver.resolve()

        self.assertEqual(self.fix_cache.path.read_text(), before)
        self.assertEqual(first, second)


class TestUnavailable(ResolverTestCase):
    """Every tier failing yields an Unavailable outcome."""

    def test_nothing_available(self):
        result = self.make_resolver(offline_catalog(), offline_live()).resolve()

        self.assertIsInstance(result, Unavailable)
        self.assertFalse(result)
        kinds = [type(f) for f in result.failures]
        self.assertEqual(kinds, [SourceUnavailable, SourceUnavailable, CacheUnavailable])
        self.assertIn("unavailable", str(result))

    def test_resolve_or_raise(self):
        resolver = self.make_resolver(offline_catalog(), offline_live())
        with self.assertRaises(ResolutionFailed) as ctx:
            resolver.resolve_or_raise()
        self.assertEqual(len(ctx.exception.failures), 3)

    def test_failures_from_every_tier(self):
        self.cache_elements(hours_ago=1)

        def broken(elements, when):
            raise OverflowError("overflow")

        result = self.make_resolver(FakeCatalog(), offline_live(), propagate=broken).resolve()

        kinds = [type(f) for f in result.failures]
        self.assertEqual(kinds, [NumericDegeneracy, SourceUnavailable, CacheUnavailable])

    def test_rejection_is_reported(self):
        catalog = FakeCatalog(TLELines(ISS_NAME, ISS_LINE1[:60], ISS_LINE2))
        result = self.make_resolver(catalog, offline_live()).resolve()
        self.assertIsInstance(result.failures[0], RejectedElementSet)

    def test_unrepresentable_cached_timestamp(self):
        self.fix_cache.path.write_text('{"latitude": 10, "longitude": 20, "timestamp": 99999999999999}')

        result = self.make_resolver(offline_catalog(), offline_live()).resolve()

        self.assertIsInstance(result, Unavailable)
        self.assertIsInstance(result.failures[-1], CacheUnavailable)

    def test_non_finite_cached_position(self):
        self.fix_cache.path.write_text('{"latitude": 10, "longitude": NaN, "timestamp": 1759582800}')

        result = self.make_resolver(offline_catalog(), offline_live()).resolve()

        self.assertIsInstance(result, Unavailable)
        self.assertIsInstance(result.failures[-1], CacheUnavailable)

    def test_out_of_range_cached_position(self):
        self.fix_cache.path.write_text('{"latitude": 95, "longitude": 20, "timestamp": 1759582800}')

        result = self.make_resolver(offline_catalog(), offline_live()).resolve()

        self.assertIsInstance(result, Unavailable)


class TestDefaultResolver(ResolverTestCase):
    """Module-level entry point."""

    def test_resolve_current_fix_uses_default_resolver(self):
        self.cache_elements(hours_ago=1)
        catalog = FakeCatalog()
        with mock.patch.object(resolver_module, "_default_resolver", self.make_resolver(catalog, FakeLive())):
            fix = resolve_current_fix()

        self.assertEqual(fix.source, FixSource.PROPAGATED)
        self.assertEqual(fix.timestamp, NOW)
        self.assertEqual(catalog.calls, 0)

    def test_default_resolver_created_once(self):
        with mock.patch.object(resolver_module, "_default_resolver", None), \
                mock.patch.dict("os.environ", {"ISS_TRACKER_CACHE_DIR": str(self.config.cache_dir)}):
            first = get_default_resolver()
            self.assertIs(get_default_resolver(), first)
            self.assertEqual(first.config.cache_dir, self.config.cache_dir)


class TestGroundTrack(ResolverTestCase):

    def test_track_from_elements(self):
        self.cache_elements(hours_ago=1)
        track = self.make_resolver(FakeCatalog(), FakeLive()).ground_track(points=21)

        self.assertEqual(len(track), 21)
        self.assertEqual(track[0].timestamp, NOW - timedelta(minutes=10))
        self.assertEqual(track[-1].timestamp, NOW + timedelta(minutes=10))
        self.assertTrue(all(p.source == FixSource.PROPAGATED for p in track))

    def test_track_from_live_fix(self):
        live = FakeLive(latitude=0.0, longitude=0.0)
        track = self.make_resolver(offline_catalog(), live).ground_track(points=5)

        self.assertEqual(len(track), 5)
        self.assertTrue(all(p.source == FixSource.EXTRAPOLATED for p in track))

    def test_no_track_when_unavailable(self):
        self.assertEqual(self.make_resolver(offline_catalog(), offline_live()).ground_track(), [])


if __name__ == "__main__":
    unittest.main()
