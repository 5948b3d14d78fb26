"""
ISS Tracker Command Line

Resolves the current ISS ground position and prints it as JSON together with
its day/night classification.

Usage:
    python -m iss_tracker [--track] [--cache-info] [--clear-cache] [--verbose]

Arguments:
    --track: Include the predicted ground track (+/- 10 minutes)
    --cache-info: Print information about the cached TLE and exit
    --clear-cache: Delete both cache files and exit
    --verbose: Enable debug logging
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from iss_tracker.config import TrackerConfig
from iss_tracker.exceptions import CacheUnavailable
from iss_tracker.logging_config import configure_logging, get_logger
from iss_tracker.models import Unavailable
from iss_tracker.resolver import PositionResolver
from iss_tracker.sunlight import classify_sunlight

logger = get_logger(__name__)


def show_cache_info(resolver: PositionResolver) -> int:
    info = resolver.element_cache.info(resolver.clock(), resolver.config.element_max_age_hours)
    if info is None:
        print(json.dumps({"cached": False, "path": str(resolver.element_cache.path)}, indent=2))
        return 1
    print(json.dumps(dict(info, cached=True), indent=2))
    return 0


def clear_caches(resolver: PositionResolver) -> int:
    removed = []
    for cache in (resolver.element_cache, resolver.fix_cache):
        try:
            if cache.clear():
                removed.append(str(cache.path))
        except CacheUnavailable as e:
            logger.error("Could not clear cache", path=str(e.path), error=e.detail)
            return 1
    print(json.dumps({"removed": removed}, indent=2))
    return 0


def show_position(resolver: PositionResolver, include_track: bool) -> int:
    now = resolver.clock()
    fix = resolver.resolve(now)
    if isinstance(fix, Unavailable):
        print(json.dumps({"available": False, "error": str(fix)}, indent=2))
        return 1

    result: Dict[str, Any] = dict(fix.as_dict(), available=True)
    result["daylight"] = classify_sunlight(fix.latitude, fix.longitude, fix.timestamp).value

    if include_track:
        track: List[Dict[str, Any]] = [
            {"latitude": round(p.latitude, 4), "longitude": round(p.longitude, 4), "timestamp": p.timestamp.isoformat()}
            for p in resolver.ground_track(now)
        ]
        result["ground_track"] = track

    print(json.dumps(result, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point."""
    parser = argparse.ArgumentParser(
        prog="iss_tracker",
        description="Resolve the current ISS ground position",
    )
    parser.add_argument("--track", action="store_true", help="Include the predicted ground track")
    parser.add_argument("--cache-info", action="store_true", help="Show cached TLE information and exit")
    parser.add_argument("--clear-cache", action="store_true", help="Delete cache files and exit")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    # Configure logging
    if args.verbose:
        configure_logging(level=logging.DEBUG)

    resolver = PositionResolver(TrackerConfig.from_env())

    if args.clear_cache:
        return clear_caches(resolver)
    if args.cache_info:
        return show_cache_info(resolver)
    return show_position(resolver, args.track)


if __name__ == "__main__":
    sys.exit(main())
