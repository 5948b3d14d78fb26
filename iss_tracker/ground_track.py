"""
Ground track prediction around a reference instant.

Points are propagated from an element set when one is available. Without
elements, the circular-orbit model is anchored at the current fix. Points
whose propagation fails are skipped rather than failing the whole track.
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional

from iss_tracker import frames, propagator
from iss_tracker.exceptions import NumericDegeneracy
from iss_tracker.extrapolation import infer_direction, track_point
from iss_tracker.logging_config import get_logger
from iss_tracker.models import GeodeticFix, OrbitalElementSet, StateVector

logger = get_logger(__name__)


def sample_offsets(points: int, minutes_before: float, minutes_after: float) -> List[float]:
    """Evenly spaced minute offsets from -minutes_before to +minutes_after inclusive."""
    if points < 2:
        raise ValueError("a ground track needs at least 2 points")
    span = minutes_before + minutes_after
    return [-minutes_before + i * span / (points - 1) for i in range(points)]


def predict_ground_track(
    now: datetime,
    elements: Optional[OrbitalElementSet] = None,
    current_fix: Optional[GeodeticFix] = None,
    points: int = 50,
    minutes_before: float = 10.0,
    minutes_after: float = 10.0,
    propagate: Callable[[OrbitalElementSet, datetime], StateVector] = propagator.propagate,
    to_fix: Callable[[StateVector, datetime], GeodeticFix] = frames.state_to_fix,
) -> List[GeodeticFix]:
    """
    Predict the ground track from ``minutes_before`` to ``minutes_after`` around ``now``.

    Args:
        now: Reference instant
        elements: Element set to propagate, if available
        current_fix: Fix anchoring the circular-orbit model when ``elements`` is None
        points: Number of points
        minutes_before: Minutes of past track
        minutes_after: Minutes of future track
        propagate: ``(elements, when) -> StateVector``
        to_fix: ``(state, when) -> GeodeticFix``

    Returns:
        Fixes in chronological order
    """
    offsets = sample_offsets(points, minutes_before, minutes_after)

    if elements is not None:
        track = []
        for minutes in offsets:
            when = now + timedelta(minutes=minutes)
            try:
                track.append(to_fix(propagate(elements, when), when))
            except (NumericDegeneracy, ValueError, ArithmeticError) as e:
                logger.debug("Skipping ground track point", minutes=round(minutes, 2), error=str(e))
        return track

    if current_fix is None:
        raise ValueError("either elements or current_fix is required")

    is_ascending = current_fix.is_ascending
    if is_ascending is None:
        is_ascending = infer_direction(current_fix.latitude, current_fix.longitude, current_fix.timestamp)

    return [track_point(current_fix, is_ascending, minutes) for minutes in offsets]
