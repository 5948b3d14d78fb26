"""
Orbital Propagator Module

Keplerian propagation of TLE mean elements with first-order secular J2
perturbations. The argument of perigee, RAAN and mean anomaly drift linearly
with time; short-period and drag terms are ignored. Accuracy is a few
kilometres over days for a low-eccentricity orbit, which is sufficient for
placing a ground-track marker but not for conjunction analysis.

The TLE mean motion is a Kozai mean motion. It is converted to the Brouwer
mean motion before the mean-anomaly rate is formed, as SGP4 initialisation
does, so the J2 along-track correction is not applied twice.

References:
    Vallado, D. A. (2013). Fundamentals of Astrodynamics and Applications (4th ed.).
    Hoots, F. R., & Roehrich, R. L. (1980). Spacetrack Report No. 3.
"""

import math
from datetime import datetime, timedelta
from typing import NamedTuple, Tuple

import numpy as np

from iss_tracker.config import (
    DEFAULT_ALTITUDE_KM,
    DEFAULT_SPEED_KMS,
    EARTH_RADIUS_KM,
    GRAVITATIONAL_PARAMETER,
    J2,
    TWO_PI,
)
from iss_tracker.logging_config import get_logger
from iss_tracker.models import OrbitalElementSet, StateVector, semi_major_axis_from_mean_motion, vector

logger = get_logger(__name__)


class SecularRates(NamedTuple):
    """J2 secular drift rates in radians per minute."""

    raan: float
    arg_perigee: float
    mean_anomaly: float


def nominal_state() -> StateVector:
    """Placeholder circular low orbit returned for degenerate element sets."""
    return StateVector(
        position=vector(EARTH_RADIUS_KM + DEFAULT_ALTITUDE_KM, 0.0, 0.0),
        velocity=vector(0.0, DEFAULT_SPEED_KMS, 0.0),
        nominal=True,
    )


def is_degenerate(elements: OrbitalElementSet) -> bool:
    """True when the elements cannot be propagated to a finite state."""
    values = (
        elements.inclination,
        elements.raan,
        elements.eccentricity,
        elements.arg_perigee,
        elements.mean_anomaly,
        elements.mean_motion,
    )
    if not all(math.isfinite(v) for v in values):
        return True
    return elements.mean_motion <= 0.0 or not 0.0 <= elements.eccentricity < 1.0


def brouwer_mean_motion(mean_motion: float, eccentricity: float, inclination: float) -> float:
    """Recover the Brouwer mean motion (rad/min) from a TLE Kozai mean motion."""
    cos_i = math.cos(inclination)
    beta3 = (1.0 - eccentricity * eccentricity) ** 1.5
    x3thm1 = 3.0 * cos_i * cos_i - 1.0

    a1 = semi_major_axis_from_mean_motion(mean_motion) / EARTH_RADIUS_KM
    delta1 = 0.75 * J2 * x3thm1 / (a1 * a1 * beta3)
    a0 = a1 * (1.0 - delta1 / 3.0 - delta1 * delta1 - 134.0 * delta1 ** 3 / 81.0)
    delta0 = 0.75 * J2 * x3thm1 / (a0 * a0 * beta3)

    return mean_motion / (1.0 + delta0)


def secular_rates(elements: OrbitalElementSet) -> SecularRates:
    """
    First-order J2 drift of RAAN, argument of perigee and mean anomaly.

    Args:
        elements: Orbital element set

    Returns:
        SecularRates in rad/min
    """
    e = elements.eccentricity
    sin_i = math.sin(elements.inclination)
    cos_i = math.cos(elements.inclination)
    beta = math.sqrt(1.0 - e * e)

    n = brouwer_mean_motion(elements.mean_motion, e, elements.inclination)
    p = semi_major_axis_from_mean_motion(n) * (1.0 - e * e)
    factor = 1.5 * J2 * (EARTH_RADIUS_KM / p) ** 2

    return SecularRates(
        raan=-factor * n * cos_i,
        arg_perigee=factor * n * (2.0 - 2.5 * sin_i * sin_i),
        mean_anomaly=n * (1.0 + factor * beta * (1.0 - 1.5 * sin_i * sin_i)),
    )


def solve_kepler_equation(M: float, e: float, tolerance: float = 1e-12, max_iter: int = 50) -> float:
    """
    Solve Kepler's equation for eccentric anomaly.

    Args:
        M: Mean anomaly (rad), expected in [0, 2π)
        e: Eccentricity
        tolerance: Convergence tolerance
        max_iter: Maximum iterations

    Returns:
        Eccentric anomaly E (rad)
    """
    E = M

    # Newton-Raphson iteration
    for _ in range(max_iter):
        f = E - e * math.sin(E) - M
        fp = 1.0 - e * math.cos(E)

        if abs(f) < tolerance:
            break

        if abs(fp) < 1e-12:
            break

        E = E - f / fp

    return E


def true_anomaly(E: float, e: float) -> float:
    return 2.0 * math.atan2(math.sqrt(1.0 + e) * math.sin(E / 2.0), math.sqrt(1.0 - e) * math.cos(E / 2.0))


def perifocal_to_inertial(raan: float, inclination: float, arg_perigee: float) -> np.ndarray:
    """Rotation matrix from the perifocal (PQW) frame to the inertial frame."""
    cos_raan = math.cos(raan)
    sin_raan = math.sin(raan)
    cos_i = math.cos(inclination)
    sin_i = math.sin(inclination)
    cos_argp = math.cos(arg_perigee)
    sin_argp = math.sin(arg_perigee)

    R_raan = np.array([
        [cos_raan, -sin_raan, 0.0],
        [sin_raan, cos_raan, 0.0],
        [0.0, 0.0, 1.0],
    ])

    R_i = np.array([
        [1.0, 0.0, 0.0],
        [0.0, cos_i, -sin_i],
        [0.0, sin_i, cos_i],
    ])

    R_argp = np.array([
        [cos_argp, -sin_argp, 0.0],
        [sin_argp, cos_argp, 0.0],
        [0.0, 0.0, 1.0],
    ])

    return R_raan @ R_i @ R_argp


def orbital_plane_state(a: float, e: float, E: float) -> Tuple[np.ndarray, np.ndarray]:
    """Position (km) and velocity (km/s) in the perifocal frame at eccentric anomaly E."""
    nu = true_anomaly(E, e)
    r_mag = a * (1.0 - e * math.cos(E))

    r_op = vector(r_mag * math.cos(nu), r_mag * math.sin(nu), 0.0)

    # μ/h with h = √(μp)
    v_scale = math.sqrt(GRAVITATIONAL_PARAMETER / (a * (1.0 - e * e)))
    v_op = vector(-v_scale * math.sin(nu), v_scale * (e + math.cos(nu)), 0.0)

    return r_op, v_op


def propagate(elements: OrbitalElementSet, when: datetime) -> StateVector:
    """
    Propagate an element set to an arbitrary instant.

    Args:
        elements: Orbital element set
        when: Target instant (timezone-aware UTC)

    Returns:
        Inertial StateVector at ``when``. Degenerate elements yield the
        nominal placeholder state flagged with ``nominal=True``.
    """
    if is_degenerate(elements):
        logger.warning(
            "Degenerate element set, returning nominal state",
            catalog_number=elements.catalog_number,
            mean_motion=elements.mean_motion,
            eccentricity=elements.eccentricity,
        )
        return nominal_state()

    e = elements.eccentricity
    a = semi_major_axis_from_mean_motion(elements.mean_motion)
    dt_minutes = (when - elements.epoch).total_seconds() / 60.0

    rates = secular_rates(elements)
    raan = elements.raan + rates.raan * dt_minutes
    arg_perigee = elements.arg_perigee + rates.arg_perigee * dt_minutes
    M = (elements.mean_anomaly + rates.mean_anomaly * dt_minutes) % TWO_PI

    E = solve_kepler_equation(M, e)
    r_op, v_op = orbital_plane_state(a, e, E)

    R = perifocal_to_inertial(raan, elements.inclination, arg_perigee)
    return StateVector(position=R @ r_op, velocity=R @ v_op)


class KeplerJ2Propagator:
    """
    Propagator bound to one element set.

    Convenience wrapper for callers that propagate the same elements to many
    instants, such as ground-track prediction.
    """

    def __init__(self, elements: OrbitalElementSet):
        self.elements = elements

    def propagate(self, when: datetime) -> StateVector:
        return propagate(self.elements, when)

    def propagate_minutes(self, tsince: float) -> StateVector:
        """Propagate to ``tsince`` minutes after the element epoch."""
        return propagate(self.elements, self.elements.epoch + timedelta(minutes=tsince))
