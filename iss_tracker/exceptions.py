"""
Tracker error taxonomy.

Every failure inside the resolution pipeline is one of these classes. Each is
caught at its own tier boundary by the resolver and turned into "try the next
tier"; only ``ResolutionFailed`` describes a terminal outcome.
"""

from enum import Enum
from typing import Optional, Sequence


class TrackerError(Exception):
    """Base class for all tracker errors."""


class RejectReason(Enum):
    """Why a TLE was rejected during validation."""

    LINE_COUNT = "LINE_COUNT"
    LENGTH = "LENGTH"
    MARKER = "MARKER"
    CHECKSUM = "CHECKSUM"
    FIELD = "FIELD"


class RejectedElementSet(TrackerError):
    """TLE text failed length, marker, checksum or field validation."""

    def __init__(self, reason: RejectReason, detail: str = ""):
        self.reason = reason
        self.detail = detail
        message = f"TLE rejected ({reason.value})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SourceUnavailable(TrackerError):
    """A remote data source timed out, refused, or returned a bad payload."""

    def __init__(self, source: str, detail: str = ""):
        self.source = source
        self.detail = detail
        super().__init__(f"{source} unavailable: {detail}" if detail else f"{source} unavailable")


class NumericDegeneracy(TrackerError):
    """Propagation or conversion produced a non-finite or unphysical result."""


class CacheUnavailable(TrackerError):
    """A cache file is missing or cannot be parsed."""

    def __init__(self, path, detail: str = ""):
        self.path = path
        self.detail = detail
        super().__init__(f"Cache {path} unavailable: {detail}" if detail else f"Cache {path} unavailable")


class ResolutionFailed(TrackerError):
    """All resolution tiers were exhausted without producing a fix."""

    def __init__(self, failures: Optional[Sequence[TrackerError]] = None):
        self.failures = tuple(failures or ())
        summary = "; ".join(str(f) for f in self.failures) or "no tier produced a fix"
        super().__init__(f"ISS position unavailable: {summary}")
