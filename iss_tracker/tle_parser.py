"""
TLE Parser Module

Validates and parses Two-Line Element (TLE) sets into immutable
``OrbitalElementSet`` records.

Validation follows the fixed-column format published by CelesTrak and
Space-Track: each data line is exactly 69 characters, starts with its line
number, and ends with a modulo-10 checksum over the first 68 characters.
Rejections are classified by ``RejectReason`` so callers can report or fall
back without inspecting message text.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, NamedTuple, Optional, Sequence

from iss_tracker.config import MINUTES_PER_DAY, TWO_PI
from iss_tracker.exceptions import RejectReason, RejectedElementSet
from iss_tracker.logging_config import get_logger
from iss_tracker.models import OrbitalElementSet

logger = get_logger(__name__)

DEG2RAD = math.pi / 180.0
XPDOTP = MINUTES_PER_DAY / TWO_PI  # rev/day per rad/min


class TLELines(NamedTuple):
    """Raw TLE text split into its name and two data lines."""

    name: str
    line1: str
    line2: str

    def as_text(self) -> str:
        if self.name:
            return f"{self.name}\n{self.line1}\n{self.line2}"
        return f"{self.line1}\n{self.line2}"


@dataclass(frozen=True)
class ParseOutcome:
    """Result of a non-raising parse: either an element set or a rejection."""

    elements: Optional[OrbitalElementSet] = None
    reason: Optional[RejectReason] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.elements is not None


class TLEParser:
    """
    Parser and validator for Two-Line Element (TLE) sets.

    Provides methods for:
    - Checksum and format validation
    - Parsing TLE text into an OrbitalElementSet
    - Decoding the TLE epoch and implied-decimal exponent fields
    - Locating one satellite in a multi-satellite catalog document
    """

    LINE_LENGTH = 69

    def parse(self, text: str) -> OrbitalElementSet:
        """
        Parse 2- or 3-line TLE text.

        Args:
            text: Optional name line followed by the two data lines

        Returns:
            Parsed orbital element set

        Raises:
            RejectedElementSet: If the text fails any validation check
        """
        lines = self.split_lines(text)
        return self.parse_lines(lines.line1, lines.line2, lines.name)

    def validate(self, text: str) -> ParseOutcome:
        """Parse TLE text without raising; the outcome carries the rejection reason."""
        try:
            return ParseOutcome(elements=self.parse(text))
        except RejectedElementSet as e:
            logger.debug("TLE rejected", reason=e.reason.value, detail=e.detail)
            return ParseOutcome(reason=e.reason, detail=e.detail)

    def split_lines(self, text: str) -> TLELines:
        """
        Split raw TLE text into name and data lines.

        Blank lines are ignored. Two lines are taken as line 1 and line 2;
        three lines as name, line 1, line 2.
        """
        lines = [line.strip() for line in (text or "").splitlines() if line.strip()]

        if len(lines) == 2:
            return TLELines("", lines[0], lines[1])
        if len(lines) == 3:
            return TLELines(lines[0], lines[1], lines[2])

        raise RejectedElementSet(RejectReason.LINE_COUNT, f"expected 2 or 3 lines, got {len(lines)}")

    def parse_lines(self, line1: str, line2: str, name: str = "") -> OrbitalElementSet:
        """
        Validate and parse the two TLE data lines.

        Args:
            line1: First line of TLE
            line2: Second line of TLE
            name: Optional satellite name

        Returns:
            Parsed orbital element set
        """
        self.check_format(line1, 1)
        self.check_format(line2, 2)

        try:
            catalog_number = int(line1[2:7])
            if int(line2[2:7]) != catalog_number:
                raise ValueError(f"catalog numbers differ: {line1[2:7]} / {line2[2:7]}")

            epoch_year = int(line1[18:20])
            epoch_days = float(line1[20:32])
            if not 1.0 <= epoch_days < 367.0:
                raise ValueError(f"epoch day {epoch_days} out of range")

            # First and second derivatives of mean motion, to rad/min² and rad/min³
            ndot = float(line1[33:43]) / (XPDOTP * MINUTES_PER_DAY)
            nddot = self.parse_exponential(line1[44:52]) / (XPDOTP * MINUTES_PER_DAY * MINUTES_PER_DAY)
            bstar = self.parse_exponential(line1[53:61])
            element_set_number = int(line1[64:68].strip() or 0)

            inclination_deg = float(line2[8:16])
            raan_deg = float(line2[17:25])
            eccentricity = float("0." + line2[26:33].strip())
            arg_perigee_deg = float(line2[34:42])
            mean_anomaly_deg = float(line2[43:51])
            mean_motion_rev_day = float(line2[52:63])
            revolution_number = int(line2[63:68].strip() or 0)
        except (ValueError, IndexError) as e:
            raise RejectedElementSet(RejectReason.FIELD, str(e)) from e

        if not 0.0 <= inclination_deg <= 180.0:
            raise RejectedElementSet(RejectReason.FIELD, f"inclination {inclination_deg} out of range")
        if not 0.0 <= eccentricity < 1.0:
            raise RejectedElementSet(RejectReason.FIELD, f"eccentricity {eccentricity} out of range")
        if mean_motion_rev_day <= 0.0:
            raise RejectedElementSet(RejectReason.FIELD, f"mean motion {mean_motion_rev_day} must be positive")

        return OrbitalElementSet(
            name=name or f"SAT_{catalog_number}",
            catalog_number=catalog_number,
            classification=line1[7],
            international_designator=line1[9:17].strip(),
            epoch=self.epoch_to_datetime(epoch_year, epoch_days),
            inclination=inclination_deg * DEG2RAD,
            raan=raan_deg * DEG2RAD,
            eccentricity=eccentricity,
            arg_perigee=arg_perigee_deg * DEG2RAD,
            mean_anomaly=mean_anomaly_deg * DEG2RAD,
            mean_motion=mean_motion_rev_day / XPDOTP,
            mean_motion_dot=ndot,
            mean_motion_ddot=nddot,
            bstar=bstar,
            element_set_number=element_set_number,
            revolution_number=revolution_number,
            line1=line1,
            line2=line2,
        )

    def check_format(self, line: str, line_number: int) -> None:
        """Check length, leading line number and checksum of one data line."""
        if len(line) != self.LINE_LENGTH:
            raise RejectedElementSet(
                RejectReason.LENGTH, f"line {line_number} has {len(line)} characters, expected {self.LINE_LENGTH}"
            )
        if line[0] != str(line_number) or line[1] != " ":
            raise RejectedElementSet(RejectReason.MARKER, f"line {line_number} starts with {line[:2]!r}")
        if not self.is_checksum_valid(line):
            raise RejectedElementSet(
                RejectReason.CHECKSUM, f"line {line_number} checksum {line[68]!r}, computed {self.checksum(line)}"
            )

    def checksum(self, line: str) -> int:
        """Calculate TLE checksum: digits count face value, '-' counts 1, modulo 10."""
        checksum = 0
        for char in line[:68]:
            if char.isdigit():
                checksum += int(char)
            elif char == "-":
                checksum += 1
        return checksum % 10

    def is_checksum_valid(self, line: str) -> bool:
        if len(line) != self.LINE_LENGTH or not line[68].isdigit():
            return False
        return self.checksum(line) == int(line[68])

    def epoch_to_datetime(self, epoch_year: int, epoch_days: float) -> datetime:
        """
        Convert TLE epoch to datetime.

        Args:
            epoch_year: Two-digit year (57-99 -> 1900s, 00-56 -> 2000s)
            epoch_days: Day of year with fractional part (1.0 is Jan 1, 00:00)

        Returns:
            Datetime object in UTC
        """
        year = 1900 + epoch_year if epoch_year >= 57 else 2000 + epoch_year
        return datetime(year, 1, 1, tzinfo=timezone.utc) + timedelta(days=epoch_days - 1.0)

    def parse_exponential(self, field: str) -> float:
        """
        Decode TLE implied-decimal exponent notation.

        " 23354-3" means 0.23354e-3, "-11606-4" means -0.11606e-4.
        """
        text = field.strip()
        if not text:
            return 0.0

        sign = 1.0
        if text[0] in "+-":
            sign = -1.0 if text[0] == "-" else 1.0
            text = text[1:]

        mantissa, exponent_sign, exponent = text[:-2], text[-2:-1], text[-1:]
        if exponent_sign not in ("+", "-", " ") or not exponent.isdigit():
            raise ValueError(f"bad exponent field {field!r}")
        mantissa = mantissa.strip()
        if not mantissa.isdigit():
            raise ValueError(f"bad mantissa in {field!r}")

        power = -int(exponent) if exponent_sign == "-" else int(exponent)
        return sign * float("0." + mantissa) * 10.0 ** power

    def extract_satellite(self, catalog_text: str, catalog_number: int) -> Optional[TLELines]:
        """
        Find one satellite's TLE in a multi-satellite document.

        Args:
            catalog_text: Complete catalog (3-line records, name lines optional)
            catalog_number: NORAD catalog number to search for

        Returns:
            The matching TLE lines, or None if the catalog does not list it
        """
        lines: List[str] = [line.strip() for line in (catalog_text or "").splitlines() if line.strip()]

        for i in range(len(lines) - 1):
            line1 = lines[i]
            if not line1.startswith("1 ") or len(line1) < 7:
                continue
            try:
                number = int(line1[2:7])
            except ValueError:
                continue
            if number != catalog_number or not lines[i + 1].startswith("2 "):
                continue

            name = lines[i - 1] if i > 0 and not lines[i - 1].startswith(("1 ", "2 ")) else ""
            return TLELines(name, line1, lines[i + 1])

        return None

    def find_first(self, catalog_text: str, catalog_numbers: Sequence[int]) -> Optional[TLELines]:
        """Return the first catalog number's TLE found, trying them in order."""
        for catalog_number in catalog_numbers:
            lines = self.extract_satellite(catalog_text, catalog_number)
            if lines is not None:
                return lines
            logger.debug("Catalog number not listed", catalog_number=catalog_number)
        return None
