"""
Shift Hours Aggregation Service.

Sums payable, sleeper-berth and layover time inside a shift's boundaries and
raises diagnostic flags for shifts that look like a missed OFF entry.

Classification:
===============
- Payable:  ON + DRIVING time
- Sleeper:  SLEEPER time
- Layover:  OFF periods of at least 2 hours away from home
"""

import logging
import math
import re
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Callable, List, Mapping, Optional, Tuple

from .events import DutyStatus
from .shift_service import ComplianceConfig, ShiftBoundary
from .timeline import Segment, Timeline

logger = logging.getLogger(__name__)

NearHomePredicate = Callable[[str], bool]

EARTH_RADIUS_MILES = 3958.7613

_LAT_LON_RE = re.compile(r'\(\s*(-?\d{1,3}(?:\.\d+)?)\s*,\s*(-?\d{1,3}(?:\.\d+)?)\s*\)')


def to_minutes(delta: timedelta) -> int:
    return int(round(delta.total_seconds() / 60))


def parse_lat_lon(location: Any) -> Optional[Tuple[float, float]]:
    """Extract "(lat, lon)" coordinates from a location string."""
    match = _LAT_LON_RE.search(str(location or ''))
    if not match:
        return None
    return float(match.group(1)), float(match.group(2))


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in miles."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@dataclass(frozen=True)
class HomeProximity:
    """
    Near-home predicate for layover classification.

    A location is near home when its "(lat, lon)" lies within
    ``radius_miles`` of the home terminal, or, when it has no coordinates,
    when its text matches ``place_pattern``.
    """
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_miles: float = 5.0
    place_pattern: str = ""

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> Optional['HomeProximity']:
        if not data:
            return None
        return cls(
            latitude=data.get('latitude'),
            longitude=data.get('longitude'),
            radius_miles=float(data.get('radius_miles') or 5.0),
            place_pattern=data.get('place_pattern') or "",
        )

    def __call__(self, location: str) -> bool:
        coords = parse_lat_lon(location)
        if coords and self.latitude is not None and self.longitude is not None:
            distance = haversine_miles(coords[0], coords[1], self.latitude, self.longitude)
            return distance <= self.radius_miles
        if self.place_pattern:
            return re.search(self.place_pattern, str(location or ''), re.IGNORECASE) is not None
        return False


@dataclass(frozen=True)
class ShiftAccumulator:
    """Running totals for one shift; every update returns a new value."""
    payable: timedelta = timedelta(0)
    sleeper: timedelta = timedelta(0)
    layover: timedelta = timedelta(0)
    current_streak: timedelta = timedelta(0)
    longest_streak: timedelta = timedelta(0)

    def add(self, period: Segment, counts_as_layover: bool) -> 'ShiftAccumulator':
        if period.status.is_work:
            streak = self.current_streak + period.duration
            return replace(
                self,
                payable=self.payable + period.duration,
                current_streak=streak,
                longest_streak=max(self.longest_streak, streak),
            )
        updated = replace(self, current_streak=timedelta(0))
        if period.status is DutyStatus.SLEEPER:
            return replace(updated, sleeper=updated.sleeper + period.duration)
        if counts_as_layover:
            return replace(updated, layover=updated.layover + period.duration)
        return updated


@dataclass
class HoursSummary:
    """Aggregated minutes and diagnostics for one shift."""
    payable_minutes: int
    sleeper_minutes: int
    layover_minutes: int
    longest_on_streak: timedelta
    notes: List[str] = field(default_factory=list)


def _is_layover(period: Segment, config: ComplianceConfig,
                is_near_home: Optional[NearHomePredicate]) -> bool:
    if period.status is not DutyStatus.OFF or period.duration < config.min_layover:
        return False
    return not (is_near_home and is_near_home(period.location))


def aggregate_hours(
    timeline: Timeline,
    boundary: ShiftBoundary,
    config: Optional[ComplianceConfig] = None,
    is_near_home: Optional[NearHomePredicate] = None
) -> HoursSummary:
    """
    Sum the shift's time by duty status.

    Args:
        timeline: The driver's timeline
        boundary: Shift start/end from the segmenter
        config: Thresholds
        is_near_home: Location predicate; without one every OFF period is
            treated as away from home

    Returns:
        HoursSummary with minute totals and diagnostic notes
    """
    config = config or ComplianceConfig()
    acc = ShiftAccumulator()
    for period in timeline.periods(boundary.start, boundary.end):
        acc = acc.add(period, _is_layover(period, config, is_near_home))

    notes: List[str] = []
    if boundary.duration > config.max_shift:
        notes.append(
            f"Long shift {boundary.duration.total_seconds() / 3600:.2f}h (possible missed OFF)"
        )
    if acc.longest_streak > config.max_continuous_on:
        notes.append(
            f"Continuous ON/DRIVING {acc.longest_streak.total_seconds() / 3600:.2f}h "
            f"(possible forgot to log OFF)"
        )

    summary = HoursSummary(
        payable_minutes=to_minutes(acc.payable),
        sleeper_minutes=to_minutes(acc.sleeper),
        layover_minutes=to_minutes(acc.layover),
        longest_on_streak=acc.longest_streak,
        notes=notes,
    )
    logger.debug(
        f"Shift {boundary.start:%Y-%m-%d %H:%M}: payable {summary.payable_minutes}m, "
        f"sleeper {summary.sleeper_minutes}m, layover {summary.layover_minutes}m"
    )
    return summary
