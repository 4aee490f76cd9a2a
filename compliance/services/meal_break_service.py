"""
Meal-Break Compliance Service.

Checks that a shift contains the required 30-minute OFF breaks before the
on-duty deadlines:

- At least 6h on duty: a 1st break must start before the 5th on-duty hour
- More than 12h on duty: a 2nd break must start before the 10th on-duty hour

Deadlines are measured in accumulated ON/DRIVING time, not wall-clock time.
Only OFF counts as a meal break; sleeper-berth time does not.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from .events import DutyStatus
from .hours_service import to_minutes
from .shift_service import ComplianceConfig
from .timeline import Segment, Timeline

logger = logging.getLogger(__name__)


class MealBreakStatus(Enum):
    COMPLIANT = "compliant"
    VIOLATION = "violation"


@dataclass(frozen=True)
class MealBreak:
    """A qualifying OFF period taken as a meal break."""
    start: datetime
    end: datetime

    @property
    def minutes(self) -> int:
        return to_minutes(self.end - self.start)

    @classmethod
    def from_segment(cls, segment: Segment) -> 'MealBreak':
        return cls(start=segment.start, end=segment.end)


@dataclass(frozen=True)
class MealBreakVerdict:
    """Outcome of the meal-break check for one shift."""
    status: MealBreakStatus
    note: str
    first_break: Optional[MealBreak] = None
    second_break: Optional[MealBreak] = None
    first_deadline: Optional[datetime] = None
    second_deadline: Optional[datetime] = None

    @property
    def compliant(self) -> bool:
        return self.status is MealBreakStatus.COMPLIANT


def on_duty_deadline(timeline: Timeline, start: datetime, end: datetime, hours: float) -> datetime:
    """
    Instant at which accumulated ON/DRIVING time inside [start, end)
    reaches ``hours``; ``end`` when it never does.
    """
    limit = timedelta(hours=hours)
    accumulated = timedelta(0)
    for period in timeline.periods(start, end):
        if not period.status.is_work:
            continue
        if accumulated + period.duration >= limit:
            return period.start + (limit - accumulated)
        accumulated += period.duration
    return end


def off_segments(timeline: Timeline, start: datetime, end: datetime) -> List[Segment]:
    """Contiguous OFF runs clipped to [start, end), ordered by start."""
    return [p for p in timeline.periods(start, end) if p.status is DutyStatus.OFF]


def _fmt_hm(moment: datetime) -> str:
    return moment.strftime('%H:%M')


def _describe(ordinal: str, segment: Segment) -> str:
    return f"{ordinal} {_fmt_hm(segment.start)} ({to_minutes(segment.duration)}m)"


def _first_after(candidates: List[Segment], previous: Optional[Segment],
                 deadline: Optional[datetime] = None) -> Optional[Segment]:
    for segment in candidates:
        if previous is not None and segment.start <= previous.start:
            continue
        if deadline is not None and segment.start >= deadline:
            continue
        return segment
    return None


def evaluate_meal_breaks(
    timeline: Timeline,
    start: datetime,
    end: datetime,
    payable_minutes: int,
    config: Optional[ComplianceConfig] = None
) -> MealBreakVerdict:
    """
    Evaluate meal-break compliance for one shift.

    Args:
        timeline: The driver's timeline
        start: Shift start
        end: Shift end
        payable_minutes: ON + DRIVING minutes of the shift
        config: Thresholds

    Returns:
        MealBreakVerdict; never raises
    """
    config = config or ComplianceConfig()
    on_duty = timedelta(minutes=payable_minutes)

    if on_duty < timedelta(hours=config.first_meal_required_hours):
        return MealBreakVerdict(
            MealBreakStatus.COMPLIANT,
            f"No break required (<{config.first_meal_required_hours:g}h on-duty)",
        )

    needs_second = on_duty > timedelta(hours=config.second_meal_required_hours)
    first_deadline = on_duty_deadline(timeline, start, end, config.first_meal_deadline_hours)
    second_deadline = (
        on_duty_deadline(timeline, start, end, config.second_meal_deadline_hours)
        if needs_second else None
    )

    candidates = [s for s in off_segments(timeline, start, end) if s.duration >= config.meal_break]
    first = _first_after(candidates, None, first_deadline)
    second = _first_after(candidates, first, second_deadline) if needs_second else None

    def verdict(status: MealBreakStatus, note: str) -> MealBreakVerdict:
        return MealBreakVerdict(
            status,
            note,
            first_break=MealBreak.from_segment(first) if first else None,
            second_break=MealBreak.from_segment(second) if second else None,
            first_deadline=first_deadline,
            second_deadline=second_deadline,
        )

    if first is None:
        late = _first_after(candidates, None)
        if late:
            note = f"Late {_describe('1st', late)}, after deadline {_fmt_hm(first_deadline)}"
        else:
            note = (
                f"No 1st {config.meal_break_minutes:g}-min OFF before "
                f"{config.first_meal_deadline_hours:g}th on-duty hour"
            )
        logger.debug(f"Meal break violation for shift {start:%Y-%m-%d %H:%M}: {note}")
        return verdict(MealBreakStatus.VIOLATION, note)

    if needs_second and second is None:
        late = _first_after(candidates, first)
        if late:
            note = f"Late {_describe('2nd', late)}, after deadline {_fmt_hm(second_deadline)}"
        else:
            note = (
                f"No 2nd {config.meal_break_minutes:g}-min OFF before "
                f"{config.second_meal_deadline_hours:g}th on-duty hour"
            )
        logger.debug(f"Meal break violation for shift {start:%Y-%m-%d %H:%M}: {note}")
        return verdict(MealBreakStatus.VIOLATION, note)

    parts = [_describe('1st', first)]
    if second is not None:
        parts.append(_describe('2nd', second))
    return verdict(MealBreakStatus.COMPLIANT, "; ".join(parts))
