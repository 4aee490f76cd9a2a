"""
Shift Segmentation Service.

Walks a driver's effective-status timeline and derives work-shift boundaries
from qualifying off-duty / sleeper-berth rest blocks.

Rules Implemented:
==================
1. Reset: 10 consecutive hours OFF/SB fully restores on-duty eligibility
2. Near-reset grace: a rest block of at least 9h30m (reset minus 30 minutes)
   still ends the shift, flagged with how far it fell short
3. Yard-move blips: an ON/DRIVING excursion of at most 10 minutes with
   OFF/SB on both sides does not break the surrounding rest block
4. A new shift starts where duty resumes after a qualifying rest block
5. End of data: a shift still open when the log ends is closed at the start
   of the trailing rest, or at the last event when still on duty

The same boundaries feed the hours report and the certification check.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .timeline import Timeline

logger = logging.getLogger(__name__)


@dataclass
class ComplianceConfig:
    """
    Thresholds for shift segmentation and compliance checks.
    All values can be adjusted for different carriers or testing.
    """
    # Rest requirements
    reset_hours: float = 10.0
    near_reset_grace_minutes: float = 30.0
    blip_max_minutes: float = 10.0

    # Diagnostic flags
    max_shift_hours: float = 18.0
    max_continuous_on_hours: float = 14.0

    # Layover
    min_layover_hours: float = 2.0

    # Meal breaks
    meal_break_minutes: float = 30.0
    first_meal_required_hours: float = 6.0
    first_meal_deadline_hours: float = 5.0
    second_meal_required_hours: float = 12.0
    second_meal_deadline_hours: float = 10.0

    # Certification
    cert_window_minutes: float = 60.0
    lookback_days: Optional[int] = None

    @property
    def reset(self) -> timedelta:
        return timedelta(hours=self.reset_hours)

    @property
    def start_break(self) -> timedelta:
        """Shortest rest block that still ends a shift."""
        return self.reset - timedelta(minutes=self.near_reset_grace_minutes)

    @property
    def blip_max(self) -> timedelta:
        return timedelta(minutes=self.blip_max_minutes)

    @property
    def max_shift(self) -> timedelta:
        return timedelta(hours=self.max_shift_hours)

    @property
    def max_continuous_on(self) -> timedelta:
        return timedelta(hours=self.max_continuous_on_hours)

    @property
    def min_layover(self) -> timedelta:
        return timedelta(hours=self.min_layover_hours)

    @property
    def meal_break(self) -> timedelta:
        return timedelta(minutes=self.meal_break_minutes)

    @property
    def cert_window(self) -> timedelta:
        return timedelta(minutes=self.cert_window_minutes)

    @classmethod
    def from_mapping(cls, overrides: Optional[Mapping[str, Any]] = None) -> 'ComplianceConfig':
        """Build a config from a settings dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (overrides or {}).items():
            name = str(key).lower()
            if name not in known:
                logger.warning(f"Ignoring unknown compliance setting: {key}")
                continue
            values[name] = value
        return cls(**values)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SegmenterState(Enum):
    NOT_IN_OFF = "not_in_off"
    IN_OFF_BLOCK = "in_off_block"
    SHIFT_ACTIVE = "shift_active"


class ShiftClosure(Enum):
    """How a shift's end boundary was determined."""
    RESET = "reset"
    NEAR_RESET = "near_reset"
    END_OF_DATA_REST = "end_of_data_rest"
    END_OF_DATA_ON_DUTY = "end_of_data_on_duty"

    @property
    def is_end_of_data(self) -> bool:
        return self in (ShiftClosure.END_OF_DATA_REST, ShiftClosure.END_OF_DATA_ON_DUTY)


@dataclass(frozen=True)
class OffBlock:
    """A maximal OFF/SB run, with short duty blips absorbed."""
    start_index: int
    end_index: int
    start: datetime
    end: datetime
    open_ended: bool = False
    blips: int = 0

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class ShiftBoundary:
    """Start and end of one detected shift."""
    start: datetime
    end: datetime
    closure: ShiftClosure
    rest_duration: Optional[timedelta] = None
    notes: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def format_min_sec(delta: timedelta) -> str:
    """Format a duration as MM:SS (minutes may exceed 59)."""
    total = max(0, int(round(delta.total_seconds())))
    minutes, seconds = divmod(total, 60)
    return f"{minutes:02d}:{seconds:02d}"


def _excursion_end(timeline: Timeline, index: int) -> int:
    """Index of the first non-work entry at or after ``index`` (len when none)."""
    k = index
    while k < len(timeline) and timeline[k].effective.is_work:
        k += 1
    return k


def _scan_off_block(timeline: Timeline, start_index: int, config: ComplianceConfig) -> OffBlock:
    """Extend a rest block from ``start_index`` as far as the blip rules allow."""
    last = len(timeline) - 1
    k = start_index
    end_index = start_index
    blips = 0

    while k < last:
        entry = timeline[k]
        if entry.effective.is_rest:
            end_index = k + 1
            k += 1
            continue

        # ON/DRIVING run starting at k; OFF/SB is known to precede it here
        resume = _excursion_end(timeline, k)
        bracketed = resume <= last and timeline[resume].effective.is_rest
        if bracketed and timeline[resume].timestamp - entry.timestamp <= config.blip_max:
            blips += 1
            end_index = resume
            k = resume
            continue
        break

    open_ended = end_index == last and timeline[last].effective.is_rest
    return OffBlock(
        start_index=start_index,
        end_index=end_index,
        start=timeline[start_index].timestamp,
        end=timeline[end_index].timestamp,
        open_ended=open_ended,
        blips=blips,
    )


def find_off_blocks(timeline: Timeline, config: Optional[ComplianceConfig] = None) -> List[OffBlock]:
    """
    Find every rest block in the timeline, in order.

    A block ends at the timestamp of the entry that follows its last OFF/SB
    (or absorbed blip) entry. A block still running at the last entry is
    open-ended: its true length is unknown.
    """
    config = config or ComplianceConfig()
    blocks: List[OffBlock] = []
    i = 0
    while i < len(timeline):
        if not timeline[i].effective.is_rest:
            i += 1
            continue
        block = _scan_off_block(timeline, i, config)
        blocks.append(block)
        if block.open_ended:
            break
        i = max(i + 1, block.end_index)
    return blocks


def _near_reset_note(rest: timedelta, config: ComplianceConfig, end_of_data: bool = False) -> str:
    label = "Near reset (end of data)" if end_of_data else "Near reset"
    return f"{label}: short by {format_min_sec(config.reset - rest)}"


def _close_at_rest(shift_start: datetime, block: OffBlock, config: ComplianceConfig) -> ShiftBoundary:
    rest = block.duration
    if rest >= config.reset:
        return ShiftBoundary(shift_start, block.start, ShiftClosure.RESET, rest)
    return ShiftBoundary(
        shift_start, block.start, ShiftClosure.NEAR_RESET, rest,
        notes=(_near_reset_note(rest, config),),
    )


def _close_at_trailing_rest(shift_start: datetime, block: OffBlock, config: ComplianceConfig) -> ShiftBoundary:
    rest = block.duration
    if rest >= config.reset:
        note = (
            f"End of file: closed at start of OFF/SB "
            f"({rest.total_seconds() / 3600:.2f}h logged before data ends)"
        )
    elif rest >= config.start_break:
        note = _near_reset_note(rest, config, end_of_data=True)
    else:
        note = "End of file: closing shift at start of OFF/SB (duration after file unknown)"
    return ShiftBoundary(
        shift_start, block.start, ShiftClosure.END_OF_DATA_REST, rest, notes=(note,),
    )


def detect_shift_boundaries(
    timeline: Timeline,
    config: Optional[ComplianceConfig] = None
) -> List[ShiftBoundary]:
    """
    Derive the ordered shift boundaries for one driver.

    Args:
        timeline: The driver's effective-status timeline
        config: Thresholds (defaults to ComplianceConfig())

    Returns:
        Non-overlapping ShiftBoundary list; empty when no qualifying rest
        is ever completed. Never raises for irregular data.
    """
    config = config or ComplianceConfig()
    boundaries: List[ShiftBoundary] = []
    if not timeline:
        return boundaries

    state = SegmenterState.NOT_IN_OFF
    shift_start: Optional[datetime] = None

    for block in find_off_blocks(timeline, config):
        in_shift = state is SegmenterState.SHIFT_ACTIVE
        state = SegmenterState.IN_OFF_BLOCK
        qualifies = block.duration >= config.start_break

        if in_shift and block.open_ended:
            boundaries.append(_close_at_trailing_rest(shift_start, block, config))
            shift_start = None
        elif in_shift and qualifies:
            boundaries.append(_close_at_rest(shift_start, block, config))
            shift_start = None
        elif in_shift:
            # Sub-threshold rest stays inside the running shift
            state = SegmenterState.SHIFT_ACTIVE
            continue

        logger.debug(
            f"Rest block {block.start:%Y-%m-%d %H:%M} -> {block.end:%Y-%m-%d %H:%M} "
            f"({block.duration.total_seconds() / 3600:.2f}h, {block.blips} blip(s)) "
            f"{'qualifies' if qualifies else 'does not qualify'}"
        )

        if qualifies and not block.open_ended:
            shift_start = timeline[block.end_index].timestamp
            state = SegmenterState.SHIFT_ACTIVE
        else:
            state = SegmenterState.NOT_IN_OFF

    if state is SegmenterState.SHIFT_ACTIVE:
        boundaries.append(ShiftBoundary(
            shift_start,
            timeline[-1].timestamp,
            ShiftClosure.END_OF_DATA_ON_DUTY,
            notes=("End of file: still ON/DRIVING, closed at last event",),
        ))

    # A shift that opens on the very last event has no measurable time
    return [b for b in boundaries if b.end > b.start]


def shift_starts(boundaries: List[ShiftBoundary]) -> List[datetime]:
    """Ordered shift start instants."""
    return sorted(b.start for b in boundaries)
