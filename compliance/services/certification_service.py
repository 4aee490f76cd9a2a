"""
Certification Gap Service.

For every shift a driver starts, checks that each earlier duty day was
certified before the driver went back to work.

Cutoff Rules:
=============
1. A day with DRIVING: cutoff is the first DRIVING event of that day
2. An ON-only day on which a shift starts: cutoff is the shift start plus
   the certification window (60 minutes)
3. Any other ON-only day (a shift carried over from an earlier day): cutoff
   is the first ON event of that day
4. A shift starting later on a day whose first work event belongs to an
   earlier shift: cutoff is the shift's first DRIVING event, else the shift
   start plus the certification window

Every earlier day with ON/DRIVING activity needs a certification at or
before the cutoff. The shift-start day itself is exempt while the cutoff
still falls inside that same shift. One verdict is emitted per shift start.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional, Set, Tuple

from .events import DutyStatus
from .shift_service import ComplianceConfig
from .timeline import DriverLog, TimelineEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertificationVerdict:
    """Certification outcome for one driver shift start."""
    driver_id: str
    driver_name: str
    shift_start: Optional[datetime]
    cutoff: datetime
    missing_days: Tuple[date, ...] = field(default_factory=tuple)
    note: str = ""

    @property
    def qualified(self) -> bool:
        return not self.missing_days

    @property
    def verdict(self) -> str:
        return "Qualified" if self.qualified else "Disqualified"


def work_days(entries: List[TimelineEntry]) -> 'OrderedDict[date, List[TimelineEntry]]':
    """Group ON/DRIVING entries by calendar day, in day order."""
    days: 'OrderedDict[date, List[TimelineEntry]]' = OrderedDict()
    for entry in entries:
        if entry.status.is_work:
            days.setdefault(entry.timestamp.date(), []).append(entry)
    return days


def _first_of(entries: List[TimelineEntry], status: DutyStatus) -> Optional[TimelineEntry]:
    return next((e for e in entries if e.status is status), None)


def latest_start_at_or_before(starts: List[datetime], moment: datetime) -> Optional[datetime]:
    earlier = [s for s in starts if s <= moment]
    return max(earlier) if earlier else None


def next_start_after(starts: List[datetime], moment: datetime) -> Optional[datetime]:
    later = [s for s in starts if s > moment]
    return min(later) if later else None


class CertificationGapService:
    """
    Evaluates certification gaps for a driver's shift starts.

    Usage:
        service = CertificationGapService(config)
        verdicts = service.evaluate(driver_log, shift_starts)
    """

    def __init__(self, config: Optional[ComplianceConfig] = None):
        self.config = config or ComplianceConfig()

    def missing_prior_days(self, driver_log: DriverLog, days: List[date], cutoff: datetime) -> List[date]:
        """Work days before the cutoff's day lacking a certification at or before the cutoff."""
        cutoff_day = cutoff.date()
        return [
            day for day in days
            if day < cutoff_day and not driver_log.certified_by(day, cutoff)
        ]

    def _exempt_shift_day(self, missing: List[date], anchor: Optional[datetime],
                          cutoff: datetime, starts: List[datetime]) -> List[date]:
        if anchor is None:
            return missing
        next_start = next_start_after(starts, anchor)
        if next_start is None or cutoff < next_start:
            return [day for day in missing if day != anchor.date()]
        return missing

    def _verdict(self, driver_log: DriverLog, days: List[date], anchor: Optional[datetime],
                 cutoff: datetime, starts: List[datetime], compliant_note: str) -> CertificationVerdict:
        missing = self.missing_prior_days(driver_log, days, cutoff)
        missing = self._exempt_shift_day(missing, anchor, cutoff, starts)
        if missing:
            note = f"{len(missing)} prior uncertified day(s), earliest {missing[0].isoformat()}"
        else:
            note = compliant_note
        return CertificationVerdict(
            driver_id=driver_log.identity.driver_id,
            driver_name=driver_log.identity.name,
            shift_start=anchor,
            cutoff=cutoff,
            missing_days=tuple(missing),
            note=note,
        )

    def _shift_cutoff(self, entries: List[TimelineEntry], start: datetime,
                      starts: List[datetime]) -> Tuple[datetime, str]:
        """Cutoff for a shift start reached from the shift itself rather than its day."""
        next_start = next_start_after(starts, start)
        first_driving = next(
            (e for e in entries
             if e.status is DutyStatus.DRIVING and e.timestamp >= start
             and (next_start is None or e.timestamp < next_start)),
            None,
        )
        if first_driving is not None:
            return first_driving.timestamp, "Certified before first DRIVING"
        return (
            start + self.config.cert_window,
            f"Cleared backlog within {self.config.cert_window_minutes:g}m of shift start",
        )

    def evaluate(
        self,
        driver_log: DriverLog,
        shift_starts: List[datetime],
        as_of: Optional[datetime] = None
    ) -> List[CertificationVerdict]:
        """
        Produce one verdict per distinct shift start.

        Args:
            driver_log: The driver's timeline and certification index
            shift_starts: Shift starts from the segmenter
            as_of: Reference time for the lookback window (defaults to now)

        Returns:
            Verdicts in shift-start order
        """
        starts = sorted(shift_starts)
        entries = list(driver_log.timeline)
        by_day = work_days(entries)
        all_days = list(by_day.keys())

        earliest: Optional[date] = None
        if self.config.lookback_days is not None:
            reference = as_of or datetime.now()
            earliest = reference.date() - timedelta(days=self.config.lookback_days)

        verdicts: List[CertificationVerdict] = []
        emitted: Set[Tuple[str, Optional[datetime]]] = set()
        identity = driver_log.identity
        window = self.config.cert_window

        for day, day_entries in by_day.items():
            if earliest is not None and day < earliest:
                continue

            first_driving = _first_of(day_entries, DutyStatus.DRIVING)
            first_on = _first_of(day_entries, DutyStatus.ON)
            reference_event = first_driving or first_on
            anchor = latest_start_at_or_before(starts, reference_event.timestamp)

            if first_driving is not None:
                cutoff = first_driving.timestamp
                compliant_note = "Certified before first DRIVING"
            else:
                anchor_today = next((s for s in starts if s.date() == day), None)
                if anchor_today is None and anchor is not None and anchor.date() == day:
                    anchor_today = anchor
                if anchor_today is not None:
                    anchor = anchor_today
                    cutoff = anchor_today + window
                    compliant_note = (
                        f"Cleared backlog within {self.config.cert_window_minutes:g}m of shift start"
                    )
                else:
                    cutoff = first_on.timestamp
                    compliant_note = "All required prior days certified"

            key = (identity.key, anchor)
            if key in emitted:
                continue
            emitted.add(key)
            verdicts.append(self._verdict(driver_log, all_days, anchor, cutoff, starts, compliant_note))

        # A later shift starting on a day already walked still needs its own verdict
        for start in starts:
            if (identity.key, start) in emitted:
                continue
            if earliest is not None and start.date() < earliest:
                continue
            emitted.add((identity.key, start))
            cutoff, compliant_note = self._shift_cutoff(entries, start, starts)
            verdicts.append(self._verdict(driver_log, all_days, start, cutoff, starts, compliant_note))

        verdicts.sort(key=lambda v: v.shift_start or v.cutoff)

        disqualified = sum(1 for v in verdicts if not v.qualified)
        logger.debug(
            f"{identity.label}: {len(verdicts)} certification verdict(s), {disqualified} disqualified"
        )
        return verdicts
