"""
Driver Timeline Builder.

Merges duty events from any number of input batches into one ordered,
de-duplicated timeline per driver and derives the effective duty status of
every entry in the same pass.
"""

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .events import (
    CertificationRecord,
    DutyEvent,
    DutyStatus,
    RecordFields,
    ValidationError,
    normalize_certification,
    normalize_event,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimelineEntry:
    """One timeline position: raw status plus the duty status in force."""
    timestamp: datetime
    status: DutyStatus
    effective: DutyStatus
    location: str = ""


@dataclass(frozen=True)
class Segment:
    """A span of constant effective status between two timeline entries."""
    start: datetime
    end: datetime
    status: DutyStatus
    location: str = ""

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


class Timeline:
    """
    Ordered duty timeline for a single driver.

    Timestamps are strictly increasing. The timeline is read-only once built.
    """

    def __init__(self, entries: Sequence[TimelineEntry] = ()):
        self._entries: Tuple[TimelineEntry, ...] = tuple(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TimelineEntry]:
        return iter(self._entries)

    def __getitem__(self, index):
        return self._entries[index]

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __eq__(self, other) -> bool:
        return isinstance(other, Timeline) and self._entries == other._entries

    def __repr__(self) -> str:
        return f"Timeline({len(self._entries)} entries)"

    @property
    def entries(self) -> Tuple[TimelineEntry, ...]:
        return self._entries

    def segments(self) -> Iterator[Tuple[TimelineEntry, TimelineEntry]]:
        """Yield (entry, next entry) for every consecutive pair."""
        return zip(self._entries, self._entries[1:])

    def periods(self, start: datetime, end: datetime) -> List[Segment]:
        """
        Segments clipped to [start, end), with consecutive entries of the
        same effective status merged into one period.
        """
        periods: List[Segment] = []
        for current, following in self.segments():
            if following.timestamp <= start or current.timestamp >= end:
                continue
            seg_start = max(current.timestamp, start)
            seg_end = min(following.timestamp, end)
            if seg_end <= seg_start:
                continue
            if periods and periods[-1].status is current.effective and periods[-1].end == seg_start:
                last = periods[-1]
                periods[-1] = Segment(last.start, seg_end, last.status, last.location)
            else:
                periods.append(Segment(seg_start, seg_end, current.effective, current.location))
        return periods


def build_timeline(events: Iterable[DutyEvent]) -> Timeline:
    """
    Sort, de-duplicate and forward-fill a driver's events.

    Events sharing a timestamp with the previously kept event are dropped
    (first seen wins). Interstitial rows take the last known duty status;
    interstitial rows seen before any duty status are skipped.
    """
    ordered = sorted(events, key=lambda e: e.timestamp)
    entries: List[TimelineEntry] = []
    last_duty: Optional[DutyStatus] = None

    for event in ordered:
        if entries and event.timestamp == entries[-1].timestamp:
            continue
        if event.status.is_duty_bearing:
            last_duty = event.status
        if last_duty is None:
            continue
        entries.append(TimelineEntry(
            timestamp=event.timestamp,
            status=event.status,
            effective=last_duty,
            location=event.location,
        ))

    return Timeline(entries)


_DRIVER_ID_RE = re.compile(r'\((\d{4,})\)?\s*$')


@dataclass(frozen=True)
class DriverIdentity:
    """Driver label as given by the source, split into name and ID."""
    label: str
    driver_id: str = ""
    name: str = ""

    @classmethod
    def from_label(cls, label: Any) -> 'DriverIdentity':
        text = str(label).strip()
        match = _DRIVER_ID_RE.search(text)
        if not match:
            return cls(label=text, driver_id="", name=text)
        name = text[:match.start()].strip().rstrip(', ').strip()
        return cls(label=text, driver_id=match.group(1), name=name or text)

    @property
    def key(self) -> str:
        return driver_key(self.label)


def driver_key(label: Any) -> str:
    return re.sub(r'\s+', ' ', str(label)).strip().lower()


@dataclass
class DriverLog:
    """Everything known about one driver for a single run."""
    identity: DriverIdentity
    timeline: Timeline
    certifications: Dict[date, List[datetime]] = field(default_factory=dict)
    discarded_rows: int = 0

    def certified_by(self, log_date: date, cutoff: datetime) -> bool:
        """True when ``log_date`` was certified at or before ``cutoff``."""
        return any(c <= cutoff for c in self.certifications.get(log_date, ()))


@dataclass
class _DriverBucket:
    identity: DriverIdentity
    events: List[DutyEvent] = field(default_factory=list)
    certifications: List[CertificationRecord] = field(default_factory=list)
    discarded_rows: int = 0


def _iter_batches(batches: Any) -> Iterator[Mapping]:
    if isinstance(batches, Mapping):
        batches = [batches]
    if isinstance(batches, (str, bytes)) or not isinstance(batches, Iterable):
        raise ValidationError("Log batches must be a list of driver-to-records mappings")
    for index, batch in enumerate(batches):
        if not isinstance(batch, Mapping):
            raise ValidationError(
                f"Batch {index} must map driver labels to record lists, got {type(batch).__name__}"
            )
        yield batch


def _iter_records(label: Any, records: Any) -> Iterator[Any]:
    if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Iterable):
        raise ValidationError(f"Records for driver '{label}' must be a list of rows")
    return iter(records)


def collect_driver_logs(batches: Any) -> List[DriverLog]:
    """
    Merge raw records from all batches into per-driver logs.

    Args:
        batches: Iterable of mappings, each mapping a driver label to that
            driver's raw rows (a single mapping is accepted as one batch)

    Returns:
        DriverLog per driver, in first-seen order

    Raises:
        ValidationError: If a batch, record list or record is malformed
    """
    buckets: 'OrderedDict[str, _DriverBucket]' = OrderedDict()

    for batch in _iter_batches(batches):
        for label, records in batch.items():
            identity = DriverIdentity.from_label(label)
            bucket = buckets.setdefault(identity.key, _DriverBucket(identity=identity))

            for record in _iter_records(label, records):
                if not isinstance(record, Mapping):
                    raise ValidationError(
                        f"Row for driver '{label}' must be a mapping, got {type(record).__name__}"
                    )
                fields = RecordFields.detect(record.keys())
                event = normalize_event(record, fields)
                certification = normalize_certification(record, fields)
                if event is not None:
                    bucket.events.append(event)
                if certification is not None:
                    bucket.certifications.append(certification)
                if event is None and certification is None:
                    bucket.discarded_rows += 1

    logs: List[DriverLog] = []
    for bucket in buckets.values():
        certifications: Dict[date, List[datetime]] = {}
        for record in bucket.certifications:
            certifications.setdefault(record.log_date, []).append(record.certified_at)
        for stamps in certifications.values():
            stamps.sort()

        timeline = build_timeline(bucket.events)
        if bucket.discarded_rows:
            logger.warning(
                f"{bucket.identity.label}: discarded {bucket.discarded_rows} unreadable row(s)"
            )
        logger.debug(
            f"{bucket.identity.label}: {len(timeline)} timeline entries, "
            f"{len(bucket.certifications)} certification(s)"
        )
        logs.append(DriverLog(
            identity=bucket.identity,
            timeline=timeline,
            certifications=certifications,
            discarded_rows=bucket.discarded_rows,
        ))

    return logs
