"""
Duty Event Normalization.

Converts raw per-driver log rows (already extracted from a spreadsheet or
report export) into canonical duty events and certification records.

Raw Row Format:
===============
Rows are plain mappings with loosely named columns. Columns are located by
a normalized substring match, so "Start Date", "start_date" and "Date Start"
all resolve to the same field:

- Event:       free-text descriptor ("Duty Status - ON", "Driving", ...)
- Detail:      optional extra descriptor text
- Start Date / Start Time:  when the event began
- End Date / End Time:      fallback timestamp when no start is present
- Log Date:    certified log day (certification rows only)
- Location:    free-text location, optionally with "(lat, lon)"

Rows without a usable timestamp or status keyword are dropped, never raised.
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)


class ComplianceError(Exception):
    """Base exception for the compliance engine."""
    pass


class ValidationError(ComplianceError):
    """Raised when an input batch is structurally unusable."""
    pass


class DutyStatus(Enum):
    """Driver duty status as recorded on the log."""
    ON = "on_duty"
    DRIVING = "driving"
    OFF = "off_duty"
    SLEEPER = "sleeper_berth"
    # "Duty Status - PC", "Duty Status - YM", ... carry no duty status of their own
    OTHER = "other"

    @property
    def is_work(self) -> bool:
        return self in (DutyStatus.ON, DutyStatus.DRIVING)

    @property
    def is_rest(self) -> bool:
        return self in (DutyStatus.OFF, DutyStatus.SLEEPER)

    @property
    def is_duty_bearing(self) -> bool:
        return self is not DutyStatus.OTHER


@dataclass(frozen=True)
class DutyEvent:
    """A single duty-status transition."""
    timestamp: datetime
    status: DutyStatus
    location: str = ""


@dataclass(frozen=True)
class CertificationRecord:
    """A driver's certification of the log for ``log_date``."""
    log_date: date
    certified_at: datetime


# Excel serial dates count days from 1899-12-30
EXCEL_EPOCH = datetime(1899, 12, 30)

DATE_FORMATS = (
    '%Y/%m/%d',
    '%m/%d/%Y',
    '%m/%d/%y',
    '%Y/%m/%d %H:%M',
    '%m/%d/%Y %H:%M',
    '%m/%d/%Y %H:%M:%S',
    '%m/%d/%Y %I:%M %p',
    '%m/%d/%Y %I:%M:%S %p',
    '%Y-%m-%d %I:%M %p',
)

_CLOCK_RE = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AP]M)?$', re.IGNORECASE)
_DUTY_STATUS_CODE_RE = re.compile(r'DUTY\s*STATUS\s*-\s*([A-Z]+)')
_SLEEPER_RE = re.compile(r'\bSLEEPER\b')
_DRIVING_RE = re.compile(r'\bDRIV(?:E|ING)?\b')
_ON_DUTY_RE = re.compile(r'\bON[\s-]*DUTY\b')
_OFF_RE = re.compile(r'\bOFF\b')
_CERTIFICATION_RE = re.compile(r'certif', re.IGNORECASE)
_ISO_DATE_IN_TEXT_RE = re.compile(r'(\d{4})[-/](\d{1,2})[-/](\d{1,2})')
_US_DATE_IN_TEXT_RE = re.compile(r'(\d{1,2})[-/](\d{1,2})[-/](\d{2,4})')

STATUS_CODES = {
    'D': DutyStatus.DRIVING,
    'DR': DutyStatus.DRIVING,
    'DRIVE': DutyStatus.DRIVING,
    'DRIVING': DutyStatus.DRIVING,
    'ON': DutyStatus.ON,
    'OFF': DutyStatus.OFF,
    'SB': DutyStatus.SLEEPER,
    'SLEEPER': DutyStatus.SLEEPER,
}


def _normalize_key(key: Any) -> str:
    return re.sub(r'[^a-z0-9]', '', str(key).lower())


def _find_key(keys: Iterable[Any], *candidates: str) -> Optional[str]:
    """Find the column whose normalized name matches one of ``candidates``.

    Exact matches win over substring matches.
    """
    normalized = [(key, _normalize_key(key)) for key in keys]
    for key, nk in normalized:
        if nk in candidates:
            return key
    for key, nk in normalized:
        if any(c in nk for c in candidates):
            return key
    return None


@dataclass(frozen=True)
class RecordFields:
    """Column names resolved for one raw row layout."""
    event: Optional[str] = None
    detail: Optional[str] = None
    start_date: Optional[str] = None
    start_time: Optional[str] = None
    end_date: Optional[str] = None
    end_time: Optional[str] = None
    log_date: Optional[str] = None
    location: Optional[str] = None

    @classmethod
    def detect(cls, keys: Iterable[Any]) -> 'RecordFields':
        keys = list(keys)
        return cls(
            event=_find_key(keys, 'event'),
            detail=_find_key(keys, 'detail', 'details'),
            start_date=_find_key(keys, 'startdate', 'datestart'),
            start_time=_find_key(keys, 'starttime', 'timestart'),
            end_date=_find_key(keys, 'enddate', 'dateend'),
            end_time=_find_key(keys, 'endtime', 'timeend'),
            log_date=_find_key(keys, 'logdate'),
            location=_find_key(keys, 'location'),
        )


def parse_date(value: Any) -> Optional[datetime]:
    """Parse a date-like cell into a datetime (midnight when no time given)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, (int, float)):
        # Blank spreadsheet cells arrive as NaN
        if not math.isfinite(value):
            return None
        try:
            return EXCEL_EPOCH + timedelta(seconds=round(float(value) * 86400))
        except OverflowError:
            return None

    text = str(value).strip()
    if not text:
        return None
    try:
        # Log times are wall-clock times; any offset is dropped
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_time(value: Any) -> Optional[time]:
    """Parse a time-of-day cell ("7:05 PM", "19:05", Excel day fraction, ...)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.time().replace(microsecond=0)
    if isinstance(value, time):
        return value.replace(microsecond=0)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        fraction = float(value) % 1
        seconds = int(round(fraction * 86400)) % 86400
        return (datetime.min + timedelta(seconds=seconds)).time()

    text = str(value).strip()
    match = _CLOCK_RE.match(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2))
        second = int(match.group(3) or 0)
        meridiem = (match.group(4) or '').upper()
        if meridiem == 'AM':
            hour = 0 if hour == 12 else hour
        elif meridiem == 'PM':
            hour = hour if hour == 12 else hour + 12
        if hour > 23 or minute > 59 or second > 59:
            return None
        return time(hour, minute, second)

    try:
        return datetime.fromisoformat(text).time()
    except ValueError:
        return None


def combine_date_time(date_value: Any, time_value: Any) -> Optional[datetime]:
    """Join a date cell and a time cell; the date alone is kept when the time is unreadable."""
    day = parse_date(date_value)
    if day is None:
        return None
    clock = parse_time(time_value)
    if clock is None:
        return day
    return day.replace(hour=clock.hour, minute=clock.minute, second=clock.second, microsecond=0)


def parse_status(text: Any) -> Optional[DutyStatus]:
    """Map a free-text event descriptor to a duty status."""
    upper = str(text or '').upper()
    match = _DUTY_STATUS_CODE_RE.search(upper)
    if match:
        return STATUS_CODES.get(match.group(1), DutyStatus.OTHER)
    if _SLEEPER_RE.search(upper):
        return DutyStatus.SLEEPER
    if _ON_DUTY_RE.search(upper):
        return DutyStatus.ON
    if _DRIVING_RE.search(upper):
        return DutyStatus.DRIVING
    if _OFF_RE.search(upper):
        return DutyStatus.OFF
    return None


def parse_date_in_text(text: Any) -> Optional[date]:
    """Find the first calendar date embedded in free text."""
    text = str(text or '')
    match = _ISO_DATE_IN_TEXT_RE.search(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
    else:
        match = _US_DATE_IN_TEXT_RE.search(text)
        if not match:
            return None
        month, day, year = (int(g) for g in match.groups())
        if year < 100:
            year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _ensure_mapping(record: Any) -> Mapping:
    if not isinstance(record, Mapping):
        raise ValidationError(
            f"Log record must be a mapping of column names to values, got {type(record).__name__}"
        )
    return record


def _cell(record: Mapping, key: Optional[str]) -> Any:
    return record.get(key) if key is not None else None


def record_timestamp(record: Mapping, fields: RecordFields) -> Optional[datetime]:
    """Timestamp of a row: start date/time, falling back to end date/time."""
    timestamp = None
    if fields.start_date or fields.start_time:
        timestamp = combine_date_time(
            _cell(record, fields.start_date), _cell(record, fields.start_time)
        )
    if timestamp is None and (fields.end_date or fields.end_time):
        timestamp = combine_date_time(
            _cell(record, fields.end_date), _cell(record, fields.end_time)
        )
    return timestamp


def normalize_event(record: Mapping, fields: Optional[RecordFields] = None) -> Optional[DutyEvent]:
    """
    Convert one raw row into a DutyEvent.

    Returns None when the row has no timestamp or no recognizable status.
    """
    record = _ensure_mapping(record)
    fields = fields or RecordFields.detect(record.keys())

    timestamp = record_timestamp(record, fields)
    if timestamp is None:
        return None

    # The detail column often carries the status when the event text is generic
    status = parse_status(_cell(record, fields.event)) or parse_status(_cell(record, fields.detail))
    if status is None:
        return None

    location = _cell(record, fields.location)
    return DutyEvent(
        timestamp=timestamp,
        status=status,
        location=str(location).strip() if location is not None else '',
    )


def normalize_certification(
    record: Mapping,
    fields: Optional[RecordFields] = None
) -> Optional[CertificationRecord]:
    """
    Convert a certification row into a CertificationRecord.

    The certified log day comes from the first date in the descriptor text,
    then the log-date column, then the day before the certification itself.
    """
    record = _ensure_mapping(record)
    fields = fields or RecordFields.detect(record.keys())

    line = ' | '.join(str(v) for v in record.values() if v is not None)
    if not _CERTIFICATION_RE.search(line):
        return None

    certified_at = record_timestamp(record, fields)
    if certified_at is None:
        return None

    log_date = None
    for key in (fields.detail, fields.event):
        log_date = parse_date_in_text(_cell(record, key))
        if log_date:
            break
    if log_date is None and fields.log_date:
        parsed = parse_date(_cell(record, fields.log_date))
        log_date = parsed.date() if parsed else None
    if log_date is None:
        log_date = (certified_at - timedelta(days=1)).date()

    return CertificationRecord(log_date=log_date, certified_at=certified_at)
