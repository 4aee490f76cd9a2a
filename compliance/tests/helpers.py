"""
Shared builders for compliance tests.
"""

from datetime import datetime

from compliance.services.events import DutyEvent, DutyStatus
from compliance.services.timeline import build_timeline

ON = DutyStatus.ON
D = DutyStatus.DRIVING
OFF = DutyStatus.OFF
SB = DutyStatus.SLEEPER

STATUS_TEXT = {
    ON: 'Duty Status - ON',
    D: 'Duty Status - D',
    OFF: 'Duty Status - OFF',
    SB: 'Duty Status - SB',
}


def at(text):
    """Parse 'YYYY-MM-DD HH:MM'."""
    return datetime.strptime(text, '%Y-%m-%d %H:%M')


def make_events(rows):
    """Rows of (timestamp, status) or (timestamp, status, location)."""
    events = []
    for row in rows:
        location = row[2] if len(row) > 2 else ''
        events.append(DutyEvent(at(row[0]), row[1], location))
    return events


def make_timeline(rows):
    return build_timeline(make_events(rows))


def log_record(timestamp, status, location=''):
    """A raw log row as extracted from a driver log export."""
    moment = at(timestamp)
    return {
        'Event': STATUS_TEXT[status],
        'Start Date': moment.strftime('%m/%d/%Y'),
        'Start Time': moment.strftime('%I:%M %p'),
        'Location': location,
    }


def certification_record(log_day, certified_at):
    """A raw certification row for ``log_day`` ('YYYY-MM-DD')."""
    moment = at(certified_at)
    return {
        'Event': 'Certification',
        'Detail': f'Certified log for {log_day}',
        'Start Date': moment.strftime('%m/%d/%Y'),
        'Start Time': moment.strftime('%I:%M %p'),
    }


# Saturday 2024-01-13 through Tuesday 2024-01-16. Shifts start Sunday 06:00,
# Monday 08:00 and Monday 22:00; the last one runs into Tuesday.
MULTI_DAY_ROWS = [
    ('2024-01-13 18:00', OFF),
    ('2024-01-14 06:00', ON),
    ('2024-01-14 06:30', D),
    ('2024-01-14 16:00', OFF),
    ('2024-01-15 08:00', ON),
    ('2024-01-15 08:15', D),
    ('2024-01-15 11:00', OFF),
    ('2024-01-15 22:00', ON),
    ('2024-01-16 00:30', D),
    ('2024-01-16 06:00', OFF),
]
