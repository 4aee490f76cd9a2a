"""
Tests for the Driver Timeline Builder.
"""

import pytest
from datetime import date, timedelta
from compliance.services.events import DutyEvent, DutyStatus, ValidationError
from compliance.services.timeline import (
    DriverIdentity,
    Timeline,
    build_timeline,
    collect_driver_logs,
)
from compliance.tests.helpers import (
    D, OFF, ON, SB,
    at,
    certification_record,
    log_record,
    make_events,
    make_timeline,
)


class TestBuildTimeline:
    """Test sorting, de-duplication and forward-fill."""

    def test_sorts_by_timestamp(self):
        timeline = make_timeline([
            ('2024-01-15 08:00', D),
            ('2024-01-15 06:00', ON),
            ('2024-01-15 12:00', OFF),
        ])

        assert [e.timestamp for e in timeline] == [
            at('2024-01-15 06:00'), at('2024-01-15 08:00'), at('2024-01-15 12:00')
        ]

    def test_duplicate_timestamps_keep_first_seen(self):
        timeline = make_timeline([
            ('2024-01-15 06:00', ON),
            ('2024-01-15 06:00', D),
            ('2024-01-15 08:00', OFF),
        ])

        assert len(timeline) == 2
        assert timeline[0].status is ON

    def test_forward_fills_interstitial_rows(self):
        events = make_events([
            ('2024-01-15 06:00', D),
            ('2024-01-15 08:00', OFF),
        ])
        events.append(DutyEvent(at('2024-01-15 07:00'), DutyStatus.OTHER, 'Yard'))

        timeline = build_timeline(events)

        assert timeline[1].status is DutyStatus.OTHER
        assert timeline[1].effective is D
        assert timeline[1].location == 'Yard'

    def test_leading_interstitial_rows_are_skipped(self):
        events = [DutyEvent(at('2024-01-15 05:00'), DutyStatus.OTHER)]
        events += make_events([('2024-01-15 06:00', ON)])

        timeline = build_timeline(events)

        assert len(timeline) == 1
        assert timeline[0].effective is ON

    def test_empty(self):
        timeline = build_timeline([])

        assert not timeline
        assert len(timeline) == 0
        assert list(timeline.segments()) == []

    def test_segments_are_consecutive_pairs(self):
        timeline = make_timeline([
            ('2024-01-15 06:00', ON),
            ('2024-01-15 07:00', D),
            ('2024-01-15 08:00', OFF),
        ])

        pairs = list(timeline.segments())

        assert len(pairs) == 2
        assert pairs[0][0].status is ON and pairs[0][1].status is D


class TestTimelinePeriods:
    """Test clipped, merged periods."""

    def setup_method(self):
        self.timeline = make_timeline([
            ('2024-01-15 06:00', ON),
            ('2024-01-15 07:00', ON),
            ('2024-01-15 08:00', D),
            ('2024-01-15 10:00', SB),
            ('2024-01-15 11:00', OFF),
        ])

    def test_merges_same_status(self):
        periods = self.timeline.periods(at('2024-01-15 06:00'), at('2024-01-15 11:00'))

        assert [p.status for p in periods] == [ON, D, SB]
        assert periods[0].duration == timedelta(hours=2)

    def test_clips_to_window(self):
        periods = self.timeline.periods(at('2024-01-15 06:30'), at('2024-01-15 09:00'))

        assert periods[0].start == at('2024-01-15 06:30')
        assert periods[-1].end == at('2024-01-15 09:00')
        assert sum((p.duration for p in periods), timedelta(0)) == timedelta(hours=2, minutes=30)


class TestDriverIdentity:
    """Test driver label parsing."""

    def test_name_and_id(self):
        identity = DriverIdentity.from_label('Smith, John (12345)')

        assert identity.driver_id == '12345'
        assert identity.name == 'Smith, John'

    def test_label_without_id(self):
        identity = DriverIdentity.from_label('John Smith')

        assert identity.driver_id == ''
        assert identity.name == 'John Smith'

    def test_key_ignores_case_and_spacing(self):
        assert DriverIdentity.from_label('Smith,  John (12345)').key == \
            DriverIdentity.from_label('smith, john (12345) ').key


class TestCollectDriverLogs:
    """Test merging raw batches into driver logs."""

    def setup_method(self):
        self.rows = [
            log_record('2024-01-14 20:00', OFF),
            log_record('2024-01-15 06:00', ON),
            log_record('2024-01-15 07:00', D),
            log_record('2024-01-15 15:00', OFF),
        ]

    def test_merges_batches_per_driver(self):
        logs = collect_driver_logs([
            {'Smith, John (12345)': self.rows[:2]},
            {'SMITH, JOHN (12345)': self.rows[2:]},
        ])

        assert len(logs) == 1
        assert len(logs[0].timeline) == 4
        assert logs[0].identity.driver_id == '12345'

    def test_order_independent(self):
        forward = collect_driver_logs([
            {'Driver (12345)': self.rows[:2]},
            {'Driver (12345)': self.rows[2:]},
        ])
        backward = collect_driver_logs([
            {'Driver (12345)': list(reversed(self.rows[2:]))},
            {'Driver (12345)': list(reversed(self.rows[:2]))},
        ])

        assert forward[0].timeline == backward[0].timeline

    def test_duplicate_batches_collapse(self):
        logs = collect_driver_logs([
            {'Driver (12345)': self.rows},
            {'Driver (12345)': self.rows},
        ])

        assert len(logs[0].timeline) == 4

    def test_counts_discarded_rows(self):
        rows = self.rows + [{'Event': 'Login', 'Start Date': '2024-01-15'}, {'Event': 'Note'}]

        logs = collect_driver_logs([{'Driver (12345)': rows}])

        assert logs[0].discarded_rows == 2

    def test_indexes_certifications(self):
        rows = self.rows + [
            certification_record('2024-01-14', '2024-01-15 07:30'),
            certification_record('2024-01-14', '2024-01-15 05:30'),
        ]

        log = collect_driver_logs({'Driver (12345)': rows})[0]

        assert log.certifications[date(2024, 1, 14)] == [
            at('2024-01-15 05:30'), at('2024-01-15 07:30')
        ]
        assert log.certified_by(date(2024, 1, 14), at('2024-01-15 06:00'))
        assert not log.certified_by(date(2024, 1, 14), at('2024-01-15 05:00'))
        assert not log.certified_by(date(2024, 1, 15), at('2024-01-16 05:00'))

    def test_driver_without_valid_events(self):
        logs = collect_driver_logs([{'Nobody (99999)': [{'Event': 'junk'}]}])

        assert len(logs) == 1
        assert not logs[0].timeline
        assert logs[0].discarded_rows == 1

    @pytest.mark.parametrize('batches', [
        'not a batch list',
        [['not', 'a', 'mapping']],
        [{'Driver (12345)': 'not a list'}],
        [{'Driver (12345)': ['not a row']}],
        42,
    ])
    def test_structural_errors_raise(self, batches):
        with pytest.raises(ValidationError):
            collect_driver_logs(batches)

    def test_timeline_is_read_only(self):
        timeline = collect_driver_logs([{'Driver (12345)': self.rows}])[0].timeline

        assert isinstance(timeline, Timeline)
        assert isinstance(timeline.entries, tuple)
