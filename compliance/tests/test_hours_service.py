"""
Tests for Shift Hours Aggregation Service.
"""

import pytest
from datetime import timedelta
from compliance.services.hours_service import (
    HomeProximity,
    ShiftAccumulator,
    aggregate_hours,
    haversine_miles,
    parse_lat_lon,
)
from compliance.services.shift_service import detect_shift_boundaries
from compliance.services.timeline import Segment
from compliance.tests.helpers import D, OFF, ON, SB, at, make_timeline

FRESNO = 'Fresno, CA (36.7378, -119.7871)'


def single_shift(rows):
    timeline = make_timeline(rows)
    boundaries = detect_shift_boundaries(timeline)
    assert len(boundaries) == 1
    return timeline, boundaries[0]


class TestShiftAccumulator:
    """Test the accumulator value."""

    def test_add_returns_new_value(self):
        acc = ShiftAccumulator()
        work = Segment(at('2024-01-15 06:00'), at('2024-01-15 08:00'), ON)

        updated = acc.add(work, counts_as_layover=False)

        assert acc.payable == timedelta(0)
        assert updated.payable == timedelta(hours=2)
        assert updated.longest_streak == timedelta(hours=2)

    def test_rest_resets_streak(self):
        acc = ShiftAccumulator()
        acc = acc.add(Segment(at('2024-01-15 06:00'), at('2024-01-15 08:00'), ON), False)
        acc = acc.add(Segment(at('2024-01-15 08:00'), at('2024-01-15 09:00'), SB), False)
        acc = acc.add(Segment(at('2024-01-15 09:00'), at('2024-01-15 10:00'), D), False)

        assert acc.sleeper == timedelta(hours=1)
        assert acc.current_streak == timedelta(hours=1)
        assert acc.longest_streak == timedelta(hours=2)

    def test_layover_only_when_flagged(self):
        off = Segment(at('2024-01-15 10:00'), at('2024-01-15 13:00'), OFF)

        assert ShiftAccumulator().add(off, True).layover == timedelta(hours=3)
        assert ShiftAccumulator().add(off, False).layover == timedelta(0)


class TestAggregateHours:
    """Test hours aggregation for a shift."""

    def test_payable_minutes(self):
        """ON and DRIVING count; the short OFF in the middle does not."""
        timeline, boundary = single_shift([
            ('2024-01-14 20:00', OFF),
            ('2024-01-15 08:00', ON),
            ('2024-01-15 10:00', D),
            ('2024-01-15 14:00', OFF),
            ('2024-01-15 14:20', ON),
            ('2024-01-15 16:20', OFF),
        ])

        summary = aggregate_hours(timeline, boundary)

        assert summary.payable_minutes == 480
        assert summary.sleeper_minutes == 0
        assert summary.layover_minutes == 0
        assert summary.notes == []

    def test_sleeper_and_layover(self):
        timeline, boundary = single_shift([
            ('2024-01-14 18:00', OFF),
            ('2024-01-15 06:00', ON),
            ('2024-01-15 10:00', OFF, FRESNO),
            ('2024-01-15 13:00', D),
            ('2024-01-15 16:00', SB),
            ('2024-01-15 17:00', ON),
            ('2024-01-15 18:00', OFF),
        ])

        summary = aggregate_hours(timeline, boundary)

        assert summary.payable_minutes == 480
        assert summary.sleeper_minutes == 60
        assert summary.layover_minutes == 180

    def test_layover_near_home_is_excluded(self):
        timeline, boundary = single_shift([
            ('2024-01-14 18:00', OFF),
            ('2024-01-15 06:00', ON),
            ('2024-01-15 10:00', OFF, FRESNO),
            ('2024-01-15 13:00', D),
            ('2024-01-15 18:00', OFF),
        ])
        home = HomeProximity(latitude=36.74, longitude=-119.78, radius_miles=5)

        summary = aggregate_hours(timeline, boundary, is_near_home=home)

        assert summary.layover_minutes == 0

    def test_short_off_is_not_layover(self):
        timeline, boundary = single_shift([
            ('2024-01-14 18:00', OFF),
            ('2024-01-15 06:00', ON),
            ('2024-01-15 10:00', OFF),
            ('2024-01-15 11:59', D),
            ('2024-01-15 18:00', OFF),
        ])

        summary = aggregate_hours(timeline, boundary)

        assert summary.layover_minutes == 0

    def test_continuous_on_duty_flag(self):
        timeline, boundary = single_shift([
            ('2024-01-14 18:00', OFF),
            ('2024-01-15 06:00', ON),
            ('2024-01-15 07:00', D),
            ('2024-01-15 21:00', OFF),
        ])

        summary = aggregate_hours(timeline, boundary)

        assert summary.longest_on_streak == timedelta(hours=15)
        assert summary.notes == [
            'Continuous ON/DRIVING 15.00h (possible forgot to log OFF)'
        ]

    def test_long_shift_flag(self):
        timeline, boundary = single_shift([
            ('2024-01-14 18:00', OFF),
            ('2024-01-15 06:00', ON),
            ('2024-01-15 12:00', OFF),
            ('2024-01-15 14:00', D),
            ('2024-01-16 02:00', OFF),
        ])

        summary = aggregate_hours(timeline, boundary)

        assert summary.notes == ['Long shift 20.00h (possible missed OFF)']

    def test_minutes_stay_inside_boundaries(self):
        """Time before the shift start never counts."""
        timeline, boundary = single_shift([
            ('2024-01-14 18:00', OFF),
            ('2024-01-15 06:00', ON),
            ('2024-01-15 08:00', OFF),
        ])

        summary = aggregate_hours(timeline, boundary)

        assert summary.payable_minutes == 120
        assert summary.layover_minutes == 0


class TestHomeProximity:
    """Test the near-home predicate."""

    def test_parse_lat_lon(self):
        assert parse_lat_lon(FRESNO) == (36.7378, -119.7871)
        assert parse_lat_lon('Fresno, CA') is None
        assert parse_lat_lon(None) is None

    def test_haversine(self):
        assert haversine_miles(36.7378, -119.7871, 36.7378, -119.7871) == 0
        # Fresno to Los Angeles is roughly 200 miles
        distance = haversine_miles(36.7378, -119.7871, 34.0522, -118.2437)
        assert 195 < distance < 215

    def test_within_radius(self):
        home = HomeProximity(latitude=36.7378, longitude=-119.7871, radius_miles=5)

        assert home(FRESNO)
        assert not home('Los Angeles (34.0522, -118.2437)')

    def test_place_pattern_without_coordinates(self):
        home = HomeProximity(place_pattern=r'fresno|clovis')

        assert home('Clovis Yard')
        assert not home('Bakersfield')

    def test_from_mapping(self):
        assert HomeProximity.from_mapping(None) is None

        home = HomeProximity.from_mapping({'latitude': 36.7, 'longitude': -119.8})

        assert home.radius_miles == 5.0
        assert home.place_pattern == ''
