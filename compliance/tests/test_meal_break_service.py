"""
Tests for Meal-Break Compliance Service.

Deadlines are measured in accumulated on-duty time, so early OFF time pushes
them later in the day.
"""

import pytest
from compliance.services.meal_break_service import (
    MealBreakStatus,
    evaluate_meal_breaks,
    off_segments,
    on_duty_deadline,
)
from compliance.tests.helpers import D, OFF, ON, SB, at, make_timeline


class TestOnDutyDeadline:
    """Test accumulated on-duty deadlines."""

    def setup_method(self):
        self.timeline = make_timeline([
            ('2024-01-15 06:00', ON),
            ('2024-01-15 08:00', OFF),
            ('2024-01-15 10:00', D),
            ('2024-01-15 16:00', OFF),
        ])

    def test_deadline_skips_off_time(self):
        deadline = on_duty_deadline(
            self.timeline, at('2024-01-15 06:00'), at('2024-01-15 16:00'), 5
        )

        # 2h before the OFF, 3h after it
        assert deadline == at('2024-01-15 13:00')

    def test_deadline_never_reached(self):
        deadline = on_duty_deadline(
            self.timeline, at('2024-01-15 06:00'), at('2024-01-15 16:00'), 10
        )

        assert deadline == at('2024-01-15 16:00')

    def test_off_segments_clipped_and_ordered(self):
        segments = off_segments(self.timeline, at('2024-01-15 07:00'), at('2024-01-15 09:00'))

        assert len(segments) == 1
        assert segments[0].start == at('2024-01-15 08:00')
        assert segments[0].end == at('2024-01-15 09:00')


class TestEvaluateMealBreaks:
    """Test meal-break verdicts."""

    def evaluate(self, rows, payable_minutes):
        timeline = make_timeline(rows)
        return evaluate_meal_breaks(
            timeline, timeline[0].timestamp, timeline[-1].timestamp, payable_minutes
        )

    def test_short_shift_needs_no_break(self):
        verdict = self.evaluate([
            ('2024-01-15 06:00', ON),
            ('2024-01-15 11:00', OFF),
        ], payable_minutes=300)

        assert verdict.compliant
        assert verdict.note == 'No break required (<6h on-duty)'
        assert verdict.first_deadline is None

    def test_break_before_fifth_hour(self):
        """35m OFF at on-duty hour 4 of a 7h shift."""
        verdict = self.evaluate([
            ('2024-01-15 06:00', ON),
            ('2024-01-15 10:00', OFF),
            ('2024-01-15 10:35', ON),
            ('2024-01-15 13:35', OFF),
        ], payable_minutes=420)

        assert verdict.status is MealBreakStatus.COMPLIANT
        assert verdict.note == '1st 10:00 (35m)'
        assert verdict.first_break.start == at('2024-01-15 10:00')
        assert verdict.first_break.minutes == 35
        assert verdict.first_deadline == at('2024-01-15 11:35')

    def test_break_after_fifth_hour_is_late(self):
        """35m OFF at on-duty hour 6 of a 7h shift."""
        verdict = self.evaluate([
            ('2024-01-15 06:00', ON),
            ('2024-01-15 12:00', OFF),
            ('2024-01-15 12:35', ON),
            ('2024-01-15 13:35', OFF),
        ], payable_minutes=420)

        assert verdict.status is MealBreakStatus.VIOLATION
        assert not verdict.compliant
        assert verdict.note == 'Late 1st 12:00 (35m), after deadline 11:00'
        assert verdict.first_break is None

    def test_no_break_at_all(self):
        verdict = self.evaluate([
            ('2024-01-15 06:00', ON),
            ('2024-01-15 13:00', OFF),
        ], payable_minutes=420)

        assert not verdict.compliant
        assert verdict.note == 'No 1st 30-min OFF before 5th on-duty hour'

    def test_short_off_does_not_count(self):
        verdict = self.evaluate([
            ('2024-01-15 06:00', ON),
            ('2024-01-15 09:00', OFF),
            ('2024-01-15 09:20', ON),
            ('2024-01-15 13:20', OFF),
        ], payable_minutes=420)

        assert not verdict.compliant

    def test_sleeper_is_not_a_meal_break(self):
        verdict = self.evaluate([
            ('2024-01-15 06:00', ON),
            ('2024-01-15 09:00', SB),
            ('2024-01-15 10:00', ON),
            ('2024-01-15 14:00', OFF),
        ], payable_minutes=420)

        assert not verdict.compliant
        assert verdict.note == 'No 1st 30-min OFF before 5th on-duty hour'

    def test_two_breaks_on_long_shift(self):
        verdict = self.evaluate([
            ('2024-01-15 05:00', ON),
            ('2024-01-15 08:00', OFF),
            ('2024-01-15 08:30', D),
            ('2024-01-15 14:00', OFF),
            ('2024-01-15 14:30', D),
            ('2024-01-15 19:00', OFF),
        ], payable_minutes=780)

        assert verdict.compliant
        assert verdict.note == '1st 08:00 (30m); 2nd 14:00 (30m)'
        assert verdict.second_deadline == at('2024-01-15 16:00')

    def test_late_second_break(self):
        verdict = self.evaluate([
            ('2024-01-15 05:00', ON),
            ('2024-01-15 08:00', OFF),
            ('2024-01-15 08:30', D),
            ('2024-01-15 17:00', OFF),
            ('2024-01-15 17:30', D),
            ('2024-01-15 19:00', OFF),
        ], payable_minutes=780)

        assert not verdict.compliant
        assert verdict.note == 'Late 2nd 17:00 (30m), after deadline 15:30'
        assert verdict.first_break.start == at('2024-01-15 08:00')

    def test_missing_second_break(self):
        verdict = self.evaluate([
            ('2024-01-15 05:00', ON),
            ('2024-01-15 08:00', OFF),
            ('2024-01-15 08:30', D),
            ('2024-01-15 18:30', OFF),
        ], payable_minutes=780)

        assert verdict.note == 'No 2nd 30-min OFF before 10th on-duty hour'

    def test_twelve_hours_needs_only_one_break(self):
        verdict = self.evaluate([
            ('2024-01-15 05:00', ON),
            ('2024-01-15 08:00', OFF),
            ('2024-01-15 08:30', D),
            ('2024-01-15 17:30', OFF),
        ], payable_minutes=720)

        assert verdict.compliant
        assert verdict.second_deadline is None
