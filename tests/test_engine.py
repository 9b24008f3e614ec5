"""
tests/test_engine.py — Pure Engine Tests
=========================================
Calendar windows, the spirit point rule table, streak transitions and the
shared rounding rule.  No database.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from crewscore.constants import round_half_up
from crewscore.engine.periods import (
    as_utc,
    is_founding_member,
    month_bounds,
    month_key,
    month_label,
    tenure_days,
    week_start,
)
from crewscore.engine.points import ACTION_RULES, GLOBAL_WEEKLY_CAP, evaluate_award, points_for
from crewscore.engine.streaks import next_streak, should_celebrate, should_reengage


# ===========================================================================
# Test: rounding
# ===========================================================================
class TestRoundHalfUp:

    @pytest.mark.parametrize(
        "value,expected",
        [(0.5, 1), (1.5, 2), (2.5, 3), (2.4999, 2), (66.6667, 67), (0, 0), (-0.4, 0)],
    )
    def test_halves_round_up(self, value, expected):
        assert round_half_up(value) == expected


# ===========================================================================
# Test: periods
# ===========================================================================
class TestPeriods:

    def test_week_starts_on_monday(self):
        assert week_start(datetime(2025, 3, 9, 23, 59, tzinfo=UTC)) == date(2025, 3, 3)
        assert week_start(datetime(2025, 3, 10, 0, 0, tzinfo=UTC)) == date(2025, 3, 10)

    def test_week_is_computed_in_utc(self):
        # Monday 00:30 in UTC+2 is still Sunday in UTC.
        plus_two = timezone(timedelta(hours=2))
        assert week_start(datetime(2025, 3, 10, 0, 30, tzinfo=plus_two)) == date(2025, 3, 3)

    def test_month_bounds_roll_over_december(self):
        start, end = month_bounds(datetime(2024, 12, 31, 23, tzinfo=UTC))
        assert start == datetime(2024, 12, 1, tzinfo=UTC)
        assert end == datetime(2025, 1, 1, tzinfo=UTC)

    def test_month_key_and_label(self):
        assert month_key(datetime(2025, 3, 9, tzinfo=UTC)) == "2025-03"
        assert month_label("2025-03") == "Mar 2025"

    def test_naive_values_are_treated_as_utc(self):
        assert as_utc(datetime(2025, 1, 1, 12)) == datetime(2025, 1, 1, 12, tzinfo=UTC)
        assert as_utc(None) is None

    def test_tenure(self):
        now = datetime(2025, 6, 1, tzinfo=UTC)
        assert tenure_days(datetime(2024, 6, 1, tzinfo=UTC), now) == 365
        assert tenure_days(None, now) == 0
        assert tenure_days(now + timedelta(days=3), now) == 0

    def test_founding_window_is_inclusive(self):
        created = datetime(2024, 1, 1, tzinfo=UTC)
        assert is_founding_member(created + timedelta(days=30), created) is True
        assert is_founding_member(created + timedelta(days=30, seconds=1), created) is False
        assert is_founding_member(created + timedelta(days=10), created, window_days=7) is False
        assert is_founding_member(None, created) is False


# ===========================================================================
# Test: spirit point rules
# ===========================================================================
class TestPointRules:

    def test_rule_table(self):
        assert GLOBAL_WEEKLY_CAP == 100
        assert {k: (r.points, r.weekly_cap) for k, r in ACTION_RULES.items()} == {
            "event_attendance": (20, None),
            "weather_bonus": (5, None),
            "first_rsvp": (10, 10),
            "event_chat_post": (3, 15),
            "photo_upload": (5, 20),
            "co_organise": (25, 25),
            "welcome_dm": (5, 15),
            "flyer_share": (5, 15),
            "guest_conversion": (30, None),
        }

    def test_points_for(self):
        assert points_for("co_organise") == 25
        assert points_for("co_organise", 7) == 7
        assert points_for("karaoke") is None

    def test_fits_exactly(self):
        result = evaluate_award("event_attendance", 80, 80)
        assert (result.awarded, result.points, result.total_this_week) == (True, 20, 100)

    def test_global_before_action(self):
        result = evaluate_award("first_rsvp", 95, 10)
        assert result.reason == "weekly_cap_reached"
        assert result.total_this_week == 95

    def test_action_cap(self):
        result = evaluate_award("first_rsvp", 10, 10)
        assert result.reason == "action_cap_reached"

    def test_override_is_capped_too(self):
        assert evaluate_award("co_organise", 0, 0, points_override=30).reason == "action_cap_reached"

    def test_unknown_action(self):
        result = evaluate_award("karaoke", 50, 0)
        assert (result.awarded, result.points, result.total_this_week, result.reason) == (
            False, 0, 0, "unknown_action",
        )


# ===========================================================================
# Test: streak transitions
# ===========================================================================
class TestStreakRules:

    def test_first_attendance(self):
        state = next_streak(0, 0, has_previous=False, missed_between=False)
        assert (state.current, state.best) == (1, 1)

    def test_extend(self):
        state = next_streak(4, 6, has_previous=True, missed_between=False)
        assert (state.current, state.best) == (5, 6)

    def test_missed_resets_but_keeps_best(self):
        state = next_streak(4, 4, has_previous=True, missed_between=True)
        assert (state.current, state.best) == (1, 4)

    def test_celebration_milestones(self):
        hits = [n for n in range(1, 21) if should_celebrate(n)]
        assert hits == [3, 5, 6, 9, 10, 12, 15, 18, 20]

    def test_reengage_threshold(self):
        assert should_reengage(2) is False
        assert should_reengage(3) is True
