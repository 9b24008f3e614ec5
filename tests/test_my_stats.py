"""
tests/test_my_stats.py — Member Dashboard Tests
================================================
get_my_stats() stitches the other services together; these tests check
the composition rather than re-testing each score.
"""

from __future__ import annotations

import pytest
from sqlalchemy import select

from conftest import at, make_event, make_group, make_member, make_rsvp, run_async, set_stats
from crewscore.database.engine import get_session
from crewscore.database.models import Badge, BadgeAward
from crewscore.services.crew_score_service import calculate_member_crew_score
from crewscore.services.my_stats_service import get_my_stats, next_attendance_milestone
from crewscore.services.points_service import award_spirit_points

NOW = at(2025, 3, 20, 12)


class TestNextMilestone:

    def _catalogue(self):
        return [
            (Badge(slug="ten", name="Double Digits", emoji="\U0001f51f",
                   criteria={"type": "events_attended", "value": 10}), None),
            (Badge(slug="five", name="Regular", emoji="\U0001f5d3",
                   criteria={"type": "events_attended", "value": 5}), None),
            (Badge(slug="chat", name="Chatterbox", emoji="\U0001f4ac",
                   criteria={"type": "messages_sent", "value": 1}), None),
        ]

    def test_smallest_unreached_target(self):
        milestone = next_attendance_milestone(self._catalogue(), 3)
        assert (milestone.badge_name, milestone.current, milestone.target) == ("Regular", 3, 5)
        assert milestone.progress_percent == 60

    def test_reaching_a_target_moves_to_the_next(self):
        assert next_attendance_milestone(self._catalogue(), 5).target == 10

    def test_all_reached(self):
        assert next_attendance_milestone(self._catalogue(), 10) is None


@pytest.fixture
def member(db_engine):
    make_group(db_engine, "g1", created_at=at(2024, 1, 1, 0))
    make_member(db_engine, "g1", "ana", joined_at=at(2024, 6, 1))
    make_member(db_engine, "g1", "ben", joined_at=at(2024, 6, 1))
    for event_id, day in (("e1", 3), ("e2", 10), ("e3", 17), ("e4", 27)):
        make_event(db_engine, "g1", event_id, at(2025, 3, day), title=f"March run {day}")
    for event_id, day in (("e1", 3), ("e2", 10), ("e3", 17)):
        make_rsvp(db_engine, event_id, "ana", checked_in_at=at(2025, 3, day))
    make_rsvp(db_engine, "e1", "ben", checked_in_at=at(2025, 3, 3))
    set_stats(
        db_engine, "ana", "g1",
        events_attended=3, events_available=4, attendance_rate=75.0,
        current_streak=3, best_streak=3, messages_sent=12,
    )
    return db_engine


class TestMyStats:

    def test_dashboard(self, member, ctx):
        async def scenario():
            await award_spirit_points(ctx, "ana", "g1", "event_attendance", now=NOW)
            await award_spirit_points(ctx, "ana", "g1", "photo_upload", now=NOW)
            await ctx.background.drain()
            crew = await calculate_member_crew_score(ctx, "ana", "g1", now=NOW)
            mine = await get_my_stats(ctx, "ana", "g1", now=NOW)
            return crew, mine

        crew, mine = run_async(scenario())

        assert mine.crew_score == crew.crew_score
        assert (mine.tier_level, mine.tier_name) == (crew.tier.level, crew.tier.name)
        assert [p.key for p in mine.pillars] == ["loyalty", "spirit", "adventure", "legacy"]
        assert [p.max for p in mine.pillars] == [400, 300, 150, 150]
        assert mine.pillars[0].score == crew.loyalty

        assert (mine.month_events_attended, mine.month_events_available) == (3, 4)
        assert mine.month_rate == 75
        assert mine.board_rank == 1
        assert mine.board_total == 2
        assert mine.group_avg_rate == 50

        assert mine.spirit_points_this_month == 25
        assert [(i.action_type, i.points) for i in mine.spirit_breakdown] == [
            ("event_attendance", 20), ("photo_upload", 5),
        ]
        assert (mine.current_streak, mine.best_streak) == (3, 3)

        assert mine.next_event.event_id == "e4"
        assert mine.next_event.title == "March run 27"
        assert (mine.next_milestone.badge_name, mine.next_milestone.target) == ("Regular", 5)

    def test_badges_list_whole_catalogue_with_earned_dates(self, member, ctx):
        async def scenario():
            from crewscore.services.badge_service import check_and_award_badges

            await check_and_award_badges(ctx, "ana", "g1", now=NOW)
            await ctx.background.drain()
            return await get_my_stats(ctx, "ana", "g1", now=NOW)

        mine = run_async(scenario())

        with get_session(member) as session:
            held = set(session.scalars(
                select(Badge.slug).join(BadgeAward, BadgeAward.badge_id == Badge.id)
            ).all())
        assert len(mine.badges) == 17
        earned = {b.slug for b in mine.badges if b.awarded_at is not None}
        assert earned == held == {"first-event", "streak-3"}

    def test_new_member_gets_zeroes(self, member, ctx):
        make_member(member, "g1", "zoe", joined_at=at(2025, 3, 19))

        mine = run_async(get_my_stats(ctx, "zoe", "g1", now=NOW))

        assert mine.board_rank is None
        assert mine.current_streak == 0
        assert mine.spirit_breakdown == []
        assert mine.next_milestone.badge_name == "First Steps"
        assert mine.next_milestone.progress_percent == 0
