"""
tests/test_crew_score.py — Crew Score & Tier Tests
===================================================
Percentile maths and pillar weighting (pure), tier resolution, then the
live and persisted group scoring paths against SQLite.
"""

from __future__ import annotations

import pytest

from conftest import at, get_stats, make_group, make_member, run_async, set_stats
from crewscore.database.models import MemberStatus
from crewscore.engine.crew_score import (
    MemberMetrics,
    compute_percentiles,
    compute_scores,
    rank_scores,
)
from crewscore.engine.tiers import TIER_THEMES, get_member_tier
from crewscore.services.crew_score_service import (
    calculate_member_crew_score,
    recalculate_group_crew_scores,
)

NOW = at(2025, 6, 1, 12)


# ===========================================================================
# Test: percentiles and pillars (pure)
# ===========================================================================
class TestPercentiles:

    def test_distinct_values(self):
        assert compute_percentiles([10, 30, 20]) == [0.0, 1.0, 0.5]

    def test_ties_share_the_midpoint(self):
        assert compute_percentiles([5, 5, 5]) == [0.5, 0.5, 0.5]
        assert compute_percentiles([1, 1, 3]) == [0.25, 0.25, 1.0]

    def test_single_member_is_top(self):
        assert compute_percentiles([0]) == [1.0]

    def test_empty(self):
        assert compute_percentiles([]) == []


class TestComputeScores:

    def test_lone_member_maxes_every_percentile(self):
        (score,) = compute_scores([MemberMetrics("ana")])
        assert (score.loyalty, score.spirit, score.adventure, score.legacy) == (400, 300, 150, 120)
        assert score.crew_score == 970

    def test_founding_bonus_is_flat(self):
        (score,) = compute_scores([MemberMetrics("ana", is_founding_member=True)])
        assert score.legacy == 150
        assert score.crew_score == 1000

    def test_top_and_bottom(self):
        top = MemberMetrics(
            "ana", attendance_rate=90, events_attended=12, current_streak=4,
            spirit_points_total=300, messages_sent=80, reactions_given=40,
            best_streak=6, guest_converts=2, tenure_days=400,
        )
        bottom = MemberMetrics("ben")
        scores = compute_scores([top, bottom])

        assert [s.crew_score for s in scores] == [970, 0]
        assert rank_scores(scores) == {"ana": 1, "ben": 2}

    def test_rank_ties_break_on_member_id(self):
        scores = compute_scores([MemberMetrics("zed"), MemberMetrics("amy")])
        assert scores[0].crew_score == scores[1].crew_score
        assert rank_scores(scores) == {"amy": 1, "zed": 2}

    def test_no_members(self):
        assert compute_scores([]) == []


# ===========================================================================
# Test: tiers (pure)
# ===========================================================================
class TestTiers:

    @pytest.mark.parametrize(
        "score,level,name",
        [
            (0, 1, "Newcomer"),
            (199, 1, "Newcomer"),
            (199.5, 2, "Regular"),
            (200, 2, "Regular"),
            (699, 3, "Dedicated"),
            (700, 4, "Veteran"),
            (900, 5, "Legend"),
            (1000, 5, "Legend"),
            (-40, 1, "Newcomer"),
            (1500, 5, "Legend"),
        ],
    )
    def test_brackets(self, score, level, name):
        tier = get_member_tier(score)
        assert (tier.level, tier.name) == (level, name)

    def test_threshold_is_bracket_floor(self):
        assert get_member_tier(555).threshold == 400

    def test_preset_theme(self):
        assert get_member_tier(950, "running").name == "Ultra"

    def test_custom_theme_needs_five_names(self):
        names = ["Egg", "Chick", "Hen", "Rooster", "Phoenix"]
        assert get_member_tier(450, "custom", names).name == "Hen"
        assert get_member_tier(450, "custom", names[:4]).name == "Dedicated"

    def test_unknown_theme_falls_back_to_generic(self):
        assert get_member_tier(250, "underwater_basket_weaving").name == "Regular"

    def test_every_preset_has_five_names(self):
        assert len(TIER_THEMES) == 11
        assert all(len(names) == 5 for names in TIER_THEMES.values())


# ===========================================================================
# Test: service paths
# ===========================================================================
@pytest.fixture
def crew(db_engine):
    make_group(db_engine, "g1", created_at=at(2024, 1, 1, 0), tier_theme="running")
    make_member(db_engine, "g1", "ana", joined_at=at(2024, 1, 1, 12))
    make_member(db_engine, "g1", "ben", joined_at=at(2024, 1, 1, 12))
    make_member(db_engine, "g1", "cal", status=MemberStatus.PENDING.value)
    set_stats(
        db_engine, "ana", "g1",
        attendance_rate=88.0, events_attended=20, current_streak=3,
        spirit_points_total=240, messages_sent=60, reactions_given=15,
        best_streak=7, guest_converts=1,
    )
    set_stats(db_engine, "cal", "g1", events_attended=50, best_streak=20)
    return db_engine


class TestCrewScoreService:

    def test_live_score_for_leader(self, crew, ctx):
        result = run_async(calculate_member_crew_score(ctx, "ana", "g1", now=NOW))

        # Tenure ties (same join date) give each member the 0.5 midpoint.
        assert (result.loyalty, result.spirit, result.adventure, result.legacy) == (400, 300, 150, 120)
        assert result.crew_score == 970
        assert result.tier.level == 5
        assert result.tier.name == "Ultra"
        assert (result.rank, result.total_members) == (1, 2)

    def test_member_without_stats_scores_zero_pillars(self, crew, ctx):
        result = run_async(calculate_member_crew_score(ctx, "ben", "g1", now=NOW))

        assert (result.loyalty, result.spirit, result.adventure) == (0, 0, 0)
        assert result.legacy == 60  # tenure midpoint + founding bonus
        assert result.tier.name == "Rookie"
        assert result.rank == 2

    def test_pending_member_is_not_in_the_pool(self, crew, ctx):
        ana = run_async(calculate_member_crew_score(ctx, "ana", "g1", now=NOW))
        assert ana.total_members == 2

    def test_recalculate_persists_snapshot(self, crew, ctx):
        written = run_async(recalculate_group_crew_scores(ctx, "g1", now=NOW))

        assert written == 2
        ana = get_stats(crew, "ana", "g1")
        assert (ana.crew_score, ana.tier) == (970, "Ultra")
        assert (ana.loyalty_score, ana.spirit_score, ana.adventure_score, ana.legacy_score) == (
            400, 300, 150, 120,
        )
        assert ana.last_calculated_at is not None
        ben = get_stats(crew, "ben", "g1")
        assert (ben.crew_score, ben.tier) == (60, "Rookie")
        assert get_stats(crew, "cal", "g1").crew_score == 0

    def test_recalculate_empty_group(self, db_engine, ctx):
        make_group(db_engine, "empty")
        assert run_async(recalculate_group_crew_scores(ctx, "empty", now=NOW)) == 0
