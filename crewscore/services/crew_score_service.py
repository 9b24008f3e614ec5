"""
crewscore.services.crew_score_service — Crew Score Reads & Recalculation
=========================================================================

Both entry points score the whole group at once because every pillar is a
percentile against the group's approved members.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, select

from crewscore.database.engine import get_session, run_db
from crewscore.database.models import Group, GroupMember, MemberStats, MemberStatus
from crewscore.engine.crew_score import (
    MemberMetrics,
    PillarScores,
    compute_scores,
    rank_scores,
)
from crewscore.engine.periods import as_utc, is_founding_member, tenure_days, utcnow
from crewscore.engine.tiers import TierInfo, get_member_tier
from crewscore.services.context import ServiceContext
from crewscore.services.points_service import new_member_stats

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CrewScoreResult:
    crew_score: int
    loyalty: int
    spirit: int
    adventure: int
    legacy: int
    tier: TierInfo
    rank: int
    total_members: int


@dataclass(frozen=True, slots=True)
class GroupTheme:
    created_at: datetime | None
    tier_theme: str
    custom_tier_names: list[str] | None


# ---------------------------------------------------------------------------
# Sync loaders
# ---------------------------------------------------------------------------
def load_group_theme(engine: Engine, group_id: str) -> GroupTheme | None:
    with get_session(engine) as session:
        group = session.get(Group, group_id)
        if group is None:
            return None
        return GroupTheme(group.created_at, group.tier_theme or "generic", group.custom_tier_names)


def _load_approved(engine: Engine, group_id: str) -> list[tuple[str, datetime | None]]:
    with get_session(engine) as session:
        rows = session.execute(
            select(GroupMember.user_id, GroupMember.joined_at).where(
                GroupMember.group_id == group_id,
                GroupMember.status == MemberStatus.APPROVED.value,
            )
        ).all()
        return [(uid, joined) for uid, joined in rows]


def _load_group_stats(engine: Engine, group_id: str) -> dict[str, MemberStats]:
    with get_session(engine) as session:
        rows = session.scalars(select(MemberStats).where(MemberStats.group_id == group_id)).all()
        for row in rows:
            session.expunge(row)
        return {row.user_id: row for row in rows}


def _persist_scores(
    engine: Engine,
    group_id: str,
    scores: list[PillarScores],
    tiers: dict[str, str],
    now: datetime,
) -> int:
    with get_session(engine) as session:
        for s in scores:
            stats = session.get(MemberStats, (s.member_id, group_id))
            if stats is None:
                stats = new_member_stats(s.member_id, group_id)
                session.add(stats)
            stats.crew_score = s.crew_score
            stats.tier = tiers[s.member_id]
            stats.loyalty_score = s.loyalty
            stats.spirit_score = s.spirit
            stats.adventure_score = s.adventure
            stats.legacy_score = s.legacy
            stats.last_calculated_at = now
    return len(scores)


# ---------------------------------------------------------------------------
# Shared scoring
# ---------------------------------------------------------------------------
def _metrics_for(
    member_id: str,
    stats: MemberStats | None,
    joined_at: datetime | None,
    theme: GroupTheme | None,
    now: datetime,
    window_days: int,
) -> MemberMetrics:
    founding = is_founding_member(joined_at, theme.created_at if theme else None, window_days)
    tenure = tenure_days(joined_at, now)
    if stats is None:
        return MemberMetrics(member_id, tenure_days=tenure, is_founding_member=founding)
    return MemberMetrics(
        member_id=member_id,
        attendance_rate=float(stats.attendance_rate or 0),
        events_attended=stats.events_attended or 0,
        current_streak=stats.current_streak or 0,
        spirit_points_total=stats.spirit_points_total or 0,
        messages_sent=stats.messages_sent or 0,
        reactions_given=stats.reactions_given or 0,
        best_streak=stats.best_streak or 0,
        guest_converts=stats.guest_converts or 0,
        tenure_days=tenure,
        is_founding_member=founding,
    )


async def score_group(
    ctx: ServiceContext,
    group_id: str,
    now: datetime,
    include: str | None = None,
) -> tuple[list[PillarScores], GroupTheme | None]:
    """Score every approved member (plus *include*, scored with zeros if
    they have no stats or aren't approved)."""
    members, stats, theme = await asyncio.gather(
        run_db(_load_approved, ctx.engine, group_id),
        run_db(_load_group_stats, ctx.engine, group_id),
        run_db(load_group_theme, ctx.engine, group_id),
    )
    joined = dict(members)
    if include is not None and include not in joined:
        joined[include] = None

    window = ctx.cfg.founding_window_days
    metrics = [
        _metrics_for(uid, stats.get(uid), joined_at, theme, now, window)
        for uid, joined_at in sorted(joined.items())
    ]
    return compute_scores(metrics), theme


def tier_for(score: int, theme: GroupTheme | None) -> TierInfo:
    if theme is None:
        return get_member_tier(score)
    return get_member_tier(score, theme.tier_theme, theme.custom_tier_names)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
async def calculate_member_crew_score(
    ctx: ServiceContext,
    member_id: str,
    group_id: str,
    *,
    now: datetime | None = None,
) -> CrewScoreResult:
    """Live Crew Score for one member, ranked against the group."""
    now = as_utc(now) or utcnow()
    scores, theme = await score_group(ctx, group_id, now, include=member_id)
    ranks = rank_scores(scores)
    mine = next(s for s in scores if s.member_id == member_id)
    return CrewScoreResult(
        crew_score=mine.crew_score,
        loyalty=mine.loyalty,
        spirit=mine.spirit,
        adventure=mine.adventure,
        legacy=mine.legacy,
        tier=tier_for(mine.crew_score, theme),
        rank=ranks[member_id],
        total_members=len(scores),
    )


async def recalculate_group_crew_scores(
    ctx: ServiceContext,
    group_id: str,
    *,
    now: datetime | None = None,
) -> int:
    """Persist a fresh Crew Score snapshot for every approved member.

    Returns the number of members written (0 for a group with no approved
    members).
    """
    now = as_utc(now) or utcnow()
    scores, theme = await score_group(ctx, group_id, now)
    if not scores:
        return 0
    tiers = {s.member_id: tier_for(s.crew_score, theme).name for s in scores}
    written = await run_db(_persist_scores, ctx.engine, group_id, scores, tiers, now)
    logger.info("Recalculated crew scores for %d members in %s", written, group_id)
    return written
