"""
crewscore.services.my_stats_service — Member Dashboard
=======================================================

Composes one member's view of a group from the other services: live Crew
Score with pillar breakdown, this month's board standing and spirit
breakdown, streaks, the full badge catalogue with earned dates, the next
attendance milestone and the next upcoming event.  No scoring of its own.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, select

from crewscore.constants import PILLAR_STYLE, round_half_up
from crewscore.database.engine import get_session, run_db
from crewscore.database.models import Badge, BadgeAward, Event, GroupMember, MemberStats
from crewscore.engine.badges import EventsAttended, parse_criteria
from crewscore.engine.crew_score import PILLAR_MAX
from crewscore.engine.periods import as_utc, tenure_days, utcnow
from crewscore.services.board_service import get_monthly_board_data
from crewscore.services.context import ServiceContext
from crewscore.services.crew_score_service import calculate_member_crew_score
from crewscore.services.points_service import SpiritBreakdownItem, get_spirit_breakdown

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PillarView:
    key: str
    label: str
    emoji: str
    weight: str
    score: int
    max: int
    percent: int
    detail: str
    colour: str


@dataclass(frozen=True, slots=True)
class BadgeView:
    badge_id: str
    slug: str
    name: str
    emoji: str
    description: str | None
    category: str
    awarded_at: datetime | None


@dataclass(frozen=True, slots=True)
class NextMilestone:
    badge_name: str
    badge_emoji: str
    current: int
    target: int
    progress_percent: int


@dataclass(frozen=True, slots=True)
class UpcomingEvent:
    event_id: str
    title: str
    starts_at: datetime


@dataclass(frozen=True, slots=True)
class MyStats:
    crew_score: int
    tier_level: int
    tier_name: str
    pillars: list[PillarView]
    month_events_attended: int
    month_events_available: int
    month_rate: int
    board_rank: int | None
    board_total: int
    group_avg_rate: int
    spirit_points_this_month: int
    spirit_breakdown: list[SpiritBreakdownItem]
    current_streak: int
    best_streak: int
    badges: list[BadgeView]
    next_milestone: NextMilestone | None
    next_event: UpcomingEvent | None


# ---------------------------------------------------------------------------
# Sync loaders
# ---------------------------------------------------------------------------
def _load_stats(engine: Engine, member_id: str, group_id: str) -> MemberStats | None:
    with get_session(engine) as session:
        stats = session.get(MemberStats, (member_id, group_id))
        if stats is not None:
            session.expunge(stats)
        return stats


def _load_joined_at(engine: Engine, member_id: str, group_id: str) -> datetime | None:
    with get_session(engine) as session:
        return session.scalar(
            select(GroupMember.joined_at).where(
                GroupMember.group_id == group_id, GroupMember.user_id == member_id
            )
        )


def _load_badges(
    engine: Engine, member_id: str, group_id: str
) -> list[tuple[Badge, datetime | None]]:
    with get_session(engine) as session:
        rows = session.execute(
            select(Badge, BadgeAward.awarded_at)
            .outerjoin(
                BadgeAward,
                (BadgeAward.badge_id == Badge.id)
                & (BadgeAward.user_id == member_id)
                & (BadgeAward.group_id == group_id),
            )
            .order_by(Badge.category, Badge.slug)
        ).all()
        for badge, _ in rows:
            session.expunge(badge)
        return [(badge, awarded_at) for badge, awarded_at in rows]


def _load_next_event(engine: Engine, group_id: str, now: datetime) -> UpcomingEvent | None:
    with get_session(engine) as session:
        row = session.execute(
            select(Event.id, Event.title, Event.starts_at)
            .where(Event.group_id == group_id, Event.starts_at > now)
            .order_by(Event.starts_at)
            .limit(1)
        ).first()
        return UpcomingEvent(row.id, row.title, as_utc(row.starts_at)) if row else None


# ---------------------------------------------------------------------------
# Assembly helpers
# ---------------------------------------------------------------------------
def _pillar(key: str, score: int, detail: str) -> PillarView:
    label, emoji, weight, colour = PILLAR_STYLE[key]
    maximum = PILLAR_MAX[key]
    return PillarView(
        key, label, emoji, weight, score, maximum,
        round_half_up(score / maximum * 100), detail, colour,
    )


def next_attendance_milestone(
    badges: list[tuple[Badge, datetime | None]], events_attended: int
) -> NextMilestone | None:
    """Smallest ``events_attended`` threshold the member hasn't reached yet."""
    milestones = []
    for badge, _ in badges:
        criteria = parse_criteria(badge.criteria)
        if isinstance(criteria, EventsAttended):
            milestones.append((int(criteria.value), badge.name, badge.emoji))
    for target, name, emoji in sorted(milestones):
        if events_attended < target:
            return NextMilestone(
                name, emoji, events_attended, target,
                round_half_up(events_attended / target * 100),
            )
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
async def get_my_stats(
    ctx: ServiceContext,
    member_id: str,
    group_id: str,
    *,
    now: datetime | None = None,
) -> MyStats:
    now = as_utc(now) or utcnow()
    crew, stats, board, joined_at, badges, next_event, breakdown = await asyncio.gather(
        calculate_member_crew_score(ctx, member_id, group_id, now=now),
        run_db(_load_stats, ctx.engine, member_id, group_id),
        get_monthly_board_data(ctx, group_id, member_id, now=now),
        run_db(_load_joined_at, ctx.engine, member_id, group_id),
        run_db(_load_badges, ctx.engine, member_id, group_id),
        run_db(_load_next_event, ctx.engine, group_id, now),
        get_spirit_breakdown(ctx, member_id, group_id, now=now),
    )

    attended = stats.events_attended if stats else 0
    available = stats.events_available if stats else 0
    rate = round_half_up(float(stats.attendance_rate or 0)) if stats else 0
    spirit_total = stats.spirit_points_total if stats else 0
    messages = stats.messages_sent if stats else 0
    best = stats.best_streak if stats else 0
    converts = stats.guest_converts if stats else 0
    days = tenure_days(joined_at, now)

    pillars = [
        _pillar("loyalty", crew.loyalty, f"{attended} / {available} events — {rate}% rate"),
        _pillar("spirit", crew.spirit, f"{spirit_total} spirit pts · {messages} messages"),
        _pillar("adventure", crew.adventure, f"{best} best streak · {attended} events"),
        _pillar("legacy", crew.legacy, f"{days} days · {converts} guests converted"),
    ]

    entry = board.current_member_entry
    return MyStats(
        crew_score=crew.crew_score,
        tier_level=crew.tier.level,
        tier_name=crew.tier.name,
        pillars=pillars,
        month_events_attended=entry.events_attended if entry else 0,
        month_events_available=entry.events_available if entry else 0,
        month_rate=entry.attendance_rate if entry else 0,
        board_rank=entry.rank if entry else None,
        board_total=board.total_qualifying_members,
        group_avg_rate=board.group_avg_rate,
        spirit_points_this_month=stats.spirit_points_this_month if stats else 0,
        spirit_breakdown=breakdown,
        current_streak=stats.current_streak if stats else 0,
        best_streak=best,
        badges=[
            BadgeView(b.id, b.slug, b.name, b.emoji, b.description, b.category, as_utc(awarded))
            for b, awarded in badges
        ],
        next_milestone=next_attendance_milestone(badges, attended),
        next_event=next_event,
    )
