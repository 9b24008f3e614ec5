"""
crewscore.services.hall_of_fame_service — Hall of Fame
=======================================================

Six all-time records for a group, each with a single holder.  Vacant
records are still returned, with "—" in place of a name and value.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, select

from crewscore.constants import RECORD_STYLE, VACANT, round_half_up
from crewscore.database.engine import get_session, run_db
from crewscore.database.models import Event, GroupMember, MemberStats, MemberStatus, Profile, Rsvp
from crewscore.engine import records
from crewscore.engine.periods import as_utc, month_label, utcnow
from crewscore.engine.records import Candidate, FounderCandidate
from crewscore.services.context import ServiceContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HallOfFameRecord:
    slug: str
    label: str
    emoji: str
    holder_id: str | None
    holder_name: str
    holder_avatar_url: str | None
    value: str


@dataclass(frozen=True, slots=True)
class _StatRow:
    member_id: str
    events_attended: int
    attendance_rate: float
    best_streak: int
    guest_converts: int
    crew_score: int
    last_attended_at: datetime | None
    joined_at: datetime | None


# ---------------------------------------------------------------------------
# Sync loaders
# ---------------------------------------------------------------------------
def _load_stats(engine: Engine, group_id: str) -> list[_StatRow]:
    with get_session(engine) as session:
        rows = session.execute(
            select(
                MemberStats.user_id,
                MemberStats.events_attended,
                MemberStats.attendance_rate,
                MemberStats.best_streak,
                MemberStats.guest_converts,
                MemberStats.crew_score,
                MemberStats.last_attended_at,
                GroupMember.joined_at,
            )
            .outerjoin(
                GroupMember,
                (GroupMember.group_id == MemberStats.group_id)
                & (GroupMember.user_id == MemberStats.user_id),
            )
            .where(MemberStats.group_id == group_id)
        ).all()
        return [
            _StatRow(uid, ev or 0, float(rate or 0), best or 0, conv or 0, score or 0, last, joined)
            for uid, ev, rate, best, conv, score, last, joined in rows
        ]


def _load_founders(engine: Engine, group_id: str) -> list[tuple[str, int]]:
    with get_session(engine) as session:
        rows = session.execute(
            select(GroupMember.user_id, GroupMember.member_number).where(
                GroupMember.group_id == group_id,
                GroupMember.status == MemberStatus.APPROVED.value,
                GroupMember.member_number.is_not(None),
                GroupMember.member_number <= records.FOUNDER_MAX_NUMBER,
            )
        ).all()
        return [(uid, number) for uid, number in rows]


def _load_recent_check_ins(
    engine: Engine, group_id: str, since: datetime, now: datetime
) -> list[tuple[str, datetime]]:
    with get_session(engine) as session:
        rows = session.execute(
            select(Rsvp.user_id, Event.starts_at)
            .join(Event, Event.id == Rsvp.event_id)
            .where(
                Event.group_id == group_id,
                Event.starts_at >= since,
                Event.starts_at <= now,
                Rsvp.checked_in_at.is_not(None),
            )
        ).all()
        return [(uid, starts) for uid, starts in rows]


def _load_profiles(engine: Engine, ids: set[str]) -> dict[str, tuple[str, str | None]]:
    with get_session(engine) as session:
        rows = session.execute(
            select(Profile.id, Profile.full_name, Profile.avatar_url).where(Profile.id.in_(ids))
        ).all()
        return {pid: (name, avatar) for pid, name, avatar in rows}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
async def get_hall_of_fame_records(
    ctx: ServiceContext,
    group_id: str,
    *,
    now: datetime | None = None,
) -> list[HallOfFameRecord]:
    now = as_utc(now) or utcnow()
    since = records.years_before(now, records.MONTHLY_WINDOW_YEARS)

    stats, founders, check_ins = await asyncio.gather(
        run_db(_load_stats, ctx.engine, group_id),
        run_db(_load_founders, ctx.engine, group_id),
        run_db(_load_recent_check_ins, ctx.engine, group_id, since, now),
    )

    most_events = records.pick_holder(
        (Candidate(s.member_id, s.events_attended, s.last_attended_at) for s in stats), 1
    )
    highest_rate = records.pick_holder(
        (
            Candidate(s.member_id, s.attendance_rate, s.last_attended_at)
            for s in stats
            if s.events_attended >= records.MIN_EVENTS_FOR_RATE
        ),
        0,
    )
    monthly = records.pick_monthly_holder(check_ins)
    longest = records.pick_holder(
        (Candidate(s.member_id, s.best_streak, s.joined_at) for s in stats), records.MIN_STREAK
    )
    converts = records.pick_holder(
        (Candidate(s.member_id, s.guest_converts, s.joined_at) for s in stats), 1
    )
    scores = {s.member_id: s.crew_score for s in stats}
    founder = records.pick_founder(
        FounderCandidate(uid, number, scores.get(uid, 0)) for uid, number in founders
    )

    holders: dict[str, tuple[str | None, str]] = {
        "most_events": (
            most_events and most_events.member_id,
            f"{int(most_events.value)} events" if most_events else VACANT,
        ),
        "highest_rate": (
            highest_rate and highest_rate.member_id,
            f"{round_half_up(highest_rate.value)}%" if highest_rate else VACANT,
        ),
        "most_in_month": (
            monthly and monthly.member_id,
            f"{monthly.count} in {month_label(monthly.month)}" if monthly else VACANT,
        ),
        "longest_streak": (
            longest and longest.member_id,
            f"{int(longest.value)} in a row" if longest else VACANT,
        ),
        "most_converts": (
            converts and converts.member_id,
            f"{int(converts.value)} converts" if converts else VACANT,
        ),
        "top_founder": (
            founder and founder.member_id,
            f"#{founder.member_number} · {founder.crew_score} pts" if founder else VACANT,
        ),
    }

    ids = {holder for holder, _ in holders.values() if holder}
    profiles = await run_db(_load_profiles, ctx.engine, ids) if ids else {}

    result = []
    for slug, (label, emoji) in RECORD_STYLE.items():
        holder_id, value = holders[slug]
        name, avatar = profiles.get(holder_id, (VACANT, None)) if holder_id else (VACANT, None)
        result.append(HallOfFameRecord(slug, label, emoji, holder_id or None, name, avatar, value))
    return result
