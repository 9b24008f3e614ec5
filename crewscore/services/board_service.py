"""
crewscore.services.board_service — Monthly Board
=================================================

Recomputed from events, check-ins and stats on every call so a fresh
check-in shows up immediately.  Only the top ten are named; everyone
else is an aggregate count.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, select

from crewscore.constants import FALLBACK_MEMBER_NAME
from crewscore.database.engine import get_session, run_db
from crewscore.database.models import Event, GroupMember, MemberStats, MemberStatus, Profile, Rsvp
from crewscore.engine.board import TOP_N, BoardCandidate, RankedRow, group_average, rank_members
from crewscore.engine.periods import as_utc, month_bounds, month_key, utcnow
from crewscore.services.context import ServiceContext
from crewscore.services.crew_score_service import GroupTheme, load_group_theme, tier_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BoardEntry:
    member_id: str
    full_name: str
    avatar_url: str | None
    tier_level: int
    tier_name: str
    rank: int
    attendance_rate: int
    events_attended: int
    events_available: int
    spirit_points_this_month: int


@dataclass(frozen=True, slots=True)
class CurrentMemberEntry(BoardEntry):
    group_avg_rate: int
    compared_to_average: int  # percentage points, +/-


@dataclass(frozen=True, slots=True)
class MonthlyBoard:
    top_ten: list[BoardEntry]
    members_below_top_ten: int
    current_member_entry: CurrentMemberEntry | None
    group_avg_rate: int
    month: str  # YYYY-MM
    total_qualifying_members: int


@dataclass(frozen=True, slots=True)
class _MemberRow:
    member_id: str
    joined_at: datetime | None
    full_name: str | None
    avatar_url: str | None


# ---------------------------------------------------------------------------
# Sync loaders
# ---------------------------------------------------------------------------
def load_month_events(
    engine: Engine, group_id: str, start: datetime, end: datetime
) -> dict[str, datetime]:
    with get_session(engine) as session:
        rows = session.execute(
            select(Event.id, Event.starts_at).where(
                Event.group_id == group_id,
                Event.starts_at >= start,
                Event.starts_at < end,
            )
        ).all()
        return {eid: starts for eid, starts in rows}


def _load_members(engine: Engine, group_id: str) -> list[_MemberRow]:
    with get_session(engine) as session:
        rows = session.execute(
            select(GroupMember.user_id, GroupMember.joined_at, Profile.full_name, Profile.avatar_url)
            .outerjoin(Profile, Profile.id == GroupMember.user_id)
            .where(
                GroupMember.group_id == group_id,
                GroupMember.status == MemberStatus.APPROVED.value,
            )
        ).all()
        return [_MemberRow(*row) for row in rows]


def _load_board_stats(engine: Engine, group_id: str) -> dict[str, tuple[int, int, bool]]:
    """member id → (crew score, spirit this month, hidden)."""
    with get_session(engine) as session:
        rows = session.execute(
            select(
                MemberStats.user_id,
                MemberStats.crew_score,
                MemberStats.spirit_points_this_month,
                MemberStats.hide_from_monthly_board,
            ).where(MemberStats.group_id == group_id)
        ).all()
        return {
            uid: (score or 0, spirit or 0, bool(hidden))
            for uid, score, spirit, hidden in rows
        }


def load_check_ins(engine: Engine, event_ids: list[str]) -> dict[str, set[str]]:
    """member id → ids of *event_ids* they checked into."""
    with get_session(engine) as session:
        rows = session.execute(
            select(Rsvp.user_id, Rsvp.event_id).where(
                Rsvp.event_id.in_(event_ids),
                Rsvp.checked_in_at.is_not(None),
            )
        ).all()
    result: dict[str, set[str]] = {}
    for uid, eid in rows:
        result.setdefault(uid, set()).add(eid)
    return result


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------
def _entry(
    row: RankedRow,
    member: _MemberRow | None,
    crew_score: int,
    theme: GroupTheme | None,
) -> BoardEntry:
    tier = tier_for(crew_score, theme)
    return BoardEntry(
        member_id=row.member_id,
        full_name=(member.full_name if member and member.full_name else FALLBACK_MEMBER_NAME),
        avatar_url=member.avatar_url if member else None,
        tier_level=tier.level,
        tier_name=tier.name,
        rank=row.rank,
        attendance_rate=row.attendance_rate,
        events_attended=row.events_attended,
        events_available=row.events_available,
        spirit_points_this_month=row.spirit_points_this_month,
    )


async def get_monthly_board_data(
    ctx: ServiceContext,
    group_id: str,
    requesting_member_id: str,
    *,
    now: datetime | None = None,
) -> MonthlyBoard:
    """This month's attendance board plus the requester's own standing."""
    now = as_utc(now) or utcnow()
    start, end = month_bounds(now)
    month = month_key(now)

    events, members, stats, theme = await asyncio.gather(
        run_db(load_month_events, ctx.engine, group_id, start, end),
        run_db(_load_members, ctx.engine, group_id),
        run_db(_load_board_stats, ctx.engine, group_id),
        run_db(load_group_theme, ctx.engine, group_id),
    )
    if not events:
        return MonthlyBoard([], 0, None, 0, month, 0)

    check_ins = await run_db(load_check_ins, ctx.engine, list(events))

    candidates = [
        BoardCandidate(
            member_id=m.member_id,
            joined_at=m.joined_at,
            spirit_points_this_month=stats.get(m.member_id, (0, 0, False))[1],
            hidden=stats.get(m.member_id, (0, 0, False))[2],
        )
        for m in members
    ]
    ranked = rank_members(events, candidates, check_ins)
    avg = group_average(ranked)
    by_id = {m.member_id: m for m in members}

    def build(row: RankedRow) -> BoardEntry:
        return _entry(row, by_id.get(row.member_id), stats.get(row.member_id, (0, 0, False))[0], theme)

    current = None
    mine = next((r for r in ranked if r.member_id == requesting_member_id), None)
    if mine is not None:
        base = build(mine)
        current = CurrentMemberEntry(
            **{f: getattr(base, f) for f in BoardEntry.__dataclass_fields__},
            group_avg_rate=avg,
            compared_to_average=base.attendance_rate - avg,
        )

    return MonthlyBoard(
        top_ten=[build(r) for r in ranked[:TOP_N]],
        members_below_top_ten=max(0, len(ranked) - TOP_N),
        current_member_entry=current,
        group_avg_rate=avg,
        month=month,
        total_qualifying_members=len(ranked),
    )
