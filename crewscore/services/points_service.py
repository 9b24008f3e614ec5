"""
crewscore.services.points_service — Spirit Point Ledger
========================================================

Writes to ``spirit_points_log`` and keeps the running spirit counters on
``member_stats`` in step.  The cap check reads the week's totals and the
insert follows in the same transaction without a lock, so two concurrent
awards for the same member can both pass the check.  That overshoot is an
accepted soft bound; badge uniqueness, by contrast, is a hard constraint
(see :mod:`crewscore.services.badge_service`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from crewscore.constants import ACTION_LABELS
from crewscore.database.engine import get_session, run_db
from crewscore.database.models import MemberStats, SpiritPointsLog
from crewscore.engine.periods import as_utc, month_bounds, utcnow, week_start
from crewscore.engine.points import AwardResult, evaluate_award, points_for
from crewscore.services.context import ServiceContext

logger = logging.getLogger(__name__)

ENGAGEMENT_COUNTERS: dict[str, str] = {
    "message": "messages_sent",
    "reaction": "reactions_given",
}


@dataclass(frozen=True, slots=True)
class SpiritBreakdownItem:
    action_type: str
    label: str
    points: int


# ---------------------------------------------------------------------------
# Stats row helper (shared with the streak and badge services)
# ---------------------------------------------------------------------------
def new_member_stats(member_id: str, group_id: str) -> MemberStats:
    """Fresh stats row with every counter explicitly zeroed."""
    return MemberStats(
        user_id=member_id,
        group_id=group_id,
        events_attended=0,
        events_available=0,
        attendance_rate=0.0,
        current_streak=0,
        best_streak=0,
        messages_sent=0,
        reactions_given=0,
        guest_converts=0,
        spirit_points_total=0,
        spirit_points_this_month=0,
        hide_from_monthly_board=False,
        private_score=False,
        crew_score=0,
        loyalty_score=0,
        spirit_score=0,
        adventure_score=0,
        legacy_score=0,
    )


def get_or_create_stats(session: Session, member_id: str, group_id: str) -> MemberStats:
    """Load the member's stats row, creating it on first use.

    A concurrent creator can win the race on the primary key; the SAVEPOINT
    keeps the outer transaction alive and the winner's row is re-read.
    """
    stats = session.get(MemberStats, (member_id, group_id))
    if stats is not None:
        return stats
    stats = new_member_stats(member_id, group_id)
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(stats)
            session.flush()
    except IntegrityError:
        stats = session.get(MemberStats, (member_id, group_id), populate_existing=True)
    return stats


# ---------------------------------------------------------------------------
# Sync helpers (run via run_db)
# ---------------------------------------------------------------------------
def _week_totals(
    session: Session, member_id: str, group_id: str, action_type: str, week: date
) -> tuple[int, int]:
    base = (
        SpiritPointsLog.user_id == member_id,
        SpiritPointsLog.group_id == group_id,
        SpiritPointsLog.week_start == week,
    )
    week_total = session.scalar(
        select(func.coalesce(func.sum(SpiritPointsLog.points), 0)).where(*base)
    )
    action_total = session.scalar(
        select(func.coalesce(func.sum(SpiritPointsLog.points), 0)).where(
            *base, SpiritPointsLog.action_type == action_type
        )
    )
    return int(week_total or 0), int(action_total or 0)


def _apply_award(
    session: Session,
    member_id: str,
    group_id: str,
    action_type: str,
    points: int,
    reference_id: str | None,
    now: datetime,
) -> None:
    session.add(SpiritPointsLog(
        user_id=member_id,
        group_id=group_id,
        action_type=action_type,
        points=points,
        reference_id=reference_id,
        week_start=week_start(now),
        created_at=now,
    ))
    stats = get_or_create_stats(session, member_id, group_id)
    stats.spirit_points_total += points
    stats.spirit_points_this_month += points
    session.flush()


def _award_sync(
    engine: Engine,
    member_id: str,
    group_id: str,
    action_type: str,
    reference_id: str | None,
    points_override: int | None,
    now: datetime,
) -> AwardResult:
    with Session(engine) as session:
        week_total, action_total = _week_totals(
            session, member_id, group_id, action_type, week_start(now)
        )
        decision = evaluate_award(action_type, week_total, action_total, points_override)
        if not decision.awarded:
            return decision

        try:
            _apply_award(
                session, member_id, group_id, action_type,
                decision.points, reference_id, now,
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception(
                "Spirit point insert failed for user %s in group %s (%s)",
                member_id, group_id, action_type,
            )
            return AwardResult(False, 0, week_total, "insert_failed")
    return decision


def _bump_counter(engine: Engine, member_id: str, group_id: str, column: str) -> int:
    with get_session(engine) as session:
        stats = get_or_create_stats(session, member_id, group_id)
        setattr(stats, column, getattr(stats, column) + 1)
        return getattr(stats, column)


def _reset_monthly(engine: Engine) -> int:
    with get_session(engine) as session:
        result = session.execute(
            update(MemberStats)
            .where(MemberStats.spirit_points_this_month != 0)
            .values(spirit_points_this_month=0)
        )
        return result.rowcount or 0


def _load_breakdown(
    engine: Engine, member_id: str, group_id: str, since: datetime, until: datetime
) -> list[tuple[str, int]]:
    with get_session(engine) as session:
        rows = session.execute(
            select(SpiritPointsLog.action_type, func.sum(SpiritPointsLog.points))
            .where(
                SpiritPointsLog.user_id == member_id,
                SpiritPointsLog.group_id == group_id,
                SpiritPointsLog.created_at >= since,
                SpiritPointsLog.created_at < until,
            )
            .group_by(SpiritPointsLog.action_type)
        ).all()
        return [(action, int(total or 0)) for action, total in rows]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def schedule_badge_check(
    ctx: ServiceContext, member_id: str, group_id: str, now: datetime | None = None
) -> None:
    """Fire-and-forget badge re-evaluation for one member."""
    from crewscore.services.badge_service import check_and_award_badges

    ctx.background.spawn(
        check_and_award_badges(ctx, member_id, group_id, now=now),
        name=f"badge-check:{group_id}:{member_id}",
    )


async def award_spirit_points(
    ctx: ServiceContext,
    member_id: str,
    group_id: str,
    action_type: str,
    reference_id: str | None = None,
    points_override: int | None = None,
    *,
    now: datetime | None = None,
) -> AwardResult:
    """Award spirit points for one action, subject to the weekly caps.

    Rejections come back as data (``awarded=False`` plus a reason); a
    storage failure on insert is ``insert_failed`` with nothing committed.
    On success a badge check is scheduled in the background.
    """
    if points_for(action_type, points_override) is None:
        return AwardResult(False, 0, 0, "unknown_action")

    now = as_utc(now) or utcnow()
    result = await run_db(
        _award_sync, ctx.engine, member_id, group_id, action_type,
        reference_id, points_override, now,
    )
    if result.awarded:
        logger.info(
            "Awarded %d spirit points to %s in %s for %s (week total %d)",
            result.points, member_id, group_id, action_type, result.total_this_week,
        )
        schedule_badge_check(ctx, member_id, group_id, now)
    return result


async def record_guest_conversion(
    ctx: ServiceContext,
    organiser_id: str,
    group_id: str,
    guest_user_id: str,
    *,
    now: datetime | None = None,
) -> AwardResult:
    """Credit an organiser whose guest went on to join the group."""
    now = as_utc(now) or utcnow()
    converts = await run_db(_bump_counter, ctx.engine, organiser_id, group_id, "guest_converts")
    logger.info("Guest %s converted → %s now has %d converts", guest_user_id, organiser_id, converts)

    result = await award_spirit_points(
        ctx, organiser_id, group_id, "guest_conversion", guest_user_id, now=now
    )
    if not result.awarded:
        schedule_badge_check(ctx, organiser_id, group_id, now)
    return result


async def record_engagement(
    ctx: ServiceContext,
    member_id: str,
    group_id: str,
    kind: str,
    *,
    now: datetime | None = None,
) -> int:
    """Count a chat message or reaction; returns the new counter value.

    Raises
    ------
    ValueError
        If *kind* is not ``"message"`` or ``"reaction"``.
    """
    column = ENGAGEMENT_COUNTERS.get(kind)
    if column is None:
        raise ValueError(f"Unknown engagement kind: {kind!r}")
    value = await run_db(_bump_counter, ctx.engine, member_id, group_id, column)
    schedule_badge_check(ctx, member_id, group_id, now)
    return value


async def reset_monthly_spirit_points(ctx: ServiceContext) -> int:
    """Zero every ``spirit_points_this_month``; lifetime totals are untouched."""
    count = await run_db(_reset_monthly, ctx.engine)
    logger.info("Monthly spirit reset: %d member rows cleared.", count)
    return count


async def get_spirit_breakdown(
    ctx: ServiceContext,
    member_id: str,
    group_id: str,
    *,
    now: datetime | None = None,
) -> list[SpiritBreakdownItem]:
    """This month's points per action, largest first."""
    start, end = month_bounds(as_utc(now) or utcnow())
    rows = await run_db(_load_breakdown, ctx.engine, member_id, group_id, start, end)
    items = [
        SpiritBreakdownItem(action, ACTION_LABELS.get(action, action), points)
        for action, points in rows
        if points > 0
    ]
    items.sort(key=lambda i: (-i.points, i.action_type))
    return items
