"""
crewscore.services.streak_service — Check-in Streaks
=====================================================

Check-ins extend or restart a member's streak based on the group's own
event chronology; after an event, members who said "going" but never
checked in lose their streak.  A late check-in for an event older than
the last one attended fills the gap instead of moving the streak pointer.
Both paths keep the attendance rate current, and notify only at
meaningful thresholds and in the background.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, func, or_, select
from sqlalchemy.orm import Session

from crewscore.database.engine import get_session, run_db
from crewscore.database.models import (
    Event,
    Group,
    GroupMember,
    MemberStats,
    NotificationCategory,
    Rsvp,
    RsvpStatus,
)
from crewscore.engine.periods import as_utc, utcnow
from crewscore.engine.streaks import next_streak, should_celebrate, should_reengage
from crewscore.services.context import ServiceContext
from crewscore.services.notifications import NotificationPayload, send_quietly
from crewscore.services.points_service import get_or_create_stats, schedule_badge_check

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _CheckInOutcome:
    streak: int
    extended: bool
    group_name: str
    group_slug: str


@dataclass(frozen=True, slots=True)
class _BreakOutcome:
    event_title: str
    group_slug: str
    next_event: tuple[str, str] | None  # (id, title)
    broken: list[tuple[str, int]]       # (member id, streak before reset)


# ---------------------------------------------------------------------------
# Sync helpers (run via run_db)
# ---------------------------------------------------------------------------
def refresh_attendance(
    session: Session,
    stats: MemberStats,
    now: datetime,
    include_event_id: str | None = None,
) -> None:
    """Recount events available since joining and recompute the rate.

    Available means every group event on or after the join date that has
    started by *now*, plus *include_event_id* whatever its start.
    """
    joined_at = session.scalar(
        select(GroupMember.joined_at).where(
            GroupMember.group_id == stats.group_id, GroupMember.user_id == stats.user_id
        )
    )
    started = Event.starts_at <= now
    available_q = select(func.count(Event.id)).where(
        Event.group_id == stats.group_id,
        or_(started, Event.id == include_event_id) if include_event_id else started,
    )
    if joined_at is not None:
        available_q = available_q.where(Event.starts_at >= joined_at)
    available = session.scalar(available_q) or 0
    stats.events_available = available
    stats.attendance_rate = (
        min(100.0, stats.events_attended / available * 100) if available else 0.0
    )


def _run_ending_at(
    session: Session, member_id: str, group_id: str, latest: Event, attended: set[str]
) -> int:
    """Length of the unbroken run of attended events ending at *latest*."""
    attended = attended | set(session.scalars(
        select(Rsvp.event_id)
        .join(Event, Event.id == Rsvp.event_id)
        .where(
            Event.group_id == group_id,
            Rsvp.user_id == member_id,
            Rsvp.checked_in_at.is_not(None),
        )
    ).all())
    earlier = session.scalars(
        select(Event.id)
        .where(Event.group_id == group_id, Event.starts_at < latest.starts_at)
        .order_by(Event.starts_at.desc(), Event.id.desc())
    )
    run = 1
    for event_id in earlier:
        if event_id not in attended:
            break
        run += 1
    return run


def _check_in_sync(
    engine: Engine, member_id: str, group_id: str, event_id: str, now: datetime
) -> _CheckInOutcome | None:
    with get_session(engine) as session:
        event = session.get(Event, event_id)
        group = session.get(Group, group_id)
        if event is None or group is None or event.group_id != group_id:
            logger.warning("Check-in ignored: event %s not found in group %s", event_id, group_id)
            return None

        stats = get_or_create_stats(session, member_id, group_id)
        if stats.last_attended_event_id == event_id:
            logger.debug("Repeat check-in for %s at %s — streak unchanged", member_id, event_id)
            return None

        last = (
            session.get(Event, stats.last_attended_event_id)
            if stats.last_attended_event_id else None
        )
        previous = stats.current_streak

        if last is not None and as_utc(event.starts_at) < as_utc(last.starts_at):
            # Late check-in for an earlier event: it can only lengthen the
            # run ending at the last attended event, and a broken run stays broken.
            if previous > 0:
                run = _run_ending_at(session, member_id, group_id, last, {event_id, last.id})
                stats.current_streak = max(previous, run)
            stats.best_streak = max(stats.best_streak, stats.current_streak)
        else:
            missed = False
            if last is not None:
                missed = session.scalar(
                    select(Event.id)
                    .where(
                        Event.group_id == group_id,
                        Event.starts_at > last.starts_at,
                        Event.starts_at < event.starts_at,
                    )
                    .limit(1)
                ) is not None

            state = next_streak(
                stats.current_streak,
                stats.best_streak,
                has_previous=last is not None,
                missed_between=missed,
            )
            stats.current_streak = state.current
            stats.best_streak = state.best
            stats.last_attended_event_id = event_id
            stats.last_attended_at = now

        stats.events_attended += 1
        refresh_attendance(session, stats, now, include_event_id=event_id)

        logger.info(
            "Check-in %s @ %s → streak %d (best %d)",
            member_id, event_id, stats.current_streak, stats.best_streak,
        )
        return _CheckInOutcome(
            stats.current_streak,
            stats.current_streak > previous,
            group.name,
            group.slug,
        )


def _break_streaks_sync(
    engine: Engine, event_id: str, group_id: str, now: datetime
) -> _BreakOutcome | None:
    with get_session(engine) as session:
        event = session.get(Event, event_id)
        group = session.get(Group, group_id)
        if event is None or group is None:
            logger.warning("Streak breaks skipped: event %s / group %s not found", event_id, group_id)
            return None

        missed_ids = select(Rsvp.user_id).where(
            Rsvp.event_id == event_id,
            Rsvp.status == RsvpStatus.GOING.value,
            Rsvp.checked_in_at.is_(None),
        )
        rows = session.scalars(
            select(MemberStats).where(
                MemberStats.group_id == group_id,
                MemberStats.user_id.in_(missed_ids),
            )
        ).all()

        broken = []
        for stats in rows:
            refresh_attendance(session, stats, now, include_event_id=event_id)
            if stats.current_streak > 0:
                broken.append((stats.user_id, stats.current_streak))
                stats.current_streak = 0
        if not broken:
            return _BreakOutcome(event.title, group.slug, None, [])

        upcoming = session.execute(
            select(Event.id, Event.title)
            .where(Event.group_id == group_id, Event.starts_at > now)
            .order_by(Event.starts_at)
            .limit(1)
        ).first()

        return _BreakOutcome(
            event.title,
            group.slug,
            (upcoming.id, upcoming.title) if upcoming else None,
            broken,
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
async def update_streak_on_check_in(
    ctx: ServiceContext,
    member_id: str,
    group_id: str,
    event_id: str,
    *,
    now: datetime | None = None,
) -> None:
    """Advance the member's streak for a check-in at *event_id*.

    Side effects run in the background: a badge check always, and a
    celebration push when the new streak hits a milestone.
    """
    now = as_utc(now) or utcnow()
    outcome = await run_db(_check_in_sync, ctx.engine, member_id, group_id, event_id, now)
    if outcome is None:
        return

    schedule_badge_check(ctx, member_id, group_id, now)

    if outcome.extended and should_celebrate(outcome.streak):
        n = outcome.streak
        payload = NotificationPayload(
            title=f"{n}-event streak!",
            body=f"You’ve attended {n} events in a row in {outcome.group_name}. Keep it going!",
            url=ctx.cfg.link(f"/g/{outcome.group_slug}"),
        )
        ctx.background.spawn(
            send_quietly(ctx.notifier, member_id, payload, NotificationCategory.EVENT_REMINDER),
            name=f"streak-celebration:{member_id}",
        )


async def check_streak_breaks(
    ctx: ServiceContext,
    event_id: str,
    group_id: str,
    *,
    now: datetime | None = None,
) -> None:
    """Reset streaks of members who RSVP'd "going" to *event_id* but never
    checked in, nudging those who lost a streak of 3 or more."""
    now = as_utc(now) or utcnow()
    outcome = await run_db(_break_streaks_sync, ctx.engine, event_id, group_id, now)
    if outcome is None or not outcome.broken:
        return

    logger.info("Event %s: reset %d streak(s)", event_id, len(outcome.broken))

    for member_id, streak in outcome.broken:
        if not should_reengage(streak):
            continue
        if outcome.next_event is not None:
            next_id, next_title = outcome.next_event
            body = (
                f"Your {streak}-event streak ended — but {next_title} is coming up. "
                "One RSVP and you’re back."
            )
            url = ctx.cfg.link(f"/events/{next_id}")
        else:
            body = (
                f"Your {streak}-event streak ended — but there’s always next time. "
                "You’ve got this."
            )
            url = ctx.cfg.link(f"/g/{outcome.group_slug}")

        payload = NotificationPayload(
            title=f"Missed {outcome.event_title}? No worries.", body=body, url=url
        )
        ctx.background.spawn(
            send_quietly(ctx.notifier, member_id, payload, NotificationCategory.EVENT_REMINDER),
            name=f"streak-recovery:{member_id}",
        )
