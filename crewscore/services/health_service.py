"""
crewscore.services.health_service — Group Health Score
=======================================================

Gathers each signal's rolling window with independent concurrent reads,
scores them, upserts the single ``group_health_scores`` row (keeping the
previous score) and alerts the group's admins on a sharp drop.  This is
the only place the engine reaches out to people unprompted.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import Engine, exists, func, select

from crewscore.database.engine import get_session, run_db
from crewscore.database.models import (
    ADMIN_ROLES,
    Event,
    EventPhoto,
    EventRating,
    Group,
    GroupHealthScore,
    GroupMember,
    MemberStatus,
    NotificationCategory,
    Rsvp,
    RsvpStatus,
    SpiritPointsLog,
)
from crewscore.engine import health
from crewscore.engine.health import HealthSignals
from crewscore.engine.periods import as_utc, utcnow
from crewscore.services.context import ServiceContext
from crewscore.services.notifications import NotificationPayload, send_quietly

logger = logging.getLogger(__name__)

_RSVP_STATUSES = (RsvpStatus.GOING.value, RsvpStatus.MAYBE.value)


@dataclass(frozen=True, slots=True)
class HealthScoreResult:
    score: int
    previous_score: int | None
    signals: HealthSignals
    delta: int | None


# ---------------------------------------------------------------------------
# Signal loaders (sync, run via run_db)
# ---------------------------------------------------------------------------
def _attendance_inputs(engine: Engine, group_id: str, now: datetime) -> list[tuple[int, int]]:
    """``(rsvps, checked_in)`` for the last 10 past events that had RSVPs."""
    has_rsvp = exists().where(Rsvp.event_id == Event.id, Rsvp.status.in_(_RSVP_STATUSES))
    with get_session(engine) as session:
        event_ids = session.scalars(
            select(Event.id)
            .where(Event.group_id == group_id, Event.starts_at < now, has_rsvp)
            .order_by(Event.starts_at.desc(), Event.id)
            .limit(health.ATTENDANCE_EVENT_WINDOW)
        ).all()
        if not event_ids:
            return []
        rows = session.execute(
            select(
                Rsvp.event_id,
                func.count(Rsvp.id),
                func.count(Rsvp.checked_in_at),
            )
            .where(Rsvp.event_id.in_(event_ids), Rsvp.status.in_(_RSVP_STATUSES))
            .group_by(Rsvp.event_id)
        ).all()
        return [(int(total), int(checked)) for _, total, checked in rows]


def _membership_rows(engine: Engine, group_id: str) -> list[tuple[str, datetime | None]]:
    with get_session(engine) as session:
        rows = session.execute(
            select(GroupMember.status, GroupMember.joined_at).where(
                GroupMember.group_id == group_id
            )
        ).all()
        return [(status, joined) for status, joined in rows]


def _events_in_window(engine: Engine, group_id: str, since: datetime, now: datetime) -> int:
    with get_session(engine) as session:
        return session.scalar(
            select(func.count(Event.id)).where(
                Event.group_id == group_id,
                Event.starts_at >= since,
                Event.starts_at < now,
            )
        ) or 0


def _engagement_counts(
    engine: Engine, group_id: str, since: datetime, now: datetime
) -> tuple[int, int, int]:
    """(spirit log entries, visible photos, ratings) over the window."""
    with get_session(engine) as session:
        spirit = session.scalar(
            select(func.count(SpiritPointsLog.id)).where(
                SpiritPointsLog.group_id == group_id,
                SpiritPointsLog.created_at >= since,
            )
        ) or 0
        recent_events = select(Event.id).where(
            Event.group_id == group_id,
            Event.starts_at >= since,
            Event.starts_at < now,
        )
        photos = session.scalar(
            select(func.count(EventPhoto.id)).where(
                EventPhoto.event_id.in_(recent_events),
                EventPhoto.is_hidden.is_(False),
            )
        ) or 0
        ratings = session.scalar(
            select(func.count(EventRating.id)).where(EventRating.event_id.in_(recent_events))
        ) or 0
        return int(spirit), int(photos), int(ratings)


def _previous_score(engine: Engine, group_id: str) -> int | None:
    with get_session(engine) as session:
        return session.scalar(
            select(GroupHealthScore.score).where(GroupHealthScore.group_id == group_id)
        )


def _upsert_score(
    engine: Engine,
    group_id: str,
    signals: HealthSignals,
    previous: int | None,
    now: datetime,
) -> None:
    with get_session(engine) as session:
        row = session.get(GroupHealthScore, group_id)
        if row is None:
            row = GroupHealthScore(group_id=group_id)
            session.add(row)
        row.score = signals.total
        row.signal_attendance = signals.attendance
        row.signal_retention = signals.retention
        row.signal_frequency = signals.frequency
        row.signal_growth = signals.growth
        row.signal_engagement = signals.engagement
        row.previous_score = previous
        row.calculated_at = now


def _alert_targets(engine: Engine, group_id: str) -> tuple[str, str, list[str]] | None:
    """(group name, slug, admin ids) or None for an unknown group."""
    with get_session(engine) as session:
        group = session.get(Group, group_id)
        if group is None:
            return None
        admins = session.scalars(
            select(GroupMember.user_id).where(
                GroupMember.group_id == group_id,
                GroupMember.role.in_([str(r) for r in ADMIN_ROLES]),
                GroupMember.status == MemberStatus.APPROVED.value,
            )
        ).all()
        return group.name, group.slug, list(admins)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------
def _membership_signals(
    rows: list[tuple[str, datetime | None]], now: datetime
) -> tuple[int, int, int]:
    """(retention, growth, approved member count) from raw membership rows."""
    mature_cutoff = now - timedelta(days=health.MATURE_AFTER_DAYS)
    recent_start = now - timedelta(days=health.GROWTH_WINDOW_DAYS)
    previous_start = now - timedelta(days=2 * health.GROWTH_WINDOW_DAYS)

    mature = mature_approved = approved = recent = previous = 0
    for status, joined in rows:
        joined = as_utc(joined)
        is_approved = status == MemberStatus.APPROVED
        approved += is_approved
        if joined is None:
            continue
        if joined <= mature_cutoff:
            mature += 1
            mature_approved += is_approved
        if is_approved and recent_start <= joined < now:
            recent += 1
        elif is_approved and previous_start <= joined < recent_start:
            previous += 1

    return (
        health.retention_signal(mature, mature_approved),
        health.growth_signal(recent, previous),
        approved,
    )


async def _send_alert(
    ctx: ServiceContext, group_id: str, before: int, after: int
) -> None:
    targets = await run_db(_alert_targets, ctx.engine, group_id)
    if targets is None:
        return
    name, slug, admins = targets
    payload = NotificationPayload(
        title=f"⚠️ Health Score alert for {name}",
        body=(
            f"Your Health Score dropped from {before} to {after}. "
            "Open the dashboard to see why."
        ),
        url=ctx.cfg.link(f"/g/{slug}/admin"),
    )
    for admin_id in admins:
        await send_quietly(ctx.notifier, admin_id, payload, NotificationCategory.HEALTH_ALERT)
    logger.warning(
        "Health score for %s dropped %d → %d; alerted %d admin(s)",
        group_id, before, after, len(admins),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
async def calculate_group_health_score(
    ctx: ServiceContext,
    group_id: str,
    *,
    now: datetime | None = None,
) -> HealthScoreResult:
    """Compute, persist and (on a sharp drop) alert on the group's health."""
    now = as_utc(now) or utcnow()
    engagement_since = now - timedelta(days=health.ENGAGEMENT_WINDOW_DAYS)
    frequency_since = now - timedelta(days=health.FREQUENCY_WINDOW_DAYS)

    attendance_rows, membership, n_events, engagement, previous = await asyncio.gather(
        run_db(_attendance_inputs, ctx.engine, group_id, now),
        run_db(_membership_rows, ctx.engine, group_id),
        run_db(_events_in_window, ctx.engine, group_id, frequency_since, now),
        run_db(_engagement_counts, ctx.engine, group_id, engagement_since, now),
        run_db(_previous_score, ctx.engine, group_id),
    )

    retention, growth, approved = _membership_signals(membership, now)
    spirit, photos, ratings = engagement
    signals = HealthSignals(
        attendance=health.attendance_signal(attendance_rows),
        retention=retention,
        frequency=health.frequency_signal(n_events),
        growth=growth,
        engagement=health.engagement_signal(approved, spirit, photos, ratings),
    )
    score = signals.total

    await run_db(_upsert_score, ctx.engine, group_id, signals, previous, now)
    logger.info("Health score for %s: %d (previous %s)", group_id, score, previous)

    if health.should_alert(previous, score, ctx.cfg.health_alert_drop):
        ctx.background.spawn(
            _send_alert(ctx, group_id, previous, score),
            name=f"health-alert:{group_id}",
        )

    return HealthScoreResult(score, previous, signals, health.score_delta(previous, score))
