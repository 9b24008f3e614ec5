"""
crewscore.services.badge_service — Badge Awards & Celebrations
===============================================================

Loads a member's aggregates, evaluates every badge they don't hold yet and
inserts the winners.  The ``badge_awards`` primary key is the hard
at-most-once guarantee: each award is inserted in its own SAVEPOINT, so a
concurrent check that got there first only discards that one row.  Only
rows actually inserted here are returned and celebrated.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from crewscore.database.engine import get_session, run_db
from crewscore.database.models import (
    Badge,
    BadgeAward,
    Channel,
    Group,
    GroupMember,
    MemberStats,
    NotificationCategory,
    Profile,
    SpiritPointsLog,
)
from crewscore.engine.badges import (
    BadgeContext,
    evaluate_badges,
    parse_criteria,
    spirit_actions_needed,
)
from crewscore.engine.periods import as_utc, is_founding_member, tenure_days, utcnow
from crewscore.services.context import ServiceContext
from crewscore.services.notifications import NotificationPayload, send_quietly

logger = logging.getLogger(__name__)

ANNOUNCEMENTS_CHANNEL = "announcements"


@dataclass(frozen=True, slots=True)
class AwardedBadge:
    badge_id: str
    slug: str
    name: str
    emoji: str


@dataclass(frozen=True, slots=True)
class _GroupInfo:
    name: str
    slug: str
    created_at: datetime | None
    announcements_enabled: bool


# ---------------------------------------------------------------------------
# Sync loaders (run via run_db, fanned out with asyncio.gather)
# ---------------------------------------------------------------------------
def _load_stats(engine: Engine, member_id: str, group_id: str) -> MemberStats | None:
    with get_session(engine) as session:
        stats = session.get(MemberStats, (member_id, group_id))
        if stats is not None:
            session.expunge(stats)
        return stats


def _load_unawarded(engine: Engine, member_id: str, group_id: str) -> list[Badge]:
    with get_session(engine) as session:
        held = select(BadgeAward.badge_id).where(
            BadgeAward.user_id == member_id, BadgeAward.group_id == group_id
        )
        badges = session.scalars(select(Badge).where(Badge.id.not_in(held))).all()
        for badge in badges:
            session.expunge(badge)
        return list(badges)


def _load_joined_at(engine: Engine, member_id: str, group_id: str) -> datetime | None:
    with get_session(engine) as session:
        return session.scalar(
            select(GroupMember.joined_at).where(
                GroupMember.group_id == group_id, GroupMember.user_id == member_id
            )
        )


def _load_group(engine: Engine, group_id: str) -> _GroupInfo | None:
    with get_session(engine) as session:
        group = session.get(Group, group_id)
        if group is None:
            return None
        return _GroupInfo(
            group.name, group.slug, group.created_at, bool(group.badge_announcements_enabled)
        )


def _count_spirit_actions(
    engine: Engine, member_id: str, group_id: str, actions: set[str]
) -> dict[str, int]:
    with get_session(engine) as session:
        rows = session.execute(
            select(SpiritPointsLog.action_type, func.count(SpiritPointsLog.id))
            .where(
                SpiritPointsLog.user_id == member_id,
                SpiritPointsLog.group_id == group_id,
                SpiritPointsLog.action_type.in_(actions),
            )
            .group_by(SpiritPointsLog.action_type)
        ).all()
        return {action: int(count) for action, count in rows}


def _insert_awards(
    engine: Engine, member_id: str, group_id: str, badge_ids: list[str], now: datetime
) -> list[str]:
    """Insert each award in its own SAVEPOINT; return the ids that landed."""
    inserted: list[str] = []
    with Session(engine) as session:
        for badge_id in badge_ids:
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(BadgeAward(
                        user_id=member_id,
                        group_id=group_id,
                        badge_id=badge_id,
                        awarded_at=now,
                    ))
                    session.flush()
            except IntegrityError:
                logger.debug("Badge %s already held by %s — skipped", badge_id, member_id)
                continue
            inserted.append(badge_id)
        session.commit()
    return inserted


def _load_announcement_target(
    engine: Engine, member_id: str, group_id: str
) -> tuple[str | None, str | None]:
    with get_session(engine) as session:
        channel_id = session.scalar(
            select(Channel.id)
            .where(Channel.group_id == group_id, Channel.type == ANNOUNCEMENTS_CHANNEL)
            .limit(1)
        )
        full_name = session.scalar(select(Profile.full_name).where(Profile.id == member_id))
        return channel_id, full_name


def _mark_announced(
    engine: Engine, member_id: str, group_id: str, badge_id: str, now: datetime
) -> None:
    with get_session(engine) as session:
        session.execute(
            update(BadgeAward)
            .where(
                BadgeAward.user_id == member_id,
                BadgeAward.group_id == group_id,
                BadgeAward.badge_id == badge_id,
            )
            .values(announced_at=now)
        )


# ---------------------------------------------------------------------------
# Celebration
# ---------------------------------------------------------------------------
def first_name(full_name: str | None) -> str:
    if not full_name or not full_name.strip():
        return "A member"
    return full_name.split()[0]


async def post_badge_announcement(
    ctx: ServiceContext, member_id: str, group_id: str, badge: AwardedBadge
) -> None:
    """Post the award to the group's announcements channel, if it has one."""
    channel_id, full_name = await run_db(
        _load_announcement_target, ctx.engine, member_id, group_id
    )
    if channel_id is None:
        return
    await ctx.chat.post_system_message(
        channel_id,
        f"{badge.emoji} {first_name(full_name)} just earned the {badge.name} badge!",
        sender_id=member_id,
    )


async def celebrate_badge(
    ctx: ServiceContext,
    member_id: str,
    group_id: str,
    badge: AwardedBadge,
    group: _GroupInfo,
    now: datetime,
) -> None:
    """Push, announcement post, then mark the award announced.

    The push is isolated by :func:`send_quietly` and the post runs as its
    own background task, so neither can keep ``announced_at`` unset.
    """
    await send_quietly(
        ctx.notifier,
        member_id,
        NotificationPayload(
            title="New badge earned!",
            body=f"You earned the {badge.emoji} {badge.name} badge in {group.name}!",
            url=ctx.cfg.link(f"/g/{group.slug}"),
        ),
        NotificationCategory.BADGE_CELEBRATION,
    )

    if group.announcements_enabled:
        ctx.background.spawn(
            post_badge_announcement(ctx, member_id, group_id, badge),
            name=f"badge-announcement:{member_id}:{badge.slug}",
        )

    await run_db(_mark_announced, ctx.engine, member_id, group_id, badge.badge_id, now)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
async def check_and_award_badges(
    ctx: ServiceContext,
    member_id: str,
    group_id: str,
    *,
    now: datetime | None = None,
) -> list[AwardedBadge]:
    """Award every badge the member newly qualifies for.

    A member without a stats row has nothing to evaluate and gets ``[]``.
    """
    now = as_utc(now) or utcnow()
    stats, unawarded, joined_at, group = await asyncio.gather(
        run_db(_load_stats, ctx.engine, member_id, group_id),
        run_db(_load_unawarded, ctx.engine, member_id, group_id),
        run_db(_load_joined_at, ctx.engine, member_id, group_id),
        run_db(_load_group, ctx.engine, group_id),
    )
    if stats is None or not unawarded:
        return []

    parsed = [(badge.id, parse_criteria(badge.criteria)) for badge in unawarded]
    actions = spirit_actions_needed(c for _, c in parsed)
    counts = (
        await run_db(_count_spirit_actions, ctx.engine, member_id, group_id, actions)
        if actions else {}
    )

    window = ctx.cfg.founding_window_days
    badge_ctx = BadgeContext(
        events_attended=stats.events_attended or 0,
        attendance_rate=float(stats.attendance_rate or 0),
        messages_sent=stats.messages_sent or 0,
        reactions_given=stats.reactions_given or 0,
        guest_converts=stats.guest_converts or 0,
        best_streak=stats.best_streak or 0,
        tenure_days=tenure_days(joined_at, now),
        is_founding_member=is_founding_member(
            joined_at, group.created_at if group else None, window
        ),
        spirit_log_counts=counts,
    )

    earned = evaluate_badges(parsed, badge_ctx)
    if not earned:
        return []

    inserted = await run_db(_insert_awards, ctx.engine, member_id, group_id, earned, now)
    by_id = {badge.id: badge for badge in unawarded}
    awarded = [
        AwardedBadge(b.id, b.slug, b.name, b.emoji)
        for b in (by_id[badge_id] for badge_id in inserted)
    ]

    for badge in awarded:
        logger.info("Badge %s awarded to %s in %s", badge.slug, member_id, group_id)
        if group is not None:
            ctx.background.spawn(
                celebrate_badge(ctx, member_id, group_id, badge, group, now),
                name=f"badge-celebration:{member_id}:{badge.slug}",
            )
    return awarded
