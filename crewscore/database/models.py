"""
crewscore.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables read by the engine (owned by the wider platform):
- profiles           — Display name / avatar for enrichment
- groups             — Community groups with tier theme + announcement flag
- group_members      — Membership with role, status and join date
- events             — Group events (chronology drives streaks)
- rsvps              — RSVPs and check-ins
- channels           — Group chat channels (announcements target)
- messages           — Chat messages (system posts written by the engine)
- event_photos       — Photo uploads (engagement signal)
- event_ratings      — Post-event ratings (engagement signal)

Tables owned by the engine:
- member_stats       — Running per member×group aggregate
- spirit_points_log  — Append-only spirit point ledger with week bucket
- badges             — Badge catalogue with typed criteria (JSON)
- badge_awards       — Earned badges; PK enforces at-most-once per member
- group_health_scores — One upserted health row per group
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all crewscore ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ActionType(enum.StrEnum):
    """Spirit-point earning actions."""
    EVENT_ATTENDANCE = "event_attendance"
    WEATHER_BONUS = "weather_bonus"
    FIRST_RSVP = "first_rsvp"
    EVENT_CHAT_POST = "event_chat_post"
    PHOTO_UPLOAD = "photo_upload"
    CO_ORGANISE = "co_organise"
    WELCOME_DM = "welcome_dm"
    FLYER_SHARE = "flyer_share"
    GUEST_CONVERSION = "guest_conversion"


class CriteriaType(enum.StrEnum):
    """Discriminator for badge unlock criteria."""
    EVENTS_ATTENDED = "events_attended"
    ATTENDANCE_RATE = "attendance_rate"
    MESSAGES_SENT = "messages_sent"
    REACTIONS_GIVEN = "reactions_given"
    GUEST_CONVERTS = "guest_converts"
    CURRENT_STREAK = "current_streak"
    TENURE_DAYS = "tenure_days"
    FOUNDING_MEMBER = "founding_member"
    SPIRIT_LOG = "spirit_log"


class MemberStatus(enum.StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    LEFT = "left"
    REMOVED = "removed"


class MemberRole(enum.StrEnum):
    SUPER_ADMIN = "super_admin"
    CO_ADMIN = "co_admin"
    MEMBER = "member"


ADMIN_ROLES: frozenset[str] = frozenset({MemberRole.SUPER_ADMIN, MemberRole.CO_ADMIN})


class RsvpStatus(enum.StrEnum):
    GOING = "going"
    MAYBE = "maybe"
    NOT_GOING = "not_going"


class NotificationCategory(enum.StrEnum):
    """Categories members can opt out of in the notification dispatcher."""
    BADGE_CELEBRATION = "badge_celebration"
    EVENT_REMINDER = "event_reminder"
    HEALTH_ALERT = "health_alert"


# ---------------------------------------------------------------------------
# Profiles — display data for enrichment only
# ---------------------------------------------------------------------------
class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)

    def __repr__(self) -> str:
        return f"<Profile id={self.id} name={self.full_name!r}>"


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------
class Group(Base):
    __tablename__ = "groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    tier_theme: Mapped[str] = mapped_column(String(30), nullable=False, default="generic")
    custom_tier_names: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    badge_announcements_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    members: Mapped[list[GroupMember]] = relationship(
        back_populates="group", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Group id={self.id} slug={self.slug!r}>"


class GroupMember(Base):
    __tablename__ = "group_members"

    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=MemberRole.MEMBER.value)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MemberStatus.APPROVED.value
    )
    joined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    member_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    group: Mapped[Group] = relationship(back_populates="members")
    profile: Mapped[Profile] = relationship()

    __table_args__ = (
        Index("ix_group_members_group_status", "group_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<GroupMember group={self.group_id} user={self.user_id} status={self.status}>"


# ---------------------------------------------------------------------------
# Events, RSVPs and check-ins
# ---------------------------------------------------------------------------
class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    __table_args__ = (
        Index("ix_events_group_starts", "group_id", "starts_at"),
    )

    def __repr__(self) -> str:
        return f"<Event id={self.id} title={self.title!r} starts={self.starts_at}>"


class Rsvp(Base):
    __tablename__ = "rsvps"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RsvpStatus.GOING.value)
    checked_in_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_rsvps_event_user"),
        Index("ix_rsvps_event_status", "event_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Rsvp event={self.event_id} user={self.user_id} status={self.status}>"


# ---------------------------------------------------------------------------
# Chat — only the pieces the badge announcements touch
# ---------------------------------------------------------------------------
class Channel(Base):
    __tablename__ = "channels"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)  # general, announcements, event

    __table_args__ = (
        Index("ix_channels_group_type", "group_id", "type"),
    )

    def __repr__(self) -> str:
        return f"<Channel id={self.id} name={self.name!r} type={self.type!r}>"


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    channel_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Message id={self.id} channel={self.channel_id} type={self.content_type}>"


# ---------------------------------------------------------------------------
# Engagement artefacts (health engagement signal)
# ---------------------------------------------------------------------------
class EventPhoto(Base):
    __tablename__ = "event_photos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class EventRating(Base):
    __tablename__ = "event_ratings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_ratings_event_user"),
    )


# ---------------------------------------------------------------------------
# MemberStats — running aggregate per member×group
# ---------------------------------------------------------------------------
class MemberStats(Base):
    __tablename__ = "member_stats"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True
    )

    # Attendance
    events_attended: Mapped[int] = mapped_column(Integer, default=0)
    events_available: Mapped[int] = mapped_column(Integer, default=0)
    attendance_rate: Mapped[float] = mapped_column(Float, default=0.0)  # 0–100
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    best_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_attended_event_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    last_attended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Engagement
    messages_sent: Mapped[int] = mapped_column(Integer, default=0)
    reactions_given: Mapped[int] = mapped_column(Integer, default=0)
    guest_converts: Mapped[int] = mapped_column(Integer, default=0)
    spirit_points_total: Mapped[int] = mapped_column(Integer, default=0)
    spirit_points_this_month: Mapped[int] = mapped_column(Integer, default=0)

    # Privacy
    hide_from_monthly_board: Mapped[bool] = mapped_column(Boolean, default=False)
    private_score: Mapped[bool] = mapped_column(Boolean, default=False)

    # Crew Score snapshot (written by group recalculation)
    crew_score: Mapped[int] = mapped_column(Integer, default=0)
    tier: Mapped[str | None] = mapped_column(String(50), nullable=True)
    loyalty_score: Mapped[int] = mapped_column(Integer, default=0)
    spirit_score: Mapped[int] = mapped_column(Integer, default=0)
    adventure_score: Mapped[int] = mapped_column(Integer, default=0)
    legacy_score: Mapped[int] = mapped_column(Integer, default=0)
    last_calculated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_member_stats_group", "group_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<MemberStats user={self.user_id} group={self.group_id} "
            f"streak={self.current_streak}/{self.best_streak}>"
        )


# ---------------------------------------------------------------------------
# SpiritPointsLog — append-only ledger
# ---------------------------------------------------------------------------
class SpiritPointsLog(Base):
    __tablename__ = "spirit_points_log"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    action_type: Mapped[str] = mapped_column(String(30), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_spirit_log_user_group_week", "user_id", "group_id", "week_start"),
        Index("ix_spirit_log_group_created", "group_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SpiritPointsLog id={self.id} user={self.user_id} "
            f"action={self.action_type} points={self.points}>"
        )


# ---------------------------------------------------------------------------
# Badges — catalogue + awards
# ---------------------------------------------------------------------------
class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    slug: Mapped[str] = mapped_column(String(60), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    emoji: Mapped[str] = mapped_column(String(16), nullable=False, default="\U0001f3c5")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    category: Mapped[str] = mapped_column(String(30), nullable=False, default="general")
    criteria: Mapped[dict | None] = mapped_column(JSONB, default=dict)

    awards: Mapped[list[BadgeAward]] = relationship(back_populates="badge")

    def __repr__(self) -> str:
        return f"<Badge slug={self.slug!r}>"


class BadgeAward(Base):
    """Earned badge.  The composite primary key is the hard uniqueness
    guarantee: concurrent checks may both decide to award, only one row
    can land."""
    __tablename__ = "badge_awards"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True
    )
    badge_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("badges.id", ondelete="CASCADE"), primary_key=True
    )
    awarded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    announced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    badge: Mapped[Badge] = relationship(back_populates="awards")

    def __repr__(self) -> str:
        return f"<BadgeAward user={self.user_id} group={self.group_id} badge={self.badge_id}>"


# ---------------------------------------------------------------------------
# GroupHealthScore — one row per group, upserted on each computation
# ---------------------------------------------------------------------------
class GroupHealthScore(Base):
    __tablename__ = "group_health_scores"

    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    signal_attendance: Mapped[int] = mapped_column(Integer, default=0)
    signal_retention: Mapped[int] = mapped_column(Integer, default=0)
    signal_frequency: Mapped[int] = mapped_column(Integer, default=0)
    signal_growth: Mapped[int] = mapped_column(Integer, default=0)
    signal_engagement: Mapped[int] = mapped_column(Integer, default=0)
    previous_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<GroupHealthScore group={self.group_id} score={self.score}>"
