"""Initial crewscore schema

Platform tables the engine reads (profiles, groups, membership, events,
RSVPs, chat, photos, ratings) plus the engine-owned tables: member_stats,
spirit_points_log, badges, badge_awards and group_health_scores.

Revision ID: 3c1f0a7d9b21
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "3c1f0a7d9b21"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name: str, nullable: bool = True, default_now: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.func.now() if default_now else None,
    )


def upgrade() -> None:
    # --- Platform tables ---
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("avatar_url", sa.String(500)),
    )
    op.create_table(
        "groups",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("tier_theme", sa.String(30), nullable=False, server_default="generic"),
        sa.Column("custom_tier_names", postgresql.JSONB()),
        sa.Column("badge_announcements_enabled", sa.Boolean(), server_default=sa.true()),
        _ts("created_at", default_now=True),
    )
    op.create_table(
        "group_members",
        sa.Column("group_id", sa.String(36),
                  sa.ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.String(36),
                  sa.ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("status", sa.String(20), nullable=False, server_default="approved"),
        _ts("joined_at"),
        sa.Column("member_number", sa.Integer()),
    )
    op.create_index("ix_group_members_group_status", "group_members", ["group_id", "status"])

    op.create_table(
        "events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("group_id", sa.String(36),
                  sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        _ts("starts_at", nullable=False),
        sa.Column("created_by", sa.String(36)),
    )
    op.create_index("ix_events_group_starts", "events", ["group_id", "starts_at"])

    op.create_table(
        "rsvps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36),
                  sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="going"),
        _ts("checked_in_at"),
        sa.UniqueConstraint("event_id", "user_id", name="uq_rsvps_event_user"),
    )
    op.create_index("ix_rsvps_event_status", "rsvps", ["event_id", "status"])

    op.create_table(
        "channels",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("group_id", sa.String(36),
                  sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
    )
    op.create_index("ix_channels_group_type", "channels", ["group_id", "type"])

    op.create_table(
        "messages",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("channel_id", sa.String(36),
                  sa.ForeignKey("channels.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sender_id", sa.String(36)),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("content_type", sa.String(20), nullable=False, server_default="text"),
        _ts("created_at", default_now=True),
    )
    op.create_table(
        "event_photos",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36),
                  sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("is_hidden", sa.Boolean(), server_default=sa.false()),
        _ts("created_at", default_now=True),
    )
    op.create_table(
        "event_ratings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36),
                  sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        _ts("created_at", default_now=True),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_ratings_event_user"),
    )

    # --- Engine-owned tables ---
    op.create_table(
        "member_stats",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("group_id", sa.String(36),
                  sa.ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("events_attended", sa.Integer(), server_default="0"),
        sa.Column("events_available", sa.Integer(), server_default="0"),
        sa.Column("attendance_rate", sa.Float(), server_default="0"),
        sa.Column("current_streak", sa.Integer(), server_default="0"),
        sa.Column("best_streak", sa.Integer(), server_default="0"),
        sa.Column("last_attended_event_id", sa.String(36)),
        _ts("last_attended_at"),
        sa.Column("messages_sent", sa.Integer(), server_default="0"),
        sa.Column("reactions_given", sa.Integer(), server_default="0"),
        sa.Column("guest_converts", sa.Integer(), server_default="0"),
        sa.Column("spirit_points_total", sa.Integer(), server_default="0"),
        sa.Column("spirit_points_this_month", sa.Integer(), server_default="0"),
        sa.Column("hide_from_monthly_board", sa.Boolean(), server_default=sa.false()),
        sa.Column("private_score", sa.Boolean(), server_default=sa.false()),
        sa.Column("crew_score", sa.Integer(), server_default="0"),
        sa.Column("tier", sa.String(50)),
        sa.Column("loyalty_score", sa.Integer(), server_default="0"),
        sa.Column("spirit_score", sa.Integer(), server_default="0"),
        sa.Column("adventure_score", sa.Integer(), server_default="0"),
        sa.Column("legacy_score", sa.Integer(), server_default="0"),
        _ts("last_calculated_at"),
    )
    op.create_index("ix_member_stats_group", "member_stats", ["group_id"])

    op.create_table(
        "spirit_points_log",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("group_id", sa.String(36),
                  sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("action_type", sa.String(30), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("reference_id", sa.String(36)),
        sa.Column("week_start", sa.Date(), nullable=False),
        _ts("created_at", default_now=True),
    )
    op.create_index(
        "ix_spirit_log_user_group_week", "spirit_points_log",
        ["user_id", "group_id", "week_start"],
    )
    op.create_index("ix_spirit_log_group_created", "spirit_points_log", ["group_id", "created_at"])

    op.create_table(
        "badges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(60), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("emoji", sa.String(16), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.String(30), nullable=False, server_default="general"),
        sa.Column("criteria", postgresql.JSONB()),
    )
    op.create_table(
        "badge_awards",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("group_id", sa.String(36),
                  sa.ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("badge_id", sa.String(36),
                  sa.ForeignKey("badges.id", ondelete="CASCADE"), primary_key=True),
        _ts("awarded_at", default_now=True),
        _ts("announced_at"),
    )
    op.create_table(
        "group_health_scores",
        sa.Column("group_id", sa.String(36),
                  sa.ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("signal_attendance", sa.Integer(), server_default="0"),
        sa.Column("signal_retention", sa.Integer(), server_default="0"),
        sa.Column("signal_frequency", sa.Integer(), server_default="0"),
        sa.Column("signal_growth", sa.Integer(), server_default="0"),
        sa.Column("signal_engagement", sa.Integer(), server_default="0"),
        sa.Column("previous_score", sa.Integer()),
        _ts("calculated_at", default_now=True),
    )


def downgrade() -> None:
    for table in (
        "group_health_scores",
        "badge_awards",
        "badges",
        "spirit_points_log",
        "member_stats",
        "event_ratings",
        "event_photos",
        "messages",
        "channels",
        "rsvps",
        "events",
        "group_members",
        "groups",
        "profiles",
    ):
        op.drop_table(table)
