"""
tests/conftest.py — Shared Test Fixtures
=========================================

File-backed SQLite engine with every crewscore table, recording fakes for
the outbound collaborators, and small factories for platform rows.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest
from sqlalchemy import BigInteger, Engine, create_engine, event
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.ext.compiler import compiles

from crewscore.database.engine import get_session, init_db
from crewscore.database.models import (
    Channel,
    Event,
    Group,
    GroupMember,
    MemberRole,
    MemberStats,
    MemberStatus,
    Profile,
    Rsvp,
    RsvpStatus,
)
from crewscore.services.context import ServiceContext
from crewscore.services.points_service import new_member_stats

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# Also maps BigInteger → INTEGER so autoincrement works on SQLite.
# ---------------------------------------------------------------------------
_sqlite_compat_registered = False


def _register_sqlite_compat():
    global _sqlite_compat_registered
    if _sqlite_compat_registered:
        return

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _sqlite_compat_registered = True


_register_sqlite_compat()


def run_async(coro):
    """Run an async coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def at(year: int, month: int, day: int, hour: int = 19, minute: int = 0) -> datetime:
    """UTC timestamp shorthand (SQLite stores naive values, so stay in UTC)."""
    return datetime(year, month, day, hour, minute, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine(tmp_path) -> Engine:
    """SQLite file database with all tables and the default badge catalogue.

    A file (not ``:memory:``) so the worker threads behind ``run_db`` each
    get their own connection.  Transactions start with ``BEGIN IMMEDIATE``:
    SAVEPOINTs need explicit BEGINs under pysqlite, and taking the write
    lock up front makes concurrent writers wait instead of failing.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'crew.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _no_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _explicit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    init_db(engine)
    yield engine
    engine.dispose()


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------
class RecordingNotifier:
    """Notifier that keeps every push as ``(member_id, payload, category)``."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.sent: list[tuple[str, object, str]] = []
        self.fail_for = fail_for or set()

    async def send_to_member(self, member_id, payload, category) -> None:
        if member_id in self.fail_for:
            raise ConnectionError(f"push gateway refused {member_id}")
        self.sent.append((member_id, payload, str(category)))

    def for_category(self, category: str) -> list[tuple[str, object, str]]:
        return [item for item in self.sent if item[2] == str(category)]


class RecordingChat:
    def __init__(self) -> None:
        self.posts: list[tuple[str, str, str | None]] = []
        self.fail = False

    async def post_system_message(self, channel_id, content, *, sender_id=None) -> None:
        if self.fail:
            raise RuntimeError("chat unavailable")
        self.posts.append((channel_id, content, sender_id))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def chat() -> RecordingChat:
    return RecordingChat()


@pytest.fixture
def ctx(db_engine, notifier, chat) -> ServiceContext:
    return ServiceContext(engine=db_engine, notifier=notifier, chat=chat)


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
def make_group(
    engine: Engine,
    group_id: str = "g1",
    *,
    slug: str | None = None,
    name: str = "Riverside Runners",
    created_at: datetime | None = None,
    tier_theme: str = "generic",
    custom_tier_names: list[str] | None = None,
    announcements: bool = True,
) -> str:
    with get_session(engine) as session:
        session.add(Group(
            id=group_id,
            slug=slug or f"{group_id}-crew",
            name=name,
            created_at=created_at or at(2024, 1, 1, 0),
            tier_theme=tier_theme,
            custom_tier_names=custom_tier_names,
            badge_announcements_enabled=announcements,
        ))
    return group_id


def make_member(
    engine: Engine,
    group_id: str,
    user_id: str,
    *,
    full_name: str | None = None,
    joined_at: datetime | None = None,
    role: str = MemberRole.MEMBER.value,
    status: str = MemberStatus.APPROVED.value,
    member_number: int | None = None,
    avatar_url: str | None = None,
) -> str:
    with get_session(engine) as session:
        if session.get(Profile, user_id) is None:
            session.add(Profile(
                id=user_id,
                full_name=full_name if full_name is not None else f"{user_id.title()} Tester",
                avatar_url=avatar_url,
            ))
        session.add(GroupMember(
            group_id=group_id,
            user_id=user_id,
            role=role,
            status=status,
            joined_at=joined_at or at(2024, 1, 1, 12),
            member_number=member_number,
        ))
    return user_id


def make_event(
    engine: Engine, group_id: str, event_id: str, starts_at: datetime, title: str | None = None
) -> str:
    with get_session(engine) as session:
        session.add(Event(
            id=event_id, group_id=group_id, title=title or f"Run {event_id}", starts_at=starts_at
        ))
    return event_id


def make_rsvp(
    engine: Engine,
    event_id: str,
    user_id: str,
    *,
    status: str = RsvpStatus.GOING.value,
    checked_in_at: datetime | None = None,
) -> None:
    with get_session(engine) as session:
        session.add(Rsvp(
            event_id=event_id, user_id=user_id, status=status, checked_in_at=checked_in_at
        ))


def make_channel(
    engine: Engine, group_id: str, channel_id: str, channel_type: str = "announcements"
) -> str:
    with get_session(engine) as session:
        session.add(Channel(id=channel_id, group_id=group_id, name=channel_type, type=channel_type))
    return channel_id


def set_stats(engine: Engine, user_id: str, group_id: str, **values) -> None:
    """Create or update a member's stats row with explicit counter values."""
    with get_session(engine) as session:
        stats = session.get(MemberStats, (user_id, group_id))
        if stats is None:
            stats = new_member_stats(user_id, group_id)
            session.add(stats)
        for key, value in values.items():
            setattr(stats, key, value)


def get_stats(engine: Engine, user_id: str, group_id: str) -> MemberStats | None:
    with get_session(engine) as session:
        stats = session.get(MemberStats, (user_id, group_id))
        if stats is not None:
            session.expunge(stats)
        return stats
