"""
tests/test_runtime.py — Background Tasks, Collaborators & CLI
==============================================================
The fire-and-forget registry, the default notifier/chat poster, the
notification isolation helper and the ``python -m crewscore`` entry point.
"""

from __future__ import annotations

import asyncio
import logging

import pytest
from sqlalchemy import create_engine, func, select

from conftest import RecordingNotifier, make_channel, make_group, run_async
from crewscore.__main__ import build_parser, main
from crewscore.database.engine import create_db_engine, get_session, init_db, run_db
from crewscore.database.models import Badge, Message
from crewscore.services.background import BackgroundTasks
from crewscore.services.notifications import (
    DatabaseChatPoster,
    LoggingNotifier,
    NotificationPayload,
    send_quietly,
)

PAYLOAD = NotificationPayload(title="Hi", body="Body", url="https://crew.test/g/x")


# ===========================================================================
# Test: BackgroundTasks
# ===========================================================================
class TestBackgroundTasks:

    def test_drain_waits_for_nested_spawns(self):
        done: list[str] = []
        tasks = BackgroundTasks()

        async def child():
            await asyncio.sleep(0)
            done.append("child")

        async def parent():
            done.append("parent")
            tasks.spawn(child(), name="child")

        async def scenario():
            tasks.spawn(parent(), name="parent")
            await tasks.drain()

        run_async(scenario())
        assert done == ["parent", "child"]
        assert len(tasks) == 0

    def test_failures_are_logged_not_raised(self, caplog):
        tasks = BackgroundTasks()

        async def explode():
            raise RuntimeError("kaboom")

        async def scenario():
            tasks.spawn(explode(), name="explode")
            await tasks.drain()

        with caplog.at_level(logging.ERROR, logger="crewscore.services.background"):
            run_async(scenario())

        assert "Background task explode failed" in caplog.text
        assert "kaboom" in caplog.text


# ===========================================================================
# Test: collaborators
# ===========================================================================
class TestCollaborators:

    def test_send_quietly_reports_failure(self, caplog):
        notifier = RecordingNotifier(fail_for={"ana"})

        with caplog.at_level(logging.ERROR):
            ok = run_async(send_quietly(notifier, "ana", PAYLOAD, "badge_celebration"))
            delivered = run_async(send_quietly(notifier, "ben", PAYLOAD, "badge_celebration"))

        assert (ok, delivered) == (False, True)
        assert [member_id for member_id, _, _ in notifier.sent] == ["ben"]
        assert "Notification to ana (badge_celebration) failed" in caplog.text

    def test_logging_notifier(self, caplog):
        with caplog.at_level(logging.INFO, logger="crewscore.services.notifications"):
            run_async(LoggingNotifier().send_to_member("ana", PAYLOAD, "health_alert"))
        assert "Notify ana [health_alert]: Hi" in caplog.text

    def test_database_chat_poster(self, db_engine):
        make_group(db_engine, "g1")
        make_channel(db_engine, "g1", "news")

        run_async(DatabaseChatPoster(db_engine).post_system_message("news", "Hello crew"))

        with get_session(db_engine) as session:
            message = session.scalar(select(Message))
            assert (message.channel_id, message.content) == ("news", "Hello crew")
            assert message.content_type == "system"
            assert message.sender_id is None


# ===========================================================================
# Test: engine factory and CLI
# ===========================================================================
class TestEntryPoint:

    def test_engine_requires_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(RuntimeError, match="DATABASE_URL is not set"):
            create_db_engine()

    def test_main_without_database_url_exits_1(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert main(["seed"]) == 1

    def test_seed_creates_catalogue(self, tmp_path, monkeypatch):
        url = f"sqlite:///{tmp_path / 'cli.db'}"
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DATABASE_URL", url)

        assert main(["seed"]) == 0

        engine = create_engine(url)
        with get_session(engine) as session:
            assert session.scalar(select(func.count(Badge.id))) == 17
        engine.dispose()

    def test_monthly_reset_command(self, tmp_path, monkeypatch):
        url = f"sqlite:///{tmp_path / 'cli.db'}"
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DATABASE_URL", url)

        assert main(["monthly-reset"]) == 0

    def test_parser(self):
        args = build_parser().parse_args(["streak-breaks", "e1", "g1"])
        assert (args.command, args.event_id, args.group_id) == ("streak-breaks", "e1", "g1")
        assert args.config == "config.yaml"

    def test_sqlite_engine_serves_worker_threads(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'local.db'}")
        assert init_db(engine) == 17

        def count_badges(engine) -> int:
            with get_session(engine) as session:
                return session.scalar(select(func.count(Badge.id)))

        assert run_async(run_db(count_badges, engine)) == 17
        assert init_db(engine) == 0
        engine.dispose()
