"""
crewscore.services.notifications — Outbound Collaborators
==========================================================

The engine never delivers anything itself.  It calls two capabilities:

- :class:`Notifier` — push a ``{title, body, url}`` payload to one member
  under a category the member may have muted.
- :class:`ChatPoster` — post a system-authored message into a channel.

Defaults: :class:`LoggingNotifier` only logs, :class:`DatabaseChatPoster`
writes a ``system`` row into ``messages`` for the chat service to fan out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import Engine

from crewscore.database.engine import get_session, run_db
from crewscore.database.models import Message

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NotificationPayload:
    title: str
    body: str
    url: str


class Notifier(Protocol):
    async def send_to_member(
        self, member_id: str, payload: NotificationPayload, category: str
    ) -> None: ...


class ChatPoster(Protocol):
    async def post_system_message(
        self, channel_id: str, content: str, *, sender_id: str | None = None
    ) -> None: ...


# ---------------------------------------------------------------------------
# Default implementations
# ---------------------------------------------------------------------------
class LoggingNotifier:
    """Notifier that records the push in the log instead of delivering it."""

    async def send_to_member(
        self, member_id: str, payload: NotificationPayload, category: str
    ) -> None:
        logger.info(
            "Notify %s [%s]: %s — %s (%s)",
            member_id, category, payload.title, payload.body, payload.url,
        )


def _insert_system_message(
    engine: Engine, channel_id: str, content: str, sender_id: str | None
) -> None:
    with get_session(engine) as session:
        session.add(Message(
            channel_id=channel_id,
            sender_id=sender_id,
            content=content,
            content_type="system",
        ))


class DatabaseChatPoster:
    """Writes system messages straight into the chat table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def post_system_message(
        self, channel_id: str, content: str, *, sender_id: str | None = None
    ) -> None:
        await run_db(_insert_system_message, self.engine, channel_id, content, sender_id)


# ---------------------------------------------------------------------------
# Isolation helper
# ---------------------------------------------------------------------------
async def send_quietly(
    notifier: Notifier, member_id: str, payload: NotificationPayload, category: str
) -> bool:
    """Send one notification; a failure is logged and reported as False."""
    try:
        await notifier.send_to_member(member_id, payload, category)
    except Exception:
        logger.exception("Notification to %s (%s) failed", member_id, category)
        return False
    return True
