"""
crewscore.database.seed — Default Badge Catalogue Seeder
=========================================================

Badges seeded on first startup so a new deployment awards something from
the first check-in.

Idempotent: rows are matched by slug and only missing slugs are inserted.
Badges edited by admins later are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select

from crewscore.database.engine import get_session
from crewscore.database.models import Badge

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default badge catalogue
# ---------------------------------------------------------------------------
DEFAULT_BADGES: list[dict] = [
    # Attendance milestones
    {"slug": "first-event", "name": "First Steps", "emoji": "\U0001f463",
     "category": "attendance", "description": "Attended your first event",
     "criteria": {"type": "events_attended", "value": 1}},
    {"slug": "five-events", "name": "Regular", "emoji": "\U0001f5d3️",
     "category": "attendance", "description": "Attended 5 events",
     "criteria": {"type": "events_attended", "value": 5}},
    {"slug": "ten-events", "name": "Double Digits", "emoji": "\U0001f51f",
     "category": "attendance", "description": "Attended 10 events",
     "criteria": {"type": "events_attended", "value": 10}},
    {"slug": "twenty-five-events", "name": "Quarter Century", "emoji": "\U0001f948",
     "category": "attendance", "description": "Attended 25 events",
     "criteria": {"type": "events_attended", "value": 25}},
    {"slug": "fifty-events", "name": "Half Century", "emoji": "\U0001f947",
     "category": "attendance", "description": "Attended 50 events",
     "criteria": {"type": "events_attended", "value": 50}},
    {"slug": "hundred-events", "name": "Centurion", "emoji": "\U0001f4af",
     "category": "attendance", "description": "Attended 100 events",
     "criteria": {"type": "events_attended", "value": 100}},
    {"slug": "reliable", "name": "Reliable", "emoji": "\U0001f3af",
     "category": "attendance", "description": "90% attendance rate over at least 10 events",
     "criteria": {"type": "attendance_rate", "value": 90, "min_events": 10}},

    # Community
    {"slug": "chatterbox", "name": "Chatterbox", "emoji": "\U0001f4ac",
     "category": "community", "description": "Sent 100 messages",
     "criteria": {"type": "messages_sent", "value": 100}},
    {"slug": "cheerleader", "name": "Cheerleader", "emoji": "\U0001f4e3",
     "category": "community", "description": "Gave 50 reactions",
     "criteria": {"type": "reactions_given", "value": 50}},
    {"slug": "recruiter", "name": "Recruiter", "emoji": "\U0001f91d",
     "category": "community", "description": "Converted 3 guests into members",
     "criteria": {"type": "guest_converts", "value": 3}},
    {"slug": "welcome-committee", "name": "Welcome Committee", "emoji": "\U0001f44b",
     "category": "community", "description": "Sent 5 welcome messages to new members",
     "criteria": {"type": "spirit_log", "action": "welcome_dm", "value": 5}},
    {"slug": "shutterbug", "name": "Shutterbug", "emoji": "\U0001f4f8",
     "category": "community", "description": "Uploaded 10 event photos",
     "criteria": {"type": "spirit_log", "action": "photo_upload", "value": 10}},

    # Streaks
    {"slug": "streak-3", "name": "Hat Trick", "emoji": "\U0001f525",
     "category": "streak", "description": "Attended 3 events in a row",
     "criteria": {"type": "current_streak", "value": 3}},
    {"slug": "streak-5", "name": "On Fire", "emoji": "⚡",
     "category": "streak", "description": "Attended 5 events in a row",
     "criteria": {"type": "current_streak", "value": 5}},
    {"slug": "streak-10", "name": "Unstoppable", "emoji": "\U0001f680",
     "category": "streak", "description": "Attended 10 events in a row",
     "criteria": {"type": "current_streak", "value": 10}},

    # Legacy
    {"slug": "one-year", "name": "One Year In", "emoji": "\U0001f382",
     "category": "legacy", "description": "Member for 365 days",
     "criteria": {"type": "tenure_days", "value": 365}},
    {"slug": "founding-member", "name": "Founding Member", "emoji": "\U0001f3db️",
     "category": "legacy", "description": "Joined within 30 days of the group starting",
     "criteria": {"type": "founding_member"}},
]


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_badges(engine: Engine) -> int:
    """Insert catalogue badges whose slug doesn't exist yet.

    Returns the number of rows inserted.
    """
    with get_session(engine) as session:
        existing = set(session.scalars(select(Badge.slug)).all())
        inserted = 0
        for entry in DEFAULT_BADGES:
            if entry["slug"] in existing:
                continue
            session.add(Badge(**entry))
            inserted += 1

    if inserted:
        logger.info("Seeded %d default badges.", inserted)
    return inserted
