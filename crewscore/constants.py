"""
crewscore.constants — Shared Constants & Helpers
=================================================

Single source of truth for presentation constants (labels, emoji, pillar
colours) and the rounding rule every score uses.  Import from here instead
of duplicating in services.
"""

from __future__ import annotations

import math

# ---------------------------------------------------------------------------
# Spirit point action labels (used by the My Stats breakdown)
# ---------------------------------------------------------------------------
ACTION_LABELS: dict[str, str] = {
    "event_attendance": "Event attendance",
    "weather_bonus": "Weather bonus",
    "first_rsvp": "First to RSVP",
    "event_chat_post": "Event chat",
    "photo_upload": "Photo uploads",
    "co_organise": "Co-organising",
    "welcome_dm": "Welcome DMs",
    "flyer_share": "Flyer sharing",
    "guest_conversion": "Guest conversions",
}


# ---------------------------------------------------------------------------
# Pillar presentation (label, emoji, weight label, colour)
# ---------------------------------------------------------------------------
PILLAR_STYLE: dict[str, tuple[str, str, str, str]] = {
    "loyalty": ("Loyalty", "\U0001f3af", "40%", "#0D7377"),         # 🎯
    "spirit": ("Spirit", "✨", "30%", "#C9982A"),                # ✨
    "adventure": ("Adventure", "⚡", "15%", "#7C3AED"),          # ⚡
    "legacy": ("Legacy", "\U0001f3db️", "15%", "#059669"),      # 🏛️
}


# ---------------------------------------------------------------------------
# Hall of fame presentation
# ---------------------------------------------------------------------------
RECORD_STYLE: dict[str, tuple[str, str]] = {
    "most_events": ("Most Events Attended", "\U0001f3af"),      # 🎯
    "highest_rate": ("Highest Attendance Rate", "\U0001f4ca"),  # 📊
    "most_in_month": ("Most Events in a Month", "\U0001f4c5"),  # 📅
    "longest_streak": ("Longest Streak", "\U0001f525"),         # 🔥
    "most_converts": ("Most Guests Converted", "\U0001f517"),   # 🔗
    "top_founder": ("Top Founding Member", "\U0001f451"),       # 👑
}

VACANT = "—"  # shown when a record or name is unavailable

FALLBACK_MEMBER_NAME = "Member"


# ---------------------------------------------------------------------------
# Rounding — THE single canonical rule for displayed/persisted scores
# ---------------------------------------------------------------------------
def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives.

    Python's built-in :func:`round` uses banker's rounding (``round(2.5) ==
    2``); scores and percentages are always rounded half-up instead.
    """
    return int(math.floor(value + 0.5))
