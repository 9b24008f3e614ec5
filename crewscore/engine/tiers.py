"""
crewscore.engine.tiers — Tier Brackets & Themes
================================================

Maps a 0–1000 Crew Score onto one of five tier levels, and the level onto a
display name from the group's theme.  A group either picks a preset theme
or supplies exactly five custom names.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from crewscore.constants import round_half_up

# (min, max, level), inclusive on both ends
TIER_THRESHOLDS: tuple[tuple[int, int, int], ...] = (
    (0, 199, 1),
    (200, 399, 2),
    (400, 699, 3),
    (700, 899, 4),
    (900, 1000, 5),
)

TIER_THEMES: dict[str, tuple[str, str, str, str, str]] = {
    "generic": ("Newcomer", "Regular", "Dedicated", "Veteran", "Legend"),
    "running": ("Rookie", "Pacer", "Racer", "Marathoner", "Ultra"),
    "cycling": ("Stabiliser", "Sprinter", "Climber", "Peloton", "Maillot"),
    "hiking": ("Rambler", "Trekker", "Pathfinder", "Summiteer", "Mountaineer"),
    "book_club": ("Browser", "Reader", "Bookworm", "Curator", "Librarian"),
    "knitting": ("Caster-on", "Stitcher", "Knitter", "Artisan", "Master"),
    "yoga": ("Beginner", "Student", "Practitioner", "Yogi", "Guru"),
    "football": ("Sub", "Starter", "Playmaker", "Captain", "Legend"),
    "social": ("Newbie", "Regular", "Connector", "Influencer", "Icon"),
    "volunteering": ("Helper", "Supporter", "Champion", "Leader", "Hero"),
    "photography": ("Snapper", "Shooter", "Photographer", "Artist", "Visionary"),
}

CUSTOM_THEME = "custom"


@dataclass(frozen=True, slots=True)
class TierInfo:
    level: int
    name: str
    threshold: int  # lowest score in this tier


def get_member_tier(
    score: float,
    theme: str | None = None,
    custom_names: Sequence[str] | None = None,
) -> TierInfo:
    """Resolve *score* to a tier under *theme*.

    The score is rounded and clamped to ``[0, 1000]`` first.  A ``custom``
    theme needs exactly five names; anything else (including unknown
    preset names) falls back to the generic theme.
    """
    clamped = max(0, min(1000, round_half_up(score)))
    low, level = next((lo, lvl) for lo, hi, lvl in TIER_THRESHOLDS if lo <= clamped <= hi)

    if theme == CUSTOM_THEME and custom_names is not None and len(custom_names) == 5:
        return TierInfo(level, str(custom_names[level - 1]), low)

    names = TIER_THEMES.get(theme or "generic", TIER_THEMES["generic"])
    return TierInfo(level, names[level - 1], low)
