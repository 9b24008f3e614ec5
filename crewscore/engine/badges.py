"""
crewscore.engine.badges — Badge Criteria Evaluation
====================================================

Badge criteria are stored as JSON on the catalogue row and parsed here into
one small frozen dataclass per criteria type.  Each variant owns its
``is_met(ctx)`` check against a :class:`BadgeContext` snapshot, and
:func:`evaluate_badges` is a single pass over the unawarded catalogue.

This module is pure calculation — no database I/O, no notification I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Protocol

from crewscore.database.models import CriteriaType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Context — snapshot of a member's aggregates in one group
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BadgeContext:
    """Everything any criteria variant may look at.

    ``spirit_log_counts`` only holds the action types some unawarded badge
    actually asks about; missing keys count as zero.
    """

    events_attended: int = 0
    attendance_rate: float = 0.0
    messages_sent: int = 0
    reactions_given: int = 0
    guest_converts: int = 0
    best_streak: int = 0
    tenure_days: int = 0
    is_founding_member: bool = False
    spirit_log_counts: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Criteria variants
# ---------------------------------------------------------------------------
class Criteria(Protocol):
    def is_met(self, ctx: BadgeContext) -> bool: ...


@dataclass(frozen=True, slots=True)
class EventsAttended:
    value: int

    def is_met(self, ctx: BadgeContext) -> bool:
        return ctx.events_attended >= self.value


@dataclass(frozen=True, slots=True)
class AttendanceRate:
    value: float
    min_events: int = 0

    def is_met(self, ctx: BadgeContext) -> bool:
        return ctx.attendance_rate >= self.value and ctx.events_attended >= self.min_events


@dataclass(frozen=True, slots=True)
class MessagesSent:
    value: int

    def is_met(self, ctx: BadgeContext) -> bool:
        return ctx.messages_sent >= self.value


@dataclass(frozen=True, slots=True)
class ReactionsGiven:
    value: int

    def is_met(self, ctx: BadgeContext) -> bool:
        return ctx.reactions_given >= self.value


@dataclass(frozen=True, slots=True)
class GuestConverts:
    value: int

    def is_met(self, ctx: BadgeContext) -> bool:
        return ctx.guest_converts >= self.value


@dataclass(frozen=True, slots=True)
class StreakReached:
    """Checked against the *best* streak so a later reset never un-earns it."""

    value: int

    def is_met(self, ctx: BadgeContext) -> bool:
        return ctx.best_streak >= self.value


@dataclass(frozen=True, slots=True)
class TenureDays:
    value: int

    def is_met(self, ctx: BadgeContext) -> bool:
        return ctx.tenure_days >= self.value


@dataclass(frozen=True, slots=True)
class FoundingMember:
    def is_met(self, ctx: BadgeContext) -> bool:
        return ctx.is_founding_member


@dataclass(frozen=True, slots=True)
class SpiritLogCount:
    action: str
    value: int

    def is_met(self, ctx: BadgeContext) -> bool:
        return ctx.spirit_log_counts.get(self.action, 0) >= self.value


BadgeCriteria = (
    EventsAttended
    | AttendanceRate
    | MessagesSent
    | ReactionsGiven
    | GuestConverts
    | StreakReached
    | TenureDays
    | FoundingMember
    | SpiritLogCount
)

_THRESHOLD_VARIANTS: dict[str, type] = {
    CriteriaType.EVENTS_ATTENDED: EventsAttended,
    CriteriaType.MESSAGES_SENT: MessagesSent,
    CriteriaType.REACTIONS_GIVEN: ReactionsGiven,
    CriteriaType.GUEST_CONVERTS: GuestConverts,
    CriteriaType.CURRENT_STREAK: StreakReached,
    CriteriaType.TENURE_DAYS: TenureDays,
}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
def _number(raw: object) -> float | None:
    if isinstance(raw, bool) or not isinstance(raw, int | float):
        return None
    return raw


def parse_criteria(raw: Mapping | None) -> BadgeCriteria | None:
    """Turn a stored criteria dict into a typed variant.

    Unknown types and malformed payloads return ``None``; such a badge can
    never be awarded.
    """
    if not isinstance(raw, Mapping):
        return None
    kind = raw.get("type")

    if kind in _THRESHOLD_VARIANTS:
        value = _number(raw.get("value"))
        if value is None:
            return None
        return _THRESHOLD_VARIANTS[kind](value)

    if kind == CriteriaType.ATTENDANCE_RATE:
        value = _number(raw.get("value"))
        if value is None:
            return None
        min_events = _number(raw.get("min_events", 0))
        return AttendanceRate(value, int(min_events or 0))

    if kind == CriteriaType.FOUNDING_MEMBER:
        return FoundingMember()

    if kind == CriteriaType.SPIRIT_LOG:
        action = raw.get("action")
        value = _number(raw.get("value"))
        if not action or value is None:
            return None
        return SpiritLogCount(str(action), value)

    logger.debug("Unknown badge criteria type: %r", kind)
    return None


def spirit_actions_needed(criteria: Iterable[BadgeCriteria | None]) -> set[str]:
    """Distinct action types the spirit-log variants need counted."""
    return {c.action for c in criteria if isinstance(c, SpiritLogCount)}


# ---------------------------------------------------------------------------
# Evaluation pass
# ---------------------------------------------------------------------------
def evaluate_badges(
    candidates: Iterable[tuple[str, BadgeCriteria | None]],
    ctx: BadgeContext,
) -> list[str]:
    """Return the ids of candidate badges whose criteria are met.

    *candidates* are ``(badge_id, criteria)`` pairs for badges the member
    does not hold yet.
    """
    earned: list[str] = []
    for badge_id, criteria in candidates:
        if criteria is None:
            continue
        if criteria.is_met(ctx):
            earned.append(badge_id)
    return earned
