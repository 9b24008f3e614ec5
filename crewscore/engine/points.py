"""
crewscore.engine.points — Spirit Point Rules
=============================================

Action table and weekly cap evaluation for the points ledger.
Pure calculation: the service layer sums the week's log rows and asks
:func:`evaluate_award` whether one more action fits.

Checks run in a fixed order:
  unknown action → global weekly cap (100) → per-action weekly cap
"""

from __future__ import annotations

from dataclasses import dataclass

from crewscore.database.models import ActionType

GLOBAL_WEEKLY_CAP = 100


@dataclass(frozen=True, slots=True)
class ActionRule:
    """Base points for one action and its weekly cap (``None`` = no limit)."""

    points: int
    weekly_cap: int | None


ACTION_RULES: dict[str, ActionRule] = {
    ActionType.EVENT_ATTENDANCE: ActionRule(20, None),
    ActionType.WEATHER_BONUS: ActionRule(5, None),
    ActionType.FIRST_RSVP: ActionRule(10, 10),
    ActionType.EVENT_CHAT_POST: ActionRule(3, 15),
    ActionType.PHOTO_UPLOAD: ActionRule(5, 20),
    ActionType.CO_ORGANISE: ActionRule(25, 25),
    ActionType.WELCOME_DM: ActionRule(5, 15),
    ActionType.FLYER_SHARE: ActionRule(5, 15),
    ActionType.GUEST_CONVERSION: ActionRule(30, None),
}


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AwardResult:
    """Outcome of one award attempt.

    ``reason`` is one of ``unknown_action``, ``weekly_cap_reached``,
    ``action_cap_reached`` or ``insert_failed`` when ``awarded`` is False.
    ``total_this_week`` is the global weekly total after the attempt.
    """

    awarded: bool
    points: int
    total_this_week: int
    reason: str | None = None


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
def points_for(action_type: str, points_override: int | None = None) -> int | None:
    """Points an action is worth, or ``None`` for an unknown action."""
    rule = ACTION_RULES.get(action_type)
    if rule is None:
        return None
    return rule.points if points_override is None else points_override


def evaluate_award(
    action_type: str,
    week_total: int,
    action_week_total: int,
    points_override: int | None = None,
) -> AwardResult:
    """Decide whether an award fits under the caps.

    A positive result here means "insert it"; the service layer turns a
    failed insert into ``insert_failed``.
    """
    points = points_for(action_type, points_override)
    if points is None:
        return AwardResult(False, 0, 0, "unknown_action")

    if week_total + points > GLOBAL_WEEKLY_CAP:
        return AwardResult(False, 0, week_total, "weekly_cap_reached")

    cap = ACTION_RULES[action_type].weekly_cap
    if cap is not None and action_week_total + points > cap:
        return AwardResult(False, 0, week_total, "action_cap_reached")

    return AwardResult(True, points, week_total + points)
