"""
crewscore.engine.streaks — Streak Transitions
==============================================

A streak counts consecutive *group events* attended, measured against the
group's own event cadence rather than wall-clock days.  The service layer
answers "did any group event start strictly between the last attended
event and this one?" and these helpers turn that into the new state.
"""

from __future__ import annotations

from dataclasses import dataclass

CELEBRATION_MIN = 3
REENGAGE_MIN = 3


@dataclass(frozen=True, slots=True)
class StreakState:
    current: int
    best: int


def next_streak(
    current: int,
    best: int,
    *,
    has_previous: bool,
    missed_between: bool,
) -> StreakState:
    """Streak after checking into an event.

    No previous attendance or a missed intervening event restarts at 1;
    otherwise the streak extends by one.  Best never decreases.
    """
    if not has_previous or missed_between:
        new = 1
    else:
        new = current + 1
    return StreakState(current=new, best=max(best, new))


def should_celebrate(streak: int) -> bool:
    """Milestones: every multiple of 3 from 3, and every multiple of 5 from 5."""
    if streak < CELEBRATION_MIN:
        return False
    return streak % 3 == 0 or (streak >= 5 and streak % 5 == 0)


def should_reengage(broken_streak: int) -> bool:
    """Only streaks worth mourning get a "we missed you" nudge."""
    return broken_streak >= REENGAGE_MIN
