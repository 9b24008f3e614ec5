"""
crewscore.engine.health — Group Health Signals
===============================================

Five independent signals, each rounded half-up and clamped to its own
maximum before summing to a 0–100 score:

=============  ===  ==================================================
Signal         Max  Measures
=============  ===  ==================================================
attendance      30  check-ins ÷ RSVPs over the last 10 past events
retention       25  share of 30-day-old members still approved
frequency       20  events in the trailing 90 days vs. a target of 12
growth          15  approved joins, last 30 days vs. the 30 before
engagement      10  spirit actions, photos, ratings per member
=============  ===  ==================================================
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from crewscore.constants import round_half_up

ATTENDANCE_MAX = 30
RETENTION_MAX = 25
FREQUENCY_MAX = 20
GROWTH_MAX = 15
ENGAGEMENT_MAX = 10

ATTENDANCE_EVENT_WINDOW = 10
MATURE_AFTER_DAYS = 30
FREQUENCY_WINDOW_DAYS = 90
FREQUENCY_TARGET = 12
GROWTH_WINDOW_DAYS = 30
GROWTH_RATIO_CAP = 2.0
GROWTH_NO_BASELINE_CREDIT = 0.7
ENGAGEMENT_WINDOW_DAYS = 30

# Engagement expectations per approved member over the window
SPIRIT_ACTIONS_PER_MEMBER = 3
PHOTOS_PER_MEMBER = 0.5
RATINGS_PER_MEMBER = 0.5


@dataclass(frozen=True, slots=True)
class HealthSignals:
    attendance: int = 0
    retention: int = 0
    frequency: int = 0
    growth: int = 0
    engagement: int = 0

    @property
    def total(self) -> int:
        return min(
            100,
            self.attendance + self.retention + self.frequency + self.growth + self.engagement,
        )


def _clamp(value: int, maximum: int) -> int:
    return max(0, min(maximum, value))


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------
def attendance_signal(events: Iterable[tuple[int, int]]) -> int:
    """Mean check-in ratio across events given as ``(rsvps, checked_in)``.

    Events without RSVPs are ignored; no qualifying events scores 0.
    """
    ratios = [checked / total for total, checked in events if total > 0]
    if not ratios:
        return 0
    return _clamp(round_half_up(sum(ratios) / len(ratios) * ATTENDANCE_MAX), ATTENDANCE_MAX)


def retention_signal(mature_members: int, mature_approved: int) -> int:
    """Brand-new groups (no mature members yet) get full marks."""
    if mature_members == 0:
        return RETENTION_MAX
    return _clamp(round_half_up(mature_approved / mature_members * RETENTION_MAX), RETENTION_MAX)


def frequency_signal(events_in_window: int) -> int:
    ratio = min(1.0, events_in_window / FREQUENCY_TARGET)
    return _clamp(round_half_up(ratio * FREQUENCY_MAX), FREQUENCY_MAX)


def growth_signal(recent_joins: int, previous_joins: int) -> int:
    if previous_joins > 0:
        ratio = recent_joins / previous_joins
        return _clamp(
            round_half_up(min(1.0, ratio / GROWTH_RATIO_CAP) * GROWTH_MAX), GROWTH_MAX
        )
    if recent_joins > 0:
        return round_half_up(GROWTH_NO_BASELINE_CREDIT * GROWTH_MAX)
    return 0


def engagement_signal(approved_members: int, spirit_actions: int, photos: int, ratings: int) -> int:
    if approved_members <= 0:
        return 0
    spirit_ratio = min(1.0, spirit_actions / (approved_members * SPIRIT_ACTIONS_PER_MEMBER))
    photo_ratio = min(1.0, photos / (approved_members * PHOTOS_PER_MEMBER))
    rating_ratio = min(1.0, ratings / (approved_members * RATINGS_PER_MEMBER))
    blended = spirit_ratio * 0.5 + photo_ratio * 0.25 + rating_ratio * 0.25
    return _clamp(round_half_up(blended * ENGAGEMENT_MAX), ENGAGEMENT_MAX)


# ---------------------------------------------------------------------------
# Alert rule
# ---------------------------------------------------------------------------
def score_delta(previous: int | None, score: int) -> int | None:
    return None if previous is None else score - previous


def should_alert(previous: int | None, score: int, threshold: int = 15) -> bool:
    """A drop of *threshold* or more versus the previous computation."""
    return previous is not None and previous - score >= threshold
