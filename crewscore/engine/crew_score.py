"""
crewscore.engine.crew_score — Four-Pillar Crew Score
=====================================================

Every metric is turned into a percentile rank (0–1) across the group's
approved members, then weighted into four pillars:

=========  ====  ====================================================
Pillar     Max   Inputs (weight within pillar)
=========  ====  ====================================================
Loyalty    400   attendance rate .5, events attended .25, streak .25
Spirit     300   spirit points total .4, messages .3, reactions .3
Adventure  150   best streak .6, events attended .4
Legacy     150   tenure days .4, guest converts .4, founding bonus .2
=========  ====  ====================================================

Each pillar is rounded half-up; the Crew Score is their sum capped at 1000.
Percentiles make the score relative: a member's score can move when other
members' activity changes.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from collections.abc import Sequence
from dataclasses import dataclass

from crewscore.constants import round_half_up

LOYALTY_MAX = 400
SPIRIT_MAX = 300
ADVENTURE_MAX = 150
LEGACY_MAX = 150
CREW_SCORE_MAX = 1000

PILLAR_MAX: dict[str, int] = {
    "loyalty": LOYALTY_MAX,
    "spirit": SPIRIT_MAX,
    "adventure": ADVENTURE_MAX,
    "legacy": LEGACY_MAX,
}

LOYALTY_WEIGHTS = {"attendance_rate": 0.5, "events_attended": 0.25, "current_streak": 0.25}
SPIRIT_WEIGHTS = {"spirit_points_total": 0.4, "messages_sent": 0.3, "reactions_given": 0.3}
ADVENTURE_WEIGHTS = {"best_streak": 0.6, "events_attended": 0.4}
LEGACY_WEIGHTS = {"tenure_days": 0.4, "guest_converts": 0.4, "founding_member": 0.2}

_METRICS = (
    "attendance_rate",
    "events_attended",
    "current_streak",
    "spirit_points_total",
    "messages_sent",
    "reactions_given",
    "best_streak",
    "guest_converts",
    "tenure_days",
)


@dataclass(frozen=True, slots=True)
class MemberMetrics:
    """Raw inputs for one member (zeros for a member without stats)."""

    member_id: str
    attendance_rate: float = 0.0
    events_attended: int = 0
    current_streak: int = 0
    spirit_points_total: int = 0
    messages_sent: int = 0
    reactions_given: int = 0
    best_streak: int = 0
    guest_converts: int = 0
    tenure_days: int = 0
    is_founding_member: bool = False


@dataclass(frozen=True, slots=True)
class PillarScores:
    member_id: str
    loyalty: int
    spirit: int
    adventure: int
    legacy: int
    crew_score: int


# ---------------------------------------------------------------------------
# Percentiles
# ---------------------------------------------------------------------------
def compute_percentiles(values: Sequence[float]) -> list[float]:
    """Percentile rank of each value, ties resolved to the midpoint.

    ``(below + (equal - 1) / 2) / (n - 1)``; a group of one gets 1.0.
    """
    n = len(values)
    if n <= 1:
        return [1.0] * n
    ordered = sorted(values)
    result = []
    for value in values:
        below = bisect_left(ordered, value)
        equal = bisect_right(ordered, value) - below
        result.append((below + (equal - 1) / 2) / (n - 1))
    return result


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------
def compute_scores(members: Sequence[MemberMetrics]) -> list[PillarScores]:
    """Score every member relative to the others, preserving input order."""
    if not members:
        return []

    pct = {
        metric: compute_percentiles([getattr(m, metric) for m in members])
        for metric in _METRICS
    }

    scores = []
    for i, m in enumerate(members):
        loyalty = round_half_up(
            sum(pct[k][i] * LOYALTY_MAX * w for k, w in LOYALTY_WEIGHTS.items())
        )
        spirit = round_half_up(
            sum(pct[k][i] * SPIRIT_MAX * w for k, w in SPIRIT_WEIGHTS.items())
        )
        adventure = round_half_up(
            sum(pct[k][i] * ADVENTURE_MAX * w for k, w in ADVENTURE_WEIGHTS.items())
        )
        founding_bonus = LEGACY_MAX * LEGACY_WEIGHTS["founding_member"] if m.is_founding_member else 0
        legacy = round_half_up(
            pct["tenure_days"][i] * LEGACY_MAX * LEGACY_WEIGHTS["tenure_days"]
            + pct["guest_converts"][i] * LEGACY_MAX * LEGACY_WEIGHTS["guest_converts"]
            + founding_bonus
        )
        total = min(CREW_SCORE_MAX, max(0, loyalty + spirit + adventure + legacy))
        scores.append(PillarScores(m.member_id, loyalty, spirit, adventure, legacy, total))
    return scores


def rank_scores(scores: Sequence[PillarScores]) -> dict[str, int]:
    """1-based rank by Crew Score descending, ties broken by member id."""
    ordered = sorted(scores, key=lambda s: (-s.crew_score, s.member_id))
    return {s.member_id: i for i, s in enumerate(ordered, start=1)}
