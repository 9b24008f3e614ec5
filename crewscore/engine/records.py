"""
crewscore.engine.records — Hall-of-Fame Pickers
================================================

Each record has exactly one holder.  Ties are resolved deterministically:
higher value first, then whoever got there earliest (``achieved_at``), then
the lower member id.  Candidates with an unknown achievement date sort
after those with one.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from crewscore.engine.periods import as_utc, month_key

MIN_EVENTS_FOR_RATE = 5
MIN_MONTHLY_COUNT = 2
MIN_STREAK = 2
MONTHLY_WINDOW_YEARS = 2
FOUNDER_MAX_NUMBER = 10

_FAR_FUTURE = datetime.max.replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class Candidate:
    member_id: str
    value: float
    achieved_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class MonthlyHolder:
    member_id: str
    count: int
    month: str  # YYYY-MM


@dataclass(frozen=True, slots=True)
class FounderCandidate:
    member_id: str
    member_number: int
    crew_score: int


def _tie_key(c: Candidate) -> tuple:
    return (-c.value, as_utc(c.achieved_at) or _FAR_FUTURE, c.member_id)


def pick_holder(candidates: Iterable[Candidate], minimum: float) -> Candidate | None:
    """Best candidate whose value reaches *minimum*, or ``None``."""
    eligible = [c for c in candidates if c.value >= minimum]
    if not eligible:
        return None
    return min(eligible, key=_tie_key)


def years_before(now: datetime, years: int) -> datetime:
    """Same calendar date *years* earlier (Feb 29 falls back to Feb 28)."""
    try:
        return now.replace(year=now.year - years)
    except ValueError:
        return now.replace(year=now.year - years, day=28)


def pick_monthly_holder(check_ins: Iterable[tuple[str, datetime]]) -> MonthlyHolder | None:
    """Most check-ins by one member within one calendar month.

    *check_ins* are ``(member_id, event_start)`` pairs.  Ties go to the
    earlier month, then the lower member id.
    """
    counts = Counter((member_id, month_key(start)) for member_id, start in check_ins)
    if not counts:
        return None
    (member_id, month), count = min(
        counts.items(), key=lambda item: (-item[1], item[0][1], item[0][0])
    )
    if count < MIN_MONTHLY_COUNT:
        return None
    return MonthlyHolder(member_id, count, month)


def pick_founder(candidates: Iterable[FounderCandidate]) -> FounderCandidate | None:
    """Highest crew score among the first joiners; earlier member number wins ties."""
    eligible = [c for c in candidates if c.member_number <= FOUNDER_MAX_NUMBER]
    if not eligible:
        return None
    return min(eligible, key=lambda c: (-c.crew_score, c.member_number, c.member_id))
