"""
crewscore.engine.board — Monthly Board Ranking
===============================================

Ranks members by this month's attendance rate.  A member is only measured
against events that started on or after they joined, and members with
nothing available or nothing attended are left off the board entirely.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from crewscore.constants import round_half_up
from crewscore.engine.periods import as_utc

TOP_N = 10


@dataclass(frozen=True, slots=True)
class BoardCandidate:
    member_id: str
    joined_at: datetime | None
    spirit_points_this_month: int = 0
    hidden: bool = False


@dataclass(frozen=True, slots=True)
class RankedRow:
    member_id: str
    rank: int
    attendance_rate: int  # 0–100
    events_attended: int
    events_available: int
    spirit_points_this_month: int


def rank_members(
    events: Mapping[str, datetime],
    candidates: Iterable[BoardCandidate],
    check_ins: Mapping[str, set[str]],
) -> list[RankedRow]:
    """Rank qualifying members.

    *events* maps event id → start for this month; *check_ins* maps member
    id → ids of events they checked into.  Ordering is rate desc, then
    this-month spirit points desc, then member id.
    """
    starts = {eid: as_utc(start) for eid, start in events.items()}
    rows: list[tuple[str, int, int, int, int]] = []

    for cand in candidates:
        if cand.hidden:
            continue
        joined = as_utc(cand.joined_at)
        attended_ids = check_ins.get(cand.member_id, set())
        available = attended = 0
        for eid, start in starts.items():
            if joined is None or start >= joined:
                available += 1
                if eid in attended_ids:
                    attended += 1
        if available == 0 or attended == 0:
            continue
        rate = round_half_up(attended / available * 100)
        rows.append((cand.member_id, rate, attended, available, cand.spirit_points_this_month))

    rows.sort(key=lambda r: (-r[1], -r[4], r[0]))
    return [
        RankedRow(member_id, rank, rate, attended, available, spirit)
        for rank, (member_id, rate, attended, available, spirit) in enumerate(rows, start=1)
    ]


def group_average(rows: Iterable[RankedRow]) -> int:
    """Mean attendance rate of qualifying members, rounded (0 when empty)."""
    rates = [r.attendance_rate for r in rows]
    if not rates:
        return 0
    return round_half_up(sum(rates) / len(rates))
