"""
crewscore.engine.periods — Calendar Windows
============================================

UTC week/month boundaries and tenure arithmetic shared by the points
ledger, the monthly board and the health score.  Pure functions; every
caller passes ``now`` explicitly.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def week_start(now: datetime) -> date:
    """ISO week start (Monday) of *now* in UTC."""
    day = as_utc(now).date()
    return day - timedelta(days=day.weekday())


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Return ``[start, end)`` of the UTC calendar month containing *now*."""
    now = as_utc(now)
    start = datetime(now.year, now.month, 1, tzinfo=UTC)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1, tzinfo=UTC)
    else:
        end = datetime(now.year, now.month + 1, 1, tzinfo=UTC)
    return start, end


def month_key(value: datetime) -> str:
    """``YYYY-MM`` label used by the monthly board and month grouping."""
    return as_utc(value).strftime("%Y-%m")


def month_label(key: str) -> str:
    """``2025-03`` → ``Mar 2025``."""
    return datetime.strptime(key, "%Y-%m").strftime("%b %Y")


def tenure_days(joined_at: datetime | None, now: datetime) -> int:
    """Whole days between *joined_at* and *now* (0 when unknown)."""
    if joined_at is None:
        return 0
    return max(0, (as_utc(now) - as_utc(joined_at)).days)


def is_founding_member(
    joined_at: datetime | None,
    group_created_at: datetime | None,
    window_days: int = 30,
) -> bool:
    """True when the member joined within *window_days* of the group starting."""
    if joined_at is None or group_created_at is None:
        return False
    return as_utc(joined_at) - as_utc(group_created_at) <= timedelta(days=window_days)
