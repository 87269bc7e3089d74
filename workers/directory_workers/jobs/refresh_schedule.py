from __future__ import annotations

from datetime import datetime, timedelta, timezone

SECONDS_PER_DAY = 24 * 60 * 60


def slice_interval(slices_per_day: int) -> timedelta:
    return timedelta(seconds=SECONDS_PER_DAY / max(1, slices_per_day))


def next_slice_at(now: datetime | None = None, slices_per_day: int = 24) -> datetime:
    """Next boundary of the day split into ``slices_per_day`` equal parts (UTC).

    With 24 slices this is the top of the next hour.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    interval = slice_interval(slices_per_day)
    elapsed = now - midnight
    completed = int(elapsed / interval)
    return midnight + interval * (completed + 1)


def seconds_until_next_slice(now: datetime | None = None, slices_per_day: int = 24) -> float:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(0.0, (next_slice_at(now, slices_per_day) - now).total_seconds())
