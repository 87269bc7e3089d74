from datetime import datetime, timezone

from directory_workers.jobs.refresh_schedule import next_slice_at, seconds_until_next_slice, slice_interval


def test_hourly_slices_fire_at_top_of_next_hour() -> None:
    now = datetime(2024, 5, 1, 12, 15, 30, tzinfo=timezone.utc)
    assert next_slice_at(now, 24) == datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc)
    assert seconds_until_next_slice(now, 24) == 44 * 60 + 30


def test_boundary_schedules_the_following_slice() -> None:
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert next_slice_at(now, 24) == datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc)


def test_last_slice_rolls_over_to_midnight() -> None:
    now = datetime(2024, 5, 1, 23, 59, tzinfo=timezone.utc)
    assert next_slice_at(now, 24) == datetime(2024, 5, 2, 0, 0, tzinfo=timezone.utc)


def test_custom_slice_counts() -> None:
    now = datetime(2024, 5, 1, 7, 0, tzinfo=timezone.utc)
    assert slice_interval(4).total_seconds() == 6 * 60 * 60
    assert next_slice_at(now, 4) == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert next_slice_at(now, 0) == datetime(2024, 5, 2, 0, 0, tzinfo=timezone.utc)


def test_naive_datetimes_are_treated_as_utc() -> None:
    assert next_slice_at(datetime(2024, 5, 1, 12, 30), 24) == datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc)
