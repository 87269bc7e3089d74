from __future__ import annotations

from collections import Counter
from datetime import timedelta

import pytest

from directory_api.services.refresh import RefreshJob, slice_limit
from directory_api.services.repository import RepositoryUnavailableError


def _seed(run, store, clock, names, *, fetched_on=None, status="available"):
    owner = store.add_user(github_id=1001, username="acme-dev")
    records = []
    for offset, name in enumerate(names):
        record = run(
            store.create_submission(
                repository_url=f"https://github.com/acme/{name}",
                owner_id=owner.id,
                category="backend",
                frontend_environment=None,
                language="Go",
                libraries=["Gin"],
                number_of_stars=5,
                github_data=None,
                github_data_fetched_on=fetched_on,
                created_at=clock.now + timedelta(seconds=offset),
            )
        )
        store.submissions[record.id].repository_status = status
        records.append(record)
    return records


@pytest.mark.parametrize(("total", "expected"), [(0, 0), (1, 1), (23, 1), (24, 1), (25, 2), (48, 2), (50, 3)])
def test_slice_limit(total, expected) -> None:
    assert slice_limit(total, 24) == expected


def test_refresh_updates_stars_and_status(run, store, github, clock) -> None:
    healthy, archived, closed = _seed(run, store, clock, ["healthy", "archived", "closed"])
    github.add_repository("acme/healthy", stars=42)
    github.add_repository("acme/archived", stars=7, archived=True)
    github.add_repository("acme/closed", stars=9, has_issues=False)
    clock.advance(hours=1)

    summary = run(RefreshJob(store, github, slices_per_day=1, clock=clock).run_slice())

    assert (summary.total, summary.selected, summary.refreshed, summary.failed) == (3, 3, 3, 0)
    assert store.submissions[healthy.id].number_of_stars == 42
    assert store.submissions[healthy.id].repository_status == "available"
    assert store.submissions[archived.id].repository_status == "archived"
    assert store.submissions[closed.id].repository_status == "issues-disabled"
    assert store.submissions[closed.id].github_data == {"full_name": "acme/closed", "stargazers_count": 9}
    assert all(record.github_data_fetched_on == clock.now for record in store.submissions.values())
    assert all(record.updated_at == clock.now for record in store.submissions.values())


def test_refresh_marks_deleted_repository_missing(run, store, github, clock) -> None:
    (gone,) = _seed(run, store, clock, ["gone"])

    summary = run(RefreshJob(store, github, slices_per_day=1, clock=clock).run_slice())

    assert summary.missing == 1
    record = store.submissions[gone.id]
    assert record.repository_status == "missing"
    assert record.number_of_stars == 5
    assert record.github_data_fetched_on == clock.now


def test_refresh_isolates_failing_item(run, store, github, clock) -> None:
    first, broken, last = _seed(run, store, clock, ["first", "broken", "last"], status="archived")
    github.add_repository("acme/first", stars=1)
    github.add_repository("acme/last", stars=3)
    github.failures["acme/broken"] = RuntimeError("connection reset")
    clock.advance(hours=2)

    summary = run(RefreshJob(store, github, slices_per_day=1, clock=clock).run_slice())

    assert (summary.refreshed, summary.failed) == (2, 1)
    assert store.submissions[broken.id].repository_status == "archived"
    assert store.submissions[broken.id].number_of_stars == 5
    assert store.submissions[broken.id].github_data_fetched_on == clock.now
    assert store.submissions[broken.id].updated_at == broken.updated_at
    assert store.submissions[last.id].number_of_stars == 3
    assert store.submissions[last.id].repository_status == "available"
    assert github.calls[-1] == ("repository", "acme/last")


def test_refresh_processes_oldest_first(run, store, github, clock) -> None:
    records = _seed(run, store, clock, [f"repo-{index}" for index in range(30)], fetched_on=clock.now)
    for record in records:
        github.add_repository(record.repository_url.removeprefix("https://github.com/"))
    stale = records[17]
    store.submissions[stale.id].github_data_fetched_on = clock.now - timedelta(days=3)
    clock.advance(hours=1)

    summary = run(RefreshJob(store, github, slices_per_day=24, clock=clock).run_slice())

    assert summary.selected == 2
    assert github.calls[0] == ("repository", "acme/repo-17")


def test_day_of_slices_covers_every_submission_evenly(run, store, github, clock) -> None:
    names = [f"repo-{index}" for index in range(50)]
    records = _seed(run, store, clock, names)
    for name in names:
        github.add_repository(f"acme/{name}", stars=10)
    job = RefreshJob(store, github, slices_per_day=24, clock=clock)

    refreshed = Counter()
    for _ in range(24):
        clock.advance(hours=1)
        before = {record_id: record.github_data_fetched_on for record_id, record in store.submissions.items()}
        run(job.run_slice())
        for record_id, record in store.submissions.items():
            if record.github_data_fetched_on != before[record_id]:
                refreshed[record_id] += 1

    assert set(refreshed) == {record.id for record in records}
    assert max(refreshed.values()) <= 2


def test_refresh_on_empty_store_is_noop(run, store, github, clock) -> None:
    summary = run(RefreshJob(store, github, clock=clock).run_slice())
    assert summary.total == 0
    assert github.calls == []


def test_refresh_propagates_store_outage(run, github, clock) -> None:
    class DownRepository:
        async def count_submissions(self) -> int:
            raise RepositoryUnavailableError("database down")

    with pytest.raises(RepositoryUnavailableError):
        run(RefreshJob(DownRepository(), github, clock=clock).run_slice())
