from __future__ import annotations

import asyncio
import copy
from collections.abc import Coroutine
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar
from uuid import uuid4

import pytest

from directory_api.core.auth import Principal
from directory_api.core.security import principal_for_user
from directory_api.core.urls import RepositoryRef
from directory_api.services.github import GitHubNotFoundError, RepositoryMetadata
from directory_api.services.mailer import LoggingEmailTransport, Notifier
from directory_api.services.repository import RepositoryNotFoundError, SubmissionRecord, UserRecord
from directory_api.services.submissions import SubmissionService

T = TypeVar("T")

FRONTEND_URL = "https://directory.example.test"


class InMemoryRepository:
    """Process-local twin of ``PostgresRepository``.

    Each method completes without awaiting anything between its read and its
    write, so conditional updates are atomic with respect to other coroutines.
    """

    def __init__(self) -> None:
        self.users: dict[str, UserRecord] = {}
        self.submissions: dict[str, SubmissionRecord] = {}

    async def close(self) -> None:
        return None

    def add_user(
        self,
        *,
        github_id: int,
        username: str,
        email: str | None = None,
        is_admin: bool = False,
        user_id: str | None = None,
    ) -> UserRecord:
        now = datetime.now(timezone.utc)
        user = UserRecord(
            id=user_id or str(uuid4()),
            github_id=github_id,
            username=username,
            email=email or f"{username}@example.com",
            avatar_url="",
            is_admin=is_admin,
            created_at=now,
            updated_at=now,
        )
        self.users[user.id] = user
        return user

    async def get_user(self, user_id: str) -> UserRecord | None:
        user = self.users.get(user_id)
        return copy.copy(user) if user else None

    async def upsert_github_user(
        self,
        *,
        github_id: int,
        username: str,
        email: str,
        avatar_url: str,
    ) -> UserRecord:
        now = datetime.now(timezone.utc)
        for user in self.users.values():
            if user.github_id != github_id:
                continue
            if (user.username, user.email, user.avatar_url) != (username, email, avatar_url):
                user.username = username
                user.email = email
                user.avatar_url = avatar_url
                user.updated_at = now
            return copy.copy(user)

        user = UserRecord(
            id=str(uuid4()),
            github_id=github_id,
            username=username,
            email=email,
            avatar_url=avatar_url,
            is_admin=False,
            created_at=now,
            updated_at=now,
        )
        self.users[user.id] = user
        return copy.copy(user)

    async def create_submission(
        self,
        *,
        repository_url: str,
        owner_id: str,
        category: str,
        frontend_environment: str | None,
        language: str,
        libraries: list[str],
        number_of_stars: int,
        github_data: dict[str, Any] | None,
        github_data_fetched_on: datetime | None,
        created_at: datetime,
    ) -> SubmissionRecord:
        record = SubmissionRecord(
            id=str(uuid4()),
            repository_url=repository_url,
            owner_id=owner_id,
            category=category,
            frontend_environment=frontend_environment,
            language=language,
            libraries=list(libraries),
            number_of_stars=number_of_stars,
            github_data=github_data,
            github_data_fetched_on=github_data_fetched_on,
            created_at=created_at,
            updated_at=created_at,
        )
        self.submissions[record.id] = record
        return self._snapshot(record)

    async def get_submission(self, submission_id: str) -> SubmissionRecord:
        return self._snapshot(self._require(submission_id))

    async def list_submissions(
        self,
        *,
        owner_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[SubmissionRecord]:
        rows = [row for row in self.submissions.values() if owner_id is None or row.owner_id == owner_id]
        rows.sort(key=lambda row: row.created_at, reverse=True)
        return [self._snapshot(row) for row in rows[offset : offset + limit]]

    async def update_submission_fields(
        self,
        submission_id: str,
        *,
        category: str,
        frontend_environment: str | None,
        language: str,
        libraries: list[str],
        updated_at: datetime,
    ) -> SubmissionRecord:
        record = self._require(submission_id)
        record.category = category
        record.frontend_environment = frontend_environment
        record.language = language
        record.libraries = list(libraries)
        record.updated_at = updated_at
        return self._snapshot(record)

    async def delete_submission(self, submission_id: str) -> None:
        self._require(submission_id)
        del self.submissions[submission_id]

    async def transition_submission(
        self,
        submission_id: str,
        *,
        expected_status: str,
        expected_reviewer_id: str | None,
        expected_review_started_on: datetime | None,
        status: str,
        reviewer_id: str | None,
        review_started_on: datetime | None,
        updated_at: datetime,
    ) -> SubmissionRecord | None:
        record = self._require(submission_id)
        if (
            record.status != expected_status
            or record.reviewer_id != expected_reviewer_id
            or record.review_started_on != expected_review_started_on
        ):
            return None
        record.status = status
        record.reviewer_id = reviewer_id
        record.review_started_on = review_started_on
        record.updated_at = updated_at
        return self._snapshot(record)

    async def list_review_queue(
        self,
        *,
        reviewer_id: str,
        lock_expired_before: datetime,
        limit: int = 100,
    ) -> list[SubmissionRecord]:
        rows = [
            row
            for row in self.submissions.values()
            if row.status == "pending"
            or (
                row.status == "reviewing"
                and (
                    row.reviewer_id == reviewer_id
                    or (row.review_started_on is not None and row.review_started_on <= lock_expired_before)
                )
            )
        ]
        rows.sort(key=lambda row: row.created_at)
        return [self._snapshot(row) for row in rows[:limit]]

    async def list_approved(
        self,
        *,
        category: str | None = None,
        language: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[SubmissionRecord]:
        rows = [
            row
            for row in self.submissions.values()
            if row.status == "approved"
            and (category is None or row.category == category)
            and (language is None or row.language.lower() == language.lower())
        ]
        rows.sort(key=lambda row: (-row.number_of_stars, row.created_at))
        return [self._snapshot(row) for row in rows[offset : offset + limit]]

    async def count_submissions(self) -> int:
        return len(self.submissions)

    async def list_submissions_for_refresh(self, limit: int) -> list[SubmissionRecord]:
        never = datetime.min.replace(tzinfo=timezone.utc)
        rows = sorted(
            self.submissions.values(),
            key=lambda row: (row.github_data_fetched_on or never, row.created_at),
        )
        return [self._snapshot(row) for row in rows[:limit]]

    async def record_refresh(
        self,
        submission_id: str,
        *,
        fetched_on: datetime,
        number_of_stars: int | None = None,
        github_data: dict[str, Any] | None = None,
        repository_status: str | None = None,
    ) -> None:
        record = self.submissions.get(submission_id)
        if record is None:
            return
        record.github_data_fetched_on = fetched_on
        if number_of_stars is not None:
            record.number_of_stars = number_of_stars
        if github_data is not None:
            record.github_data = github_data
        if repository_status is not None:
            record.repository_status = repository_status
        if (number_of_stars, github_data, repository_status) != (None, None, None):
            record.updated_at = fetched_on

    def _require(self, submission_id: str) -> SubmissionRecord:
        record = self.submissions.get(submission_id)
        if record is None:
            raise RepositoryNotFoundError("submission not found")
        return record

    @staticmethod
    def _snapshot(record: SubmissionRecord) -> SubmissionRecord:
        return replace(record, libraries=list(record.libraries))


class FakeGitHub:
    """Scriptable stand-in for ``GitHubClient`` that records every call."""

    def __init__(self) -> None:
        self.repositories: dict[str, RepositoryMetadata] = {}
        self.contributors: dict[str, set[int]] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []

    def add_repository(
        self,
        full_name: str,
        *,
        stars: int = 0,
        owner_id: int = 1,
        archived: bool = False,
        has_issues: bool = True,
    ) -> RepositoryMetadata:
        metadata = RepositoryMetadata(
            number_of_stars=stars,
            owner_id=owner_id,
            archived=archived,
            has_issues=has_issues,
            data={"full_name": full_name, "stargazers_count": stars},
        )
        self.repositories[full_name] = metadata
        return metadata

    async def fetch_repository(self, ref: RepositoryRef) -> RepositoryMetadata:
        self.calls.append(("repository", ref.full_name))
        if ref.full_name in self.failures:
            raise self.failures[ref.full_name]
        metadata = self.repositories.get(ref.full_name)
        if metadata is None:
            raise GitHubNotFoundError(f"GitHub resource not found: /repos/{ref.full_name}", status_code=404)
        return metadata

    async def find_repository_contributor(self, ref: RepositoryRef, user_id: int) -> dict[str, Any] | None:
        self.calls.append(("contributors", ref.full_name))
        if user_id in self.contributors.get(ref.full_name, set()):
            return {"id": user_id}
        return None


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def run():
    def _run(coro: Coroutine[Any, Any, T]) -> T:
        return asyncio.run(coro)

    return _run


@pytest.fixture
def store() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def clock() -> Clock:
    return Clock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def mail_transport() -> LoggingEmailTransport:
    return LoggingEmailTransport()


@pytest.fixture
def notifier(mail_transport: LoggingEmailTransport) -> Notifier:
    return Notifier(
        mail_transport,
        sender="directory@example.test",
        reviewers_address="reviewers@example.test",
        frontend_url=FRONTEND_URL,
    )


@pytest.fixture
def service(store: InMemoryRepository, github: FakeGitHub, notifier: Notifier, clock: Clock) -> SubmissionService:
    return SubmissionService(store, github, notifier, clock=clock)


@pytest.fixture
def contributor(store: InMemoryRepository) -> Principal:
    return principal_for_user(store.add_user(github_id=1001, username="acme-dev", email="dev@acme.test"))


@pytest.fixture
def outsider(store: InMemoryRepository) -> Principal:
    return principal_for_user(store.add_user(github_id=2002, username="stranger"))


@pytest.fixture
def admin_a(store: InMemoryRepository) -> Principal:
    return principal_for_user(store.add_user(github_id=9001, username="admin-a", is_admin=True))


@pytest.fixture
def admin_b(store: InMemoryRepository) -> Principal:
    return principal_for_user(store.add_user(github_id=9002, username="admin-b", is_admin=True))


@pytest.fixture
def pending_submission(run, service: SubmissionService, github: FakeGitHub, contributor: Principal):
    github.add_repository("acme/widgets", stars=120, owner_id=contributor.github_id)
    return run(
        service.submit(
            contributor,
            repository_url="https://github.com/acme/widgets",
            category="backend",
            frontend_environment=None,
            language="Go",
            libraries=["Gin"],
        )
    )
