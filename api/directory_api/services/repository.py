from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from directory_api.core.config import get_settings


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write violates a storage constraint."""


SUBMISSION_CATEGORIES = ("frontend", "backend", "fullstack")
FRONTEND_ENVIRONMENTS = ("web", "mobile", "desktop")
SUBMISSION_STATUSES = ("pending", "reviewing", "approved", "rejected")
REPOSITORY_STATUSES = ("available", "archived", "issues-disabled", "missing")


@dataclass(slots=True)
class UserRecord:
    id: str
    github_id: int
    username: str
    email: str
    avatar_url: str
    is_admin: bool
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class SubmissionRecord:
    id: str
    repository_url: str
    owner_id: str
    category: str
    language: str
    libraries: list[str]
    created_at: datetime
    updated_at: datetime
    frontend_environment: str | None = None
    status: str = "pending"
    reviewer_id: str | None = None
    review_started_on: datetime | None = None
    number_of_stars: int = 0
    repository_status: str = "available"
    github_data: dict[str, Any] | None = field(default=None, repr=False)
    github_data_fetched_on: datetime | None = None


_SUBMISSION_COLUMNS = """
  id::text as id,
  repository_url,
  owner_id::text as owner_id,
  category,
  frontend_environment,
  language,
  libraries,
  status,
  reviewer_id::text as reviewer_id,
  review_started_on,
  number_of_stars,
  repository_status,
  github_data,
  github_data_fetched_on,
  created_at,
  updated_at
"""

_USER_COLUMNS = """
  id::text as id,
  github_id,
  username,
  email,
  avatar_url,
  is_admin,
  created_at,
  updated_at
"""


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get_user(self, user_id: str) -> UserRecord | None:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(f"select {_USER_COLUMNS} from users where id = $1::uuid", user_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return None
        return self._user_row_to_record(row) if row else None

    async def upsert_github_user(
        self,
        *,
        github_id: int,
        username: str,
        email: str,
        avatar_url: str,
    ) -> UserRecord:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            insert into users (github_id, username, email, avatar_url)
            values ($1, $2, $3, $4)
            on conflict (github_id) do update
            set
              username = excluded.username,
              email = excluded.email,
              avatar_url = excluded.avatar_url,
              updated_at = case
                when (users.username, users.email, users.avatar_url)
                  is distinct from (excluded.username, excluded.email, excluded.avatar_url)
                then now()
                else users.updated_at
              end
            returning {_USER_COLUMNS}
            """,
            github_id,
            username,
            email,
            avatar_url,
        )
        return self._user_row_to_record(row)

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
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                insert into submissions (
                  repository_url,
                  owner_id,
                  category,
                  frontend_environment,
                  language,
                  libraries,
                  number_of_stars,
                  github_data,
                  github_data_fetched_on,
                  created_at,
                  updated_at
                )
                values ($1, $2::uuid, $3, $4, $5, $6::text[], $7, $8::jsonb, $9, $10, $10)
                returning {_SUBMISSION_COLUMNS}
                """,
                repository_url,
                owner_id,
                category,
                frontend_environment,
                language,
                libraries,
                number_of_stars,
                json.dumps(github_data) if github_data is not None else None,
                github_data_fetched_on,
                created_at,
            )
        except (pg_exc.CheckViolationError, pg_exc.ForeignKeyViolationError) as exc:
            raise RepositoryConflictError("submission violates storage constraints") from exc
        return self._submission_row_to_record(row)

    async def get_submission(self, submission_id: str) -> SubmissionRecord:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"select {_SUBMISSION_COLUMNS} from submissions where id = $1::uuid",
                submission_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("submission not found") from exc
        if not row:
            raise RepositoryNotFoundError("submission not found")
        return self._submission_row_to_record(row)

    async def list_submissions(
        self,
        *,
        owner_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[SubmissionRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_SUBMISSION_COLUMNS}
            from submissions
            where ($1::uuid is null or owner_id = $1::uuid)
            order by created_at desc
            limit $2
            offset $3
            """,
            owner_id,
            limit,
            offset,
        )
        return [self._submission_row_to_record(row) for row in rows]

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
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update submissions
                set
                  category = $2,
                  frontend_environment = $3,
                  language = $4,
                  libraries = $5::text[],
                  updated_at = $6
                where id = $1::uuid
                returning {_SUBMISSION_COLUMNS}
                """,
                submission_id,
                category,
                frontend_environment,
                language,
                libraries,
                updated_at,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("submission not found") from exc
        except pg_exc.CheckViolationError as exc:
            raise RepositoryConflictError("submission violates storage constraints") from exc
        if not row:
            raise RepositoryNotFoundError("submission not found")
        return self._submission_row_to_record(row)

    async def delete_submission(self, submission_id: str) -> None:
        pool = await self._get_pool()
        try:
            deleted = await pool.fetchval(
                "delete from submissions where id = $1::uuid returning id",
                submission_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("submission not found") from exc
        if deleted is None:
            raise RepositoryNotFoundError("submission not found")

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
        """Apply a status change only if the lock fields are unchanged since they were read.

        Returns ``None`` when another writer got there first.
        """
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update submissions
                set
                  status = $5,
                  reviewer_id = $6::uuid,
                  review_started_on = $7,
                  updated_at = $8
                where id = $1::uuid
                  and status = $2
                  and reviewer_id is not distinct from $3::uuid
                  and review_started_on is not distinct from $4::timestamptz
                returning {_SUBMISSION_COLUMNS}
                """,
                submission_id,
                expected_status,
                expected_reviewer_id,
                expected_review_started_on,
                status,
                reviewer_id,
                review_started_on,
                updated_at,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("submission not found") from exc
        return self._submission_row_to_record(row) if row else None

    async def list_review_queue(
        self,
        *,
        reviewer_id: str,
        lock_expired_before: datetime,
        limit: int = 100,
    ) -> list[SubmissionRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_SUBMISSION_COLUMNS}
            from submissions
            where status = 'pending'
               or (
                 status = 'reviewing'
                 and (reviewer_id = $1::uuid or review_started_on <= $2)
               )
            order by created_at asc
            limit $3
            """,
            reviewer_id,
            lock_expired_before,
            limit,
        )
        return [self._submission_row_to_record(row) for row in rows]

    async def list_approved(
        self,
        *,
        category: str | None = None,
        language: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[SubmissionRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_SUBMISSION_COLUMNS}
            from submissions
            where status = 'approved'
              and ($1::text is null or category = $1::text)
              and ($2::text is null or lower(language) = lower($2::text))
            order by number_of_stars desc, created_at asc
            limit $3
            offset $4
            """,
            category,
            language,
            limit,
            offset,
        )
        return [self._submission_row_to_record(row) for row in rows]

    async def count_submissions(self) -> int:
        pool = await self._get_pool()
        return int(await pool.fetchval("select count(*) from submissions"))

    async def list_submissions_for_refresh(self, limit: int) -> list[SubmissionRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_SUBMISSION_COLUMNS}
            from submissions
            order by github_data_fetched_on asc nulls first, created_at asc
            limit $1
            """,
            limit,
        )
        return [self._submission_row_to_record(row) for row in rows]

    async def record_refresh(
        self,
        submission_id: str,
        *,
        fetched_on: datetime,
        number_of_stars: int | None = None,
        github_data: dict[str, Any] | None = None,
        repository_status: str | None = None,
    ) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            update submissions
            set
              github_data_fetched_on = $2,
              number_of_stars = coalesce($3, number_of_stars),
              github_data = coalesce($4::jsonb, github_data),
              repository_status = coalesce($5, repository_status),
              updated_at = case
                when $3::integer is null and $4::jsonb is null and $5::text is null then updated_at
                else $2
              end
            where id = $1::uuid
            """,
            submission_id,
            fetched_on,
            number_of_stars,
            json.dumps(github_data) if github_data is not None else None,
            repository_status,
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("DIRECTORY_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _user_row_to_record(row: asyncpg.Record) -> UserRecord:
        return UserRecord(
            id=row["id"],
            github_id=int(row["github_id"]),
            username=row["username"],
            email=row["email"],
            avatar_url=row["avatar_url"] or "",
            is_admin=bool(row["is_admin"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _submission_row_to_record(row: asyncpg.Record) -> SubmissionRecord:
        github_data = row["github_data"]
        if isinstance(github_data, str):
            try:
                github_data = json.loads(github_data)
            except json.JSONDecodeError:
                github_data = None
        if not isinstance(github_data, dict):
            github_data = None

        return SubmissionRecord(
            id=row["id"],
            repository_url=row["repository_url"],
            owner_id=row["owner_id"],
            category=row["category"],
            frontend_environment=row["frontend_environment"],
            language=row["language"],
            libraries=list(row["libraries"] or []),
            status=row["status"],
            reviewer_id=row["reviewer_id"],
            review_started_on=row["review_started_on"],
            number_of_stars=int(row["number_of_stars"]),
            repository_status=row["repository_status"],
            github_data=github_data,
            github_data_fetched_on=row["github_data_fetched_on"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
