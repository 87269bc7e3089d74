from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from directory_api.core.auth import Principal, Role, authorize
from directory_api.core.urls import (
    REPOSITORY_URL_MAX_LENGTH,
    InvalidRepositoryURLError,
    RepositoryRef,
    clean_repository_url,
    parse_repository_url,
)
from directory_api.services.errors import (
    AlreadyReviewedError,
    ExternalServiceUnavailableError,
    GitHubRepositoryArchivedError,
    GitHubRepositoryNotFoundError,
    IssuesDisabledError,
    NotAContributorError,
    NotAuthorizedReviewerError,
    ReviewLockedError,
    SubmissionNotFoundError,
    SubmissionValidationError,
)
from directory_api.services.github import GitHubClient, GitHubError, GitHubNotFoundError, RepositoryMetadata
from directory_api.services.mailer import Notifier
from directory_api.services.repository import (
    FRONTEND_ENVIRONMENTS,
    SUBMISSION_CATEGORIES,
    RepositoryConflictError,
    RepositoryNotFoundError,
    SubmissionRecord,
)
from directory_api.services.review import (
    APPROVED,
    PENDING,
    REJECTED,
    TERMINAL_STATUSES,
    Transition,
    plan_claim,
    plan_resolution,
)

logger = logging.getLogger(__name__)

LANGUAGE_MAX_LENGTH = 100
LIBRARY_MAX_LENGTH = 50
MAX_LIBRARIES = 5


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class SubmissionFields:
    category: str
    frontend_environment: str | None
    language: str
    libraries: list[str]


def clean_submission_fields(
    *,
    category: str,
    frontend_environment: str | None,
    language: str,
    libraries: list[str],
) -> SubmissionFields:
    category = (category or "").strip()
    if category not in SUBMISSION_CATEGORIES:
        raise SubmissionValidationError(
            f"invalid category: {category!r}",
            display_message="Please choose a category: frontend, backend or fullstack.",
        )

    environment = (frontend_environment or "").strip() or None
    if category == "backend":
        environment = None
    elif environment is not None and environment not in FRONTEND_ENVIRONMENTS:
        raise SubmissionValidationError(
            f"invalid frontend environment: {environment!r}",
            display_message="Please choose a frontend environment: web, mobile or desktop.",
        )

    language = (language or "").strip()
    if not 1 <= len(language) <= LANGUAGE_MAX_LENGTH:
        raise SubmissionValidationError(
            f"language length out of range: {len(language)}",
            display_message=f"Please specify a language (up to {LANGUAGE_MAX_LENGTH} characters).",
        )

    cleaned_libraries = [library.strip() for library in libraries or [] if library and library.strip()]
    if not cleaned_libraries:
        raise SubmissionValidationError(
            "'libraries' cannot be empty",
            display_message="You must specify at least one library or framework.",
        )
    if len(cleaned_libraries) > MAX_LIBRARIES:
        raise SubmissionValidationError(
            f"too many libraries: {len(cleaned_libraries)}",
            display_message=f"You can specify up to {MAX_LIBRARIES} libraries or frameworks.",
        )
    too_long = [library for library in cleaned_libraries if len(library) > LIBRARY_MAX_LENGTH]
    if too_long:
        raise SubmissionValidationError(
            f"library names too long: {too_long}",
            display_message=f"Library names are limited to {LIBRARY_MAX_LENGTH} characters.",
        )

    return SubmissionFields(
        category=category,
        frontend_environment=environment,
        language=language,
        libraries=cleaned_libraries,
    )


def parse_submitted_url(raw_url: str) -> tuple[str, RepositoryRef]:
    url = clean_repository_url(raw_url or "")
    if len(url) > REPOSITORY_URL_MAX_LENGTH:
        raise SubmissionValidationError(
            f"repository URL too long: {len(url)}",
            display_message="The specified repository URL is too long.",
        )
    try:
        ref = parse_repository_url(url)
    except InvalidRepositoryURLError as exc:
        raise SubmissionValidationError(str(exc), display_message=exc.display_message) from exc
    return url, ref


class SubmissionService:
    def __init__(
        self,
        repository,
        github: GitHubClient,
        notifier: Notifier,
        *,
        lock_timeout: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.github = github
        self.notifier = notifier
        self.lock_timeout = lock_timeout
        self.clock = clock

    async def submit(
        self,
        principal: Principal,
        *,
        repository_url: str,
        category: str,
        frontend_environment: str | None,
        language: str,
        libraries: list[str],
    ) -> SubmissionRecord:
        authorize("submit", principal)
        url, ref = parse_submitted_url(repository_url)
        fields = clean_submission_fields(
            category=category,
            frontend_environment=frontend_environment,
            language=language,
            libraries=libraries,
        )

        metadata = await self._fetch_repository(ref)
        if metadata.archived:
            raise GitHubRepositoryArchivedError(f"repository {ref.full_name} is archived")
        if not metadata.has_issues:
            raise IssuesDisabledError(f"repository {ref.full_name} has issues disabled")

        if not principal.is_admin and metadata.owner_id != principal.github_id:
            await self._ensure_contributor(ref, principal)

        now = self.clock()
        try:
            record = await self.repository.create_submission(
                repository_url=url,
                owner_id=principal.user_id,
                category=fields.category,
                frontend_environment=fields.frontend_environment,
                language=fields.language,
                libraries=fields.libraries,
                number_of_stars=metadata.number_of_stars,
                github_data=metadata.data,
                github_data_fetched_on=now,
                created_at=now,
            )
        except RepositoryConflictError as exc:
            raise SubmissionValidationError(f"submission rejected by storage: {exc}") from exc
        logger.info("submission created id=%s repository=%s owner=%s", record.id, ref.full_name, record.owner_id)
        await self.notifier.submission_received(record)
        return record

    async def get(self, principal: Principal, submission_id: str) -> tuple[SubmissionRecord, set[Role]]:
        record = await self._load(submission_id)
        operation = "get_approved" if record.status == APPROVED else "get"
        roles = authorize(operation, principal, owner_id=record.owner_id)
        return record, roles

    async def list_owned(self, principal: Principal, *, limit: int = 100, offset: int = 0) -> list[SubmissionRecord]:
        authorize("list_owned", principal)
        return await self.repository.list_submissions(owner_id=principal.user_id, limit=limit, offset=offset)

    async def list_all(self, principal: Principal, *, limit: int = 100, offset: int = 0) -> list[SubmissionRecord]:
        authorize("list_all", principal)
        return await self.repository.list_submissions(limit=limit, offset=offset)

    async def update(
        self,
        principal: Principal,
        submission_id: str,
        *,
        category: str,
        frontend_environment: str | None,
        language: str,
        libraries: list[str],
    ) -> SubmissionRecord:
        current = await self._load(submission_id)
        authorize("update", principal, owner_id=current.owner_id)
        fields = clean_submission_fields(
            category=category,
            frontend_environment=frontend_environment,
            language=language,
            libraries=libraries,
        )
        try:
            return await self.repository.update_submission_fields(
                submission_id,
                category=fields.category,
                frontend_environment=fields.frontend_environment,
                language=fields.language,
                libraries=fields.libraries,
                updated_at=self.clock(),
            )
        except RepositoryNotFoundError as exc:
            raise SubmissionNotFoundError(str(exc)) from exc

    async def delete(self, principal: Principal, submission_id: str) -> None:
        current = await self._load(submission_id)
        authorize("delete", principal, owner_id=current.owner_id)
        try:
            await self.repository.delete_submission(submission_id)
        except RepositoryNotFoundError as exc:
            raise SubmissionNotFoundError(str(exc)) from exc
        logger.info("submission deleted id=%s actor=%s", submission_id, principal.user_id)

    async def find_submissions_to_review(self, principal: Principal, *, limit: int = 100) -> list[SubmissionRecord]:
        authorize("find_to_review", principal)
        return await self.repository.list_review_queue(
            reviewer_id=principal.user_id,
            lock_expired_before=self.clock() - self.lock_timeout,
            limit=limit,
        )

    async def claim_for_review(self, principal: Principal, submission_id: str) -> SubmissionRecord:
        authorize("claim_for_review", principal)
        current = await self._load(submission_id)
        transition = plan_claim(current, principal.user_id, self.clock(), self.lock_timeout)

        updated = await self._apply(current, transition)
        if updated is None:
            latest = await self._load(submission_id)
            if latest.status in TERMINAL_STATUSES:
                raise AlreadyReviewedError(f"submission {submission_id} was reviewed concurrently")
            raise ReviewLockedError(
                f"submission {submission_id} changed concurrently (holder={latest.reviewer_id})"
            )

        if current.reviewer_id and current.reviewer_id != principal.user_id:
            logger.info(
                "review lock taken over id=%s previous=%s reviewer=%s",
                submission_id,
                current.reviewer_id,
                principal.user_id,
            )
        return updated

    async def approve(self, principal: Principal, submission_id: str) -> SubmissionRecord:
        updated = await self._resolve(principal, submission_id, APPROVED, operation="approve")
        await self._notify_approved(updated)
        return updated

    async def reject(self, principal: Principal, submission_id: str) -> SubmissionRecord:
        return await self._resolve(principal, submission_id, REJECTED, operation="reject")

    async def cancel_review(self, principal: Principal, submission_id: str) -> SubmissionRecord:
        return await self._resolve(principal, submission_id, PENDING, operation="cancel_review")

    async def list_approved(
        self,
        principal: Principal,
        *,
        category: str | None = None,
        language: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[SubmissionRecord]:
        authorize("list_approved", principal)
        if category is not None and category not in SUBMISSION_CATEGORIES:
            raise SubmissionValidationError(
                f"invalid category filter: {category!r}",
                display_message="Unknown category.",
            )
        language = language.strip() if language else None
        return await self.repository.list_approved(
            category=category,
            language=language or None,
            limit=limit,
            offset=offset,
        )

    async def _resolve(
        self,
        principal: Principal,
        submission_id: str,
        target_status: str,
        *,
        operation: str,
    ) -> SubmissionRecord:
        authorize(operation, principal)
        current = await self._load(submission_id)
        transition = plan_resolution(current, principal.user_id, target_status)

        updated = await self._apply(current, transition)
        if updated is None:
            # The holder may have re-claimed in the meantime; retry once against the fresh lock.
            latest = await self._load(submission_id)
            transition = plan_resolution(latest, principal.user_id, target_status)
            updated = await self._apply(latest, transition)
        if updated is None:
            raise NotAuthorizedReviewerError(f"review lock on submission {submission_id} changed concurrently")

        logger.info(
            "submission review resolved id=%s status=%s reviewer=%s",
            submission_id,
            target_status,
            principal.user_id,
        )
        return updated

    async def _notify_approved(self, submission: SubmissionRecord) -> None:
        # The approval is already committed; nothing here may fail the request.
        try:
            owner = await self.repository.get_user(submission.owner_id)
        except Exception:
            logger.exception("owner lookup failed for approved submission id=%s", submission.id)
            return
        if owner is None:
            logger.warning("approved submission id=%s has no owner record", submission.id)
            return
        await self.notifier.submission_approved(submission, owner)

    async def _apply(self, current: SubmissionRecord, transition: Transition) -> SubmissionRecord | None:
        try:
            return await self.repository.transition_submission(
                current.id,
                expected_status=current.status,
                expected_reviewer_id=current.reviewer_id,
                expected_review_started_on=current.review_started_on,
                status=transition.status,
                reviewer_id=transition.reviewer_id,
                review_started_on=transition.review_started_on,
                updated_at=self.clock(),
            )
        except RepositoryNotFoundError as exc:
            raise SubmissionNotFoundError(str(exc)) from exc

    async def _load(self, submission_id: str) -> SubmissionRecord:
        try:
            return await self.repository.get_submission(submission_id)
        except RepositoryNotFoundError as exc:
            raise SubmissionNotFoundError(f"submission {submission_id} not found") from exc

    async def _fetch_repository(self, ref: RepositoryRef) -> RepositoryMetadata:
        try:
            return await self.github.fetch_repository(ref)
        except GitHubNotFoundError as exc:
            raise GitHubRepositoryNotFoundError(f"repository {ref.full_name} not found") from exc
        except GitHubError as exc:
            raise ExternalServiceUnavailableError(f"GitHub lookup failed for {ref.full_name}: {exc}") from exc

    async def _ensure_contributor(self, ref: RepositoryRef, principal: Principal) -> None:
        if principal.github_id is None:
            raise NotAContributorError(f"user {principal.user_id} has no GitHub id")
        try:
            contributor = await self.github.find_repository_contributor(ref, principal.github_id)
        except GitHubNotFoundError as exc:
            raise GitHubRepositoryNotFoundError(f"repository {ref.full_name} not found") from exc
        except GitHubError as exc:
            raise ExternalServiceUnavailableError(f"contributor lookup failed for {ref.full_name}: {exc}") from exc
        if contributor is None:
            raise NotAContributorError(f"user github_id={principal.github_id} is not a contributor of {ref.full_name}")
