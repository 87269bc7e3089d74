"""Periodic refresh of star counts and repository health.

Each run processes ``ceil(total / slices_per_day)`` submissions, oldest
refresh first, so that a scheduler firing ``slices_per_day`` times a day
revisits every submission roughly once a day.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from directory_api.core.urls import InvalidRepositoryURLError, parse_repository_url
from directory_api.services.github import GitHubClient, GitHubNotFoundError, RepositoryMetadata
from directory_api.services.repository import SubmissionRecord

logger = logging.getLogger(__name__)

DEFAULT_SLICES_PER_DAY = 24


@dataclass(slots=True)
class RefreshSummary:
    total: int = 0
    selected: int = 0
    refreshed: int = 0
    missing: int = 0
    failed: int = 0


def slice_limit(total: int, slices_per_day: int = DEFAULT_SLICES_PER_DAY) -> int:
    if total <= 0:
        return 0
    return math.ceil(total / max(1, slices_per_day))


def derive_repository_status(metadata: RepositoryMetadata) -> str:
    if metadata.archived:
        return "archived"
    if not metadata.has_issues:
        return "issues-disabled"
    return "available"


class RefreshJob:
    def __init__(
        self,
        repository,
        github: GitHubClient,
        *,
        slices_per_day: int = DEFAULT_SLICES_PER_DAY,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.github = github
        self.slices_per_day = max(1, slices_per_day)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def run_slice(self) -> RefreshSummary:
        summary = RefreshSummary(total=await self.repository.count_submissions())
        limit = slice_limit(summary.total, self.slices_per_day)
        if limit == 0:
            return summary

        submissions = await self.repository.list_submissions_for_refresh(limit)
        summary.selected = len(submissions)
        for submission in submissions:
            outcome = await self._refresh_one(submission)
            if outcome == "refreshed":
                summary.refreshed += 1
            elif outcome == "missing":
                summary.missing += 1
            else:
                summary.failed += 1

        logger.info(
            "refresh slice done total=%s selected=%s refreshed=%s missing=%s failed=%s",
            summary.total,
            summary.selected,
            summary.refreshed,
            summary.missing,
            summary.failed,
        )
        return summary

    async def _refresh_one(self, submission: SubmissionRecord) -> str:
        number_of_stars: int | None = None
        github_data = None
        repository_status: str | None = None
        outcome = "failed"

        try:
            ref = parse_repository_url(submission.repository_url)
            metadata = await self.github.fetch_repository(ref)
        except GitHubNotFoundError:
            logger.info("repository missing for submission id=%s url=%s", submission.id, submission.repository_url)
            repository_status = "missing"
            outcome = "missing"
        except InvalidRepositoryURLError as exc:
            logger.warning("cannot refresh submission id=%s: %s", submission.id, exc)
        except Exception:
            logger.exception("refresh failed for submission id=%s url=%s", submission.id, submission.repository_url)
        else:
            number_of_stars = metadata.number_of_stars
            github_data = metadata.data
            repository_status = derive_repository_status(metadata)
            outcome = "refreshed"

        try:
            await self.repository.record_refresh(
                submission.id,
                fetched_on=self.clock(),
                number_of_stars=number_of_stars,
                github_data=github_data,
                repository_status=repository_status,
            )
        except Exception:
            logger.exception("failed to persist refresh for submission id=%s", submission.id)
            return "failed"
        return outcome
