import logging
from datetime import timedelta

from fastapi import Depends, HTTPException

from directory_api.core.config import Settings, get_settings
from directory_api.services.errors import DirectoryError
from directory_api.services.github import GitHubClient, get_github_client
from directory_api.services.mailer import Notifier, get_notifier
from directory_api.services.refresh import RefreshJob
from directory_api.services.repository import get_repository
from directory_api.services.submissions import SubmissionService

logger = logging.getLogger(__name__)


def get_submission_service(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    github: GitHubClient = Depends(get_github_client),
    notifier: Notifier = Depends(get_notifier),
) -> SubmissionService:
    return SubmissionService(
        repository,
        github,
        notifier,
        lock_timeout=timedelta(seconds=settings.review_lock_timeout_seconds),
    )


def get_refresh_job(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    github: GitHubClient = Depends(get_github_client),
) -> RefreshJob:
    return RefreshJob(repository, github, slices_per_day=settings.refresh_slices_per_day)


def http_error(exc: DirectoryError) -> HTTPException:
    logger.info("request rejected code=%s status=%s: %s", exc.code, exc.status_code, exc)
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
