from __future__ import annotations

import logging

from directory_api.core.security import SessionTokenError, SessionTokens
from directory_api.services.errors import ExternalServiceUnavailableError, SignInError
from directory_api.services.github import GitHubClient, GitHubError, GitHubIdentityError, GitHubMissingEmailError
from directory_api.services.repository import UserRecord

logger = logging.getLogger(__name__)

MISSING_EMAIL_MESSAGE = (
    "Couldn't get your email address from GitHub. "
    "Please make sure you have a verified primary address in your GitHub account."
)


async def sign_in_with_github(
    *,
    code: str,
    state: str,
    github: GitHubClient,
    repository,
    tokens: SessionTokens,
) -> tuple[UserRecord, str]:
    try:
        tokens.verify_state(state)
    except SessionTokenError as exc:
        raise SignInError(str(exc)) from exc

    try:
        access_token = await github.fetch_access_token(code=code, state=state)
        identity = await github.fetch_user(access_token=access_token)
    except GitHubMissingEmailError as exc:
        raise SignInError(str(exc), display_message=MISSING_EMAIL_MESSAGE) from exc
    except GitHubIdentityError as exc:
        raise SignInError(str(exc)) from exc
    except GitHubError as exc:
        raise ExternalServiceUnavailableError(f"GitHub sign-in failed: {exc}") from exc

    user = await repository.upsert_github_user(
        github_id=identity.github_id,
        username=identity.username,
        email=identity.email,
        avatar_url=identity.avatar_url,
    )
    try:
        token = tokens.issue(user.id)
    except SessionTokenError as exc:
        raise ExternalServiceUnavailableError(str(exc)) from exc

    logger.info("user signed in id=%s github_id=%s", user.id, user.github_id)
    return user, token
