"""GitHub REST API client.

Covers the two things the directory needs from GitHub: repository metadata
(stars, archived flag, issue tracker, contributors) fetched with the
application's personal access token, and the OAuth sign-in handshake.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any
from urllib.parse import urlencode

import httpx

from directory_api.core.config import Settings, get_settings
from directory_api.core.urls import RepositoryRef

logger = logging.getLogger(__name__)

USER_AGENT = "app-directory/0.1"


class GitHubError(Exception):
    """Base GitHub client error."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubNotFoundError(GitHubError):
    """Raised when GitHub answers 404 for the requested resource."""


class GitHubUnavailableError(GitHubError):
    """Raised on transport failures, rate limiting or unexpected statuses."""


class GitHubIdentityError(GitHubError):
    """Raised when a signed-in account lacks data the directory requires."""


class GitHubMissingEmailError(GitHubIdentityError):
    """Raised when the account has no verified primary e-mail address."""


@dataclass(slots=True)
class RepositoryMetadata:
    number_of_stars: int
    owner_id: int | None
    archived: bool
    has_issues: bool
    data: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(slots=True)
class GitHubIdentity:
    github_id: int
    username: str
    email: str
    avatar_url: str


class GitHubClient:
    def __init__(
        self,
        *,
        api_base_url: str = "https://api.github.com",
        oauth_base_url: str = "https://github.com",
        client_id: str | None = None,
        client_secret: str | None = None,
        personal_access_token: str | None = None,
        timeout_seconds: float = 10.0,
        contributors_page_size: int = 100,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_base_url = api_base_url.rstrip("/")
        self.oauth_base_url = oauth_base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.personal_access_token = personal_access_token
        self.timeout_seconds = timeout_seconds
        self.contributors_page_size = max(1, min(contributors_page_size, 100))
        self._client = client

    async def fetch_repository(self, ref: RepositoryRef) -> RepositoryMetadata:
        data = await self._get_json(f"/repos/{ref.owner}/{ref.name}", token=self.personal_access_token)
        if not isinstance(data, dict):
            raise GitHubUnavailableError(f"unexpected repository payload for {ref.full_name}")

        owner = data.get("owner")
        owner_id = owner.get("id") if isinstance(owner, dict) else None
        return RepositoryMetadata(
            number_of_stars=max(0, int(data.get("stargazers_count") or 0)),
            owner_id=int(owner_id) if owner_id is not None else None,
            archived=bool(data.get("archived", False)),
            has_issues=bool(data.get("has_issues", False)),
            data=data,
        )

    async def find_repository_contributor(self, ref: RepositoryRef, user_id: int) -> dict[str, Any] | None:
        """Look for ``user_id`` among the first page of contributors.

        Only one page is requested, so contributors beyond the page size are not found.
        """
        data = await self._get_json(
            f"/repos/{ref.owner}/{ref.name}/contributors",
            token=self.personal_access_token,
            params={"per_page": self.contributors_page_size},
        )
        if not isinstance(data, list):
            return None
        for contributor in data:
            if isinstance(contributor, dict) and contributor.get("id") == user_id:
                return contributor
        return None

    def authorize_url(self, *, state: str, redirect_uri: str | None = None) -> str:
        params = {"client_id": self.client_id or "", "scope": "user:email", "state": state}
        if redirect_uri:
            params["redirect_uri"] = redirect_uri
        return f"{self.oauth_base_url}/login/oauth/authorize?{urlencode(params)}"

    async def fetch_access_token(self, *, code: str, state: str) -> str:
        if not self.client_id or not self.client_secret:
            raise GitHubUnavailableError("GitHub OAuth application credentials are not configured")

        response = await self._send(
            "POST",
            f"{self.oauth_base_url}/login/oauth/access_token",
            json={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "state": state,
            },
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )
        if response.status_code != 200:
            raise GitHubUnavailableError(
                f"access token exchange failed (HTTP status: {response.status_code})",
                status_code=response.status_code,
            )

        payload = response.json()
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token:
            error = payload.get("error") if isinstance(payload, dict) else None
            raise GitHubIdentityError(f"access token missing from GitHub response (error: {error})")
        return access_token

    async def fetch_user(self, *, access_token: str) -> GitHubIdentity:
        user_data = await self._get_json("/user", token=access_token)
        emails_data = await self._get_json("/user/emails", token=access_token)
        if not isinstance(user_data, dict):
            raise GitHubUnavailableError("unexpected /user payload")

        email: str | None = None
        for entry in emails_data if isinstance(emails_data, list) else []:
            if isinstance(entry, dict) and entry.get("primary") and entry.get("verified"):
                email = entry.get("email")
                break
        if not email:
            raise GitHubMissingEmailError("verified primary email not found")

        return GitHubIdentity(
            github_id=int(user_data["id"]),
            username=str(user_data["login"]),
            email=email,
            avatar_url=str(user_data.get("avatar_url") or ""),
        )

    async def _get_json(
        self,
        path: str,
        *,
        token: str | None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": USER_AGENT,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        response = await self._send("GET", f"{self.api_base_url}{path}", params=params, headers=headers)
        if response.status_code == 404:
            raise GitHubNotFoundError(f"GitHub resource not found: {path}", status_code=404)
        if response.status_code == 204:
            return []
        if response.status_code != 200:
            remaining = response.headers.get("X-RateLimit-Remaining")
            raise GitHubUnavailableError(
                f"GitHub API error for {path} (HTTP status: {response.status_code}, rate_remaining: {remaining})",
                status_code=response.status_code,
            )
        return response.json()

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.request(method, url, **kwargs)
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("GitHub request failed method=%s url=%s error=%s", method, url, exc)
            raise GitHubUnavailableError(f"GitHub request failed: {exc}") from exc


def build_github_client(settings: Settings) -> GitHubClient:
    return GitHubClient(
        api_base_url=settings.github_api_base_url,
        oauth_base_url=settings.github_oauth_base_url,
        client_id=settings.github_client_id,
        client_secret=settings.github_client_secret,
        personal_access_token=settings.github_personal_access_token,
        timeout_seconds=settings.github_timeout_seconds,
        contributors_page_size=settings.github_contributors_page_size,
    )


@lru_cache
def get_github_client() -> GitHubClient:
    return build_github_client(get_settings())
