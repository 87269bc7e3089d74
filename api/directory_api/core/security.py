import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

import jwt
from fastapi import Depends, Header, HTTPException

from directory_api.core.auth import ANONYMOUS, Principal
from directory_api.core.config import Settings, get_settings
from directory_api.services.errors import (
    AuthenticationRequiredError,
    DirectoryError,
    ExternalServiceUnavailableError,
)
from directory_api.services.repository import RepositoryUnavailableError, UserRecord, get_repository

logger = logging.getLogger(__name__)

SESSION_ISSUER = "app-directory"
OAUTH_STATE_AUDIENCE = "github-oauth-state"
OAUTH_STATE_TTL = timedelta(minutes=10)


class SessionTokenError(Exception):
    """Raised when a session token is missing, malformed, expired or forged."""


class SessionTokens:
    def __init__(self, secret: str | None, *, algorithm: str = "HS256", ttl: timedelta = timedelta(days=30)) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = ttl

    def issue(self, user_id: str, *, now: datetime | None = None) -> str:
        if not self._secret:
            raise SessionTokenError("DIRECTORY_JWT_SECRET is required to issue session tokens")
        issued_at = now or datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "sub": user_id,
            "iss": SESSION_ISSUER,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self._ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> str:
        if not self._secret:
            raise SessionTokenError("DIRECTORY_JWT_SECRET is required to verify session tokens")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                issuer=SESSION_ISSUER,
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.PyJWTError as exc:
            raise SessionTokenError(f"invalid session token: {exc}") from exc
        user_id = payload.get("sub")
        if not isinstance(user_id, str) or not user_id:
            raise SessionTokenError("session token has no subject")
        return user_id

    def issue_state(self, *, now: datetime | None = None) -> str:
        """Sign a short-lived OAuth ``state`` so the callback can prove it came from us."""
        if not self._secret:
            raise SessionTokenError("DIRECTORY_JWT_SECRET is required to issue OAuth state")
        issued_at = now or datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "nonce": secrets.token_urlsafe(16),
            "iss": SESSION_ISSUER,
            "aud": OAUTH_STATE_AUDIENCE,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + OAUTH_STATE_TTL).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify_state(self, state: str) -> None:
        if not self._secret:
            raise SessionTokenError("DIRECTORY_JWT_SECRET is required to verify OAuth state")
        try:
            jwt.decode(
                state,
                self._secret,
                algorithms=[self._algorithm],
                issuer=SESSION_ISSUER,
                audience=OAUTH_STATE_AUDIENCE,
                options={"require": ["nonce", "exp", "iat"]},
            )
        except jwt.PyJWTError as exc:
            raise SessionTokenError(f"invalid OAuth state: {exc}") from exc


@lru_cache
def get_session_tokens() -> SessionTokens:
    settings = get_settings()
    return SessionTokens(
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        ttl=timedelta(hours=settings.session_ttl_hours),
    )


def principal_for_user(user: UserRecord) -> Principal:
    return Principal(
        user_id=user.id,
        github_id=user.github_id,
        username=user.username,
        email=user.email,
        is_admin=user.is_admin,
    )


async def get_principal(
    tokens: SessionTokens = Depends(get_session_tokens),
    repository=Depends(get_repository),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    """Resolve the acting principal; requests without credentials are anonymous."""
    if not authorization:
        return ANONYMOUS

    if not authorization.lower().startswith("bearer "):
        raise _unauthorized("session requires bearer token")

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise _unauthorized("empty bearer token")

    try:
        user_id = tokens.verify(token)
    except SessionTokenError as exc:
        logger.info("rejected session token: %s", exc)
        raise _unauthorized("invalid session token") from exc

    try:
        user = await repository.get_user(user_id)
    except RepositoryUnavailableError as exc:
        raise _as_http(ExternalServiceUnavailableError(str(exc))) from exc

    if user is None:
        raise _unauthorized("unknown session user")

    return principal_for_user(user)


async def require_scheduler(
    settings: Settings = Depends(get_settings),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> None:
    """Guard for the refresh trigger.

    Without ``DIRECTORY_REFRESH_API_KEY`` any caller may trigger a refresh slice.
    """
    if not settings.refresh_api_key:
        logger.warning("refresh triggered without DIRECTORY_REFRESH_API_KEY configured; endpoint is public")
        return

    if not x_api_key or not hmac.compare_digest(x_api_key, settings.refresh_api_key):
        raise _as_http(AuthenticationRequiredError("invalid scheduler credentials", display_message="Invalid scheduler API key."))


def _unauthorized(message: str) -> HTTPException:
    return _as_http(AuthenticationRequiredError(message, display_message="Your session is invalid. Please sign in again."))


def _as_http(exc: DirectoryError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
