from fastapi import APIRouter, Depends

from directory_api.api.deps import http_error
from directory_api.core.config import Settings, get_settings
from directory_api.core.security import SessionTokenError, SessionTokens, get_session_tokens
from directory_api.schemas.users import AuthorizeURLOut, SignInOut, SignInRequest, UserOut
from directory_api.services.errors import DirectoryError, ExternalServiceUnavailableError
from directory_api.services.github import GitHubClient, get_github_client
from directory_api.services.repository import RepositoryUnavailableError, get_repository
from directory_api.services.users import sign_in_with_github

router = APIRouter()


@router.get("/github/authorize-url", response_model=AuthorizeURLOut)
async def github_authorize_url(
    settings: Settings = Depends(get_settings),
    github: GitHubClient = Depends(get_github_client),
    tokens: SessionTokens = Depends(get_session_tokens),
) -> AuthorizeURLOut:
    try:
        state = tokens.issue_state()
    except SessionTokenError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    redirect_uri = f"{settings.frontend_url.rstrip('/')}/auth/callback"
    return AuthorizeURLOut(url=github.authorize_url(state=state, redirect_uri=redirect_uri), state=state)


@router.post("/github/callback", response_model=SignInOut)
async def github_callback(
    payload: SignInRequest,
    github: GitHubClient = Depends(get_github_client),
    repository=Depends(get_repository),
    tokens: SessionTokens = Depends(get_session_tokens),
) -> SignInOut:
    try:
        user, token = await sign_in_with_github(
            code=payload.code,
            state=payload.state,
            github=github,
            repository=repository,
            tokens=tokens,
        )
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return SignInOut(token=token, user=UserOut.model_validate(user, from_attributes=True))
