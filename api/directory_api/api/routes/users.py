from fastapi import APIRouter, Depends

from directory_api.api.deps import http_error
from directory_api.core.auth import Principal
from directory_api.core.security import get_principal
from directory_api.schemas.users import UserOut
from directory_api.services.errors import (
    AuthenticationRequiredError,
    ExternalServiceUnavailableError,
)
from directory_api.services.repository import RepositoryUnavailableError, get_repository

router = APIRouter()


@router.get("/me", response_model=UserOut)
async def me(principal: Principal = Depends(get_principal), repository=Depends(get_repository)) -> UserOut:
    if not principal.is_authenticated:
        raise http_error(AuthenticationRequiredError("no session on /users/me"))
    try:
        user = await repository.get_user(principal.user_id)
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    if user is None:
        raise http_error(AuthenticationRequiredError(f"session user {principal.user_id} no longer exists"))
    return UserOut.model_validate(user, from_attributes=True)
