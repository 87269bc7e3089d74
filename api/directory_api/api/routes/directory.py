from fastapi import APIRouter, Depends, Query

from directory_api.api.deps import get_submission_service, http_error
from directory_api.core.auth import Principal
from directory_api.core.security import get_principal
from directory_api.schemas.submissions import SubmissionCategory, SubmissionOut, submission_out
from directory_api.services.errors import DirectoryError, ExternalServiceUnavailableError
from directory_api.services.repository import RepositoryUnavailableError
from directory_api.services.submissions import SubmissionService

router = APIRouter()


@router.get("", response_model=list[SubmissionOut], response_model_exclude_unset=True)
async def list_directory(
    principal: Principal = Depends(get_principal),
    service: SubmissionService = Depends(get_submission_service),
    category: SubmissionCategory | None = Query(default=None),
    language: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[SubmissionOut]:
    try:
        records = await service.list_approved(
            principal,
            category=category,
            language=language,
            limit=limit,
            offset=offset,
        )
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return [submission_out(record, principal.roles_for(record.owner_id)) for record in records]
