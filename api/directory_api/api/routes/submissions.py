from fastapi import APIRouter, Depends, Query, Response, status

from directory_api.api.deps import get_refresh_job, get_submission_service, http_error
from directory_api.core.auth import Principal
from directory_api.core.security import get_principal, require_scheduler
from directory_api.schemas.submissions import (
    RefreshSummaryOut,
    SubmissionCreateRequest,
    SubmissionOut,
    SubmissionUpdateRequest,
    submission_out,
)
from directory_api.services.errors import DirectoryError, ExternalServiceUnavailableError
from directory_api.services.refresh import RefreshJob
from directory_api.services.repository import RepositoryUnavailableError
from directory_api.services.submissions import SubmissionService

router = APIRouter()


@router.post("", response_model=SubmissionOut, response_model_exclude_unset=True, status_code=status.HTTP_201_CREATED)
async def submit(
    payload: SubmissionCreateRequest,
    principal: Principal = Depends(get_principal),
    service: SubmissionService = Depends(get_submission_service),
) -> SubmissionOut:
    try:
        record = await service.submit(
            principal,
            repository_url=payload.repository_url,
            category=payload.category,
            frontend_environment=payload.frontend_environment,
            language=payload.language,
            libraries=payload.libraries,
        )
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return submission_out(record, principal.roles_for(record.owner_id))


@router.get("", response_model=list[SubmissionOut], response_model_exclude_unset=True)
async def list_submissions(
    principal: Principal = Depends(get_principal),
    service: SubmissionService = Depends(get_submission_service),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> list[SubmissionOut]:
    try:
        records = await service.list_all(principal, limit=limit, offset=offset)
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return [submission_out(record, principal.roles_for(record.owner_id)) for record in records]


@router.get("/mine", response_model=list[SubmissionOut], response_model_exclude_unset=True)
async def list_my_submissions(
    principal: Principal = Depends(get_principal),
    service: SubmissionService = Depends(get_submission_service),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> list[SubmissionOut]:
    try:
        records = await service.list_owned(principal, limit=limit, offset=offset)
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return [submission_out(record, principal.roles_for(record.owner_id)) for record in records]


@router.get("/review-queue", response_model=list[SubmissionOut], response_model_exclude_unset=True)
async def review_queue(
    principal: Principal = Depends(get_principal),
    service: SubmissionService = Depends(get_submission_service),
    limit: int = Query(default=100, ge=1, le=500),
) -> list[SubmissionOut]:
    try:
        records = await service.find_submissions_to_review(principal, limit=limit)
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return [submission_out(record, principal.roles_for(record.owner_id)) for record in records]


@router.post("/refresh", response_model=RefreshSummaryOut, dependencies=[Depends(require_scheduler)])
async def refresh(job: RefreshJob = Depends(get_refresh_job)) -> RefreshSummaryOut:
    try:
        summary = await job.run_slice()
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return RefreshSummaryOut(
        total=summary.total,
        selected=summary.selected,
        refreshed=summary.refreshed,
        missing=summary.missing,
        failed=summary.failed,
    )


@router.get("/{submission_id}", response_model=SubmissionOut, response_model_exclude_unset=True)
async def get_submission(
    submission_id: str,
    principal: Principal = Depends(get_principal),
    service: SubmissionService = Depends(get_submission_service),
) -> SubmissionOut:
    try:
        record, roles = await service.get(principal, submission_id)
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return submission_out(record, roles)


@router.patch("/{submission_id}", response_model=SubmissionOut, response_model_exclude_unset=True)
async def update_submission(
    submission_id: str,
    payload: SubmissionUpdateRequest,
    principal: Principal = Depends(get_principal),
    service: SubmissionService = Depends(get_submission_service),
) -> SubmissionOut:
    try:
        record = await service.update(
            principal,
            submission_id,
            category=payload.category,
            frontend_environment=payload.frontend_environment,
            language=payload.language,
            libraries=payload.libraries,
        )
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return submission_out(record, principal.roles_for(record.owner_id))


@router.delete("/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_submission(
    submission_id: str,
    principal: Principal = Depends(get_principal),
    service: SubmissionService = Depends(get_submission_service),
) -> Response:
    try:
        await service.delete(principal, submission_id)
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{submission_id}/claim", response_model=SubmissionOut, response_model_exclude_unset=True)
async def claim_for_review(
    submission_id: str,
    principal: Principal = Depends(get_principal),
    service: SubmissionService = Depends(get_submission_service),
) -> SubmissionOut:
    try:
        record = await service.claim_for_review(principal, submission_id)
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return submission_out(record, principal.roles_for(record.owner_id))


@router.post("/{submission_id}/approve", response_model=SubmissionOut, response_model_exclude_unset=True)
async def approve(
    submission_id: str,
    principal: Principal = Depends(get_principal),
    service: SubmissionService = Depends(get_submission_service),
) -> SubmissionOut:
    try:
        record = await service.approve(principal, submission_id)
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return submission_out(record, principal.roles_for(record.owner_id))


@router.post("/{submission_id}/reject", response_model=SubmissionOut, response_model_exclude_unset=True)
async def reject(
    submission_id: str,
    principal: Principal = Depends(get_principal),
    service: SubmissionService = Depends(get_submission_service),
) -> SubmissionOut:
    try:
        record = await service.reject(principal, submission_id)
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return submission_out(record, principal.roles_for(record.owner_id))


@router.post("/{submission_id}/cancel-review", response_model=SubmissionOut, response_model_exclude_unset=True)
async def cancel_review(
    submission_id: str,
    principal: Principal = Depends(get_principal),
    service: SubmissionService = Depends(get_submission_service),
) -> SubmissionOut:
    try:
        record = await service.cancel_review(principal, submission_id)
    except DirectoryError as exc:
        raise http_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise http_error(ExternalServiceUnavailableError(str(exc))) from exc
    return submission_out(record, principal.roles_for(record.owner_id))
