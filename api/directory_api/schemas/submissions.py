from dataclasses import asdict
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from directory_api.core.auth import Role, readable_fields
from directory_api.services.repository import SubmissionRecord

SubmissionCategory = Literal["frontend", "backend", "fullstack"]
SubmissionStatus = Literal["pending", "reviewing", "approved", "rejected"]
RepositoryStatus = Literal["available", "archived", "issues-disabled", "missing"]


class SubmissionCreateRequest(BaseModel):
    repository_url: str
    category: str
    frontend_environment: str | None = None
    language: str
    libraries: list[str] = Field(default_factory=list)


class SubmissionUpdateRequest(BaseModel):
    category: str
    frontend_environment: str | None = None
    language: str
    libraries: list[str] = Field(default_factory=list)


class SubmissionOut(BaseModel):
    id: str
    repository_url: str
    category: SubmissionCategory
    frontend_environment: str | None = None
    language: str
    libraries: list[str] = Field(default_factory=list)
    number_of_stars: int = 0
    repository_status: RepositoryStatus = "available"
    created_at: datetime
    owner_id: str | None = None
    status: SubmissionStatus | None = None
    reviewer_id: str | None = None
    review_started_on: datetime | None = None
    github_data_fetched_on: datetime | None = None


class RefreshSummaryOut(BaseModel):
    total: int
    selected: int
    refreshed: int
    missing: int
    failed: int


def submission_out(record: SubmissionRecord, roles: set[Role]) -> SubmissionOut:
    """Project a record onto the fields the caller's roles may read."""
    visible = readable_fields(roles)
    values = {key: value for key, value in asdict(record).items() if key in visible}
    return SubmissionOut(**values)
