"""Review lock rules for submissions.

A submission moves pending -> reviewing -> approved | rejected, or back to
pending when the reviewer releases it. The reviewer/review_started_on pair is
an advisory lock: it only expires when another administrator tries to claim
the submission after the timeout.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from directory_api.services.errors import (
    AlreadyReviewedError,
    NotAuthorizedReviewerError,
    ReviewLockedError,
)
from directory_api.services.repository import SubmissionRecord

PENDING = "pending"
REVIEWING = "reviewing"
APPROVED = "approved"
REJECTED = "rejected"
TERMINAL_STATUSES = frozenset({APPROVED, REJECTED})

DEFAULT_LOCK_TIMEOUT = timedelta(minutes=5)


@dataclass(frozen=True, slots=True)
class Transition:
    status: str
    reviewer_id: str | None
    review_started_on: datetime | None


def lock_expired(submission: SubmissionRecord, now: datetime, timeout: timedelta = DEFAULT_LOCK_TIMEOUT) -> bool:
    if submission.status != REVIEWING or submission.review_started_on is None:
        return False
    return now - submission.review_started_on >= timeout


def plan_claim(
    submission: SubmissionRecord,
    reviewer_id: str,
    now: datetime,
    timeout: timedelta = DEFAULT_LOCK_TIMEOUT,
) -> Transition:
    if submission.status in TERMINAL_STATUSES:
        raise AlreadyReviewedError(f"submission {submission.id} is already {submission.status}")

    if submission.status == REVIEWING and submission.reviewer_id != reviewer_id:
        if not lock_expired(submission, now, timeout):
            raise ReviewLockedError(
                f"submission {submission.id} locked by reviewer={submission.reviewer_id} "
                f"since {submission.review_started_on.isoformat() if submission.review_started_on else None}"
            )

    return Transition(status=REVIEWING, reviewer_id=reviewer_id, review_started_on=now)


def plan_resolution(submission: SubmissionRecord, reviewer_id: str, target_status: str) -> Transition:
    """Approve, reject or release (``target_status == PENDING``) a claimed submission."""
    if target_status not in {APPROVED, REJECTED, PENDING}:
        raise ValueError(f"unsupported review outcome: {target_status}")
    if submission.status in TERMINAL_STATUSES:
        raise AlreadyReviewedError(f"submission {submission.id} is already {submission.status}")
    if submission.status != REVIEWING or submission.reviewer_id != reviewer_id:
        raise NotAuthorizedReviewerError(
            f"reviewer={reviewer_id} does not hold the lock on submission {submission.id} "
            f"(status={submission.status}, holder={submission.reviewer_id})"
        )
    return Transition(status=target_status, reviewer_id=None, review_started_on=None)
