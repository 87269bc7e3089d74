"""Domain errors raised by submission and session operations.

``str(exc)`` is the internal diagnostic that goes to logs; ``display_message``
is safe to show to the end user.
"""

from __future__ import annotations


class DirectoryError(Exception):
    code = "directory_error"
    status_code = 400
    default_display_message = "Sorry, something went wrong."

    def __init__(self, message: str, *, display_message: str | None = None) -> None:
        super().__init__(message)
        self.display_message = display_message or self.default_display_message

    def to_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.display_message}


class SubmissionValidationError(DirectoryError):
    code = "validation_error"
    status_code = 422
    default_display_message = "The submission is invalid."


class AuthenticationRequiredError(DirectoryError):
    code = "authentication_required"
    status_code = 401
    default_display_message = "You must be signed in to perform this action."


class AccessDeniedError(DirectoryError):
    code = "access_denied"
    status_code = 403
    default_display_message = "You are not allowed to perform this action."


class SubmissionNotFoundError(DirectoryError):
    code = "not_found"
    status_code = 404
    default_display_message = "The submission could not be found."


class GitHubRepositoryNotFoundError(DirectoryError):
    code = "repository_not_found"
    status_code = 422
    default_display_message = "The specified repository could not be found on GitHub."


class GitHubRepositoryArchivedError(DirectoryError):
    code = "repository_archived"
    status_code = 422
    default_display_message = "Sorry, archived repositories cannot be submitted."


class IssuesDisabledError(DirectoryError):
    code = "issues_disabled"
    status_code = 422
    default_display_message = "Sorry, the repository must have issues enabled."


class NotAContributorError(DirectoryError):
    code = "not_a_contributor"
    status_code = 403
    default_display_message = "Sorry, you must be a contributor of the specified repository."


class ReviewLockedError(DirectoryError):
    code = "review_locked"
    status_code = 409
    default_display_message = "Sorry, another administrator is currently reviewing this submission."


class AlreadyReviewedError(DirectoryError):
    code = "already_reviewed"
    status_code = 409
    default_display_message = "This submission has already been reviewed."


class NotAuthorizedReviewerError(DirectoryError):
    code = "not_authorized_reviewer"
    status_code = 403
    default_display_message = "You must claim this submission for review first."


class ExternalServiceUnavailableError(DirectoryError):
    code = "service_unavailable"
    status_code = 503
    default_display_message = "A required service is temporarily unavailable. Please try again later."


class SignInError(DirectoryError):
    code = "sign_in_failed"
    status_code = 401
    default_display_message = "Sorry, we couldn't sign you in with GitHub."
