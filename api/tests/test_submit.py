from __future__ import annotations

import pytest

from directory_api.core.auth import ANONYMOUS
from directory_api.services.errors import (
    AccessDeniedError,
    AuthenticationRequiredError,
    ExternalServiceUnavailableError,
    GitHubRepositoryArchivedError,
    GitHubRepositoryNotFoundError,
    IssuesDisabledError,
    NotAContributorError,
    SubmissionValidationError,
)
from directory_api.services.github import GitHubUnavailableError
from directory_api.services.mailer import EmailTransport
from directory_api.services.submissions import SubmissionService, clean_submission_fields


def _submit(service, principal, url="https://github.com/acme/widgets", **overrides):
    payload = {
        "repository_url": url,
        "category": "backend",
        "frontend_environment": None,
        "language": "Go",
        "libraries": ["Gin"],
    }
    payload.update(overrides)
    return service.submit(principal, **payload)


def test_submit_owned_repository_creates_pending_record(run, service, store, github, contributor, clock, mail_transport) -> None:
    github.add_repository("acme/widgets", stars=120, owner_id=contributor.github_id)

    record = run(_submit(service, contributor))

    assert record.status == "pending"
    assert record.number_of_stars == 120
    assert record.repository_status == "available"
    assert record.owner_id == contributor.user_id
    assert record.reviewer_id is None
    assert record.review_started_on is None
    assert record.created_at == clock.now
    assert record.github_data_fetched_on == clock.now
    assert record.libraries == ["Gin"]
    assert run(store.get_submission(record.id)) == record
    # owner match skips the contributor lookup
    assert github.calls == [("repository", "acme/widgets")]

    assert len(mail_transport.messages) == 1
    message = mail_transport.messages[0]
    assert message.recipient == "reviewers@example.test"
    assert "acme/widgets" in message.body
    assert "https://directory.example.test/submissions/review" in message.body


def test_submit_with_empty_libraries_creates_nothing(run, service, store, github, contributor) -> None:
    github.add_repository("acme/widgets", owner_id=contributor.github_id)

    with pytest.raises(SubmissionValidationError) as exc_info:
        run(_submit(service, contributor, libraries=[]))

    assert exc_info.value.display_message == "You must specify at least one library or framework."
    assert store.submissions == {}
    assert github.calls == []


@pytest.mark.parametrize(
    "url",
    [
        "https://gitlab.com/acme/widgets",
        "http://github.com/acme/widgets",
        "github.com/acme/widgets",
        "https://github.com/acme",
        "",
    ],
)
def test_submit_rejects_non_github_urls_before_any_call(run, service, store, github, contributor, url) -> None:
    with pytest.raises(SubmissionValidationError):
        run(_submit(service, contributor, url=url))

    assert github.calls == []
    assert store.submissions == {}


def test_submit_rejects_overlong_url(run, service, github, contributor) -> None:
    url = "https://github.com/acme/" + "w" * 500
    with pytest.raises(SubmissionValidationError):
        run(_submit(service, contributor, url=url))
    assert github.calls == []


def test_submit_requires_signed_in_user(run, service, github) -> None:
    with pytest.raises(AuthenticationRequiredError):
        run(_submit(service, ANONYMOUS))
    assert github.calls == []


def test_submit_missing_repository(run, service, store, contributor) -> None:
    with pytest.raises(GitHubRepositoryNotFoundError):
        run(_submit(service, contributor))
    assert store.submissions == {}


def test_submit_archived_repository(run, service, store, github, contributor) -> None:
    github.add_repository("acme/widgets", owner_id=contributor.github_id, archived=True)
    with pytest.raises(GitHubRepositoryArchivedError):
        run(_submit(service, contributor))
    assert store.submissions == {}


def test_submit_repository_without_issues(run, service, store, github, contributor) -> None:
    github.add_repository("acme/widgets", owner_id=contributor.github_id, has_issues=False)
    with pytest.raises(IssuesDisabledError):
        run(_submit(service, contributor))
    assert store.submissions == {}


def test_submit_github_outage_maps_to_unavailable(run, service, github, contributor) -> None:
    github.failures["acme/widgets"] = GitHubUnavailableError("rate limited", status_code=403)
    with pytest.raises(ExternalServiceUnavailableError):
        run(_submit(service, contributor))


def test_submit_requires_contributor_when_not_owner(run, service, store, github, outsider) -> None:
    github.add_repository("acme/widgets", owner_id=1)

    with pytest.raises(NotAContributorError):
        run(_submit(service, outsider))

    assert store.submissions == {}
    assert github.calls == [("repository", "acme/widgets"), ("contributors", "acme/widgets")]


def test_submit_accepts_listed_contributor(run, service, github, outsider) -> None:
    github.add_repository("acme/widgets", owner_id=1)
    github.contributors["acme/widgets"] = {outsider.github_id}

    record = run(_submit(service, outsider))

    assert record.owner_id == outsider.user_id


def test_administrator_skips_contributor_check(run, service, github, admin_a) -> None:
    github.add_repository("acme/widgets", owner_id=1)

    record = run(_submit(service, admin_a))

    assert record.status == "pending"
    assert ("contributors", "acme/widgets") not in github.calls


def test_duplicate_repository_urls_are_allowed(run, service, github, contributor) -> None:
    github.add_repository("acme/widgets", owner_id=contributor.github_id)

    first = run(_submit(service, contributor))
    second = run(_submit(service, contributor, url="https://github.com/acme/widgets/"))

    assert first.id != second.id
    assert second.repository_url == "https://github.com/acme/widgets"


def test_submit_succeeds_when_notification_fails(run, store, github, notifier, clock, contributor) -> None:
    class BrokenTransport(EmailTransport):
        def send(self, mail) -> None:
            raise OSError("smtp unreachable")

    notifier.transport = BrokenTransport()
    service = SubmissionService(store, github, notifier, clock=clock)
    github.add_repository("acme/widgets", owner_id=contributor.github_id)

    record = run(_submit(service, contributor))

    assert record.id in store.submissions


def test_backend_submissions_drop_frontend_environment() -> None:
    fields = clean_submission_fields(
        category="backend",
        frontend_environment="web",
        language=" Go ",
        libraries=[" Gin ", ""],
    )
    assert fields.frontend_environment is None
    assert fields.language == "Go"
    assert fields.libraries == ["Gin"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"category": "mobile"},
        {"category": "frontend", "frontend_environment": "tv"},
        {"language": ""},
        {"language": "x" * 101},
        {"libraries": ["a", "b", "c", "d", "e", "f"]},
        {"libraries": ["x" * 51]},
    ],
)
def test_field_validation(overrides) -> None:
    values = {"category": "fullstack", "frontend_environment": "web", "language": "Python", "libraries": ["FastAPI"]}
    values.update(overrides)
    with pytest.raises(SubmissionValidationError):
        clean_submission_fields(**values)


def test_owner_can_edit_but_outsider_cannot(run, service, contributor, outsider, pending_submission) -> None:
    updated = run(
        service.update(
            contributor,
            pending_submission.id,
            category="fullstack",
            frontend_environment="web",
            language="Go",
            libraries=["Gin", "htmx"],
        )
    )
    assert updated.category == "fullstack"
    assert updated.libraries == ["Gin", "htmx"]

    with pytest.raises(AccessDeniedError):
        run(service.delete(outsider, pending_submission.id))
