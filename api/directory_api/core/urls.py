import re
from dataclasses import dataclass

GITHUB_URL_PREFIX = "https://github.com/"
REPOSITORY_URL_MAX_LENGTH = 500
_REPOSITORY_URL_RE = re.compile(r"^https://github\.com/([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+)")


class InvalidRepositoryURLError(ValueError):
    def __init__(self, message: str, display_message: str) -> None:
        super().__init__(message)
        self.display_message = display_message


@dataclass(frozen=True, slots=True)
class RepositoryRef:
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


def parse_repository_url(url: str) -> RepositoryRef:
    if not url.startswith(GITHUB_URL_PREFIX):
        raise InvalidRepositoryURLError(
            f"not a GitHub URL: {url!r}",
            "Sorry, only GitHub repositories are supported.",
        )

    match = _REPOSITORY_URL_RE.match(url)
    if match is None:
        raise InvalidRepositoryURLError(
            f"invalid repository URL: {url!r}",
            "The specified repository URL is invalid.",
        )

    owner, name = match.groups()
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not name:
        raise InvalidRepositoryURLError(
            f"invalid repository URL: {url!r}",
            "The specified repository URL is invalid.",
        )
    return RepositoryRef(owner=owner, name=name)


def clean_repository_url(raw_url: str) -> str:
    """Trim whitespace and a trailing slash; the rest of the URL is kept verbatim."""
    url = raw_url.strip()
    while url.endswith("/") and len(url) > len(GITHUB_URL_PREFIX):
        url = url[:-1]
    return url


def format_repository_url(url: str) -> str:
    if url.startswith(GITHUB_URL_PREFIX):
        return url[len(GITHUB_URL_PREFIX) :]
    return url
