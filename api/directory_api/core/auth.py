from dataclasses import dataclass
from enum import Enum

from directory_api.services.errors import AccessDeniedError, AuthenticationRequiredError


class Role(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    OWNER = "owner"
    ADMINISTRATOR = "administrator"


@dataclass(slots=True)
class Principal:
    user_id: str | None = None
    github_id: int | None = None
    username: str | None = None
    email: str | None = None
    is_admin: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def roles_for(self, owner_id: str | None = None) -> set[Role]:
        roles = {Role.ANONYMOUS}
        if not self.is_authenticated:
            return roles
        roles.add(Role.AUTHENTICATED)
        if self.is_admin:
            roles.add(Role.ADMINISTRATOR)
        if owner_id is not None and owner_id == self.user_id:
            roles.add(Role.OWNER)
        return roles


ANONYMOUS = Principal()

_EVERYONE = frozenset({Role.ANONYMOUS})
_USERS = frozenset({Role.AUTHENTICATED})
_OWNER_OR_ADMIN = frozenset({Role.OWNER, Role.ADMINISTRATOR})
_ADMIN = frozenset({Role.ADMINISTRATOR})

# Roles allowed to invoke each operation. OWNER only applies to operations on
# an existing submission.
OPERATION_ACCESS: dict[str, frozenset[Role]] = {
    "submit": _USERS,
    "list_owned": _USERS,
    "list_all": _ADMIN,
    "get": _OWNER_OR_ADMIN,
    "get_approved": _EVERYONE,
    "update": _OWNER_OR_ADMIN,
    "delete": _OWNER_OR_ADMIN,
    "find_to_review": _ADMIN,
    "claim_for_review": _ADMIN,
    "approve": _ADMIN,
    "reject": _ADMIN,
    "cancel_review": _ADMIN,
    "list_approved": _EVERYONE,
}

# Roles allowed to read each submission field.
FIELD_ACCESS: dict[str, frozenset[Role]] = {
    "id": _EVERYONE,
    "repository_url": _EVERYONE,
    "category": _EVERYONE,
    "frontend_environment": _EVERYONE,
    "language": _EVERYONE,
    "libraries": _EVERYONE,
    "number_of_stars": _EVERYONE,
    "repository_status": _EVERYONE,
    "created_at": _EVERYONE,
    "owner_id": _OWNER_OR_ADMIN,
    "status": _OWNER_OR_ADMIN,
    "reviewer_id": _ADMIN,
    "review_started_on": _ADMIN,
    "github_data_fetched_on": _ADMIN,
}


def authorize(operation: str, principal: Principal, *, owner_id: str | None = None) -> set[Role]:
    allowed = OPERATION_ACCESS[operation]
    roles = principal.roles_for(owner_id)
    if roles & allowed:
        return roles
    if not principal.is_authenticated:
        raise AuthenticationRequiredError(f"{operation} requires an authenticated principal")
    raise AccessDeniedError(
        f"{operation} denied for user={principal.user_id} roles={sorted(role.value for role in roles)}"
    )


def readable_fields(roles: set[Role]) -> set[str]:
    return {field for field, allowed in FIELD_ACCESS.items() if roles & allowed}
