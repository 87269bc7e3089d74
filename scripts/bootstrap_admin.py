#!/usr/bin/env python3
"""Emit SQL that grants or revokes the administrator flag on a signed-in user."""

from __future__ import annotations

import argparse


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(
    *,
    revoke: bool = False,
    github_id: int | None = None,
    username: str | None = None,
    email: str | None = None,
) -> str:
    if github_id is not None:
        target_where = f"github_id = {int(github_id)}"
    elif username:
        target_where = f"lower(username) = lower({_quote_sql(username)})"
    elif email:
        target_where = f"lower(email) = lower({_quote_sql(email)})"
    else:
        raise ValueError("one of github_id, username or email is required")

    flag = "false" if revoke else "true"
    action = "revoke" if revoke else "grant"
    return f"""-- App directory administrator {action}
-- The user must have signed in with GitHub at least once.

update users
set is_admin = {flag}, updated_at = now()
where {target_where};

select id, github_id, username, email, is_admin from users where {target_where};
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to grant or revoke directory administrator rights.")
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--github-id", type=int, help="GitHub numeric user id")
    identity_group.add_argument("--username", help="GitHub login")
    identity_group.add_argument("--email", help="Primary email recorded at sign-in")
    parser.add_argument("--revoke", action="store_true", help="Remove the administrator flag instead")
    args = parser.parse_args()

    print(
        render_sql(
            revoke=args.revoke,
            github_id=args.github_id,
            username=args.username,
            email=args.email,
        )
    )


if __name__ == "__main__":
    main()
