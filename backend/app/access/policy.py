"""Access policy - effective privileges and document visibility.

Privileges gate actions, access levels gate visibility. The two rules are
deliberately independent: a user holding every privilege through a role still
only sees public, own-department and own private documents unless they are an
org admin.
"""

import logging
from collections.abc import Iterable, Sequence
from typing import Protocol
from uuid import UUID

from sqlalchemy import ColumnElement, and_, or_, true

from backend.app.db.models import Doc
from backend.app.errors import PermissionDeniedError
from backend.app.models.access import ALL_PRIVILEGES, Caller, PrivilegeName, Role, UserProfile
from backend.app.models.docs import AccessLevel

logger = logging.getLogger(__name__)


class VisibleDocument(Protocol):
    """Attributes of a document that decide its visibility."""

    access_level: str
    department: str
    uploaded_by: UUID


def find_role(roles: Iterable[Role], role_key: str | None) -> Role | None:
    """Look up a role by key, case-insensitively."""
    if not role_key:
        return None
    normalized = role_key.strip().lower()
    for role in roles:
        if role.key == normalized:
            return role
    return None


def _parse_privileges(names: Iterable[str]) -> set[PrivilegeName]:
    privileges: set[PrivilegeName] = set()
    for name in names:
        try:
            privileges.add(PrivilegeName(name))
        except ValueError:
            logger.warning(f"Ignoring unknown privilege {name!r}")
    return privileges


def effective_privileges(user: UserProfile, roles: Sequence[Role]) -> frozenset[PrivilegeName]:
    """Compute the privilege set of a user inside their tenant.

    Priority:
        1. Org admins hold every privilege
        2. Otherwise: privileges of the user's role (unknown role -> none)
           united with the user's direct grants
    """
    if user.is_org_admin:
        return ALL_PRIVILEGES

    privileges: set[PrivilegeName] = set()

    role = find_role(roles, user.org_role)
    if role is not None:
        privileges.update(role.privileges)

    privileges.update(_parse_privileges(user.direct_privileges))

    return frozenset(privileges)


def can_view(caller: Caller, document: VisibleDocument) -> bool:
    """Check whether the caller may see a document (independent of privileges)."""
    if caller.is_org_admin:
        return True

    level = document.access_level
    if level == AccessLevel.public.value:
        return True
    if level == AccessLevel.department.value:
        return document.department == caller.department
    if level == AccessLevel.private.value:
        return document.uploaded_by == caller.user_id
    return False


def visible_documents_clause(caller: Caller) -> ColumnElement[bool]:
    """SQL form of ``can_view`` for filtering document queries."""
    if caller.is_org_admin:
        return true()

    return or_(
        Doc.access_level == AccessLevel.public.value,
        and_(
            Doc.access_level == AccessLevel.department.value,
            Doc.department == caller.department,
        ),
        and_(
            Doc.access_level == AccessLevel.private.value,
            Doc.uploaded_by == caller.user_id,
        ),
    )


def require_privilege(caller: Caller, privilege: PrivilegeName) -> None:
    """Raise PermissionDeniedError unless the caller holds the privilege."""
    if privilege not in caller.privileges:
        raise PermissionDeniedError(f"Missing privilege: {privilege.value}")
