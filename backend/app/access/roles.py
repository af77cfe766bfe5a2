"""Role catalogue of a tenant.

Roles are value objects embedded in the org row. Every mutation works on a
list of roles and returns a new list; ``save_roles`` writes the whole list
back (last write wins on the aggregate).
"""

from collections.abc import Iterable, Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.models import Org
from backend.app.errors import InvalidInputError, NotFoundError, PermissionDeniedError
from backend.app.models.access import ALL_PRIVILEGES, PrivilegeName, Role

P = PrivilegeName

DEFAULT_ROLES: tuple[Role, ...] = (
    Role(
        key="admin",
        name="Administrator",
        description="Full access to all features",
        privileges=ALL_PRIVILEGES,
        is_system=True,
    ),
    Role(
        key="manager",
        name="Manager",
        description="Can manage documents and view analytics",
        privileges=frozenset(
            {
                P.upload_documents,
                P.view_documents,
                P.edit_documents,
                P.delete_documents,
                P.query_ai,
                P.view_search_history,
                P.view_analytics,
            }
        ),
        is_system=True,
    ),
    Role(
        key="hr",
        name="HR",
        description="Human resources with user management",
        privileges=frozenset(
            {
                P.upload_documents,
                P.view_documents,
                P.edit_documents,
                P.query_ai,
                P.view_search_history,
                P.manage_users,
            }
        ),
        is_system=True,
    ),
    Role(
        key="employee",
        name="Employee",
        description="Standard employee access",
        privileges=frozenset(
            {P.upload_documents, P.view_documents, P.query_ai, P.view_search_history}
        ),
        is_system=True,
        is_default=True,
    ),
    Role(
        key="intern",
        name="Intern",
        description="Limited access for interns",
        privileges=frozenset({P.view_documents, P.query_ai}),
        is_system=True,
    ),
)


def default_roles() -> list[Role]:
    """Role catalogue seeded into a new tenant."""
    return list(DEFAULT_ROLES)


def roles_from_json(raw: Iterable[dict[str, Any]]) -> list[Role]:
    """Decode the roles column of an org row."""
    return [Role.model_validate(item) for item in raw]


def roles_to_json(roles: Iterable[Role]) -> list[dict[str, Any]]:
    """Encode roles for the org row; privileges are stored sorted."""
    encoded = []
    for role in roles:
        item = role.model_dump(mode="json")
        item["privileges"] = sorted(p.value for p in role.privileges)
        encoded.append(item)
    return encoded


def _validate_privileges(names: Iterable[str]) -> frozenset[PrivilegeName]:
    privileges = set()
    for name in names:
        try:
            privileges.add(PrivilegeName(name))
        except ValueError as e:
            raise InvalidInputError(f"Unknown privilege: {name}") from e
    return frozenset(privileges)


def _index_of(roles: Sequence[Role], key: str) -> int:
    normalized = key.strip().lower()
    for i, role in enumerate(roles):
        if role.key == normalized:
            return i
    raise NotFoundError(f"Role not found: {normalized}")


def add_role(
    roles: Sequence[Role],
    *,
    key: str,
    name: str,
    description: str = "",
    privileges: Iterable[str] = (),
) -> list[Role]:
    """Append a custom (non-system, non-default) role.

    Raises:
        InvalidInputError: Key already taken or unknown privilege
    """
    new_role = Role(
        key=key,
        name=name,
        description=description,
        privileges=_validate_privileges(privileges),
    )
    if any(role.key == new_role.key for role in roles):
        raise InvalidInputError(f"Role already exists: {new_role.key}")
    return [*roles, new_role]


def update_role(
    roles: Sequence[Role],
    key: str,
    *,
    name: str | None = None,
    description: str | None = None,
    privileges: Iterable[str] | None = None,
    is_default: bool | None = None,
) -> list[Role]:
    """Patch a role; making it the default clears the flag on all others.

    Raises:
        InvalidInputError: Unknown privilege, or clearing the flag on the default role
        NotFoundError: No such role
    """
    index = _index_of(roles, key)
    current = roles[index]
    if is_default is False and current.is_default:
        raise InvalidInputError("Make another role the default instead of clearing it.")

    changes: dict[str, Any] = {}
    if name is not None:
        changes["name"] = name
    if description is not None:
        changes["description"] = description
    if privileges is not None:
        changes["privileges"] = _validate_privileges(privileges)
    if is_default is not None:
        changes["is_default"] = is_default

    updated = current.model_copy(update=changes)

    result = []
    for i, role in enumerate(roles):
        if i == index:
            result.append(updated)
        elif updated.is_default and role.is_default:
            result.append(role.model_copy(update={"is_default": False}))
        else:
            result.append(role)
    return result


def delete_role(roles: Sequence[Role], key: str) -> list[Role]:
    """Remove a custom role.

    Raises:
        NotFoundError: No such role
        InvalidInputError: The default role cannot be deleted
        PermissionDeniedError: System roles cannot be deleted
    """
    index = _index_of(roles, key)
    if roles[index].is_system:
        raise PermissionDeniedError(f"System role cannot be deleted: {roles[index].key}")
    if roles[index].is_default:
        raise InvalidInputError(f"Default role cannot be deleted: {roles[index].key}")
    return [role for i, role in enumerate(roles) if i != index]


def default_role_key(roles: Iterable[Role], fallback: str = "employee") -> str:
    for role in roles:
        if role.is_default:
            return role.key
    return fallback


async def save_roles(session: AsyncSession, org_id: UUID, roles: Sequence[Role]) -> None:
    """Replace the role catalogue of an org in one statement."""
    result = await session.execute(
        update(Org)
        .where(Org.org_id == org_id)
        .values(roles=roles_to_json(roles), default_role=default_role_key(roles))
    )
    if result.rowcount == 0:
        raise NotFoundError(f"Organization not found: {org_id}")
    await session.commit()
