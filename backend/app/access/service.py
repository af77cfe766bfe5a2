"""Tenant and caller resolution backed by the database."""

import logging
import re
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.access.policy import effective_privileges
from backend.app.access.roles import default_role_key, default_roles, roles_from_json, roles_to_json
from backend.app.db.context import RequestContext
from backend.app.db.models import Org, User
from backend.app.errors import InvalidInputError, NotFoundError
from backend.app.models.access import Caller, OrgSettings, PrivilegeName, Role, UserProfile

logger = logging.getLogger(__name__)


def require_tenant(ctx: RequestContext) -> UUID:
    """Return the tenant id of the context or reject the request."""
    if ctx.org_id is None:
        raise InvalidInputError("Organization context is required.")
    return ctx.org_id


async def get_org(session: AsyncSession, org_id: UUID) -> Org:
    org = await session.get(Org, org_id)
    if org is None:
        raise NotFoundError(f"Organization not found: {org_id}")
    return org


async def get_org_roles(session: AsyncSession, org_id: UUID) -> list[Role]:
    org = await get_org(session, org_id)
    return roles_from_json(org.roles)


async def get_org_settings(session: AsyncSession, org_id: UUID) -> OrgSettings:
    org = await get_org(session, org_id)
    return OrgSettings.model_validate(org.settings or {})


def _profile(user: User) -> UserProfile:
    return UserProfile(
        user_id=user.user_id,
        org_id=user.org_id,
        org_role=user.org_role,
        direct_privileges=list(user.privileges or []),
        is_org_admin=user.is_org_admin,
        department=user.department,
    )


async def load_caller(ctx: RequestContext, session: AsyncSession) -> Caller:
    """Resolve the requesting user into a Caller with effective privileges.

    The user row is looked up inside the context's tenant only, so a token
    naming a user of another tenant resolves to NotFound.

    Raises:
        InvalidInputError: Context carries no tenant
        NotFoundError: Tenant or user absent (or user inactive)
    """
    org_id = require_tenant(ctx)
    org = await get_org(session, org_id)

    result = await session.execute(
        select(User).where(User.org_id == org_id, User.user_id == ctx.user_id)
    )
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise NotFoundError(f"User not found: {ctx.user_id}")

    profile = _profile(user)
    privileges = effective_privileges(profile, roles_from_json(org.roles))

    return Caller(
        user_id=user.user_id,
        org_id=org_id,
        department=user.department,
        org_role=user.org_role,
        is_org_admin=user.is_org_admin,
        privileges=privileges,
    )


async def get_effective_privileges(ctx: RequestContext, session: AsyncSession) -> list[PrivilegeName]:
    """Effective privileges of the caller, sorted by name."""
    caller = await load_caller(ctx, session)
    return sorted(caller.privileges, key=lambda p: p.value)


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "org"


async def create_organization(
    session: AsyncSession,
    *,
    name: str,
    org_settings: OrgSettings | None = None,
    org_id: UUID | None = None,
) -> Org:
    """Create a tenant seeded with the default role catalogue."""
    if not name or not name.strip():
        raise InvalidInputError("Organization name cannot be empty.")

    roles = default_roles()
    org = Org(
        name=name.strip(),
        slug=slugify(name),
        roles=roles_to_json(roles),
        default_role=default_role_key(roles),
        settings=(org_settings or OrgSettings()).model_dump(),
    )
    if org_id is not None:
        org.org_id = org_id

    session.add(org)
    await session.commit()

    logger.info(f"Created organization {org.slug} ({org.org_id})")
    return org


async def add_user(
    session: AsyncSession,
    *,
    org_id: UUID,
    email: str,
    department: str = "General",
    org_role: str | None = None,
    privileges: list[str] | None = None,
    is_org_admin: bool = False,
    user_id: UUID | None = None,
) -> User:
    """Add a user to a tenant; without an explicit role the tenant default applies."""
    org = await get_org(session, org_id)

    user = User(
        org_id=org_id,
        email=email,
        department=department,
        org_role=(org_role or org.default_role).strip().lower(),
        privileges=list(privileges or []),
        is_org_admin=is_org_admin,
    )
    if user_id is not None:
        user.user_id = user_id

    session.add(user)
    await session.execute(
        update(Org).where(Org.org_id == org_id).values(user_count=Org.user_count + 1)
    )
    await session.commit()
    return user
