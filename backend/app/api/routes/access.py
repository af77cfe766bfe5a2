"""Access endpoints - GET /me/privileges and role management under /roles."""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.access import roles as role_ops
from backend.app.access.policy import require_privilege
from backend.app.access.service import get_org_roles, load_caller
from backend.app.api.auth import get_current_context
from backend.app.db.context import RequestContext
from backend.app.db.engine import get_session
from backend.app.models.access import Caller, PrivilegeName, Role

router = APIRouter(tags=["access"])


class PrivilegesResponse(BaseModel):
    """Response for GET /me/privileges."""

    user_id: str
    org_id: str
    org_role: str
    is_org_admin: bool
    privileges: list[PrivilegeName]


class RolesResponse(BaseModel):
    roles: list[Role]


class CreateRoleRequest(BaseModel):
    """Request body for POST /roles."""

    key: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    privileges: list[str] = Field(default_factory=list)


class UpdateRoleRequest(BaseModel):
    """Request body for PATCH /roles/{key}; omitted fields stay unchanged."""

    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    privileges: list[str] | None = None
    is_default: bool | None = None


async def _role_manager(ctx: RequestContext, session: AsyncSession) -> Caller:
    caller = await load_caller(ctx, session)
    require_privilege(caller, PrivilegeName.manage_roles)
    return caller


@router.get("/me/privileges", response_model=PrivilegesResponse)
async def my_privileges(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> PrivilegesResponse:
    """Effective privileges of the caller inside their organization."""
    caller = await load_caller(ctx, session)
    return PrivilegesResponse(
        user_id=str(caller.user_id),
        org_id=str(caller.org_id),
        org_role=caller.org_role,
        is_org_admin=caller.is_org_admin,
        privileges=sorted(caller.privileges, key=lambda p: p.value),
    )


@router.get("/roles", response_model=RolesResponse)
async def list_roles(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> RolesResponse:
    """Role catalogue of the caller's organization."""
    caller = await load_caller(ctx, session)
    return RolesResponse(roles=await get_org_roles(session, caller.org_id))


@router.post("/roles", response_model=RolesResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    request: CreateRoleRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> RolesResponse:
    """Add a custom role."""
    caller = await _role_manager(ctx, session)
    roles = role_ops.add_role(
        await get_org_roles(session, caller.org_id),
        key=request.key,
        name=request.name,
        description=request.description,
        privileges=request.privileges,
    )
    await role_ops.save_roles(session, caller.org_id, roles)
    return RolesResponse(roles=roles)


@router.patch("/roles/{key}", response_model=RolesResponse)
async def update_role(
    key: str,
    request: UpdateRoleRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> RolesResponse:
    """Update a role; making it the default clears the previous default."""
    caller = await _role_manager(ctx, session)
    roles = role_ops.update_role(
        await get_org_roles(session, caller.org_id),
        key,
        name=request.name,
        description=request.description,
        privileges=request.privileges,
        is_default=request.is_default,
    )
    await role_ops.save_roles(session, caller.org_id, roles)
    return RolesResponse(roles=roles)


@router.delete("/roles/{key}", response_model=RolesResponse)
async def delete_role(
    key: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> RolesResponse:
    """Delete a custom role; system roles are protected."""
    caller = await _role_manager(ctx, session)
    roles = role_ops.delete_role(await get_org_roles(session, caller.org_id), key)
    await role_ops.save_roles(session, caller.org_id, roles)
    return RolesResponse(roles=roles)
