"""Access control domain models: privileges, roles, tenant settings, callers."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class PrivilegeName(str, Enum):
    """Named capability checked before an action."""

    upload_documents = "upload_documents"
    view_documents = "view_documents"
    edit_documents = "edit_documents"
    delete_documents = "delete_documents"
    query_ai = "query_ai"
    view_search_history = "view_search_history"
    manage_users = "manage_users"
    manage_roles = "manage_roles"
    view_analytics = "view_analytics"
    manage_organization = "manage_organization"


ALL_PRIVILEGES: frozenset[PrivilegeName] = frozenset(PrivilegeName)


class Role(BaseModel):
    """Named bundle of privileges, owned by a tenant."""

    model_config = {"frozen": True}

    key: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    privileges: frozenset[PrivilegeName] = frozenset()
    is_system: bool = False
    is_default: bool = False

    @field_validator("key")
    @classmethod
    def normalize_key(cls, value: str) -> str:
        """Role keys are stored lower-cased and trimmed."""
        return value.strip().lower()


class OrgSettings(BaseModel):
    """Recognized tenant options (0 means unlimited)."""

    allow_self_registration: bool = True
    require_email_verification: bool = False
    max_users: int = Field(0, ge=0)
    max_documents: int = Field(0, ge=0)


class UserProfile(BaseModel):
    """Access-relevant view of a user inside their tenant."""

    user_id: UUID
    org_id: UUID
    org_role: str = "employee"
    direct_privileges: list[str] = Field(default_factory=list)
    is_org_admin: bool = False
    department: str = "General"


class Caller(BaseModel):
    """Resolved identity of the requesting user for one request."""

    model_config = {"frozen": True}

    user_id: UUID
    org_id: UUID
    department: str
    org_role: str
    is_org_admin: bool
    privileges: frozenset[PrivilegeName]
