"""Request context for tenancy enforcement."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """Request context containing org and user identity.

    Used to enforce tenancy boundaries in all database operations. ``org_id``
    is None for a user that has not joined an organization yet; every
    tenant-scoped operation rejects such a context.
    """

    org_id: UUID | None
    user_id: UUID
