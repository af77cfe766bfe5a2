"""Integration tests for dev seeding helper."""

import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.access.service import load_caller
from backend.app.api.auth import DEV_ORG_ID, DEV_USER_ID, get_current_context
from backend.app.db.models import Org, User
from backend.app.db.seed_dev import seed_dev_org_and_user
from backend.app.models.access import ALL_PRIVILEGES


def test_dev_ids_match_stub_auth() -> None:
    """Test that dev IDs match the stub auth defaults."""
    assert DEV_ORG_ID == uuid.UUID("00000000-0000-0000-0000-000000000001")
    assert DEV_USER_ID == uuid.UUID("00000000-0000-0000-0000-000000000002")


@pytest.mark.asyncio
async def test_seed_is_idempotent(session_factory: async_sessionmaker[AsyncSession]) -> None:
    await seed_dev_org_and_user(session_factory)
    await seed_dev_org_and_user(session_factory)

    async with session_factory() as session:
        org_count = await session.scalar(select(func.count()).select_from(Org))
        user_count = await session.scalar(select(func.count()).select_from(User))
        org = await session.get(Org, DEV_ORG_ID)

    assert org_count == 1
    assert user_count == 1
    assert org.user_count == 1


@pytest.mark.asyncio
async def test_dev_identity_is_org_admin(session_factory: async_sessionmaker[AsyncSession]) -> None:
    await seed_dev_org_and_user(session_factory)

    ctx = await get_current_context(authorization=None)
    async with session_factory() as session:
        caller = await load_caller(ctx, session)

    assert caller.is_org_admin
    assert caller.privileges == ALL_PRIVILEGES
