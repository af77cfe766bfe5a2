"""Dev seeding helper for stub authentication."""

import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.access.service import add_user, create_organization
from backend.app.api.auth import DEV_ORG_ID, DEV_USER_ID
from backend.app.db.engine import get_async_engine, get_session_factory, init_models
from backend.app.db.models import Org, User


async def seed_dev_org_and_user(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> None:
    """Seed dev org and user for stub authentication.

    This function is idempotent - safe to run multiple times.
    Creates:
    - Org with id DEV_ORG_ID and the default role catalogue if it doesn't exist
    - Org admin user with id DEV_USER_ID if it doesn't exist
    """
    session_factory = session_factory or get_session_factory()

    async with session_factory() as session:
        org = await session.get(Org, DEV_ORG_ID)
        if org is None:
            print(f"Creating dev org with id {DEV_ORG_ID}...")
            await create_organization(session, name="Dev Org 1", org_id=DEV_ORG_ID)
        else:
            print(f"Dev org already exists: {org.name}")

        result = await session.execute(select(User).where(User.user_id == DEV_USER_ID))
        user = result.scalar_one_or_none()
        if user is None:
            print(f"Creating dev user with id {DEV_USER_ID}...")
            await add_user(
                session,
                org_id=DEV_ORG_ID,
                email="dev@example.com",
                org_role="admin",
                is_org_admin=True,
                user_id=DEV_USER_ID,
            )
        else:
            print(f"Dev user already exists: {user.email}")

        print("✅ Dev seeding complete")


async def _main() -> None:
    await init_models(get_async_engine())
    await seed_dev_org_and_user()


if __name__ == "__main__":
    asyncio.run(_main())
