"""Shared pytest fixtures for all test suites."""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backend.app.access.service import add_user, create_organization
from backend.app.db.context import RequestContext
from backend.app.db.engine import create_session_factory
from backend.app.db.models import Base
from backend.app.docs.ingest import process_document, upload_document
from backend.app.models.docs import DocumentMetadata, DocumentSummary, UploadedFile


@dataclass(frozen=True)
class Tenant:
    """Seeded organization with users of different roles."""

    org_id: uuid.UUID
    admin_id: uuid.UUID
    employee_id: uuid.UUID
    colleague_id: uuid.UUID
    intern_id: uuid.UUID
    engineer_id: uuid.UUID

    def ctx(self, user_id: uuid.UUID) -> RequestContext:
        return RequestContext(org_id=self.org_id, user_id=user_id)


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine; StaticPool keeps one shared connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


async def seed_tenant(
    session_factory: async_sessionmaker[AsyncSession],
    name: str,
) -> Tenant:
    """Create an org with an admin, two HR employees, an intern and an engineer."""
    async with session_factory() as session:
        org = await create_organization(session, name=name)
        admin = await add_user(
            session, org_id=org.org_id, email=f"admin@{org.slug}.test", is_org_admin=True
        )
        employee = await add_user(
            session, org_id=org.org_id, email=f"emp@{org.slug}.test", department="HR"
        )
        colleague = await add_user(
            session, org_id=org.org_id, email=f"colleague@{org.slug}.test", department="HR"
        )
        intern = await add_user(
            session, org_id=org.org_id, email=f"intern@{org.slug}.test", org_role="intern"
        )
        engineer = await add_user(
            session, org_id=org.org_id, email=f"eng@{org.slug}.test", department="Engineering"
        )
        return Tenant(
            org_id=org.org_id,
            admin_id=admin.user_id,
            employee_id=employee.user_id,
            colleague_id=colleague.user_id,
            intern_id=intern.user_id,
            engineer_id=engineer.user_id,
        )


@pytest_asyncio.fixture
async def tenant(session_factory: async_sessionmaker[AsyncSession]) -> Tenant:
    """Seeded tenant "Acme"."""
    return await seed_tenant(session_factory, "Acme")


@pytest_asyncio.fixture
async def other_tenant(session_factory: async_sessionmaker[AsyncSession]) -> Tenant:
    """Second seeded tenant, for isolation tests."""
    return await seed_tenant(session_factory, "Globex")


DocumentFactory = Callable[..., Awaitable[DocumentSummary]]


@pytest_asyncio.fixture
async def make_document(session_factory: async_sessionmaker[AsyncSession]) -> DocumentFactory:
    """Upload and process a text document; returns its summary."""

    async def _make(
        ctx: RequestContext,
        text: str,
        *,
        file_name: str = "doc.txt",
        process: bool = True,
        **metadata: Any,
    ) -> DocumentSummary:
        async with session_factory() as session:
            summary = await upload_document(
                session,
                ctx,
                UploadedFile(file_name=file_name, content_type="text/plain", data=text.encode()),
                DocumentMetadata(**metadata),
            )
        if process:
            await process_document(summary.doc_id, summary.org_id, session_factory)
        return summary

    return _make
