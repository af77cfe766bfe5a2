"""Integration tests for document search, suggestions and search analytics."""

import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.access.service import load_caller
from backend.app.audit.query_log import mark_clicked, popular_searches, recent_searches
from backend.app.db.models import Org, QueryLog
from backend.app.errors import InvalidInputError
from backend.app.models.docs import AccessLevel, DocumentCategory
from backend.app.search.service import search_documents, suggest_terms


async def _search(session_factory: async_sessionmaker[AsyncSession], ctx, query: str, **kwargs):
    async with session_factory() as session:
        return await search_documents(session, ctx, query, **kwargs)


@pytest.mark.asyncio
async def test_search_ranks_visible_documents_and_audits_hits(
    session_factory: async_sessionmaker[AsyncSession], tenant, make_document
) -> None:
    ctx = tenant.ctx(tenant.employee_id)
    body = await make_document(ctx, "Remember the travel policy.", title="General Notes")
    titled = await make_document(ctx, "Booking rules.", title="Travel Guide")
    await make_document(
        tenant.ctx(tenant.colleague_id),
        "Private travel plans.",
        title="Travel Secrets",
        access_level=AccessLevel.private,
    )

    page = await _search(session_factory, ctx, "travel")

    assert [hit.document_id for hit in page.documents] == [titled.doc_id, body.doc_id]
    assert (page.total, page.page, page.pages) == (2, 1, 1)
    assert page.audit_id is not None

    async with session_factory() as session:
        row = await session.get(QueryLog, page.audit_id)
        org = await session.get(Org, tenant.org_id)
    assert row.query_type == "search"
    assert row.result_count == 2
    assert [(r["document_title"], r["rank"]) for r in row.search_results] == [
        ("Travel Guide", 1),
        ("General Notes", 2),
    ]
    assert row.cited_chunks == []
    assert org.query_count == 0


@pytest.mark.asyncio
async def test_search_pages_and_filters(
    session_factory: async_sessionmaker[AsyncSession], tenant, make_document
) -> None:
    ctx = tenant.ctx(tenant.employee_id)
    for i in range(5):
        await make_document(ctx, f"Laptop setup step {i}.", title=f"Setup {i}")
    policy = await make_document(
        ctx, "Laptop usage rules.", title="Usage", category=DocumentCategory.policy
    )

    second = await _search(session_factory, ctx, "laptop", page=2, limit=4)
    filtered = await _search(session_factory, ctx, "laptop", category="policy")

    assert (second.total, second.pages, len(second.documents)) == (6, 2, 2)
    assert [hit.document_id for hit in filtered.documents] == [policy.doc_id]

    async with session_factory() as session:
        row = await session.get(QueryLog, second.audit_id)
    assert [r["rank"] for r in row.search_results] == [5, 6]


@pytest.mark.asyncio
async def test_search_is_tenant_scoped(
    session_factory: async_sessionmaker[AsyncSession], tenant, other_tenant, make_document
) -> None:
    await make_document(
        other_tenant.ctx(other_tenant.employee_id), "Globex travel policy.", title="Travel"
    )

    page = await _search(session_factory, tenant.ctx(tenant.admin_id), "travel")

    assert page.documents == []
    assert page.total == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "query, kwargs", [("  ", {}), ("travel", {"page": 0}), ("x", {"limit": 99})]
)
async def test_invalid_search_rejected_before_audit(
    session_factory: async_sessionmaker[AsyncSession], tenant, query: str, kwargs: dict
) -> None:
    with pytest.raises(InvalidInputError):
        await _search(session_factory, tenant.ctx(tenant.employee_id), query, **kwargs)

    async with session_factory() as session:
        assert (await session.execute(select(QueryLog))).scalars().all() == []


@pytest.mark.asyncio
async def test_search_hit_click_is_recorded(
    session_factory: async_sessionmaker[AsyncSession], tenant, make_document
) -> None:
    ctx = tenant.ctx(tenant.employee_id)
    doc = await make_document(ctx, "Travel booking rules.", title="Travel Guide")
    page = await _search(session_factory, ctx, "travel")

    async with session_factory() as session:
        caller = await load_caller(ctx, session)
        assert await mark_clicked(session, caller, page.audit_id, doc.doc_id) is True

    async with session_factory() as session:
        row = await session.get(QueryLog, page.audit_id)
    assert row.search_results[0]["clicked"] is True


@pytest.mark.asyncio
async def test_recent_searches_are_distinct_and_own(
    session_factory: async_sessionmaker[AsyncSession], tenant
) -> None:
    ctx = tenant.ctx(tenant.employee_id)
    for query in ["Travel", "expenses", "travel"]:
        await _search(session_factory, ctx, query)
        await asyncio.sleep(0.01)
    await _search(session_factory, tenant.ctx(tenant.colleague_id), "payroll")

    async with session_factory() as session:
        caller = await load_caller(ctx, session)
        searches = await recent_searches(session, caller)

    assert [s.query for s in searches] == ["travel", "expenses"]


@pytest.mark.asyncio
async def test_popular_searches_count_case_insensitively_per_tenant(
    session_factory: async_sessionmaker[AsyncSession], tenant, other_tenant
) -> None:
    for query in ["Travel", "travel", "expenses"]:
        await _search(session_factory, tenant.ctx(tenant.employee_id), query)
    for _ in range(3):
        await _search(session_factory, other_tenant.ctx(other_tenant.employee_id), "payroll")

    async with session_factory() as session:
        popular = await popular_searches(session, tenant.org_id)

    assert [(p.query, p.count) for p in popular] == [("travel", 2), ("expenses", 1)]


@pytest.mark.asyncio
async def test_suggestions_come_from_visible_titles_and_tags(
    session_factory: async_sessionmaker[AsyncSession], tenant, make_document
) -> None:
    ctx = tenant.ctx(tenant.employee_id)
    await make_document(ctx, "Rules.", title="Travel Handbook", tags=["travel-desk"])
    await make_document(
        tenant.ctx(tenant.colleague_id),
        "Hidden.",
        title="Travelogue",
        access_level=AccessLevel.private,
    )

    async with session_factory() as session:
        caller = await load_caller(ctx, session)
        suggestions = await suggest_terms(session, caller, "trav")
        empty = await suggest_terms(session, caller, "  ")

    assert sorted(suggestions) == ["travel", "travel-desk"]
    assert empty == []
