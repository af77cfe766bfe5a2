"""Search endpoints - document search, suggestions, recent and popular searches."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.access.service import load_caller
from backend.app.api.auth import get_current_context
from backend.app.audit.query_log import popular_searches, recent_searches
from backend.app.db.context import RequestContext
from backend.app.db.engine import get_session
from backend.app.models.audit import PopularSearch, RecentSearch
from backend.app.models.search import SearchPage
from backend.app.search.service import MAX_PAGE_SIZE, search_documents, suggest_terms

router = APIRouter(prefix="/search", tags=["search"])
logger = logging.getLogger(__name__)


class SuggestionsResponse(BaseModel):
    suggestions: list[str]


class RecentSearchesResponse(BaseModel):
    searches: list[RecentSearch]


class PopularSearchesResponse(BaseModel):
    searches: list[PopularSearch]


@router.get("", response_model=SearchPage)
async def search(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    q: Annotated[str, Query(description="Search text")],
    category: str | None = None,
    department: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 10,
) -> SearchPage:
    """Rank the caller's visible documents against the search text.

    The returned ``audit_id`` accepts clicks via POST /qa/{audit_id}/click.
    """
    return await search_documents(
        session, ctx, q, category=category, department=department, page=page, limit=limit
    )


@router.get("/suggestions", response_model=SuggestionsResponse)
async def suggestions(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    q: str = "",
) -> SuggestionsResponse:
    caller = await load_caller(ctx, session)
    return SuggestionsResponse(suggestions=await suggest_terms(session, caller, q))


@router.get("/recent", response_model=RecentSearchesResponse)
async def recent(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> RecentSearchesResponse:
    """Distinct recent searches of the caller."""
    caller = await load_caller(ctx, session)
    return RecentSearchesResponse(searches=await recent_searches(session, caller, limit=limit))


@router.get("/popular", response_model=PopularSearchesResponse)
async def popular(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> PopularSearchesResponse:
    """Most frequent searches in the caller's tenant."""
    caller = await load_caller(ctx, session)
    return PopularSearchesResponse(
        searches=await popular_searches(session, caller.org_id, limit=limit)
    )
