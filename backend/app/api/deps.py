"""Shared FastAPI dependencies for services built at startup."""

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.config import get_settings
from backend.app.db.engine import get_session_factory
from backend.app.qa.orchestrator import AnswerOrchestrator


def get_orchestrator(request: Request) -> AnswerOrchestrator:
    """Orchestrator built once in the app lifespan (no provider if never started)."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        orchestrator = AnswerOrchestrator.from_settings(None, get_settings())
    return orchestrator


def get_background_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives the request session."""
    return get_session_factory()
