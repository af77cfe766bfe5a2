"""FastAPI application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from backend.app.api.routes.access import router as access_router
from backend.app.api.routes.docs import router as docs_router
from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.api.routes.qa import router as qa_router
from backend.app.api.routes.search import router as search_router
from backend.app.config import get_settings
from backend.app.db.engine import get_async_engine, init_models
from backend.app.errors import (
    InvalidInputError,
    KnowledgeBaseError,
    NotFoundError,
    PermissionDeniedError,
    ProviderError,
    SearchError,
)
from backend.app.llm.client import build_llm_provider
from backend.app.qa.orchestrator import AnswerOrchestrator

logger = logging.getLogger(__name__)

# Most specific first; the first matching class wins
ERROR_STATUS: list[tuple[type[KnowledgeBaseError], int]] = [
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (ProviderError, status.HTTP_502_BAD_GATEWAY),
    (SearchError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create tables and build the text-generation provider once."""
    settings = get_settings()
    await init_models(get_async_engine())
    app.state.orchestrator = AnswerOrchestrator.from_settings(
        build_llm_provider(settings), settings
    )
    yield


app = FastAPI(title="Knowledge Base API", version="0.1.0", lifespan=lifespan)


@app.exception_handler(KnowledgeBaseError)
async def domain_error_handler(request: Request, exc: KnowledgeBaseError) -> JSONResponse:
    """Translate domain errors into HTTP responses."""
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            if isinstance(exc, ProviderError):
                logger.error(f"AI service error on {request.url.path}: {exc}")
                return JSONResponse(
                    status_code=status_code,
                    content={"detail": "The AI service encountered an error. Please try again."},
                )
            return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    logger.error(f"Unhandled domain error on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "internal error"},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unexpected error on {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "internal error"},
    )


# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(access_router, tags=["access"])
app.include_router(docs_router, tags=["docs"])
app.include_router(qa_router, tags=["qa"])
app.include_router(search_router, tags=["search"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Knowledge Base API", "version": "0.1.0"}
