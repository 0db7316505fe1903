"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from allocation_engine.api.routes import (
    allocations_router,
    delete_requests_router,
    health_router,
    payouts_router,
)
from allocation_engine.config import get_settings
from allocation_engine.database import create_schema, dispose_db, init_db
from allocation_engine.errors import AllocationError, ConflictWarning

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    init_db()
    if settings.is_sqlite:
        await create_schema()
    yield
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title="Allocation Engine API",
        description="Allocation ledger, delete-request workflow and payout computation",
        version=settings.engine_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(ConflictWarning)
    async def conflict_warning_handler(request: Request, exc: ConflictWarning) -> JSONResponse:
        """Request-id collision: return the suggestion so the caller can retry or override."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.message,
                "code": "REQUEST_ID_CONFLICT",
                "request_id": exc.request_id,
                "suggested_type": exc.suggested_type,
                "existing_entries": exc.existing_entries,
            },
        )

    @app.exception_handler(AllocationError)
    async def allocation_error_handler(request: Request, exc: AllocationError) -> JSONResponse:
        """Surface domain errors verbatim."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": type(exc).__name__},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(allocations_router, prefix="/api/v1")
    app.include_router(delete_requests_router, prefix="/api/v1")
    app.include_router(payouts_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
