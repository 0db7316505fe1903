"""Health, readiness and liveness probes."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError

from allocation_engine.api.dependencies import DbSession
from allocation_engine.config import get_settings
from allocation_engine.models import AllocationEntry, DeleteRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str
    engine_version: str
    business_timezone: str


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Report API and ledger database health. Always 200; see `status`."""
    settings = get_settings()
    database = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        database = "unhealthy"

    return HealthResponse(
        status="healthy" if database == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=database,
        engine_version=settings.engine_version,
        business_timezone=settings.business_timezone,
    )


@router.get("/ready")
async def readiness_check(db: DbSession, response: Response) -> dict[str, str]:
    """Ready once the ledger tables can be queried; 503 otherwise."""
    try:
        await db.execute(select(AllocationEntry.allocation_entry_id).limit(1))
        await db.execute(select(DeleteRequest.delete_request_id).limit(1))
    except SQLAlchemyError as exc:
        logger.warning("Ledger tables not ready: %s", exc)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
