"""Health check endpoint.

Verifies connectivity to the database and Redis and reports the state of
the bank directory and the settlement processor.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from sqlalchemy import text

from interbank_settlement.infrastructure.database.engine import get_engine
from interbank_settlement.infrastructure.redis_client import get_redis_or_none
from interbank_settlement.logging_config import get_logger
from interbank_settlement.schemas.transactions import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(request: Request) -> HealthResponse:
    """Check the database, Redis, the directory snapshot and the processor."""
    db_status = "unknown"
    redis_status = "unknown"

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    redis = get_redis_or_none()
    if redis is None:
        redis_status = "unavailable"
    else:
        try:
            await redis.ping()
            redis_status = "healthy"
        except Exception as exc:
            redis_status = f"unhealthy: {exc}"
            logger.error("health.redis_check_failed", error=str(exc))

    directory = getattr(request.app.state, "directory", None)
    if directory is None:
        directory_status = "unknown"
    elif directory.generation == 0 and len(directory) == 0:
        directory_status = "empty"
    else:
        directory_status = f"{len(directory)} banks (generation {directory.generation})"

    processor = getattr(request.app.state, "processor", None)
    processor_status = "running" if processor is not None and processor.running else "stopped"

    overall = "ok" if db_status == "healthy" and directory_status != "empty" else "degraded"

    return HealthResponse(
        status=overall,
        version="0.1.0",
        database=db_status,
        redis=redis_status,
        directory=directory_status,
        processor=processor_status,
    )
