"""Health endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter

from familyhub.database import health_check as db_health_check

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Status, ISO8601 timestamp and database connectivity
    """
    db_healthy = await db_health_check()

    return {
        "status": "healthy" if db_healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "healthy" if db_healthy else "unhealthy",
    }
