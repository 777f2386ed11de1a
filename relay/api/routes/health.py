"""
Health Check Endpoint

Reports application status and database connectivity.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from relay.infra.database import check_db_health

router = APIRouter(tags=["Health"])

# Track application start time for uptime calculation
_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Set application start time. Called once on startup."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    """Get application uptime in seconds."""
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


@router.get(
    "/health",
    summary="Health check",
    description="Returns 200 when the database is reachable, 503 otherwise.",
    responses={503: {"description": "Database unavailable"}},
)
async def health() -> JSONResponse:
    """Health check including database connectivity."""
    now = datetime.now(timezone.utc).isoformat()

    if await check_db_health():
        return JSONResponse(content={
            "status": "healthy",
            "timestamp": now,
            "uptime": get_uptime_seconds(),
            "database": "connected",
        })

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "unhealthy",
            "timestamp": now,
            "database": "disconnected",
        },
    )
