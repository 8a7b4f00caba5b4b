"""Health check endpoint.

Simple GET endpoint that verifies the server is running and its
dependencies (database, Redis) are reachable. Open — no token needed.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from sqlalchemy import text

from taskboard import __version__
from taskboard.config import settings
from taskboard.db.engine import engine

router = APIRouter()


@router.get("/health")
async def health_check():
    """Check server health and dependency connectivity."""
    checks = {"server": "ok"}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    try:
        from taskboard.cache import get_redis

        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"error: {e}"

    # Redis only backs rate limiting; the API works without it.
    healthy = checks["database"] == "ok"

    return {
        "success": True,
        "message": "Taskboard backend is running" if healthy else "Taskboard backend is degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "version": __version__,
        "checks": checks,
    }
