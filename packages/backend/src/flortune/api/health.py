"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running
and dependencies (identity store, Redis) are reachable.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from flortune import __version__
from flortune.config import settings
from flortune.db.engine import get_db

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    # Check the identity store
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    # Check Redis (optional, only the rate limiter uses it)
    try:
        from flortune.cache import get_redis

        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"error: {e}"

    status = "healthy" if checks["database"] == "ok" else "unhealthy"
    if status == "healthy" and checks["redis"] != "ok":
        status = "degraded"

    return {"status": status, "oauth_enabled": settings.oauth_enabled, **checks}
