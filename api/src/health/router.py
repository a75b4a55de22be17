"""Health check endpoints."""

from fastapi import APIRouter, Request

from src.config import get_settings
from src.core.database import AsyncCassandraConnection
from src.core.redis import get_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - the process is up."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports the state of the backing stores.

    The dashboard needs Cassandra; Redis only backs the title cache.
    """
    settings = get_settings()
    cassandra_ready = AsyncCassandraConnection.is_connected()
    dashboard_ready = (
        cassandra_ready
        and getattr(request.app.state, "dashboard_service", None) is not None
    )
    return {
        "status": "ready" if dashboard_ready else "degraded",
        "environment": settings.environment,
        "cassandra": cassandra_ready,
        "redis": get_redis() is not None,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
