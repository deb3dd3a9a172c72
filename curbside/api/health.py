"""Health and readiness checks"""

import logging
from datetime import datetime
from typing import Any

import redis.asyncio as redis
from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from curbside import __version__
from curbside.config import settings
from curbside.db.database import get_db, ping
from curbside.services.catalog import list_services

logger = logging.getLogger(__name__)
router = APIRouter()


async def database_status(db: AsyncSession) -> str:
    try:
        return "healthy" if await ping(db) else "unhealthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return "unhealthy"


async def redis_status() -> str:
    """Redis only backs rate limiting, so an absent URL is not a failure"""
    if not settings.redis_url:
        return "disabled"

    client = redis.from_url(str(settings.redis_url))
    try:
        await client.ping()
        return "healthy"
    except (RedisError, OSError) as e:
        logger.error(f"Redis health check failed: {e}")
        return "unhealthy"
    finally:
        await client.aclose()


@router.get("/")
async def health_check() -> dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "service": "Curbside API",
        "version": __version__,
        "environment": settings.app_env,
    }


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    """Ready when the request store answers; Redis trouble only degrades"""
    checks = {
        "api": "healthy",
        "database": await database_status(db),
        "redis": await redis_status(),
        "payments": "live" if settings.is_payments_configured() else "simulated",
        "catalog": f"{len(list_services())} services",
    }

    if checks["database"] == "unhealthy":
        overall_status = "unhealthy"
    elif checks["redis"] == "unhealthy":
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return {
        "status": overall_status,
        "timestamp": datetime.utcnow().isoformat(),
        "checks": checks,
    }


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
