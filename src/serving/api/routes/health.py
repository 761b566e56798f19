"""
Health Endpoints

Liveness, readiness and a per-dependency status report.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Response
from pydantic import BaseModel
from redis.exceptions import RedisError

from src.config import get_settings
from src.database.connection import check_database_health
from src.ingestion.scheduler import get_ingestion_scheduler
from src.serving.cache import get_redis

settings = get_settings()
router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


async def _redis_health() -> Dict[str, Any]:
    try:
        await get_redis().ping()
    except (RedisError, RuntimeError) as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


def _ingestion_health() -> Dict[str, Any]:
    try:
        scheduler = get_ingestion_scheduler()
    except RuntimeError:
        return {"status": "stopped"}
    return {
        "status": "running" if scheduler.is_running else "stopped",
        "queue_depth": len(scheduler.queue),
        "busy": scheduler.loader.is_busy,
    }


def _overall(checks: Dict[str, Dict[str, Any]]) -> str:
    """Database down is unhealthy; anything else down only degrades"""
    if checks["database"]["status"] != "healthy":
        return "unhealthy"
    if checks["redis"]["status"] != "healthy" or checks["ingestion"]["status"] != "running":
        return "degraded"
    return "healthy"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Status of the database, the report cache and the ingestion worker"""
    checks = {
        "database": await check_database_health(),
        "redis": await _redis_health(),
        "ingestion": _ingestion_health(),
    }
    return HealthResponse(
        status=_overall(checks),
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """Ready once the database answers; Redis is optional."""
    database = await check_database_health()
    if database["status"] != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}
