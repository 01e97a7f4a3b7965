# Health check endpoints for system monitoring

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
import psutil
import time
from typing import Dict, Any, Optional
import logging

from core.config import settings
from core.dependencies import get_broker_client, get_redis_manager
from core.kafka import KafkaBrokerClient
from core.redis import RedisManager

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)


class HealthStatus:
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth:
    def __init__(self, name: str, status: str, response_time: float = 0,
                 details: Optional[Dict[str, Any]] = None, error: Optional[str] = None):
        self.name = name
        self.status = status
        self.response_time = response_time
        self.details = details or {}
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "response_time": self.response_time,
            "details": self.details,
            "error": self.error,
        }


def get_uptime() -> float:
    """Seconds since this process started"""
    try:
        return round(time.time() - psutil.Process().create_time(), 3)
    except psutil.Error as e:
        logger.warning(f"Could not read process start time: {e}")
        return 0.0


def check_broker_health(broker: KafkaBrokerClient) -> ComponentHealth:
    details = broker.health()
    if details["connected"]:
        return ComponentHealth("kafka", HealthStatus.HEALTHY, details=details)
    return ComponentHealth("kafka", HealthStatus.UNHEALTHY, details=details,
                           error=details.get("last_error") or "not connected")


async def check_cache_health(redis_manager: RedisManager) -> ComponentHealth:
    # The cache only backs Idempotency-Key replay, so losing it degrades rather than fails.
    start_time = time.time()
    ok = await redis_manager.ping()
    response_time = round((time.time() - start_time) * 1000, 2)
    if ok:
        return ComponentHealth("redis", HealthStatus.HEALTHY, response_time=response_time)
    return ComponentHealth("redis", HealthStatus.DEGRADED, response_time=response_time,
                           error="ping failed")


@router.get("/live")
async def liveness_check(broker: KafkaBrokerClient = Depends(get_broker_client)):
    """
    Liveness check - returns 200 while the process is running.
    Reports process uptime and the broker client's connection state.
    """
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.SERVICE_NAME,
        "uptime": get_uptime(),
        "broker": broker.health(),
    }


@router.get("/ready")
async def readiness_check(
    broker: KafkaBrokerClient = Depends(get_broker_client),
    redis_manager: Optional[RedisManager] = Depends(get_redis_manager),
):
    """
    Readiness check - returns 503 unless the broker client is connected,
    so a process that exhausted its connect attempts is taken out of rotation.
    """
    checks = [check_broker_health(broker)]
    if redis_manager is not None:
        checks.append(await check_cache_health(redis_manager))

    overall_status = HealthStatus.HEALTHY
    for check in checks:
        if check.status == HealthStatus.UNHEALTHY:
            overall_status = HealthStatus.UNHEALTHY
        elif check.status == HealthStatus.DEGRADED and overall_status == HealthStatus.HEALTHY:
            overall_status = HealthStatus.DEGRADED

    response_data = {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "uptime": get_uptime(),
        "checks": [check.to_dict() for check in checks],
    }

    status_code = 200 if overall_status != HealthStatus.UNHEALTHY else 503
    return JSONResponse(content=response_data, status_code=status_code)
