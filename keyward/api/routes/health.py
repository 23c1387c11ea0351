"""
Health Check Endpoints.

Provides health status for the API and its dependencies.
"""
import asyncio
import time
import logging
from datetime import datetime, timezone

import redis
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from ..models import HealthStatus
from ..deps import get_db
from ...database.auth_db import AuthDB
from ...auth.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])


async def _check_database(db: AuthDB) -> str:
    start = time.time()
    await asyncio.to_thread(db.ping)
    latency = (time.time() - start) * 1000
    return f"healthy ({latency:.1f}ms)"


@router.get("", response_model=HealthStatus)
async def health_check(request: Request, db: AuthDB = Depends(get_db)):
    """
    Basic health check endpoint.

    Returns overall system status.
    """
    services = {}
    overall_healthy = True

    # Check credential store
    try:
        services["database"] = await _check_database(db)
    except UpstreamUnavailable as e:
        services["database"] = f"unhealthy: {e.context.get('driver_error', 'unavailable')}"
        overall_healthy = False

    # Check Redis
    redis_client = request.app.state.auth_rate_limiter.redis
    if redis_client is None:
        services["redis"] = "fallback_mode (in-memory)"
    else:
        try:
            start = time.time()
            await asyncio.to_thread(redis_client.ping)
            latency = (time.time() - start) * 1000
            services["redis"] = f"healthy ({latency:.1f}ms)"
        except redis.RedisError as e:
            # Not critical: rate limiting falls back to memory
            services["redis"] = f"unhealthy: {e}"

    return HealthStatus(
        status="healthy" if overall_healthy else "unhealthy",
        version=request.app.state.config.version,
        services=services,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/live")
async def liveness():
    """
    Liveness probe.

    Returns 200 if the process is serving requests.
    """
    return {"status": "alive"}


@router.get("/ready")
async def readiness(db: AuthDB = Depends(get_db)):
    """
    Readiness probe.

    Returns 503 while the credential store is unreachable.
    """
    try:
        await _check_database(db)
    except UpstreamUnavailable as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not ready"},
        )
    return {"status": "ready"}
