"""
Health check endpoint.

GET /health — checks MongoDB and Redis connectivity and reports how SMS is
being delivered.
Rules:
- MongoDB failure → "unhealthy" (503) — nothing can be dispatched without it.
- Redis failure or absence → "degraded" (200) — rate limits fall back to
  in-process counters and realtime events are dropped.
- SMS not live → "degraded" (200) — codes and alerts are simulated or refused.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from redis.exceptions import RedisError

from schemas.dto.responses.common import HealthResponse
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["health"])


def _degrade(overall: str) -> str:
    return "degraded" if overall == "healthy" else overall


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> JSONResponse:
    checks: dict[str, str] = {}
    overall = "healthy"

    try:
        db = request.app.state.db
        await db.client.admin.command("ping")
        checks["mongodb"] = "ok"
    except (PyMongoError, OSError) as e:
        log.warning("health_mongodb_failed", error=str(e))
        checks["mongodb"] = "error"
        overall = "unhealthy"

    redis = request.app.state.redis
    if redis is None:
        checks["redis"] = "not_configured"
        overall = _degrade(overall)
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except (RedisError, OSError) as e:
            log.warning("health_redis_failed", error=str(e))
            checks["redis"] = "error"
            overall = _degrade(overall)

    sms = getattr(request.app.state, "sms_provider", None)
    if sms is not None:
        checks["sms"] = sms.delivery_mode
        if sms.delivery_mode != "live":
            overall = _degrade(overall)

    status_code = 503 if overall == "unhealthy" else 200
    return JSONResponse(
        status_code=status_code,
        content=HealthResponse(status=overall, checks=checks).model_dump(),
    )
