"""Health check endpoints for the campus complaints API v1.

Provides liveness and readiness probes for container deployments.  The
readiness check verifies the document store and the notifier.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

from config.settings import settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    """Readiness check response with individual service statuses."""

    status: str
    checks: dict[str, str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness probe.

    Returns 200 if the application process is running and able to
    handle requests.  Does *not* check downstream dependencies.
    """
    start_time: float = getattr(request.app.state, "start_time", time.time())
    uptime = time.time() - start_time

    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(uptime, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness probe.

    Verifies the document store answers and the notifier is wired so the
    load balancer only routes traffic to fully-initialised instances.
    """
    checks: dict[str, str] = {}
    all_ok = True

    # -- Check store connectivity ------------------------------------------
    store = getattr(request.app.state, "store", None)
    if store is not None:
        try:
            if await store.ping():
                checks["store"] = "ok"
            else:
                checks["store"] = "unreachable"
                all_ok = False
        except Exception as exc:
            checks["store"] = f"error: {exc!s}"
            all_ok = False
    else:
        checks["store"] = "not_initialised"
        all_ok = False

    # -- Check notifier -----------------------------------------------------
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is not None:
        checks["email"] = "ok" if settings.smtp_configured else "not_configured"
        checks["sms"] = settings.sms_provider
    else:
        checks["notifier"] = "not_initialised"
        all_ok = False

    # -- Check complaint service ---------------------------------------------
    if getattr(request.app.state, "complaint_service", None) is not None:
        checks["complaint_service"] = "ok"
    else:
        checks["complaint_service"] = "not_initialised"
        all_ok = False

    status = "ready" if all_ok else "degraded"

    logger.info("health.readiness_check", status=status, checks=checks)

    return ReadinessResponse(status=status, checks=checks)
