"""
Formmaker Backend — Health Check Route
=======================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Probes the database with SELECT 1 and reports the notification worker.

Status levels:
    - healthy:   database reachable, outbox worker running (HTTP 200)
    - degraded:  outbox worker stopped; requests work but notifications queue up (HTTP 200)
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from formmaker import __version__
from formmaker import database
from formmaker.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(request: Request):
    db_status = "connected"
    overall = "healthy"

    try:
        async with database.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    outbox = request.app.state.services.outbox
    if not outbox.running and overall == "healthy":
        overall = "degraded"

    report = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        outbox="running" if outbox.running else "stopped",
        pending_notifications=outbox.pending,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall == "unhealthy":
        return JSONResponse(status_code=503, content=report.model_dump())
    return report
