"""System health endpoints.

Endpoints:
- /health  — Lightweight liveness probe (no dependency checks)
- /ready   — Readiness probe (checks the database)
"""

import asyncio
import logging
import time
from datetime import UTC, datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from src import __version__
from src.api.rate_limit import limiter
from src.api.schemas import HealthResponse, HealthStatus
from src.storage import ping_db

logger = logging.getLogger(__name__)

router = APIRouter()

_HEALTH_CHECK_TIMEOUT_S = 5.0


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check (Liveness)",
    description="Simple health check for load balancers. Returns 200 if the service is running.",
)
@limiter.exempt
async def health_check(request: Request) -> HealthResponse:
    """Basic health check endpoint (liveness probe).

    Does NOT check dependencies — use /ready for readiness probes.
    """
    return HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=datetime.now(UTC),
        version=__version__,
    )


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness Probe",
    description="Readiness check that verifies the database. Returns 503 if not ready.",
)
@limiter.exempt
async def readiness_check(request: Request) -> HealthResponse | JSONResponse:
    """Readiness probe for container orchestrators.

    Returns 200 when the service can reach PostgreSQL, 503 otherwise.
    """
    message = await _check_database()
    if message is not None:
        body = HealthResponse(
            status=HealthStatus.UNHEALTHY,
            version=__version__,
            message=message,
        )
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
    return HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=datetime.now(UTC),
        version=__version__,
    )


async def _check_database() -> str | None:
    """Ping the database with a timeout; returns an error message or None."""
    start = time.perf_counter()
    try:
        await asyncio.wait_for(ping_db(), timeout=_HEALTH_CHECK_TIMEOUT_S)
    except TimeoutError:
        logger.error("Database health check timed out after %.1fs", _HEALTH_CHECK_TIMEOUT_S)
        return "Database health check timed out"
    except (SQLAlchemyError, OSError) as e:
        latency = (time.perf_counter() - start) * 1000
        logger.error("Database health check failed after %.0fms: %s", latency, e)
        return "Database unavailable"
    return None
