"""
RadCatalog Backend - Health Check Route
=========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database (SELECT 1) and the upstream catalog (cheap listing
       probe) and returns an aggregate status.

Status levels:
    - healthy:   database and upstream reachable
    - degraded:  upstream unreachable; reads still served from the mirror
    - unhealthy: database unreachable
"""

import logging
import time

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app import __version__
from app.database import engine
from app.dependencies import get_catalog_source
from app.schemas.catalog import HealthResponse
from app.services.catalog_source import CatalogSource

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Track when the service started for uptime reporting
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Returns the health status of the backend service and its dependencies.",
)
async def health_check(
    source: CatalogSource = Depends(get_catalog_source),
) -> HealthResponse:
    db_status = "connected"
    upstream_status = "available"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check Upstream Catalog ────────────────────────────────────────────
    if not await source.health_check():
        upstream_status = "unavailable"
        overall = "degraded" if overall != "unhealthy" else overall
        logger.warning("Health check: upstream catalog unreachable")

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        upstream=upstream_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
