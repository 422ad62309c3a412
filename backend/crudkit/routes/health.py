"""
CrudKit — Health Check Route
==============================

What:  `GET /health` for load balancer and container probes.
How:   Runs `SELECT 1` on the application's engine (`app.state.engine`,
       falling back to the default engine) and reports connectivity.
       Returns 200 when the database answers, 503 otherwise.
"""

import logging

from fastapi import APIRouter, Request, Response
from sqlalchemy import text

from crudkit import __version__
from crudkit.database import get_engine
from crudkit.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(request: Request, response: Response) -> HealthResponse:
    engine = getattr(request.app.state, "engine", None) or get_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        logger.error("Health check: database unreachable: %s", e)
        database = "disconnected"

    healthy = database == "connected"
    if not healthy:
        response.status_code = 503
    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=__version__,
        database=database,
    )
