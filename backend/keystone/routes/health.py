"""
Keystone — Health Check Route
===============================

What:  Liveness endpoint for load balancers and process managers.
How:   Reports status, version, environment, worker pid and uptime. No
       dependency checks: the bootstrap owns no database or upstream service.
"""

import logging
import os
import time

from fastapi import APIRouter, Request

from keystone import __version__
from keystone.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Initialized once when the module loads
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Returns the liveness status of this worker process.",
)
async def health_check(request: Request) -> HealthResponse:
    config = request.app.state.config
    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=config.runtime.environment,
        pid=os.getpid(),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
