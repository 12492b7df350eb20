"""
StackIt Backend — Health Check Route
======================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Pings the Document Store (SELECT 1 for the SQL backend) and reports
       which Object Store backend is configured.

Status levels:
    - healthy:   document store reachable (HTTP 200)
    - unhealthy: document store unreachable (HTTP 503)

The identity service and Cloudinary are not probed; both are remote SaaS
endpoints that are only exercised by real requests.
"""

import logging
import time

from fastapi import APIRouter, Depends, Response

from stackit import __version__
from stackit.dependencies import get_document_store, get_object_store
from stackit.gateways.document_store import DocumentStore
from stackit.gateways.object_store import ObjectStore
from stackit.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    response: Response,
    document_store: DocumentStore = Depends(get_document_store),
    object_store: ObjectStore = Depends(get_object_store),
) -> HealthResponse:
    connected = await document_store.ping()
    if not connected:
        logger.warning("Health check: document store unreachable")
        response.status_code = 503

    return HealthResponse(
        status="healthy" if connected else "unhealthy",
        version=__version__,
        document_store="connected" if connected else "disconnected",
        object_store=object_store.name,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
