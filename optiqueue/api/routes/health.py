"""
Health check routes.
"""

import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from optiqueue import __version__
from optiqueue.api.dependencies import get_scheduler
from optiqueue.observability.metrics import get_metrics
from optiqueue.scheduler.core import JobScheduler
from optiqueue.types.api import HealthResponse
from optiqueue.types.job import utcnow

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Report service status together with queue statistics.",
)
async def health_check(
    request: Request,
    scheduler: JobScheduler = Depends(get_scheduler),
) -> HealthResponse:
    """
    Perform a health check.

    Args:
        request: The incoming request.
        scheduler: The job scheduler.

    Returns:
        HealthResponse with service status.
    """
    started_at = getattr(request.app.state, "started_at", time.monotonic())

    return HealthResponse(
        status="degraded" if scheduler.is_closing else "healthy",
        version=__version__,
        uptime_seconds=round(time.monotonic() - started_at, 3),
        timestamp=utcnow(),
        queue=scheduler.stats(),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to accept uploads.",
)
async def readiness_check(request: Request) -> dict:
    """
    Kubernetes readiness probe endpoint.

    Returns:
        Ready status.
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    return {"ready": scheduler is not None and not scheduler.is_closing}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """
    Kubernetes liveness probe endpoint.

    Returns:
        Alive status.
    """
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics() -> Response:
    """
    Expose Prometheus metrics.

    Returns:
        Prometheus-formatted metrics.
    """
    metrics_collector = get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
