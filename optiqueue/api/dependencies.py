"""
FastAPI dependencies exposing the objects owned by the application lifespan.
"""

from fastapi import HTTPException, Request, status

from optiqueue.scheduler.core import JobScheduler
from optiqueue.worker.optimizer import ImageOptimizer


def get_scheduler(request: Request) -> JobScheduler:
    """Get the scheduler started by the application lifespan."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job scheduler is not running",
        )
    return scheduler


def get_optimizer(request: Request) -> ImageOptimizer:
    """Get the image optimizer configured for this application."""
    return request.app.state.optimizer
