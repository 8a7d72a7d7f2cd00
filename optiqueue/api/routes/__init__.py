"""
API routes module.
"""

from optiqueue.api.routes.health import router as health_router
from optiqueue.api.routes.images import router as images_router
from optiqueue.api.routes.jobs import router as jobs_router

__all__ = ["jobs_router", "images_router", "health_router"]
