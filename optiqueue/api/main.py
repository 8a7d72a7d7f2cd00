"""
FastAPI application entry point.
"""

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from optiqueue import __version__
from optiqueue.api.rate_limit import create_rate_limit_middleware
from optiqueue.api.routes import health_router, images_router, jobs_router
from optiqueue.api.websocket import get_ws_manager, websocket_handler
from optiqueue.config import SchedulerConfig, get_settings
from optiqueue.observability.logging import setup_logging
from optiqueue.observability.metrics import get_metrics, setup_metrics
from optiqueue.observability.tracing import instrument_fastapi, setup_tracing
from optiqueue.scheduler.core import JobScheduler
from optiqueue.worker.optimizer import ImageOptimizer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Starts the job scheduler on startup and drains it on shutdown.
    """
    settings = get_settings()

    setup_logging(settings)
    setup_metrics()
    if settings.tracing_enabled:
        setup_tracing()

    optimizer = ImageOptimizer.from_settings(settings)
    Path(settings.processed_dir).mkdir(parents=True, exist_ok=True)

    scheduler = JobScheduler(SchedulerConfig.from_settings(settings))
    unsubscribe = scheduler.subscribe(None, get_ws_manager().broadcast_job_event)
    await scheduler.start()

    app.state.scheduler = scheduler
    app.state.optimizer = optimizer
    app.state.started_at = time.monotonic()

    logger.info("Application started", extra={"version": __version__})

    try:
        yield
    finally:
        report = await scheduler.shutdown()
        unsubscribe()
        removed = optimizer.cleanup_processed_files(settings.processed_file_max_age_seconds)

        logger.info(
            "Application shutdown",
            extra={
                "abandoned": report.abandoned,
                "pending": report.pending,
                "processed_files_removed": removed,
            },
        )


async def metrics_middleware(request: Request, call_next):
    """Record request count and latency per route template."""
    start = time.perf_counter()
    response = await call_next(request)

    route = request.scope.get("route")
    endpoint = getattr(route, "path", "unmatched")
    get_metrics().record_api_request(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
        duration_seconds=time.perf_counter() - start,
    )
    return response


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: The configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="OptiQueue API",
        description="Image optimization service backed by a bounded in-process job scheduler",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(
        BaseHTTPMiddleware,
        dispatch=create_rate_limit_middleware(),
    )
    app.add_middleware(BaseHTTPMiddleware, dispatch=metrics_middleware)

    app.include_router(health_router)
    app.include_router(jobs_router)
    app.include_router(images_router)

    @app.websocket("/ws/jobs")
    async def jobs_websocket(websocket: WebSocket):
        """
        WebSocket endpoint for real-time job updates.

        Clients receive every job event until they subscribe to specific jobs.
        """
        await websocket_handler(websocket)

    if settings.tracing_enabled:
        instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    app = create_app()

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    run()
