"""
Pytest configuration and shared fixtures.
"""

import io
import os
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from PIL import Image
from prometheus_client import CollectorRegistry

# Configure the environment BEFORE importing the app module, which builds an
# application instance at import time
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from optiqueue.api.main import create_app  # noqa: E402
from optiqueue.api.rate_limit import reset_rate_limiter  # noqa: E402
from optiqueue.config import SchedulerConfig, get_settings  # noqa: E402
from optiqueue.observability.metrics import MetricsCollector  # noqa: E402
from optiqueue.scheduler.core import JobScheduler  # noqa: E402


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector on a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def scheduler_config() -> SchedulerConfig:
    """Scheduler config tuned for fast tests."""
    return SchedulerConfig(
        max_concurrent_jobs=2,
        job_timeout_seconds=1.0,
        max_queue_size=10,
        cleanup_interval_seconds=60.0,
        retry_base_delay_seconds=0.01,
        shutdown_grace_seconds=1.0,
    )


@pytest.fixture
def make_scheduler(
    metrics: MetricsCollector,
    scheduler_config: SchedulerConfig,
) -> Callable[..., JobScheduler]:
    """Factory building schedulers from the test config plus overrides."""

    def factory(**overrides) -> JobScheduler:
        config = scheduler_config.model_copy(update=overrides)
        return JobScheduler(config, metrics=metrics)

    return factory


@pytest_asyncio.fixture
async def scheduler(make_scheduler) -> AsyncGenerator[JobScheduler]:
    """A started scheduler, shut down after the test."""
    scheduler = make_scheduler()
    await scheduler.start()
    yield scheduler
    await scheduler.shutdown()


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Factory encoding an in-memory image."""

    def factory(
        width: int = 64,
        height: int = 48,
        fmt: str = "PNG",
        mode: str = "RGB",
        noise: bool = False,
    ) -> bytes:
        if noise:
            image = Image.frombytes(mode, (width, height), os.urandom(width * height * len(mode)))
        else:
            image = Image.new(mode, (width, height), color=(255, 0, 0, 128) if mode == "RGBA" else "red")
        buffer = io.BytesIO()
        image.save(buffer, format=fmt)
        return buffer.getvalue()

    return factory


@pytest.fixture
def processed_dir(tmp_path: Path) -> Path:
    """Directory receiving optimized images."""
    path = tmp_path / "processed"
    path.mkdir()
    return path


@pytest_asyncio.fixture
async def app(
    processed_dir: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncGenerator[FastAPI]:
    """Create a FastAPI app with a running scheduler."""
    monkeypatch.setenv("PROCESSED_DIR", str(processed_dir))
    monkeypatch.setenv("MAX_CONCURRENT_JOBS", "2")
    monkeypatch.setenv("MAX_QUEUE_SIZE", "5")
    monkeypatch.setenv("RETRY_BASE_DELAY_SECONDS", "0.01")
    monkeypatch.setenv("SHUTDOWN_GRACE_SECONDS", "2")
    get_settings.cache_clear()
    reset_rate_limiter()

    app = create_app()
    async with app.router.lifespan_context(app):
        yield app

    get_settings.cache_clear()
    reset_rate_limiter()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
