"""
Integration tests for worker execution of the image optimizer.
"""

import asyncio
from pathlib import Path

import pytest

from optiqueue.config import get_settings
from optiqueue.constants import EVENT_JOB_COMPLETED, EVENT_JOB_STARTED, PROCESSOR_OPTIMIZE_IMAGE
from optiqueue.types.events import JobEvent
from optiqueue.types.job import JobOptions
from optiqueue.worker.handlers import get_processor
from optiqueue.worker.optimizer import ImageUpload


@pytest.fixture
def optimizer_settings(processed_dir: Path, monkeypatch: pytest.MonkeyPatch):
    """Point the registered processor at a temporary directory."""
    monkeypatch.setenv("PROCESSED_DIR", str(processed_dir))
    monkeypatch.setenv("CONVERSION_THRESHOLD_MB", "0")
    monkeypatch.setenv("MAX_IMAGE_WIDTH", "64")
    monkeypatch.setenv("MAX_IMAGE_HEIGHT", "64")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


async def wait_until_finished(scheduler, job_id: str, timeout: float = 5.0):
    async def poll():
        while True:
            view = scheduler.get_status(job_id)
            if view.status in ("completed", "failed"):
                return view
            await asyncio.sleep(0.01)

    return await asyncio.wait_for(poll(), timeout=timeout)


class TestWorkerIntegration:
    """Integration tests for pool workers running real processors."""

    @pytest.mark.asyncio
    async def test_full_job_lifecycle_success(
        self,
        make_scheduler,
        make_image,
        optimizer_settings,
        processed_dir: Path,
    ):
        """Test complete job lifecycle: submit -> process -> complete -> fetch result."""
        events: list[JobEvent] = []
        processor = get_processor(PROCESSOR_OPTIMIZE_IMAGE)
        upload = ImageUpload("photo.jpg", "image/jpeg", make_image(256, 128, fmt="JPEG", noise=True))

        async with make_scheduler(job_timeout_seconds=10.0) as scheduler:
            scheduler.subscribe(None, events.append)
            job_id = scheduler.submit(processor, upload, JobOptions(max_retries=1))

            view = await wait_until_finished(scheduler, job_id)

        assert view.status == "completed"
        assert view.retry_count == 0
        assert view.result["processed_file"]["dimensions"] == {"width": 64, "height": 32}
        assert view.result["original_file"]["format"] == "jpeg"
        assert (processed_dir / f"{job_id}.webp").is_file()
        assert [event.event_type for event in events] == [EVENT_JOB_STARTED, EVENT_JOB_COMPLETED]

    @pytest.mark.asyncio
    async def test_invalid_image_fails_after_retries(
        self,
        make_scheduler,
        optimizer_settings,
    ):
        """Test undecodable uploads fail with the processor's error code."""
        processor = get_processor(PROCESSOR_OPTIMIZE_IMAGE)
        upload = ImageUpload("broken.png", "image/png", b"\x89PNG not really")

        async with make_scheduler() as scheduler:
            job_id = scheduler.submit(processor, upload, JobOptions(max_retries=2))
            view = await wait_until_finished(scheduler, job_id)

        assert view.status == "failed"
        assert view.retry_count == 2
        assert view.error.code == "invalid_image"
        assert view.error.details == {"filename": "broken.png"}

    @pytest.mark.asyncio
    async def test_many_images_share_the_pool(
        self,
        make_scheduler,
        make_image,
        optimizer_settings,
        processed_dir: Path,
    ):
        """Test a burst of uploads is processed with at most two in flight."""
        processor = get_processor(PROCESSOR_OPTIMIZE_IMAGE)
        peak = 0

        def track(event: JobEvent) -> None:
            nonlocal peak
            peak = max(peak, scheduler.in_flight_count)

        async with make_scheduler(max_concurrent_jobs=2, job_timeout_seconds=10.0) as scheduler:
            scheduler.subscribe(EVENT_JOB_STARTED, track)
            ids = [
                scheduler.submit(processor, ImageUpload(f"{n}.png", "image/png", make_image(100, 100)))
                for n in range(6)
            ]
            views = [await wait_until_finished(scheduler, job_id) for job_id in ids]

        assert all(view.status == "completed" for view in views)
        assert peak <= 2
        assert len(list(processed_dir.glob("*.webp"))) == 6
