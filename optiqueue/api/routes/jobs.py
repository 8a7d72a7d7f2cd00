"""
Job submission and status routes.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse

from optiqueue.api.dependencies import get_optimizer, get_scheduler
from optiqueue.config import get_settings
from optiqueue.constants import (
    API_V1_PREFIX,
    PROCESSOR_OPTIMIZE_IMAGE,
    SPAN_SUBMIT_JOB,
    STATUS_NOT_FOUND,
)
from optiqueue.errors import CapacityExceededError, SchedulerClosedError
from optiqueue.observability.tracing import get_tracer
from optiqueue.scheduler.core import JobScheduler
from optiqueue.types.api import (
    BatchFileError,
    BatchSubmitResponse,
    BulkStatusRequest,
    BulkStatusResponse,
    SubmitJobResponse,
)
from optiqueue.types.job import JobOptions
from optiqueue.types.status import JobStatusView, SchedulerStats
from optiqueue.worker.handlers import get_processor
from optiqueue.worker.optimizer import ImageOptimizer, ImageUpload

logger = logging.getLogger(__name__)

router = APIRouter(prefix=API_V1_PREFIX, tags=["Jobs"])


class UploadRejected(Exception):
    """An uploaded file that cannot be queued."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


async def _read_upload(file: UploadFile, optimizer: ImageOptimizer) -> ImageUpload:
    """
    Read and validate an uploaded image.

    Raises:
        UploadRejected: If the file is too large or not a supported image.
    """
    settings = get_settings()
    max_bytes = int(settings.max_upload_size_mb * 1024 * 1024)

    # One byte past the limit is enough to reject
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise UploadRejected(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            f"File too large. Maximum file size allowed: {settings.max_upload_size_mb:g}MB",
        )

    upload = ImageUpload(
        filename=file.filename or "upload",
        content_type=file.content_type or "application/octet-stream",
        data=data,
    )
    if not optimizer.is_valid_image(upload):
        raise UploadRejected(status.HTTP_400_BAD_REQUEST, "Invalid image format")

    return upload


def _submit_upload(
    scheduler: JobScheduler,
    optimizer: ImageOptimizer,
    upload: ImageUpload,
    options: JobOptions,
) -> SubmitJobResponse:
    """Bind the image optimizer to an upload and queue it."""
    processor = get_processor(PROCESSOR_OPTIMIZE_IMAGE)
    if processor is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"No processor registered for {PROCESSOR_OPTIMIZE_IMAGE}",
        )

    estimated_time = optimizer.estimate_processing_time(upload)

    with get_tracer().start_as_current_span(SPAN_SUBMIT_JOB) as span:
        span.set_attribute("filename", upload.filename)
        span.set_attribute("priority", options.priority)
        job_id = scheduler.submit(processor, upload, options)
        span.set_attribute("job_id", job_id)

    logger.info(
        "Image queued for optimization",
        extra={"job_id": job_id, "filename": upload.filename, "size": upload.size},
    )

    return SubmitJobResponse(
        job_id=job_id,
        filename=upload.filename,
        estimated_time=estimated_time,
    )


def _unavailable(e: Exception) -> HTTPException:
    """Map scheduler backpressure errors to HTTP errors."""
    if isinstance(e, CapacityExceededError):
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(e),
            headers={"Retry-After": "5"},
        )
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=str(e),
    )


@router.post(
    "/jobs",
    response_model=SubmitJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit an image",
    description="Queue a single image for optimization.",
)
async def submit_image(
    image: Annotated[UploadFile, File(description="Image to optimize")],
    priority: Annotated[int, Form()] = 0,
    scheduler: JobScheduler = Depends(get_scheduler),
    optimizer: ImageOptimizer = Depends(get_optimizer),
) -> SubmitJobResponse:
    """
    Queue a single uploaded image.

    Args:
        image: The uploaded image.
        priority: Job priority; higher runs sooner.
        scheduler: The job scheduler.
        optimizer: The image optimizer.

    Returns:
        SubmitJobResponse with the job id and an estimated processing time.

    Raises:
        HTTPException: If the upload is invalid or the queue is full.
    """
    settings = get_settings()

    try:
        upload = await _read_upload(image, optimizer)
    except UploadRejected as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    options = JobOptions(priority=priority, max_retries=settings.single_upload_max_retries)

    try:
        return _submit_upload(scheduler, optimizer, upload, options)
    except (CapacityExceededError, SchedulerClosedError) as e:
        raise _unavailable(e)


@router.post(
    "/jobs/batch",
    response_model=BatchSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a batch of images",
    description="Queue several images at batch priority; invalid files are reported per file.",
)
async def submit_batch(
    images: Annotated[list[UploadFile], File(description="Images to optimize")],
    scheduler: JobScheduler = Depends(get_scheduler),
    optimizer: ImageOptimizer = Depends(get_optimizer),
) -> BatchSubmitResponse:
    """
    Queue a batch of uploaded images.

    Args:
        images: The uploaded images.
        scheduler: The job scheduler.
        optimizer: The image optimizer.

    Returns:
        BatchSubmitResponse listing queued jobs and rejected files.
    """
    settings = get_settings()

    if len(images) > settings.max_batch_files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files. Maximum {settings.max_batch_files} files per request",
        )

    options = JobOptions(
        priority=settings.batch_upload_priority,
        max_retries=settings.batch_upload_max_retries,
    )

    jobs: list[SubmitJobResponse] = []
    errors: list[BatchFileError] = []

    for image in images:
        filename = image.filename or "upload"
        try:
            upload = await _read_upload(image, optimizer)
            jobs.append(_submit_upload(scheduler, optimizer, upload, options))
        except UploadRejected as e:
            errors.append(BatchFileError(filename=filename, error=e.detail))
        except (CapacityExceededError, SchedulerClosedError) as e:
            errors.append(BatchFileError(filename=filename, error=str(e)))

    message = f"{len(jobs)} images queued for processing"
    if errors:
        message += f", {len(errors)} failed"

    return BatchSubmitResponse(jobs=jobs, errors=errors, message=message)


@router.get(
    "/jobs/{job_id}",
    response_model=JobStatusView,
    summary="Get job status",
    description="Poll the status of a job. Unknown or expired ids return 404 with a not_found view.",
)
async def get_job_status(
    job_id: str,
    scheduler: JobScheduler = Depends(get_scheduler),
):
    """
    Get a job's status view.

    Args:
        job_id: The job id returned at submission.
        scheduler: The job scheduler.

    Returns:
        The status view, or a 404 response carrying the not_found view.
    """
    view = scheduler.get_status(job_id)

    if view.status == STATUS_NOT_FOUND:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=view.model_dump(mode="json"),
        )

    return view


@router.post(
    "/jobs/status",
    response_model=BulkStatusResponse,
    summary="Get several job statuses",
)
async def get_job_statuses(
    request: BulkStatusRequest,
    scheduler: JobScheduler = Depends(get_scheduler),
) -> BulkStatusResponse:
    """
    Get status views for several jobs.

    Args:
        request: The job ids to look up.
        scheduler: The job scheduler.

    Returns:
        BulkStatusResponse in request order.
    """
    return BulkStatusResponse(
        jobs=[scheduler.get_status(job_id) for job_id in request.job_ids]
    )


@router.get(
    "/stats",
    response_model=SchedulerStats,
    summary="Get queue statistics",
)
async def get_stats(
    scheduler: JobScheduler = Depends(get_scheduler),
) -> SchedulerStats:
    """Get scheduler statistics."""
    return scheduler.stats()
