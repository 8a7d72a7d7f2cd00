"""
Work processor registry and invocation.

Processors must be idempotent - a job may be executed more than once when it
fails or times out and has retries left.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from optiqueue.config import get_settings
from optiqueue.constants import PROCESSOR_OPTIMIZE_IMAGE
from optiqueue.types.job import Failure, JobError, JobOutcome, Processor, Success
from optiqueue.worker.optimizer import ImageOptimizer, ImageUpload

logger = logging.getLogger(__name__)

# Processor registry
_processors: dict[str, Processor] = {}


def register_processor(name: str) -> Callable[[Processor], Processor]:
    """
    Decorator to register a work processor under a name.

    Args:
        name: The name the HTTP layer binds jobs to.

    Returns:
        Decorator function.

    Example:
        @register_processor("thumbnail")
        def make_thumbnail(upload: ImageUpload, job_id: str) -> dict:
            ...
    """
    def decorator(processor: Processor) -> Processor:
        _processors[name] = processor
        logger.info(f"Registered processor: {name}")
        return processor
    return decorator


def get_processor(name: str) -> Processor | None:
    """
    Get a registered processor.

    Args:
        name: The processor name.

    Returns:
        The processor or None if not found.
    """
    return _processors.get(name)


def list_processors() -> list[str]:
    """List all registered processor names."""
    return list(_processors.keys())


# ============================================================================
# Built-in processors
# ============================================================================


@register_processor(PROCESSOR_OPTIMIZE_IMAGE)
def optimize_image(upload: ImageUpload, job_id: str) -> dict[str, Any]:
    """
    Resize and recompress an uploaded image.

    CPU-bound; the scheduler runs it in a worker thread.
    """
    optimizer = ImageOptimizer.from_settings(get_settings())
    return optimizer.optimize(upload, job_id)


async def execute_processor(
    processor: Processor,
    payload: Any,
    job_id: str,
) -> JobOutcome:
    """
    Invoke a processor and capture its outcome.

    Coroutine functions run on the event loop; plain callables run in a
    worker thread. Returned values become Success, raised exceptions become
    Failure, and an explicit Success/Failure is passed through. A
    CancelledError raised by the processor itself is a Failure too; only
    cancelling the invoking task propagates.

    Args:
        processor: The work processor.
        payload: Payload handed to the processor.
        job_id: The job id handed to the processor.

    Returns:
        The JobOutcome of this attempt.
    """
    try:
        if inspect.iscoroutinefunction(processor):
            result = await processor(payload, job_id)
        else:
            result = await asyncio.to_thread(processor, payload, job_id)
            if inspect.isawaitable(result):
                result = await result
    except Exception as e:
        logger.warning(
            f"Processor raised exception: {e}",
            extra={"job_id": job_id, "error_type": type(e).__name__},
        )
        return Failure(JobError.from_exception(e))
    except asyncio.CancelledError as e:
        # Only a cancel() of this task means the attempt was abandoned
        if asyncio.current_task().cancelling():
            raise
        logger.warning(
            "Processor raised CancelledError",
            extra={"job_id": job_id, "error_type": type(e).__name__},
        )
        return Failure(JobError.from_exception(e))

    if isinstance(result, (Success, Failure)):
        return result
    return Success(result)
