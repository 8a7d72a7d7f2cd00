"""
Pool worker for executing jobs.

Each worker claims one job at a time from its scheduler, runs the work
processor under the per-job timeout and reports the outcome back. The
scheduler starts exactly ``max_concurrent_jobs`` workers.
"""

import asyncio
import functools
import logging
from typing import TYPE_CHECKING

from optiqueue.constants import SPAN_EXECUTE_JOB
from optiqueue.observability.logging import bind_context, clear_context
from optiqueue.observability.tracing import get_tracer
from optiqueue.types.job import Failure, Job, JobError
from optiqueue.worker.handlers import execute_processor

if TYPE_CHECKING:
    from optiqueue.scheduler.core import JobScheduler

logger = logging.getLogger(__name__)


class Worker:
    """
    Job worker that pulls from a scheduler until it shuts down.

    Features:
    - One job at a time, so the pool size bounds concurrency
    - Per-attempt timeout; timed-out coroutine processors are cancelled
    - Yields one loop tick between jobs
    """

    def __init__(self, scheduler: "JobScheduler", worker_id: str):
        """
        Initialize the worker.

        Args:
            scheduler: The scheduler to pull jobs from.
            worker_id: Identifier used in logs.
        """
        self._scheduler = scheduler
        self.worker_id = worker_id
        self.current_job: Job | None = None

    async def run(self) -> None:
        """Claim and execute jobs until the scheduler closes."""
        logger.debug("Worker starting", extra={"worker_id": self.worker_id})

        while not self._scheduler.is_closing:
            job = self._scheduler.claim_next()

            if job is None:
                await self._scheduler.wait_for_work()
                continue

            try:
                await self._execute(job)
            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.worker_id, "job_id": job.id},
                )
                # Never leave a claimed job stuck in processing
                self._scheduler.record_outcome(job, Failure(JobError.from_exception(e)))

            # Re-dispatch on the next tick rather than recursing
            await asyncio.sleep(0)

        logger.debug("Worker stopped", extra={"worker_id": self.worker_id})

    async def _execute(self, job: Job) -> None:
        """
        Execute a single job attempt.

        Args:
            job: The job claimed from the scheduler.
        """
        timeout = self._scheduler.config.job_timeout_seconds
        self.current_job = job
        bind_context(job_id=job.id)

        try:
            with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
                span.set_attribute("job_id", job.id)
                span.set_attribute("priority", job.priority)
                span.set_attribute("retry_count", job.retry_count)

                task = asyncio.ensure_future(
                    execute_processor(job.processor, job.payload, job.id)
                )
                try:
                    done, _ = await asyncio.wait({task}, timeout=timeout)
                except asyncio.CancelledError:
                    task.cancel()
                    raise

                if task in done:
                    if task.cancelled():
                        outcome = Failure(JobError.from_exception(asyncio.CancelledError()))
                    else:
                        outcome = task.result()
                    span.set_attribute("outcome", type(outcome).__name__)
                    self._scheduler.record_outcome(job, outcome)
                else:
                    task.cancel()
                    task.add_done_callback(functools.partial(_discard_late_outcome, job.id))
                    span.set_attribute("outcome", "Timeout")
                    self._scheduler.record_timeout(job)
        finally:
            self.current_job = None
            clear_context("job_id")


def _discard_late_outcome(job_id: str, task: asyncio.Task) -> None:
    """Log the fate of a processor invocation that outlived its timeout."""
    if task.cancelled():
        logger.debug("Timed-out processor cancelled", extra={"job_id": job_id})
        return
    logger.info(
        "Discarding late outcome of timed-out job",
        extra={"job_id": job_id, "outcome": type(task.result()).__name__},
    )
