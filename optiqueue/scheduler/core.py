"""
Bounded concurrent job scheduler.

Jobs are submitted synchronously into a bounded, priority-ordered queue and
executed by a fixed pool of worker tasks, so the in-flight count can never
exceed the pool size. Every state transition happens on the event loop that
owns the scheduler, which keeps the four stores (pending, in-flight,
completed, failed) consistent without locks.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError

from optiqueue.config import SchedulerConfig
from optiqueue.constants import STATS_WINDOW_SECONDS, JobStatus
from optiqueue.errors import (
    CapacityExceededError,
    InvalidJobOptionsError,
    SchedulerClosedError,
)
from optiqueue.observability.metrics import MetricsCollector, get_metrics
from optiqueue.reaper.main import Reaper
from optiqueue.scheduler.notifier import JobNotifier, Subscriber
from optiqueue.scheduler.queue import PendingQueue
from optiqueue.types.events import JobEvent
from optiqueue.types.job import (
    Failure,
    Job,
    JobError,
    JobOptions,
    JobOutcome,
    Processor,
    ShutdownReport,
    Success,
    utcnow,
)
from optiqueue.types.status import (
    CompletedStatusView,
    FailedStatusView,
    JobStatusView,
    NotFoundStatusView,
    ProcessingStatusView,
    QueuedStatusView,
    RetryingStatusView,
    SchedulerStats,
)
from optiqueue.worker.main import Worker

logger = logging.getLogger(__name__)


class JobScheduler:
    """
    In-process job scheduler with backpressure, retries and timeouts.

    Features:
    - Priority ordering with FIFO tie-break; retries jump to the front
    - Fixed worker pool enforcing the concurrency limit
    - Per-attempt timeout routed through the retry path
    - Linear retry backoff (base delay * retry count)
    - Result expiry with a periodic reaper
    - Lifecycle events through an observer registry

    Usage:
        async with JobScheduler(SchedulerConfig(max_concurrent_jobs=2)) as scheduler:
            job_id = scheduler.submit(processor, payload, JobOptions(priority=5))
            view = scheduler.get_status(job_id)
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the scheduler. Call start() to begin dispatching.

        Args:
            config: Scheduler configuration. Defaults are used if not provided.
            metrics: Metrics collector. Uses the global collector if not provided.
        """
        self.config = config or SchedulerConfig()
        self._metrics = metrics or get_metrics()
        self._notifier = JobNotifier()

        self._pending = PendingQueue(self.config.max_queue_size)
        self._in_flight: dict[str, Job] = {}
        self._completed: dict[str, Job] = {}
        self._failed: dict[str, Job] = {}

        self._retry_timers: dict[str, asyncio.TimerHandle] = {}
        # (completed_at, processing_time) of recent successes
        self._history: deque[tuple[datetime, float]] = deque(maxlen=self.config.history_size)

        self._total_submitted = 0
        self._total_completed = 0
        self._total_failed = 0
        self._total_retries = 0
        self._total_timeouts = 0
        self._total_rejected = 0

        self._work_available = asyncio.Event()
        self._workers: list[asyncio.Task] = []
        self._reaper = Reaper(self, interval_seconds=self.config.cleanup_interval_seconds)
        self._reaper_task: asyncio.Task | None = None
        self._started = False
        self._closing = False
        self._shutdown_report: ShutdownReport | None = None

    async def __aenter__(self) -> "JobScheduler":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    @property
    def is_closing(self) -> bool:
        return self._closing

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    @property
    def queue_depth(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Spawn the worker pool and the cleanup loop on the running loop."""
        if self._started:
            return
        if self._closing:
            raise SchedulerClosedError()

        self._started = True
        self._workers = [
            asyncio.create_task(
                Worker(self, worker_id=f"worker-{index}").run(),
                name=f"optiqueue-worker-{index}",
            )
            for index in range(self.config.max_concurrent_jobs)
        ]
        self._reaper_task = asyncio.create_task(self._reaper.start(), name="optiqueue-reaper")

        logger.info(
            "Job scheduler started",
            extra={
                "max_concurrent_jobs": self.config.max_concurrent_jobs,
                "job_timeout_seconds": self.config.job_timeout_seconds,
                "max_queue_size": self.config.max_queue_size,
            },
        )

        # Jobs submitted before start() are waiting
        self._dispatch()

    async def shutdown(self) -> ShutdownReport:
        """
        Stop dispatching and drain in-flight jobs.

        Waits up to ``shutdown_grace_seconds`` for in-flight jobs and event
        deliveries to finish, then cancels whatever is still running. Jobs
        still pending are left untouched.

        Returns:
            ShutdownReport with the number of abandoned and pending jobs.
        """
        if self._shutdown_report is not None:
            return self._shutdown_report

        logger.info("Shutting down job scheduler")
        self._closing = True

        await self._reaper.stop()
        if self._reaper_task is not None:
            await asyncio.gather(self._reaper_task, return_exceptions=True)

        for handle in self._retry_timers.values():
            handle.cancel()
        self._retry_timers.clear()

        # Wake idle workers so they observe the closing flag
        self._work_available.set()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.shutdown_grace_seconds

        drained = True
        if self._workers:
            _, running = await asyncio.wait(
                self._workers, timeout=self.config.shutdown_grace_seconds
            )
            if running:
                drained = False
                for task in running:
                    task.cancel()
                await asyncio.gather(*running, return_exceptions=True)

        abandoned = len(self._in_flight)
        for job_id in self._in_flight:
            logger.warning("Abandoned job during shutdown", extra={"job_id": job_id})

        # Event deliveries share what is left of the grace period
        await self._notifier.drain(timeout=max(0.0, deadline - loop.time()))

        self._shutdown_report = ShutdownReport(
            abandoned=abandoned,
            pending=len(self._pending) + self._pending.backoff_count,
            drained=drained,
        )
        logger.info(
            f"Job scheduler shutdown complete. {abandoned} jobs were abandoned.",
            extra={"pending": self._shutdown_report.pending},
        )
        return self._shutdown_report

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def submit(
        self,
        processor: Processor,
        payload: Any,
        options: JobOptions | dict[str, Any] | None = None,
    ) -> str:
        """
        Queue a job for execution.

        Args:
            processor: Callable invoked as processor(payload, job_id).
            payload: Opaque data handed to the processor.
            options: Job options (priority, max_retries).

        Returns:
            The new job id. Execution happens asynchronously.

        Raises:
            CapacityExceededError: If the pending queue is full.
            InvalidJobOptionsError: If the options fail validation.
            SchedulerClosedError: If shutdown has begun.
        """
        if self._closing:
            raise SchedulerClosedError()

        options = self._validate_options(options)

        if self._pending.is_full:
            self._total_rejected += 1
            self._metrics.record_job_rejected()
            logger.warning(
                "Job rejected, queue is full",
                extra={"max_queue_size": self.config.max_queue_size},
            )
            raise CapacityExceededError(self.config.max_queue_size)

        job = Job(processor=processor, payload=payload, options=options)
        position = self._pending.push(job)

        self._total_submitted += 1
        self._metrics.record_job_submitted()
        self._metrics.update_queue_depth(len(self._pending))

        logger.info(
            f"Job {job.id} added to queue",
            extra={"job_id": job.id, "position": position, "priority": job.priority},
        )

        self._dispatch()
        return job.id

    def subscribe(
        self,
        event_type: str | None,
        callback: Subscriber,
    ) -> Callable[[], None]:
        """
        Register a lifecycle event callback.

        Args:
            event_type: One of the ``job.*`` event types, or None for all.
            callback: Function or coroutine function receiving a JobEvent.

        Returns:
            A function that removes the subscription.
        """
        return self._notifier.subscribe(event_type, callback)

    def get_status(self, job_id: str) -> JobStatusView:
        """
        Look up a job.

        Searches in-flight, completed, failed, then pending jobs. Unknown and
        expired ids produce a ``not_found`` view rather than an error.

        Args:
            job_id: The job id returned by submit().

        Returns:
            A status view discriminated by its ``status`` field.
        """
        job = self._in_flight.get(job_id)
        if job is not None:
            return ProcessingStatusView(
                job_id=job.id,
                started_at=job.started_at,
                retry_count=job.retry_count,
            )

        now = utcnow()

        job = self._completed.get(job_id)
        if job is not None and not job.is_expired(now):
            return CompletedStatusView(
                job_id=job.id,
                result=job.result,
                completed_at=job.completed_at,
                processing_time=job.processing_time,
                retry_count=job.retry_count,
            )

        job = self._failed.get(job_id)
        if job is not None and not job.is_expired(now):
            return FailedStatusView(
                job_id=job.id,
                error=job.error,
                failed_at=job.failed_at,
                processing_time=job.processing_time,
                retry_count=job.retry_count,
            )

        position = self._pending.position(job_id)
        if position is not None:
            return QueuedStatusView(
                job_id=job_id,
                position=position,
                estimated_wait_time=self.estimate_wait_time(position),
            )

        job = self._pending.get_held(job_id)
        if job is not None:
            return RetryingStatusView(
                job_id=job.id,
                retry_count=job.retry_count,
                max_retries=job.max_retries,
            )

        return NotFoundStatusView(job_id=job_id)

    def estimate_wait_time(self, position: int) -> float:
        """
        Estimate seconds until the job at ``position`` starts.

        Args:
            position: 1-based queue position.

        Returns:
            Estimated wait in seconds.
        """
        average = self.average_processing_time()
        free_slots = max(1, self.config.max_concurrent_jobs - len(self._in_flight))
        jobs_ahead = max(0, position - free_slots)
        return round(jobs_ahead * average / free_slots, 3)

    def average_processing_time(self) -> float:
        """
        Rolling average processing time of recent completions.

        Uses up to ``history_size`` completions within the last
        ``history_window_seconds``; falls back to the configured default.
        """
        cutoff = utcnow() - timedelta(seconds=self.config.history_window_seconds)
        recent = [duration for completed_at, duration in self._history if completed_at >= cutoff]

        if not recent:
            return self.config.default_processing_time_seconds

        average = sum(recent) / len(recent)
        return max(self.config.min_processing_time_seconds, average)

    def stats(self) -> SchedulerStats:
        """Get lifetime totals and current occupancy."""
        cutoff = utcnow() - timedelta(seconds=STATS_WINDOW_SECONDS)

        return SchedulerStats(
            total_submitted=self._total_submitted,
            total_completed=self._total_completed,
            total_failed=self._total_failed,
            total_retries=self._total_retries,
            total_timeouts=self._total_timeouts,
            total_rejected=self._total_rejected,
            queue_depth=len(self._pending),
            retrying=self._pending.backoff_count,
            in_flight=len(self._in_flight),
            max_concurrent_jobs=self.config.max_concurrent_jobs,
            average_processing_time=self.average_processing_time(),
            completed_last_24h=sum(
                1 for job in self._completed.values() if job.completed_at >= cutoff
            ),
            failed_last_24h=sum(
                1 for job in self._failed.values() if job.failed_at >= cutoff
            ),
        )

    def cleanup(self) -> int:
        """
        Evict completed and failed jobs whose retention has expired.

        Returns:
            Number of jobs evicted.
        """
        now = utcnow()
        cleaned = 0

        for store in (self._completed, self._failed):
            expired = [job_id for job_id, job in store.items() if job.is_expired(now)]
            for job_id in expired:
                del store[job_id]
            cleaned += len(expired)

        if cleaned > 0:
            self._metrics.record_jobs_reaped(cleaned)
            logger.info(f"Cleaned up {cleaned} expired jobs")

        return cleaned

    # ------------------------------------------------------------------
    # Worker coordination
    # ------------------------------------------------------------------

    def claim_next(self) -> Job | None:
        """
        Promote the next pending job to processing.

        Called by pool workers only; a worker holds at most one job, so the
        in-flight set is bounded by the pool size.

        Returns:
            The claimed job, or None if nothing is ready or shutdown began.
        """
        if self._closing:
            return None

        job = self._pending.pop()
        if job is None:
            return None

        job.status = JobStatus.PROCESSING
        job.started_at = utcnow()
        self._in_flight[job.id] = job

        self._metrics.update_queue_depth(len(self._pending))
        self._metrics.update_in_flight(len(self._in_flight))

        logger.info(
            f"Started processing job {job.id}",
            extra={
                "job_id": job.id,
                "slots_used": len(self._in_flight),
                "max_concurrent_jobs": self.config.max_concurrent_jobs,
                "retry_count": job.retry_count,
            },
        )
        self._notifier.publish(JobEvent.job_started(job))
        return job

    async def wait_for_work(self) -> None:
        """Block an idle worker until a job is dispatched or shutdown begins."""
        self._work_available.clear()
        await self._work_available.wait()

    def record_outcome(self, job: Job, outcome: JobOutcome) -> None:
        """
        Apply a processor outcome to an in-flight job.

        Outcomes for jobs no longer in flight (already timed out) are ignored.
        """
        if job.id not in self._in_flight:
            logger.debug("Ignoring outcome for job not in flight", extra={"job_id": job.id})
            return

        if isinstance(outcome, Success):
            self._on_success(job, outcome.result)
        elif isinstance(outcome, Failure):
            self._on_failure(job, outcome.error)
        else:
            raise TypeError(f"Unsupported job outcome: {outcome!r}")

    def record_timeout(self, job: Job) -> None:
        """Fail an in-flight job that exceeded the per-job timeout."""
        if job.id not in self._in_flight:
            return

        timeout = self.config.job_timeout_seconds
        logger.warning(
            f"Job {job.id} timed out after {timeout}s",
            extra={"job_id": job.id, "retry_count": job.retry_count},
        )
        self._total_timeouts += 1
        self._metrics.record_job_timed_out()
        self._on_failure(job, JobError.timeout(timeout))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _validate_options(
        self,
        options: JobOptions | dict[str, Any] | None,
    ) -> JobOptions:
        if options is None:
            return JobOptions()
        if isinstance(options, JobOptions):
            return options
        try:
            return JobOptions.model_validate(options)
        except ValidationError as e:
            raise InvalidJobOptionsError(str(e)) from e

    def _dispatch(self) -> None:
        """Wake idle workers if there is anything to run."""
        if len(self._pending) > 0 and not self._closing:
            self._work_available.set()

    def _processing_time(self, job: Job, finished_at: datetime) -> float:
        return (finished_at - job.started_at).total_seconds()

    def _on_success(self, job: Job, result: Any) -> None:
        del self._in_flight[job.id]

        now = utcnow()
        job.status = JobStatus.COMPLETED
        job.result = result
        job.completed_at = now
        job.expires_at = now + timedelta(seconds=self.config.result_ttl_seconds)
        job.processing_time = self._processing_time(job, now)

        self._completed[job.id] = job
        self._history.append((now, job.processing_time))
        self._total_completed += 1

        self._metrics.update_in_flight(len(self._in_flight))
        self._metrics.record_job_completed(JobStatus.COMPLETED, job.processing_time)

        logger.info(
            f"Job {job.id} completed successfully",
            extra={"job_id": job.id, "processing_time": f"{job.processing_time:.3f}s"},
        )
        self._notifier.publish(JobEvent.job_completed(job))

    def _on_failure(self, job: Job, error: JobError) -> None:
        del self._in_flight[job.id]
        self._metrics.update_in_flight(len(self._in_flight))

        if job.can_retry:
            self._schedule_retry(job, error)
            return

        now = utcnow()
        job.status = JobStatus.FAILED
        job.error = error
        job.failed_at = now
        job.expires_at = now + timedelta(seconds=self.config.result_ttl_seconds)
        job.processing_time = self._processing_time(job, now)

        self._failed[job.id] = job
        self._total_failed += 1
        self._metrics.record_job_completed(JobStatus.FAILED, job.processing_time)

        logger.error(
            f"Job {job.id} failed permanently: {error.message}",
            extra={"job_id": job.id, "error_kind": error.kind, "retry_count": job.retry_count},
        )
        self._notifier.publish(JobEvent.job_failed(job))

    def _schedule_retry(self, job: Job, error: JobError) -> None:
        job.retry_count += 1
        job.status = JobStatus.RETRYING
        delay = self.config.retry_base_delay_seconds * job.retry_count

        self._pending.hold(job)
        self._total_retries += 1
        self._metrics.record_job_retried()

        logger.warning(
            f"Job {job.id} failed, retrying ({job.retry_count}/{job.max_retries}): {error.message}",
            extra={"job_id": job.id, "error_kind": error.kind, "delay_seconds": delay},
        )
        self._notifier.publish(JobEvent.job_retrying(job, error, delay))

        if self._closing:
            # No timers once shutdown began; the job stays pending
            self._requeue(job.id)
            return

        loop = asyncio.get_running_loop()
        self._retry_timers[job.id] = loop.call_later(delay, self._requeue, job.id)

    def _requeue(self, job_id: str) -> None:
        self._retry_timers.pop(job_id, None)
        job = self._pending.release(job_id)
        if job is None:
            return

        job.status = JobStatus.QUEUED
        self._metrics.update_queue_depth(len(self._pending))
        logger.debug("Retry backoff elapsed, job requeued at front", extra={"job_id": job_id})
        self._dispatch()
