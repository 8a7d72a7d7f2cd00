"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from optiqueue.constants import (
    METRIC_API_LATENCY,
    METRIC_API_REQUESTS,
    METRIC_JOB_DURATION,
    METRIC_JOBS_COMPLETED,
    METRIC_JOBS_IN_FLIGHT,
    METRIC_JOBS_REAPED,
    METRIC_JOBS_REJECTED,
    METRIC_JOBS_RETRIED,
    METRIC_JOBS_SUBMITTED,
    METRIC_JOBS_TIMED_OUT,
    METRIC_QUEUE_DEPTH,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job scheduler.

    Collects metrics for:
    - Queue depth and in-flight jobs
    - Submissions, capacity rejections and completions
    - Retries, timeouts and reaped results
    - Job execution duration
    - API requests
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of jobs waiting in the pending queue",
            registry=self._registry,
        )

        self.in_flight = Gauge(
            METRIC_JOBS_IN_FLIGHT,
            "Number of jobs currently processing",
            registry=self._registry,
        )

        self.jobs_submitted = Counter(
            METRIC_JOBS_SUBMITTED,
            "Total number of jobs accepted",
            registry=self._registry,
        )

        self.jobs_rejected = Counter(
            METRIC_JOBS_REJECTED,
            "Total number of submissions rejected because the queue was full",
            registry=self._registry,
        )

        # Terminal outcomes only (completed / failed)
        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of jobs that reached a terminal state",
            ["status"],
            registry=self._registry,
        )

        self.jobs_retried = Counter(
            METRIC_JOBS_RETRIED,
            "Total number of retry attempts scheduled",
            registry=self._registry,
        )

        self.jobs_timed_out = Counter(
            METRIC_JOBS_TIMED_OUT,
            "Total number of job attempts that exceeded the timeout",
            registry=self._registry,
        )

        self.jobs_reaped = Counter(
            METRIC_JOBS_REAPED,
            "Total number of expired results evicted",
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.api_requests = Counter(
            METRIC_API_REQUESTS,
            "Total number of API requests",
            ["method", "endpoint", "status"],
            registry=self._registry,
        )

        self.api_latency = Histogram(
            METRIC_API_LATENCY,
            "API request latency in seconds",
            ["method", "endpoint"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self._registry,
        )

    def record_job_submitted(self) -> None:
        """Record an accepted submission."""
        self.jobs_submitted.inc()

    def record_job_rejected(self) -> None:
        """Record a submission rejected for capacity."""
        self.jobs_rejected.inc()

    def record_job_completed(self, status: str, duration_seconds: float) -> None:
        """Record a terminal outcome."""
        self.jobs_completed.labels(status=status).inc()
        self.job_duration.labels(status=status).observe(duration_seconds)

    def record_job_retried(self) -> None:
        """Record a scheduled retry."""
        self.jobs_retried.inc()

    def record_job_timed_out(self) -> None:
        """Record a timed-out attempt."""
        self.jobs_timed_out.inc()

    def record_jobs_reaped(self, count: int) -> None:
        """Record evicted results."""
        self.jobs_reaped.inc(count)

    def update_queue_depth(self, depth: int) -> None:
        """Update the pending queue depth."""
        self.queue_depth.set(depth)

    def update_in_flight(self, count: int) -> None:
        """Update the number of processing jobs."""
        self.in_flight.set(count)

    def record_api_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration_seconds: float,
    ) -> None:
        """Record an API request."""
        self.api_requests.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        self.api_latency.labels(method=method, endpoint=endpoint).observe(
            duration_seconds
        )

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
