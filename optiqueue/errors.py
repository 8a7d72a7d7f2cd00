"""
Exceptions raised by the scheduler and by work processors.
"""

from typing import Any


class SchedulerError(Exception):
    """Base class for errors surfaced synchronously by the scheduler."""


class CapacityExceededError(SchedulerError):
    """Raised by submit when the pending queue is at its maximum depth."""

    def __init__(self, max_queue_size: int):
        self.max_queue_size = max_queue_size
        super().__init__(f"Queue is full (max: {max_queue_size})")


class SchedulerClosedError(SchedulerError):
    """Raised by submit once shutdown has begun."""

    def __init__(self) -> None:
        super().__init__("Scheduler is shutting down and no longer accepts jobs")


class InvalidJobOptionsError(SchedulerError, ValueError):
    """Raised by submit when job options fail validation."""


class ProcessorError(Exception):
    """
    Error a work processor may raise to attach a machine-readable code.

    Any other exception is recorded as well; this one only adds ``code``
    and optional ``details`` to the captured error.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
