"""
Pending job store.

Holds the ready queue (priority ordered, FIFO among equal priorities) and the
jobs waiting out a retry backoff. Together they form the scheduler's single
pending store.
"""

from collections.abc import Iterator

from optiqueue.types.job import Job


class PendingQueue:
    """
    Priority-ordered ready queue plus a holding area for backoff.

    Ready jobs are kept sorted by descending priority; a new job is inserted
    before the first entry whose priority is strictly lower, which keeps
    submission order among ties. Retried jobs bypass ordering and go to the
    front.
    """

    def __init__(self, max_size: int):
        """
        Initialize the queue.

        Args:
            max_size: Maximum number of pending jobs, ready and held together.
        """
        self._max_size = max_size
        self._ready: list[Job] = []
        self._backoff: dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._ready)

    def __iter__(self) -> Iterator[Job]:
        return iter(self._ready)

    def __contains__(self, job_id: object) -> bool:
        return any(job.id == job_id for job in self._ready) or job_id in self._backoff

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def is_full(self) -> bool:
        # Held jobs return to the ready queue, so they keep their place
        return len(self._ready) + len(self._backoff) >= self._max_size

    @property
    def backoff_count(self) -> int:
        return len(self._backoff)

    def push(self, job: Job) -> int:
        """
        Insert a job by priority.

        Args:
            job: The job to enqueue.

        Returns:
            The job's 1-based position.
        """
        index = next(
            (i for i, queued in enumerate(self._ready) if queued.priority < job.priority),
            len(self._ready),
        )
        self._ready.insert(index, job)
        return index + 1

    def push_front(self, job: Job) -> None:
        """Insert a job ahead of everything else, ignoring priority."""
        self._ready.insert(0, job)

    def pop(self) -> Job | None:
        """Remove and return the next job to dispatch, if any."""
        if not self._ready:
            return None
        return self._ready.pop(0)

    def position(self, job_id: str) -> int | None:
        """Get the 1-based position of a ready job."""
        for index, job in enumerate(self._ready):
            if job.id == job_id:
                return index + 1
        return None

    def hold(self, job: Job) -> None:
        """Park a job for the duration of its retry backoff."""
        self._backoff[job.id] = job

    def release(self, job_id: str) -> Job | None:
        """
        Move a parked job back to the front of the ready queue.

        Returns:
            The released job, or None if it was not parked.
        """
        job = self._backoff.pop(job_id, None)
        if job is not None:
            self.push_front(job)
        return job

    def get_held(self, job_id: str) -> Job | None:
        """Get a job parked in backoff."""
        return self._backoff.get(job_id)
