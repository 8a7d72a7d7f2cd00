"""
Unit tests for the pending job store.
"""

import pytest

from optiqueue.scheduler.queue import PendingQueue
from optiqueue.types.job import Job, JobOptions


def make_job(priority: int = 0) -> Job:
    return Job(processor=lambda payload, job_id: payload, payload=None, options=JobOptions(priority=priority))


class TestPendingQueue:
    """Tests for PendingQueue ordering and backoff handling."""

    @pytest.fixture
    def queue(self) -> PendingQueue:
        return PendingQueue(max_size=5)

    def test_higher_priority_first(self, queue: PendingQueue):
        """Test jobs are popped by descending priority."""
        low, high, mid = make_job(1), make_job(5), make_job(3)
        for job in (low, high, mid):
            queue.push(job)

        assert [queue.pop(), queue.pop(), queue.pop()] == [high, mid, low]

    def test_fifo_among_equal_priority(self, queue: PendingQueue):
        """Test submission order is kept for equal priorities."""
        jobs = [make_job(2) for _ in range(3)]
        for job in jobs:
            queue.push(job)

        assert [queue.pop() for _ in jobs] == jobs

    def test_push_returns_position(self, queue: PendingQueue):
        """Test push reports the 1-based insertion position."""
        assert queue.push(make_job(0)) == 1
        assert queue.push(make_job(0)) == 2
        assert queue.push(make_job(10)) == 1
        assert queue.push(make_job(-1)) == 4

    def test_position_lookup(self, queue: PendingQueue):
        """Test position of queued and unknown jobs."""
        first, second = make_job(), make_job()
        queue.push(first)
        queue.push(second)

        assert queue.position(first.id) == 1
        assert queue.position(second.id) == 2
        assert queue.position("missing") is None

    def test_pop_empty(self, queue: PendingQueue):
        """Test popping an empty queue."""
        assert queue.pop() is None

    def test_is_full(self):
        """Test the capacity check counts ready jobs."""
        queue = PendingQueue(max_size=2)
        queue.push(make_job())
        assert not queue.is_full

        queue.push(make_job())
        assert queue.is_full
        assert len(queue) == 2

    def test_backoff_counts_toward_capacity(self):
        """Test held jobs are outside the ready queue but keep their place."""
        queue = PendingQueue(max_size=2)
        held = make_job()
        queue.hold(held)

        assert len(queue) == 0
        assert queue.backoff_count == 1
        assert not queue.is_full
        assert held.id in queue
        assert queue.get_held(held.id) is held

        queue.push(make_job())
        assert queue.is_full

        queue.release(held.id)
        assert len(queue) == 2
        assert queue.backoff_count == 0
        assert queue.is_full

    def test_release_goes_to_front(self, queue: PendingQueue):
        """Test a released job bypasses priority ordering."""
        urgent = make_job(100)
        queue.push(urgent)
        retried = make_job(-5)
        queue.hold(retried)

        assert queue.release(retried.id) is retried
        assert queue.backoff_count == 0
        assert queue.pop() is retried
        assert queue.pop() is urgent

    def test_release_unknown(self, queue: PendingQueue):
        """Test releasing a job that is not held."""
        assert queue.release("missing") is None
