"""
Result reaper for evicting expired jobs.

The reaper runs periodically and asks the scheduler to drop completed and
failed jobs whose time-to-live has passed, so finished results do not
accumulate in memory.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from optiqueue.scheduler.core import JobScheduler

logger = logging.getLogger(__name__)


class Reaper:
    """
    Periodic cleanup loop owned by a JobScheduler.

    Runs every ``interval_seconds`` to:
    1. Find completed/failed jobs past their expires_at
    2. Remove them from the scheduler's result stores
    """

    def __init__(self, scheduler: "JobScheduler", interval_seconds: float):
        """
        Initialize the reaper.

        Args:
            scheduler: The scheduler whose results are reaped.
            interval_seconds: Seconds between reaper runs.
        """
        self._scheduler = scheduler
        self.interval = interval_seconds
        self._running = False
        self._stopped = asyncio.Event()

    async def start(self) -> None:
        """Run the reaper loop until stop() is called."""
        if self._stopped.is_set():
            # stop() won the race with the first tick of this task
            return

        logger.info(f"Reaper starting with interval {self.interval}s")
        self._running = True

        while self._running:
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

            if not self._running:
                break

            try:
                self.run_once()
            except Exception as e:
                logger.exception(f"Error in reaper loop: {e}")

        logger.info("Reaper stopped")

    async def stop(self) -> None:
        """Stop the reaper."""
        logger.info("Reaper stopping")
        self._running = False
        self._stopped.set()

    def run_once(self) -> int:
        """
        Run the reaper once (for testing or manual cleanup).

        Returns:
            Number of jobs evicted.
        """
        return self._scheduler.cleanup()
