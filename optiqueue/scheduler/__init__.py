"""
Scheduler module.
Contains the job scheduler, its pending queue and the event notifier.
"""

from optiqueue.scheduler.core import JobScheduler
from optiqueue.scheduler.notifier import JobNotifier
from optiqueue.scheduler.queue import PendingQueue

__all__ = ["JobScheduler", "JobNotifier", "PendingQueue"]
