"""
Worker module.
Contains the pool worker, the processor registry and the image optimizer.
"""

from optiqueue.worker.handlers import (
    execute_processor,
    get_processor,
    list_processors,
    register_processor,
)
from optiqueue.worker.main import Worker

__all__ = [
    "Worker",
    "execute_processor",
    "get_processor",
    "list_processors",
    "register_processor",
]
