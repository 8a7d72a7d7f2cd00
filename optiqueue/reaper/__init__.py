"""
Reaper module.
Evicts expired job results.
"""

from optiqueue.reaper.main import Reaper

__all__ = ["Reaper"]
