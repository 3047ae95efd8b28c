"""
unfurl scheduler module.
"""

from unfurl.scheduler.queue import ConcurrencyQueue, TaskTimeoutError

__all__ = ["ConcurrencyQueue", "TaskTimeoutError"]
