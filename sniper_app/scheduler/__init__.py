"""Background periodic tasks"""

from .periodic import PeriodicTask, Scheduler

__all__ = ["PeriodicTask", "Scheduler"]
