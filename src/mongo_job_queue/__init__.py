"""
MongoDB-backed distributed job queue.

Any process holding the same collection can claim, process and reschedule
jobs. See JobScheduler for the polling loop and next_wake for interval
evaluation.
"""

from .config import Config, QueueConfig
from .interval import IntervalError, next_wake, parse_interval
from .queue import JobScheduler, SchedulerState, claim_job
from .storage import JobStore, MongoJobStore

__version__ = "0.1.0"

__all__ = [
    'Config', 'QueueConfig',
    'IntervalError', 'next_wake', 'parse_interval',
    'JobScheduler', 'SchedulerState', 'claim_job',
    'JobStore', 'MongoJobStore',
]
