"""
Claim-and-reschedule engine.

Multiple workers, in one or many processes, can poll the same collection
without processing a job twice at the same time. Claims are atomic
find-and-update operations that push a job's wake-up time past the lock
duration; a crashed worker's jobs become eligible again once the lock expires.
"""

from .claim import claim_job, build_claim_filter, build_lock_update
from .fate import FateAction, JobFate, compute_fate, apply_fate
from .scheduler import JobScheduler, SchedulerState

__all__ = [
    'claim_job', 'build_claim_filter', 'build_lock_update',
    'FateAction', 'JobFate', 'compute_fate', 'apply_fate',
    'JobScheduler', 'SchedulerState',
]
