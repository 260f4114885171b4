"""
What happens to a job after it has been processed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional

from ..config import QueueConfig
from ..interval import IntervalError, next_wake
from ..storage.base import JobStore
from ..utils import ensure_utc, pick

logger = logging.getLogger(__name__)


class FateAction(Enum):
    RESCHEDULE = "reschedule"
    RETIRE = "retire"
    REMOVE = "remove"


@dataclass
class JobFate:
    """Outcome of a processing cycle for one job."""
    action: FateAction
    wake_at: Optional[datetime] = None

    @property
    def rescheduled(self) -> bool:
        return self.action is FateAction.RESCHEDULE


def _read_repeat_until(job: Dict[str, Any], config: QueueConfig) -> Optional[datetime]:
    value = pick(job, config.repeat_until_field)
    if value is None or isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        # ISO 8601 strings written by clients that do not send BSON dates
        try:
            return ensure_utc(datetime.fromisoformat(value.replace('Z', '+00:00')))
        except ValueError:
            pass
    raise IntervalError(f"repeatUntil must be a date, got {value!r}")


def compute_fate(job: Dict[str, Any], config: QueueConfig, locked_at: datetime) -> JobFate:
    """
    Decide a processed job's fate.

    Recurring jobs are rescheduled to the next occurrence of their interval
    after the lock time. Non-recurring jobs, and recurring jobs whose schedule
    is exhausted by repeatUntil or whose schedule data is invalid, are retired, or
    removed when autoRemove is set.

    Args:
        job: The claimed job document
        config: Queue configuration (field paths)
        locked_at: Instant the job was claimed

    Returns:
        JobFate describing the required store operation
    """
    interval = pick(job, config.interval_field)
    next_at = None

    if interval:
        try:
            repeat_until = _read_repeat_until(job, config)
            next_at = next_wake(interval, locked_at, repeat_until)
        except IntervalError as e:
            logger.warning(f"Job {job.get('_id')} has an invalid schedule, it will not recur: {e}")

    if next_at is not None:
        return JobFate(FateAction.RESCHEDULE, next_at)

    if pick(job, config.auto_remove_field):
        return JobFate(FateAction.REMOVE)

    return JobFate(FateAction.RETIRE)


async def apply_fate(store: JobStore, job: Dict[str, Any], fate: JobFate,
                     config: QueueConfig) -> None:
    """
    Write a job's fate to the store with a single update or delete by _id.

    Args:
        store: Job store
        job: The claimed job document
        fate: Result of compute_fate
        config: Queue configuration (field paths)
    """
    selector = {'_id': job['_id']}

    if fate.action is FateAction.RESCHEDULE:
        await store.update_one(selector, {'$set': {config.wake_at_field: fate.wake_at}})
        logger.debug(f"Job {job['_id']} rescheduled for {fate.wake_at.isoformat()}")
    elif fate.action is FateAction.REMOVE:
        await store.delete_one(selector)
        logger.debug(f"Job {job['_id']} removed")
    else:
        await store.update_one(selector, {'$unset': {config.wake_at_field: 1}})
        logger.debug(f"Job {job['_id']} retired")
