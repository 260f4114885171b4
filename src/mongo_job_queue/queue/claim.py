"""
Atomic job claiming.

A job is eligible when its wake-up field exists and is either null or not in
the future. Claiming pushes the wake-up time forward by the lock duration in
the same atomic operation that selects the job, so a concurrent worker can no
longer match it. If the worker dies the lock simply expires and the job becomes
eligible again.
"""

import logging
from datetime import datetime
from typing import Dict, Any, Optional

from ..config import QueueConfig
from ..storage.base import JobStore
from ..utils import ensure_utc

logger = logging.getLogger(__name__)


def build_claim_filter(wake_at_field: str, now: datetime,
                       extra_filter: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build the selection predicate for eligible jobs.

    ``$not: {$gt: now}`` matches both null and past timestamps, which a plain
    ``$lte`` would not.

    Args:
        wake_at_field: Field path of the wake-up timestamp
        now: Current instant
        extra_filter: Optional caller predicate AND-ed with the eligibility test

    Returns:
        MongoDB filter document
    """
    conditions = [
        {wake_at_field: {'$exists': True}},
        {wake_at_field: {'$not': {'$gt': now}}},
    ]
    if extra_filter:
        conditions.append(extra_filter)
    return {'$and': conditions}


def build_lock_update(wake_at_field: str, lock_until: datetime) -> Dict[str, Any]:
    return {'$set': {wake_at_field: lock_until}}


async def claim_job(store: JobStore, config: QueueConfig, now: datetime,
                    extra_filter: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    """
    Atomically claim one eligible job.

    Args:
        store: Job store
        config: Queue configuration (wake-up field path and lock duration)
        now: Claim instant; the job is locked until now + lock duration
        extra_filter: Optional caller predicate restricting which jobs qualify

    Returns:
        The claimed job as it was before locking, or None if no job is eligible
    """
    now = ensure_utc(now)
    lock_until = now + config.lock_timedelta

    job = await store.find_one_and_update(
        build_claim_filter(config.wake_at_field, now, extra_filter),
        build_lock_update(config.wake_at_field, lock_until),
        sort=[(config.wake_at_field, 1)],
    )

    if job is not None:
        logger.debug(f"Claimed job {job.get('_id')} until {lock_until.isoformat()}")

    return job
