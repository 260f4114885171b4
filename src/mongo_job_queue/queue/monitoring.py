"""
Queue health snapshot for operators.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, Any, Optional

from ..config import QueueConfig
from ..storage.base import JobStore
from ..utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class QueueStats:
    """Counts of jobs in each observable state at one instant."""
    timestamp: datetime
    total_jobs: int
    ready: int
    sleeping: int
    recurring: int
    retired_recurring: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat() if self.timestamp else None
        return data


async def collect_queue_stats(store: JobStore, config: QueueConfig,
                              now: Optional[datetime] = None) -> QueueStats:
    """
    Collect queue statistics.

    Locked and deferred jobs cannot be told apart (both have a future wake-up
    time), so they are reported together as sleeping.

    Args:
        store: Job store
        config: Queue configuration (field paths)
        now: Reference instant, defaults to the current time

    Returns:
        QueueStats snapshot
    """
    now = now or utcnow()
    wake_at = config.wake_at_field
    interval = config.interval_field

    total = await store.count_documents({wake_at: {'$exists': True}})
    ready = await store.count_documents({'$and': [
        {wake_at: {'$exists': True}},
        {wake_at: {'$not': {'$gt': now}}},
    ]})
    recurring = await store.count_documents({'$and': [
        {wake_at: {'$exists': True}},
        {interval: {'$exists': True}},
    ]})
    retired_recurring = await store.count_documents({'$and': [
        {wake_at: {'$exists': False}},
        {interval: {'$exists': True}},
    ]})

    stats = QueueStats(
        timestamp=now,
        total_jobs=total,
        ready=ready,
        sleeping=total - ready,
        recurring=recurring,
        retired_recurring=retired_recurring,
    )
    logger.debug(f"Queue stats: {stats.to_dict()}")
    return stats
