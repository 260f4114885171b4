"""
Tests for atomic job claiming.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from mongo_job_queue.config import QueueConfig
from mongo_job_queue.queue.claim import build_claim_filter, build_lock_update, claim_job


@pytest.fixture
def config():
    return QueueConfig(lock_duration=60000)


class TestClaimFilter:
    """Test the query shapes sent to the store."""

    def test_claim_filter(self, t0):
        assert build_claim_filter('sleepUntil', t0) == {
            '$and': [
                {'sleepUntil': {'$exists': True}},
                {'sleepUntil': {'$not': {'$gt': t0}}},
            ]
        }

    def test_claim_filter_with_extra_filter(self, t0):
        query = build_claim_filter('sleepUntil', t0, {'queue': 'mail'})
        assert query['$and'][-1] == {'queue': 'mail'}
        assert len(query['$and']) == 3

    def test_lock_update(self, t0):
        assert build_lock_update('cron.sleepUntil', t0) == {'$set': {'cron.sleepUntil': t0}}

    @pytest.mark.asyncio
    async def test_single_atomic_call(self, config, t0):
        store = AsyncMock()
        store.find_one_and_update.return_value = None

        await claim_job(store, config, t0)

        store.find_one_and_update.assert_awaited_once()
        store.update_one.assert_not_called()
        store.delete_one.assert_not_called()
        args, kwargs = store.find_one_and_update.call_args
        assert args[1] == {'$set': {'sleepUntil': t0 + timedelta(seconds=60)}}
        assert kwargs['sort'] == [('sleepUntil', 1)]


class TestClaimJob:
    """Test claim semantics against the in-memory store."""

    @pytest.mark.asyncio
    async def test_null_wake_is_claimable(self, store, config, t0):
        job_id = store.insert({'sleepUntil': None, 'payload': 'a'})

        job = await claim_job(store, config, t0)

        assert job['_id'] == job_id
        assert job['sleepUntil'] is None
        assert store.get(job_id)['sleepUntil'] == t0 + timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_past_wake_is_claimable(self, store, config, t0):
        job_id = store.insert({'sleepUntil': t0 - timedelta(minutes=5)})

        job = await claim_job(store, config, t0)

        assert job['_id'] == job_id

    @pytest.mark.asyncio
    async def test_wake_equal_to_now_is_claimable(self, store, config, t0):
        store.insert({'sleepUntil': t0})
        assert await claim_job(store, config, t0) is not None

    @pytest.mark.asyncio
    async def test_future_wake_is_not_claimable(self, store, config, t0):
        job_id = store.insert({'sleepUntil': t0 + timedelta(seconds=1)})

        assert await claim_job(store, config, t0) is None
        assert store.get(job_id)['sleepUntil'] == t0 + timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_document_without_wake_field_is_never_claimed(self, store, config, t0):
        store.insert({'interval': '* * * * * *'})
        assert await claim_job(store, config, t0) is None

    @pytest.mark.asyncio
    async def test_empty_store_returns_none(self, store, config, t0):
        assert await claim_job(store, config, t0) is None

    @pytest.mark.asyncio
    async def test_claimed_job_is_locked(self, store, config, t0):
        store.insert({'sleepUntil': None})

        assert await claim_job(store, config, t0) is not None
        assert await claim_job(store, config, t0 + timedelta(seconds=30)) is None

    @pytest.mark.asyncio
    async def test_extra_filter(self, store, config, t0):
        store.insert({'sleepUntil': None, 'queue': 'reports'})
        mail_id = store.insert({'sleepUntil': None, 'queue': 'mail'})

        job = await claim_job(store, config, t0, {'queue': 'mail'})

        assert job['_id'] == mail_id
        assert await claim_job(store, config, t0, {'queue': 'mail'}) is None

    @pytest.mark.asyncio
    async def test_nested_wake_field(self, store, t0):
        config = QueueConfig(wake_at_field='cron.sleepUntil')
        job_id = store.insert({'cron': {'sleepUntil': None}})

        job = await claim_job(store, config, t0)

        assert job['_id'] == job_id
        assert store.get(job_id)['cron']['sleepUntil'] == t0 + timedelta(minutes=10)

    @pytest.mark.asyncio
    async def test_naive_now_treated_as_utc(self, store, config, t0):
        store.insert({'sleepUntil': None})

        job = await claim_job(store, config, t0.replace(tzinfo=None))

        assert job is not None
        assert store.get(job['_id'])['sleepUntil'] == t0 + timedelta(seconds=60)


class TestConcurrentClaims:
    """Mutual exclusion between claimers."""

    @pytest.mark.asyncio
    async def test_exactly_one_claim_wins(self, store, config, t0):
        store.insert({'sleepUntil': None})

        results = await asyncio.gather(*(claim_job(store, config, t0) for _ in range(20)))

        claimed = [job for job in results if job is not None]
        assert len(claimed) == 1

    @pytest.mark.asyncio
    async def test_each_job_claimed_once(self, store, config, t0):
        ids = {store.insert({'sleepUntil': None}) for _ in range(5)}

        results = await asyncio.gather(*(claim_job(store, config, t0) for _ in range(12)))

        claimed = [job['_id'] for job in results if job is not None]
        assert sorted(claimed) == sorted(ids)


class TestLockExpiry:
    """An abandoned claim becomes claimable again once the lock expires."""

    @pytest.mark.asyncio
    async def test_abandoned_job_reclaimed_after_lock_duration(self, store, config, t0):
        job_id = store.insert({'sleepUntil': None})
        lock = timedelta(milliseconds=config.lock_duration)

        assert (await claim_job(store, config, t0))['_id'] == job_id
        # worker "crashes" here: no fate is applied

        assert await claim_job(store, config, t0 + lock - timedelta(milliseconds=1)) is None

        reclaimed = await claim_job(store, config, t0 + lock + timedelta(milliseconds=1))
        assert reclaimed['_id'] == job_id
        assert reclaimed['sleepUntil'] == t0 + lock
