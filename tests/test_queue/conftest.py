"""
Pytest configuration and fixtures for job queue tests.
"""

import asyncio
import copy
import itertools
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional, Tuple

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from mongo_job_queue.storage.base import JobStore


_MISSING = object()


def _get(doc: Dict[str, Any], path: str):
    current = doc
    for part in path.split('.'):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _compare(value, op, arg) -> bool:
    if value is _MISSING or value is None:
        return False
    try:
        if op == '$gt':
            return value > arg
        if op == '$gte':
            return value >= arg
        if op == '$lt':
            return value < arg
        return value <= arg
    except TypeError:
        return False


def _match_ops(value, ops: Dict[str, Any]) -> bool:
    for op, arg in ops.items():
        if op == '$exists':
            if (value is not _MISSING) != bool(arg):
                return False
        elif op == '$not':
            if _match_ops(value, arg):
                return False
        elif op in ('$gt', '$gte', '$lt', '$lte'):
            if not _compare(value, op, arg):
                return False
        elif op == '$ne':
            if value is not _MISSING and value == arg:
                return False
        elif op == '$eq':
            if value is _MISSING or value != arg:
                return False
        else:
            raise NotImplementedError(f"Operator {op} not supported by MockJobStore")
    return True


def matches(doc: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    """Evaluate the MongoDB filter subset used by the queue."""
    for key, cond in filter.items():
        if key == '$and':
            if not all(matches(doc, sub) for sub in cond):
                return False
        elif key == '$or':
            if not any(matches(doc, sub) for sub in cond):
                return False
        else:
            value = _get(doc, key)
            if isinstance(cond, dict) and cond and all(k.startswith('$') for k in cond):
                if not _match_ops(value, cond):
                    return False
            elif value is _MISSING or value != cond:
                return False
    return True


def _set(doc: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split('.')
    current = doc
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def _unset(doc: Dict[str, Any], path: str) -> None:
    parts = path.split('.')
    current = doc
    for part in parts[:-1]:
        current = current.get(part)
        if not isinstance(current, dict):
            return
    current.pop(parts[-1], None)


class MockJobStore(JobStore):
    """
    In-memory job store for testing without MongoDB.

    find_one_and_update holds a lock across select and update, and yields to
    the event loop inside it, so concurrent claims really interleave.
    """

    def __init__(self):
        self.documents: Dict[Any, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Any]] = []
        self.failures: Dict[str, List[Exception]] = {}
        self._ids = itertools.count(1)
        self._lock: Optional[asyncio.Lock] = None

    def insert(self, doc: Dict[str, Any]) -> Any:
        doc = copy.deepcopy(doc)
        doc.setdefault('_id', next(self._ids))
        self.documents[doc['_id']] = doc
        return doc['_id']

    def get(self, doc_id) -> Optional[Dict[str, Any]]:
        return self.documents.get(doc_id)

    def fail_next(self, method: str, error: Exception) -> None:
        """Make the next call to method raise error."""
        self.failures.setdefault(method, []).append(error)

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, args))
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)

    def _apply(self, doc: Dict[str, Any], update: Dict[str, Any]) -> None:
        for op, values in update.items():
            if op == '$set':
                for path, value in values.items():
                    _set(doc, path, value)
            elif op == '$unset':
                for path in values:
                    _unset(doc, path)
            else:
                raise NotImplementedError(f"Update operator {op} not supported by MockJobStore")

    async def find_one_and_update(self, filter, update, sort=None):
        self._record('find_one_and_update', filter, update, sort)
        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            candidates = [doc for doc in self.documents.values() if matches(doc, filter)]
            await asyncio.sleep(0)
            if not candidates:
                return None

            if sort:
                path, direction = sort[0]

                def key(doc):
                    value = _get(doc, path)
                    if value is _MISSING or value is None:
                        return (0, datetime.min.replace(tzinfo=timezone.utc))
                    return (1, value)

                candidates.sort(key=key, reverse=direction < 0)

            doc = candidates[0]
            before = copy.deepcopy(doc)
            self._apply(doc, update)
            return before

    async def update_one(self, filter, update):
        self._record('update_one', filter, update)
        for doc in self.documents.values():
            if matches(doc, filter):
                self._apply(doc, update)
                return 1
        return 0

    async def delete_one(self, filter):
        self._record('delete_one', filter)
        for doc_id, doc in list(self.documents.items()):
            if matches(doc, filter):
                del self.documents[doc_id]
                return 1
        return 0

    async def count_documents(self, filter):
        self._record('count_documents', filter)
        return sum(1 for doc in self.documents.values() if matches(doc, filter))


class FakeClock:
    """Clock that moves forward by a fixed step every time it is read."""

    def __init__(self, start: datetime, step: timedelta = timedelta(0)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    """Create an empty in-memory job store."""
    return MockJobStore()


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def fixed_clock():
    """Clock frozen at T0."""
    return FakeClock(T0)


@pytest.fixture
def ticking_clock():
    """Clock that advances one second per read, starting at T0."""
    return FakeClock(T0, timedelta(seconds=1))
