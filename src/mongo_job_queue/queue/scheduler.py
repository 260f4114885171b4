"""
Polling scheduler that claims, processes and reschedules jobs.

Each JobScheduler runs one asyncio task that loops over:

    claim a job -> run the document callback -> apply the job's fate -> wait

When no job is eligible the scheduler goes idle and waits ``idle_delay``
before trying again. Nothing raised by a callback or by the store ends the
loop; errors are passed to ``on_error`` and the loop carries on. Only stop()
ends it.
"""

import asyncio
import inspect
import logging
import time
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..config import QueueConfig
from ..storage.base import JobStore
from ..utils import utcnow
from .claim import claim_job
from .fate import apply_fate, compute_fate

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    IDLE = "idle"
    PROCESSING = "processing"
    STOPPING = "stopping"


async def _invoke(callback: Callable[..., Any], *args) -> Any:
    """Call a plain or coroutine function and await the result if needed."""
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class JobScheduler:
    """
    Claim-and-reschedule loop over one job store.

    Callbacks are optional and may be plain functions or coroutine functions:

    - on_start(): after start() is requested, before the first claim
    - on_document(job): for each claimed job
    - on_idle(): once each time the queue turns out to be empty
    - on_error(exc, job): for callback and store failures; job is None when
      the failure is not tied to a claimed job
    - on_stop(): after the loop has finished
    """

    def __init__(self, store: JobStore, config: Optional[QueueConfig] = None,
                 on_document: Optional[Callable[..., Any]] = None,
                 on_start: Optional[Callable[..., Any]] = None,
                 on_stop: Optional[Callable[..., Any]] = None,
                 on_idle: Optional[Callable[..., Any]] = None,
                 on_error: Optional[Callable[..., Any]] = None,
                 filter: Optional[Dict[str, Any]] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 scheduler_id: Optional[str] = None):
        """
        Initialize the scheduler.

        Args:
            store: Job store shared with other workers
            config: Queue configuration (defaults apply when omitted)
            on_document: Job processing callback
            on_start: Start notification
            on_stop: Stop notification
            on_idle: Idle notification
            on_error: Error notification, called with (exc, job)
            filter: Extra predicate restricting which jobs this scheduler claims
            clock: Returns the current UTC instant; defaults to the wall clock
            scheduler_id: Name used in log messages
        """
        self.store = store
        self.config = config or QueueConfig()
        self.on_document = on_document
        self.on_start = on_start
        self.on_stop = on_stop
        self.on_idle = on_idle
        self.on_error = on_error
        self.filter = filter
        self.scheduler_id = scheduler_id or f"scheduler_{uuid.uuid4().hex[:8]}"

        self._clock = clock or utcnow
        self._state = SchedulerState.STOPPED
        self._stop_requested = False
        self._processing = False
        self._idle = False
        self._task: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None

        self.stats = {
            "jobs_processed": 0,
            "jobs_failed": 0,
            "errors": 0,
            "idle_episodes": 0,
            "start_time": None,
            "end_time": None,
        }

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        """True from start() until the loop has fully stopped."""
        return self._state is not SchedulerState.STOPPED

    @property
    def is_processing(self) -> bool:
        """True while a claimed job is being processed and its fate applied."""
        return self._processing

    @property
    def is_idle(self) -> bool:
        """True when the last claim attempt found no eligible job."""
        return self._idle

    async def start(self) -> None:
        """Start polling. Does nothing if the scheduler is already running."""
        if self._task is not None and self._stop_requested:
            # A stop is still draining; let it finish before starting over
            await self.join()

        if self.is_running:
            return

        self._state = SchedulerState.STARTING
        self._stop_requested = False
        self._idle = False
        self._wakeup = asyncio.Event()
        self.stats["start_time"] = time.time()
        self.stats["end_time"] = None

        logger.info(f"Starting job scheduler {self.scheduler_id}")

        await self._notify(self.on_start)

        if self._stop_requested:
            # stop() was called from on_start
            await self._finish()
            return

        self._state = SchedulerState.IDLE
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """
        Stop polling.

        Waits for a job that is being processed to finish and have its fate
        applied. Pending delays are cut short. Does nothing if the scheduler is
        already stopped. Safe to call from inside a callback.
        """
        if not self.is_running:
            return

        task = self._task
        current = asyncio.current_task()

        if not self._stop_requested:
            logger.info(f"Stopping job scheduler {self.scheduler_id}")
            self._stop_requested = True
            if not self._processing and self._state is not SchedulerState.STARTING:
                self._state = SchedulerState.STOPPING
            if self._wakeup is not None:
                self._wakeup.set()

        if task is None or task is current:
            # Either still inside on_start, or called from a callback running
            # in the loop; the loop finishes the stop itself.
            return

        await task

    async def join(self) -> None:
        """Wait until the poll loop has ended."""
        task = self._task
        if task is not None and task is not asyncio.current_task():
            await task

    async def _run(self) -> None:
        try:
            while not self._stop_requested:
                try:
                    await self._poll()
                except Exception as e:
                    self._processing = False
                    self._settle()
                    logger.error(f"Scheduler {self.scheduler_id} poll failed: {str(e)}")
                    await self._report_error(e, None)
                    await self._sleep(self.config.idle_delay)
        finally:
            await self._finish()
            if self._task is asyncio.current_task():
                self._task = None

    async def _poll(self) -> None:
        now = self._clock()
        job = await claim_job(self.store, self.config, now, self.filter)

        if job is None:
            if not self._idle:
                self._idle = True
                self.stats["idle_episodes"] += 1
                logger.debug(f"Scheduler {self.scheduler_id} is idle")
                await self._notify(self.on_idle)
            await self._sleep(self.config.idle_delay)
            return

        self._idle = False
        self._processing = True
        self._state = SchedulerState.PROCESSING

        try:
            await self._process(job)

            try:
                fate = compute_fate(job, self.config, now)
                await apply_fate(self.store, job, fate, self.config)
            except Exception as e:
                logger.error(f"Failed to update job {job.get('_id')}: {str(e)}")
                await self._report_error(e, job)
                delay = self.config.idle_delay
            else:
                delay = self.config.reprocess_delay if fate.rescheduled else self.config.next_delay
        finally:
            self._processing = False
            self._settle()

        await self._sleep(delay)

    async def _process(self, job: Dict[str, Any]) -> None:
        if self.on_document is None:
            return

        try:
            await _invoke(self.on_document, job)
            self.stats["jobs_processed"] += 1
        except Exception as e:
            self.stats["jobs_failed"] += 1
            logger.warning(f"Job {job.get('_id')} failed in scheduler {self.scheduler_id}: {str(e)}")
            await self._report_error(e, job)

    def _settle(self) -> None:
        self._state = SchedulerState.STOPPING if self._stop_requested else SchedulerState.IDLE

    async def _sleep(self, delay_ms: float) -> None:
        """Wait delay_ms milliseconds, returning early when stop is requested."""
        if self._stop_requested:
            return
        if delay_ms <= 0:
            # Yield so other tasks (and stop requests) get a chance to run
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            pass

    async def _notify(self, callback: Optional[Callable[..., Any]]) -> None:
        if callback is None:
            return
        try:
            await _invoke(callback)
        except Exception as e:
            logger.warning(f"Callback {getattr(callback, '__name__', callback)} failed: {str(e)}")
            await self._report_error(e, None)

    async def _report_error(self, error: Exception, job: Optional[Dict[str, Any]]) -> None:
        self.stats["errors"] += 1
        if self.on_error is None:
            return
        try:
            await _invoke(self.on_error, error, job)
        except Exception:
            logger.exception(f"on_error callback failed in scheduler {self.scheduler_id}")

    async def _finish(self) -> None:
        self._processing = False
        self._idle = False
        self._state = SchedulerState.STOPPED
        self.stats["end_time"] = time.time()
        logger.info(f"Job scheduler {self.scheduler_id} stopped")
        await self._notify(self.on_stop)
