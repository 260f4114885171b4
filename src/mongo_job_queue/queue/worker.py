"""
Worker process runner: one or more schedulers sharing a MongoDB job store.
"""

import asyncio
import importlib
import logging
import signal
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from ..config import Config
from .scheduler import JobScheduler

logger = logging.getLogger(__name__)


def load_handler(path: str) -> Callable[..., Any]:
    """
    Resolve a document handler from a "package.module:function" path.

    Args:
        path: Import path of the callable

    Returns:
        The callable

    Raises:
        ValueError: If the path is malformed or does not name a callable
        ImportError: If the module cannot be imported
    """
    module_name, sep, attr_path = path.partition(':')
    if not sep or not module_name or not attr_path:
        raise ValueError(f"Handler must look like 'package.module:function', got '{path}'")

    target = importlib.import_module(module_name)
    for attr in attr_path.split('.'):
        try:
            target = getattr(target, attr)
        except AttributeError as e:
            raise ValueError(f"Handler '{path}' not found: {e}") from e

    if not callable(target):
        raise ValueError(f"Handler '{path}' is not callable")
    return target


class QueueWorker:
    """
    Runs job schedulers until a stop is requested (SIGINT/SIGTERM or stop()).
    """

    def __init__(self, config: Config, on_document: Optional[Callable[..., Any]] = None,
                 workers: Optional[int] = None, worker_id: Optional[str] = None):
        """
        Initialize the worker.

        Args:
            config: Configuration object
            on_document: Job handler; falls back to worker.handler from the config
            workers: Number of schedulers to run; falls back to worker.workers
            worker_id: Optional worker ID (generated if not provided)
        """
        self.config = config
        self.worker_id = worker_id or f"worker_{uuid.uuid4().hex[:8]}"

        worker_config = config.get_worker_config()
        self.num_workers = workers if workers is not None else worker_config['workers']
        if self.num_workers < 1:
            raise ValueError(f"Number of workers must be at least 1, got {self.num_workers}")

        if on_document is None and worker_config['handler']:
            on_document = load_handler(worker_config['handler'])
        if on_document is None:
            raise ValueError("No document handler configured (worker.handler)")

        self.on_document = on_document
        self.filter = worker_config['filter']
        self.store = None
        self.schedulers: List[JobScheduler] = []
        self._stop_event: Optional[asyncio.Event] = None

        logger.info(f"Initialized QueueWorker {self.worker_id} with {self.num_workers} schedulers")

    async def run(self, store=None) -> Dict[str, Any]:
        """
        Run until stopped.

        Args:
            store: Optional job store; created from the config when omitted.
                A store passed in is not initialized or closed here.

        Returns:
            Combined statistics of all schedulers
        """
        self._stop_event = asyncio.Event()
        owns_store = store is None
        self.store = store or self.config.get_job_store()
        start_time = time.time()

        if owns_store:
            await self.store.initialize()

        loop = asyncio.get_running_loop()
        installed = self._install_signal_handlers(loop)

        try:
            queue_config = self.config.get_queue_config()
            self.schedulers = [
                JobScheduler(
                    self.store,
                    queue_config,
                    on_document=self.on_document,
                    on_error=self._log_error,
                    filter=self.filter,
                    scheduler_id=f"{self.worker_id}-{i + 1}",
                )
                for i in range(self.num_workers)
            ]

            for scheduler in self.schedulers:
                await scheduler.start()

            await self._stop_event.wait()

            logger.info(f"Worker {self.worker_id} stopping {len(self.schedulers)} schedulers")
            await asyncio.gather(*(scheduler.stop() for scheduler in self.schedulers))
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            if owns_store:
                await self.store.close()

        return self._combined_stats(time.time() - start_time)

    def stop(self) -> None:
        """Request a graceful stop."""
        logger.info(f"Shutdown requested for worker {self.worker_id}")
        if self._stop_event is not None:
            self._stop_event.set()

    def _install_signal_handlers(self, loop) -> List[int]:
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform, or not in the main thread
                logger.debug(f"Could not install handler for {sig}")
        return installed

    async def _log_error(self, error: Exception, job: Optional[Dict[str, Any]]) -> None:
        if job is not None:
            logger.error(f"Error processing job {job.get('_id')}: {str(error)}")
        else:
            logger.error(f"Queue error: {str(error)}")

    def _combined_stats(self, runtime: float) -> Dict[str, Any]:
        combined = {
            "worker_id": self.worker_id,
            "total_workers": len(self.schedulers),
            "jobs_processed": 0,
            "jobs_failed": 0,
            "errors": 0,
            "idle_episodes": 0,
            "runtime": runtime,
        }
        for scheduler in self.schedulers:
            for key in ["jobs_processed", "jobs_failed", "errors", "idle_episodes"]:
                combined[key] += scheduler.stats.get(key, 0)
        return combined
