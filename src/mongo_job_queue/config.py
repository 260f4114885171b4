"""
Configuration loading for job queue workers.

Configuration lives in a YAML file with four sections::

    storage:
      host: localhost
      port: 27017
      db_name: jobs
      collection: jobs
    queue:
      lock_duration: 600000   # milliseconds
      idle_delay: 1000
      sleepUntil: cron.sleepUntil
    worker:
      handler: myapp.jobs:process
      workers: 2
    logging:
      level: INFO

The file path comes from the constructor argument, then the
MONGO_JOB_QUEUE_CONFIG_PATH environment variable, then ./config.yaml.
"""

import logging
import os
from dataclasses import dataclass, fields
from datetime import timedelta
from typing import Dict, Any, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "MONGO_JOB_QUEUE_CONFIG_PATH"
STORAGE_URI_ENV = "MONGO_JOB_QUEUE_URI"
DEFAULT_CONFIG_PATH = "./config.yaml"

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# camelCase names accepted alongside the snake_case field names
_QUEUE_KEY_ALIASES = {
    'lockDuration': 'lock_duration',
    'nextDelay': 'next_delay',
    'reprocessDelay': 'reprocess_delay',
    'idleDelay': 'idle_delay',
    'sleepUntil': 'wake_at_field',
    'wakeAt': 'wake_at_field',
    'interval': 'interval_field',
    'repeatUntil': 'repeat_until_field',
    'autoRemove': 'auto_remove_field',
}

_DURATION_FIELDS = ('lock_duration', 'next_delay', 'reprocess_delay', 'idle_delay')
_PATH_FIELDS = ('wake_at_field', 'interval_field', 'repeat_until_field', 'auto_remove_field')


@dataclass(frozen=True)
class QueueConfig:
    """
    Scheduler options. Durations are in milliseconds; field names are dotted
    paths into the job documents.
    """
    lock_duration: int = 600000
    next_delay: int = 0
    reprocess_delay: int = 0
    idle_delay: int = 0
    wake_at_field: str = 'sleepUntil'
    interval_field: str = 'interval'
    repeat_until_field: str = 'repeatUntil'
    auto_remove_field: str = 'autoRemove'

    def __post_init__(self):
        for name in _DURATION_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise ValueError(f"{name} must be a non-negative number of milliseconds, got {value!r}")
        for name in _PATH_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must be a non-empty field path, got {value!r}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'QueueConfig':
        """
        Build a QueueConfig from a mapping.

        Args:
            data: Options using snake_case names or the camelCase aliases

        Returns:
            QueueConfig instance

        Raises:
            ValueError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in (data or {}).items():
            name = _QUEUE_KEY_ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown queue option: {key}")
            kwargs[name] = value
        return cls(**kwargs)

    @property
    def lock_timedelta(self) -> timedelta:
        return timedelta(milliseconds=self.lock_duration)


class Config:
    """YAML-backed configuration for workers and the monitoring CLI."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Load configuration.

        Args:
            config_path: Path to the YAML file. A missing file yields defaults.
        """
        load_dotenv()

        self.config_path = config_path or os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH)
        self.config: Dict[str, Any] = {}

        if os.path.exists(self.config_path):
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
            logger.debug(f"Loaded configuration from {self.config_path}")
        else:
            logger.info(f"Config file {self.config_path} not found, using defaults")

        if not isinstance(self.config, dict):
            raise ValueError(f"Configuration root must be a mapping: {self.config_path}")

        # Fail early on bad queue options rather than inside a running loop
        self._queue_config = QueueConfig.from_dict(self.config.get('queue'))

    def get_queue_config(self) -> QueueConfig:
        return self._queue_config

    def get_storage_config(self) -> Dict[str, Any]:
        """
        Get MongoDB connection parameters.

        The MONGO_JOB_QUEUE_URI environment variable, when set, replaces any
        uri given in the file.
        """
        storage = dict(self.config.get('storage') or {})
        uri = os.environ.get(STORAGE_URI_ENV)
        if uri:
            storage['uri'] = uri
        return storage

    def get_worker_config(self) -> Dict[str, Any]:
        worker = dict(self.config.get('worker') or {})
        worker.setdefault('workers', 1)
        worker.setdefault('filter', None)
        worker.setdefault('handler', None)
        return worker

    def get_logging_config(self) -> Dict[str, Any]:
        logging_config = dict(self.config.get('logging') or {})
        logging_config.setdefault('level', 'INFO')
        logging_config.setdefault('format', DEFAULT_LOG_FORMAT)
        logging_config.setdefault('file', None)
        return logging_config

    def get_job_store(self):
        """Create an (uninitialized) MongoDB job store from the storage section."""
        from .storage.mongodb import MongoJobStore

        params = self.get_storage_config()
        params.setdefault('wake_at_field', self._queue_config.wake_at_field)
        return MongoJobStore(params)
