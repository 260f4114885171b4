"""
MongoDB job store built on pymongo's asyncio client.
"""

import logging
from typing import Dict, Any, List, Optional, Tuple

from pymongo import ASCENDING, AsyncMongoClient, ReturnDocument
from pymongo.errors import ConnectionFailure

from ..config import QueueConfig
from .base import JobStore

logger = logging.getLogger(__name__)


class MongoJobStore(JobStore):
    """Job store backed by a single MongoDB collection."""

    def __init__(self, conn_params: Dict[str, Any]):
        """
        Initialize the MongoDB job store.

        Args:
            conn_params: Connection parameters:
                - uri: Full connection string (takes precedence over host/port)
                - host, port, username, password: Used when no uri is given
                - db_name: Database name (default: "mongo-job-queue")
                - collection: Collection holding the jobs (default: "jobs")
                - options: Extra connection string options
                - create_indexes: Create the wake-up index on initialize (default: True)
                - wake_at_field: Field path of the wake-up timestamp (default: "sleepUntil")
        """
        self.conn_params = conn_params
        self.db_name = conn_params.get('db_name', 'mongo-job-queue')
        self.collection_name = conn_params.get('collection', 'jobs')
        self.wake_at_field = conn_params.get('wake_at_field', 'sleepUntil')
        self.create_indexes = conn_params.get('create_indexes', True)

        self.client: Optional[AsyncMongoClient] = None
        self.collection = None
        self._owns_client = True

    @classmethod
    def from_collection(cls, collection, config: Optional[QueueConfig] = None) -> 'MongoJobStore':
        """
        Wrap an existing pymongo AsyncCollection.

        The caller keeps ownership of the client; close() will not close it.
        The wake-up index follows the wake field path of config.
        """
        config = config or QueueConfig()
        store = cls({
            'db_name': collection.database.name,
            'collection': collection.name,
            'wake_at_field': config.wake_at_field,
            'create_indexes': False,
        })
        store.collection = collection
        store._owns_client = False
        return store

    def _connection_string(self) -> str:
        uri = self.conn_params.get('uri')
        if uri:
            return uri

        host = self.conn_params.get('host', 'localhost')
        port = self.conn_params.get('port', 27017)
        username = self.conn_params.get('username')
        password = self.conn_params.get('password')

        connection_string = "mongodb://"
        if username and password:
            connection_string += f"{username}:{password}@"
        connection_string += f"{host}:{port}/{self.db_name}"

        options = self.conn_params.get('options', {})
        if options:
            option_str = "&".join(f"{k}={v}" for k, v in options.items())
            connection_string += f"?{option_str}"

        return connection_string

    async def initialize(self) -> None:
        """Connect, verify the server is reachable and create the wake-up index."""
        if self.collection is not None:
            return

        try:
            self.client = AsyncMongoClient(self._connection_string(), tz_aware=True)
            await self.client.admin.command('ping')
        except ConnectionFailure as e:
            logger.error(f"Error connecting to MongoDB: {str(e)}")
            raise

        self.collection = self.client[self.db_name][self.collection_name]
        logger.info(f"Connected to MongoDB collection {self.db_name}.{self.collection_name}")

        if self.create_indexes:
            await self.ensure_indexes()

    async def ensure_indexes(self) -> None:
        """Create a sparse index on the wake-up field so claims stay cheap."""
        await self.collection.create_index([(self.wake_at_field, ASCENDING)], sparse=True)
        logger.debug(f"Ensured index on {self.wake_at_field}")

    async def close(self) -> None:
        if self.client is not None and self._owns_client:
            await self.client.close()
            logger.debug("MongoDB connection closed")
        self.client = None
        self.collection = None

    def _require_collection(self):
        if self.collection is None:
            raise RuntimeError("MongoJobStore is not initialized")
        return self.collection

    async def find_one_and_update(self, filter: Dict[str, Any], update: Dict[str, Any],
                                  sort: Optional[List[Tuple[str, int]]] = None) -> Optional[Dict[str, Any]]:
        return await self._require_collection().find_one_and_update(
            filter,
            update,
            sort=sort,
            return_document=ReturnDocument.BEFORE,
        )

    async def update_one(self, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        result = await self._require_collection().update_one(filter, update)
        return result.matched_count

    async def delete_one(self, filter: Dict[str, Any]) -> int:
        result = await self._require_collection().delete_one(filter)
        return result.deleted_count

    async def count_documents(self, filter: Dict[str, Any]) -> int:
        return await self._require_collection().count_documents(filter)
