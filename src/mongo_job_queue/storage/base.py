"""
Abstract job store.

The scheduler only ever talks to the store through the operations below. Every
query and update document uses MongoDB syntax, so a backend other than MongoDB
has to interpret that subset: ``$and``, ``$exists``, ``$not``, ``$gt``,
equality on ``_id``, ``$set`` and ``$unset``.

``find_one_and_update`` must be atomic: two concurrent callers must never both
receive the same document. Backends without a native read-modify-write
primitive have to provide the same guarantee another way (for example with a
transaction).
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Tuple


class JobStore(ABC):
    """Abstract base class for job store implementations."""

    async def initialize(self) -> None:
        """Connect and prepare the store. Default is a no-op."""

    async def close(self) -> None:
        """Release the store's resources. Default is a no-op."""

    @abstractmethod
    async def find_one_and_update(self, filter: Dict[str, Any], update: Dict[str, Any],
                                  sort: Optional[List[Tuple[str, int]]] = None) -> Optional[Dict[str, Any]]:
        """
        Atomically select one document matching filter and apply update.

        Args:
            filter: Selection predicate
            update: Update document
            sort: Optional ordering hint among matching documents

        Returns:
            The document as it was before the update, or None if nothing matched
        """
        pass

    @abstractmethod
    async def update_one(self, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        """
        Apply update to the first document matching filter.

        Returns:
            Number of matched documents (0 or 1)
        """
        pass

    @abstractmethod
    async def delete_one(self, filter: Dict[str, Any]) -> int:
        """
        Delete the first document matching filter.

        Returns:
            Number of deleted documents (0 or 1)
        """
        pass

    @abstractmethod
    async def count_documents(self, filter: Dict[str, Any]) -> int:
        """Count documents matching filter."""
        pass
