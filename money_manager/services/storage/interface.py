"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the durable key/value
substrate behind the local store. This allows us to:
1. Persist to a JSON file on disk in production
2. Use in-memory storage for testing
3. Keep session persistence and local collections off the network path

The interface is intentionally synchronous. A read-modify-write on one key
never awaits between the read and the write, so two such sequences on the
same key cannot interleave inside one event loop.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterator, Optional


class KeyValueStore(ABC):
    """
    Abstract interface for a durable key/value store.

    Values are JSON-compatible Python objects.
    """

    @abstractmethod
    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """
        Read a value.

        Args:
            key: Storage key
            default: Returned when the key is absent

        Returns:
            A copy of the stored value; mutating it does not touch the store
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """
        Write a value durably.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key. Missing keys are ignored."""
        pass

    @abstractmethod
    def keys(self) -> Iterator[str]:
        """Iterate over stored keys."""
        pass

    def remove_many(self, keys: list[str]) -> None:
        for key in keys:
            self.remove(key)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class DuplicateUserError(DuplicateError):
    """An offline account with this email already exists."""
    pass


class InvalidCredentials(StorageError):
    """Offline login did not match any local account."""
    pass
