"""
Storage Services Package

Provides the durable key/value substrate and the local fallback store built
on top of it.
"""

from money_manager.services.storage.interface import (
    DuplicateError,
    DuplicateUserError,
    InvalidCredentials,
    KeyValueStore,
    NotFoundError,
    StorageError,
)
from money_manager.services.storage.json_file import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
)
from money_manager.services.storage.local_store import (
    DEFAULT_CATEGORIES,
    LocalIdGenerator,
    LocalStore,
)

__all__ = [
    # Interfaces
    "KeyValueStore",
    # Exceptions
    "DuplicateError",
    "DuplicateUserError",
    "InvalidCredentials",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "DEFAULT_CATEGORIES",
    "LocalIdGenerator",
    "LocalStore",
]
