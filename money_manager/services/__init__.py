"""Services package."""

from money_manager.services.storage import (
    DuplicateError,
    DuplicateUserError,
    InMemoryKeyValueStore,
    InvalidCredentials,
    JsonFileKeyValueStore,
    KeyValueStore,
    LocalStore,
    NotFoundError,
    StorageError,
)
from money_manager.services.session import SessionState
from money_manager.services.remote import (
    InvalidServerResponse,
    NetworkUnavailable,
    Rejected,
    RemoteClient,
    RemoteFailure,
    ResponseNormalizer,
    Unauthorized,
)
from money_manager.services.arbiter import ModeArbiter

__all__ = [
    # Storage services
    "DuplicateError",
    "DuplicateUserError",
    "InMemoryKeyValueStore",
    "InvalidCredentials",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "LocalStore",
    "NotFoundError",
    "StorageError",
    # Session
    "SessionState",
    # Remote services
    "InvalidServerResponse",
    "NetworkUnavailable",
    "Rejected",
    "RemoteClient",
    "RemoteFailure",
    "ResponseNormalizer",
    "Unauthorized",
    # Routing
    "ModeArbiter",
]
