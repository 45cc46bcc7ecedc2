"""Remote store services package."""

from money_manager.services.remote.client import (
    AUTH_EXEMPT_PATHS,
    RemoteClient,
    extract_error_message,
    is_auth_exempt,
)
from money_manager.services.remote.errors import (
    InvalidServerResponse,
    NetworkUnavailable,
    Rejected,
    RemoteFailure,
    Unauthorized,
)
from money_manager.services.remote.normalizer import (
    AuthResult,
    ResponseNormalizer,
)

__all__ = [
    # Client
    "AUTH_EXEMPT_PATHS",
    "RemoteClient",
    "extract_error_message",
    "is_auth_exempt",
    # Failures
    "InvalidServerResponse",
    "NetworkUnavailable",
    "Rejected",
    "RemoteFailure",
    "Unauthorized",
    # Normalizer
    "AuthResult",
    "ResponseNormalizer",
]
