"""
Remote Store Client using httpx

This client handles:
1. Authenticated calls to the fixed REST surface of the remote store
2. Attaching the session's bearer token (except to login/register)
3. Classifying every failure into NetworkUnavailable, Unauthorized or Rejected
4. Tearing the session down on a 401

CRITICAL: This client never falls back to the local store. Deciding what to
do about a failure belongs to the mode arbiter.
"""

from typing import Any, Optional

import httpx
import structlog

from money_manager.config import ApiSettings, get_settings
from money_manager.services.remote.errors import (
    InvalidServerResponse,
    NetworkUnavailable,
    Rejected,
    Unauthorized,
)
from money_manager.services.session import SessionState


logger = structlog.get_logger(__name__)

# Paths that must never carry a token
AUTH_EXEMPT_PATHS = frozenset({"/login", "/register"})

# Server error payloads name their message field inconsistently; first non-empty wins
MESSAGE_FIELDS = ("message", "error", "msg")

GENERIC_MESSAGES = {
    400: "Invalid data. Please check all fields.",
    403: "Access denied. Backend is available but the request was blocked.",
    404: "Endpoint not found. Please check backend configuration.",
    409: "This record conflicts with existing data.",
    422: "Validation error. Please check your input.",
    500: "Server error. Backend is available but encountered an error. Please try again later.",
}


def is_auth_exempt(path: str) -> bool:
    return path.rstrip("/") in AUTH_EXEMPT_PATHS


def extract_error_message(payload: Any, status_code: int) -> str:
    """
    Message to show for an error response.

    Uses the first non-empty of ``message``, ``error``, ``msg``, then a
    generic message for the status. A server ``errors`` list is appended.
    """
    message = None
    details = []

    if isinstance(payload, dict):
        for field in MESSAGE_FIELDS:
            value = payload.get(field)
            if isinstance(value, str) and value.strip():
                message = value.strip()
                break
        errors = payload.get("errors")
        if isinstance(errors, list):
            for item in errors:
                if isinstance(item, dict):
                    item = item.get("message") or item.get("defaultMessage")
                if item:
                    details.append(str(item))
    elif isinstance(payload, str) and payload.strip():
        message = payload.strip()

    if message is None:
        message = GENERIC_MESSAGES.get(
            status_code,
            f"Server error ({status_code}). Please try again.",
        )
    if details:
        message += " Validation errors: " + ", ".join(details)
    return message


class RemoteClient:
    """
    Thin async client over the remote store's REST surface.

    The underlying httpx.AsyncClient is created lazily and reused; call
    ``aclose()`` when done.
    """

    def __init__(
        self,
        session: SessionState,
        settings: Optional[ApiSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._session = session
        self._settings = settings or get_settings().api
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return self._settings.base_url

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._settings.base_url,
                timeout=self._settings.timeout_seconds,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def _auth_headers(self, method: str, path: str) -> dict[str, str]:
        if is_auth_exempt(path):
            return {}

        token = self._session.current().token
        if not token:
            logger.warning("no_auth_token", method=method, path=path)
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def call(self, method: str, path: str, body: Optional[Any] = None) -> Any:
        """
        Perform one call and return the decoded JSON body.

        Returns:
            Parsed JSON, or None for an empty body

        Raises:
            NetworkUnavailable: No response reached the server
            Unauthorized: HTTP 401 (session already torn down)
            Rejected: Any other HTTP error status
            InvalidServerResponse: A success body that is not JSON
        """
        method = method.upper()
        client = self._get_client()
        logger.debug("remote_call", method=method, path=path)

        try:
            response = await client.request(
                method,
                path,
                json=body,
                headers=self._auth_headers(method, path),
            )
        except httpx.TransportError as e:
            logger.warning(
                "remote_unreachable",
                method=method,
                path=path,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise NetworkUnavailable(
                f"Backend unavailable: {type(e).__name__}",
                path=path,
            ) from e

        if response.status_code == 401:
            message = extract_error_message(self._safe_json(response), 401)
            logger.warning("remote_unauthorized", method=method, path=path)
            self._session.expire(path)
            raise Unauthorized(message, path=path)

        if response.is_error:
            message = extract_error_message(self._safe_json(response), response.status_code)
            logger.error(
                "remote_rejected",
                method=method,
                path=path,
                status_code=response.status_code,
                message=message,
            )
            raise Rejected(response.status_code, message, path=path)

        return self._decode(response, path)

    @staticmethod
    def _safe_json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _decode(response: httpx.Response, path: str) -> Any:
        if not response.content or not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as e:
            raise InvalidServerResponse(
                f"Invalid response from server for {path}: body is not JSON"
            ) from e

    async def ping(self) -> bool:
        """
        Check whether the remote store is reachable.

        Only a network failure counts as unavailable; an HTTP error still
        proves the server answered.
        """
        try:
            client = self._get_client()
            await client.request(
                "GET",
                "/incomes",
                headers=self._auth_headers("GET", "/incomes"),
            )
        except httpx.TransportError:
            return False
        return True
