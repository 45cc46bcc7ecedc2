"""
Mode Arbiter

Routes every data operation to the authoritative store.

State machine:
    remote --NetworkUnavailable--> local
    local  --login/register------> remote   (owned by SessionState)

CRITICAL: The fallback is bounded. A remote failure buys exactly one attempt
against the local store; the local attempt is never retried and never sent
back to the remote store. Only NetworkUnavailable triggers it: a rejection,
an expired token or an unreadable body means the server was reachable and
its answer is surfaced to the caller unchanged.
"""

from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from money_manager.audit import AuditLogger
from money_manager.models.finance import StorageMode
from money_manager.services.remote.errors import NetworkUnavailable, Rejected
from money_manager.services.session import SessionState


logger = structlog.get_logger(__name__)

T = TypeVar("T")

Thunk = Callable[[], Awaitable[T]]


class ModeArbiter:
    """Decides which store serves an operation and owns the REMOTE -> LOCAL flip."""

    def __init__(
        self,
        session: SessionState,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._session = session
        self._audit = audit_logger or AuditLogger()

    @property
    def mode(self) -> StorageMode:
        return self._session.mode

    async def run(self, operation: str, remote: Thunk[T], local: Thunk[T]) -> T:
        """
        Run ``operation`` against the authoritative store.

        Args:
            operation: Name used in logs and audit events
            remote: Performs the operation through the remote client
            local: Performs the operation against the local store

        Raises:
            Whatever the chosen thunk raises, except a NetworkUnavailable
            from the remote thunk, which is absorbed by the local retry.
        """
        if self._session.mode is StorageMode.LOCAL:
            logger.debug("routed_local", operation=operation)
            return await local()
        return await self._remote_then_local(operation, remote, local)

    async def attempt_remote(self, operation: str, remote: Thunk[T], local: Thunk[T]) -> T:
        """
        Like ``run`` but tries the remote store even in local mode.

        Login and register use this so that a fresh sign-in can make the
        remote store authoritative again.
        """
        return await self._remote_then_local(operation, remote, local)

    async def _remote_then_local(self, operation: str, remote: Thunk[T], local: Thunk[T]) -> T:
        try:
            return await remote()
        except NetworkUnavailable as e:
            logger.warning(
                "remote_call_failed",
                operation=operation,
                path=e.path,
                error=e.message,
            )
        except Rejected as e:
            self._audit.log_remote_rejected(
                operation=operation,
                status_code=e.status_code,
                message=e.message,
                user_id=self._user_id(),
            )
            raise

        self._audit.log_local_fallback(operation=operation, user_id=self._user_id())
        try:
            return await local()
        finally:
            # After the local attempt, so an offline sign-in (which resets the
            # mode to remote) still ends up local
            self.switch_to_local(operation)

    def switch_to_local(self, operation: str) -> bool:
        """Flip to local mode. Audited only for the call that changed it."""
        from_mode = self._session.mode
        if not self._session.switch_to_local():
            return False

        logger.warning("mode_switched", operation=operation, to_mode=StorageMode.LOCAL.value)
        self._audit.log_mode_switched(
            operation=operation,
            from_mode=from_mode.value,
            to_mode=StorageMode.LOCAL.value,
            user_id=self._user_id(),
        )
        return True

    def _user_id(self) -> Optional[str]:
        session = self._session.current()
        return session.user_key if session.user else None
