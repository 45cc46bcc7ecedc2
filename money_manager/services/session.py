"""
Session State

Owns the one live Session: the bearer token, the signed-in user and the
storage mode.

CRITICAL: ``login`` and ``register`` are the only code paths that set the
token. Everything else (mode switches, profile updates, teardown) preserves
or clears it, never writes a new one.

Session changes are persisted to the key/value store directly, so a restart
does not require a new login and persistence never depends on the network.
"""

from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from money_manager.audit import AuditLogger
from money_manager.models.finance import StorageMode, UserSummary
from money_manager.models.session import Session
from money_manager.services.storage.interface import KeyValueStore


logger = structlog.get_logger(__name__)

TOKEN_KEY = "token"
USER_KEY = "currentUser"
MODE_KEY = "backendMode"


class SessionState:
    """
    Context object holding the session for one client instance.

    Create one per process (or per test) and hand it to the components that
    need it; there is no module-level session.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._kv = kv
        self._audit = audit_logger or AuditLogger()
        self._session = self._restore()

    def _restore(self) -> Session:
        """Rebuild the session persisted by a previous run."""
        token = self._kv.get(TOKEN_KEY)
        raw_user = self._kv.get(USER_KEY)
        raw_mode = self._kv.get(MODE_KEY)

        try:
            mode = StorageMode(raw_mode) if raw_mode else StorageMode.REMOTE
        except ValueError:
            mode = StorageMode.REMOTE

        # An anonymous client that fell back to local stays local
        if not token:
            return Session(mode=mode)

        try:
            user = UserSummary(**raw_user) if raw_user else None
        except (PydanticValidationError, TypeError):
            logger.warning("persisted_user_unreadable")
            user = None

        session = Session(token=token, user=user, mode=mode)
        logger.info(
            "session_restored",
            user=session.user_key,
            mode=session.mode.value,
            token=session.token_preview(),
        )
        return session

    def current(self) -> Session:
        """Snapshot of the current session."""
        return self._session

    @property
    def mode(self) -> StorageMode:
        return self._session.mode

    @property
    def user_key(self) -> str:
        return self._session.user_key

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    # -- token writers -------------------------------------------------------

    def login(self, user: UserSummary, token: str) -> Session:
        """Start a session after a successful login."""
        return self._start(user, token, via="login")

    def register(self, user: UserSummary, token: str) -> Session:
        """Start a session after a successful registration."""
        return self._start(user, token, via="register")

    def _start(self, user: UserSummary, token: str, via: str) -> Session:
        if not token:
            raise ValueError("A session cannot start without a token")

        # Authentication succeeded against a store, so that store is authoritative
        session = Session(token=token, user=user, mode=StorageMode.REMOTE)

        # Persist first: if the write fails the previous session stays in place
        self._kv.set(TOKEN_KEY, token)
        self._kv.set(USER_KEY, user.model_dump())
        self._kv.set(MODE_KEY, session.mode.value)
        self._session = session

        self._audit.log_session_started(
            user_id=session.user_key,
            via=via,
            mode=session.mode.value,
        )
        return session

    # -- everything else -----------------------------------------------------

    def logout(self, reason: str = "logout") -> None:
        """Clear token, user and mode in one step."""
        previous = self._session
        self._session = Session()
        self._kv.remove_many([TOKEN_KEY, USER_KEY, MODE_KEY])
        self._audit.log_session_cleared(
            user_id=previous.user_key if previous.user else None,
            reason=reason,
        )

    def expire(self, path: str) -> None:
        """Tear the session down after the remote store rejected the token."""
        self._audit.log_session_expired(
            user_id=self._session.user_key if self._session.user else None,
            path=path,
        )
        self.logout(reason="unauthorized")

    def switch_to_local(self) -> bool:
        """
        Make the local store authoritative.

        Idempotent: returns True only for the call that actually changed the
        mode, so a burst of failures produces a single transition.
        """
        if self._session.mode is StorageMode.LOCAL:
            return False
        self._session = self._session.model_copy(update={"mode": StorageMode.LOCAL})
        self._kv.set(MODE_KEY, StorageMode.LOCAL.value)
        return True

    def update_user(self, user: UserSummary) -> Session:
        """Replace the user wholesale (profile update). The token is untouched."""
        if not self._session.is_authenticated:
            raise RuntimeError("Cannot update the profile without an active session")
        self._session = self._session.model_copy(update={"user": user})
        self._kv.set(USER_KEY, user.model_dump())
        self._audit.log_profile_updated(user_id=self._session.user_key)
        return self._session
