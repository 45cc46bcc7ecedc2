"""
Session Model

A Session is an immutable snapshot. SessionState (services.session) owns the
live value and hands out snapshots, so callers can never write the token
behind the session's back.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from money_manager.models.finance import StorageMode, UserSummary


# Namespace used for local collections when no identity is known
OFFLINE_USER_ID = "offline_user"


class Session(BaseModel):
    """Authorization token, active user and storage mode."""
    model_config = ConfigDict(frozen=True)

    token: Optional[str] = Field(
        default=None,
        description="Bearer token attached to every authenticated call"
    )
    user: Optional[UserSummary] = Field(
        default=None,
        description="The signed-in user"
    )
    mode: StorageMode = Field(
        default=StorageMode.REMOTE,
        description="Store that serves subsequent operations"
    )

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def user_key(self) -> str:
        """Identity used to namespace local collections."""
        if self.user is None:
            return OFFLINE_USER_ID
        return self.user.id or self.user.email or OFFLINE_USER_ID

    def token_preview(self) -> Optional[str]:
        """First characters of the token, safe to log."""
        if not self.token:
            return None
        return self.token[:8] + "..."
