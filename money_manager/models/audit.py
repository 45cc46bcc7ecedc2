"""
Audit Models for Money Manager

Session and storage-mode transitions are the only global state this package
mutates, so each one is recorded as a typed event. This makes it possible to
reconstruct why a user ended up writing to the local store.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session lifecycle
    SESSION_STARTED = "session_started"
    SESSION_CLEARED = "session_cleared"
    SESSION_EXPIRED = "session_expired"
    PROFILE_UPDATED = "profile_updated"

    # Storage mode
    MODE_SWITCHED = "mode_switched"
    LOCAL_FALLBACK = "local_fallback"

    # Remote store
    REMOTE_REJECTED = "remote_rejected"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )
    user_id: Optional[str] = Field(
        default=None,
        description="Local namespace of the user the event relates to"
    )
    operation: Optional[str] = Field(
        default=None,
        description="Data access operation that triggered the event"
    )
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "operation": self.operation,
            "description": self.description,
            "details": self.details,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.mode_switched("create_income", "remote", "local")
    """

    @staticmethod
    def session_started(user_id: str, via: str, mode: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            user_id=user_id,
            operation=via,
            description=f"Session started via {via}",
            details={"mode": mode},
        )

    @staticmethod
    def session_cleared(user_id: Optional[str], reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_CLEARED,
            user_id=user_id,
            description=f"Session cleared: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def session_expired(user_id: Optional[str], path: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_EXPIRED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            description="Remote store rejected the session token",
            details={"path": path},
        )

    @staticmethod
    def profile_updated(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_UPDATED,
            user_id=user_id,
            description="Profile replaced",
        )

    @staticmethod
    def mode_switched(
        operation: str,
        from_mode: str,
        to_mode: str,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MODE_SWITCHED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            operation=operation,
            description=f"Storage mode switched from {from_mode} to {to_mode}",
            details={"from": from_mode, "to": to_mode},
        )

    @staticmethod
    def local_fallback(operation: str, user_id: Optional[str] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCAL_FALLBACK,
            user_id=user_id,
            operation=operation,
            description=f"Retried {operation} against the local store",
        )

    @staticmethod
    def remote_rejected(
        operation: str,
        status_code: int,
        message: str,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_REJECTED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            operation=operation,
            description=f"Remote store rejected {operation}",
            details={"status_code": status_code, "message": message},
        )
