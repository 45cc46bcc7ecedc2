"""
Audit Logger

DESIGN DECISION: Every session and storage-mode transition is logged.
A user who silently ended up writing to the local store must be able to
find out when and why that happened.

The audit logger:
- Writes structured JSON through structlog
- Never logs credentials (tokens are truncated by the session model)
"""

import logging
import sys
from typing import Optional

import structlog

from money_manager.config import get_settings
from money_manager.models.audit import AuditEvent, AuditEventBuilder


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging and structlog with one JSON processor chain."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging(get_settings().app.effective_log_level)


class AuditLogger:
    """Central audit logging service for session and mode transitions."""

    def __init__(self):
        self._logger = structlog.get_logger("money_manager.audit")

    def log(self, event: AuditEvent) -> None:
        """Log an audit event at the level matching its severity."""
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    def log_session_started(self, user_id: str, via: str, mode: str) -> None:
        """Log a successful login or register."""
        self.log(AuditEventBuilder.session_started(user_id=user_id, via=via, mode=mode))

    def log_session_cleared(self, user_id: Optional[str], reason: str) -> None:
        """Log logout or teardown."""
        self.log(AuditEventBuilder.session_cleared(user_id=user_id, reason=reason))

    def log_session_expired(self, user_id: Optional[str], path: str) -> None:
        """Log a 401 from the remote store."""
        self.log(AuditEventBuilder.session_expired(user_id=user_id, path=path))

    def log_profile_updated(self, user_id: str) -> None:
        self.log(AuditEventBuilder.profile_updated(user_id=user_id))

    def log_mode_switched(
        self,
        operation: str,
        from_mode: str,
        to_mode: str,
        user_id: Optional[str] = None,
    ) -> None:
        """Log a storage mode transition."""
        self.log(AuditEventBuilder.mode_switched(
            operation=operation,
            from_mode=from_mode,
            to_mode=to_mode,
            user_id=user_id,
        ))

    def log_local_fallback(self, operation: str, user_id: Optional[str] = None) -> None:
        """Log the single retry of an operation against the local store."""
        self.log(AuditEventBuilder.local_fallback(operation=operation, user_id=user_id))

    def log_remote_rejected(
        self,
        operation: str,
        status_code: int,
        message: str,
        user_id: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.remote_rejected(
            operation=operation,
            status_code=status_code,
            message=message,
            user_id=user_id,
        ))
