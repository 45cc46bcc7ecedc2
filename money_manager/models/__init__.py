"""
Data Models Package

This package contains all Pydantic models used by the Money Manager client.
Everything handed to the rest of the application conforms to these schemas.
"""

from money_manager.models.finance import (
    CATEGORY_PALETTE,
    Category,
    CategoryDraft,
    CategoryUpdate,
    DashboardData,
    LocalUserRecord,
    StorageMode,
    Transaction,
    TransactionDraft,
    TransactionFilter,
    TransactionType,
    TransactionUpdate,
    UserSummary,
    palette_color,
)
from money_manager.models.session import OFFLINE_USER_ID, Session
from money_manager.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "CATEGORY_PALETTE",
    "Category",
    "CategoryDraft",
    "CategoryUpdate",
    "DashboardData",
    "LocalUserRecord",
    "StorageMode",
    "Transaction",
    "TransactionDraft",
    "TransactionFilter",
    "TransactionType",
    "TransactionUpdate",
    "UserSummary",
    "palette_color",
    # Session
    "OFFLINE_USER_ID",
    "Session",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
