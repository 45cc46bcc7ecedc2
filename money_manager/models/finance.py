"""
Core Data Models for Money Manager

These models define the canonical shapes used by the rest of the application,
independent of which wire shape the remote store returned or whether the data
came from the local fallback store.

DESIGN DECISION: Input models (drafts, updates, filters) are deliberately
loose. Missing or invalid fields are reported by the validation package as a
single typed error instead of failing at construction time.
"""

import datetime as dt
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money flow. Categories carry the same type."""
    INCOME = "income"
    EXPENSE = "expense"

    @property
    def resource_kind(self) -> str:
        """Collection name used both on the wire and in the local store."""
        return "incomes" if self is TransactionType.INCOME else "expenses"

    @property
    def id_prefix(self) -> str:
        return "inc" if self is TransactionType.INCOME else "exp"


class StorageMode(str, Enum):
    """
    Which store is authoritative for subsequent operations.

    REMOTE -> LOCAL happens on a network failure. LOCAL -> REMOTE only
    happens through a fresh login or register.
    """
    REMOTE = "remote"
    LOCAL = "local"


# Positional fallback colors for categories the remote store sends without one
CATEGORY_PALETTE: tuple[str, ...] = (
    "#10b981",
    "#34d399",
    "#6ee7b7",
    "#ef4444",
    "#f87171",
    "#fca5a5",
    "#dc2626",
)


def palette_color(index: int) -> str:
    """Fallback color for the category at ``index`` of a listing."""
    return CATEGORY_PALETTE[index % len(CATEGORY_PALETTE)]


def _coerce_id(value: Any) -> Any:
    # Remote ids are numeric, local ids are strings; canonical ids are strings
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value))
    return value


def _coerce_type(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _numeric_category_id(body: dict) -> dict:
    # The remote store addresses categories by numeric id
    category_id = body.get("categoryId")
    if isinstance(category_id, str) and category_id.isdigit():
        body["categoryId"] = int(category_id)
    return body


# =============================================================================
# CANONICAL ENTITIES
# =============================================================================

class UserSummary(BaseModel):
    """
    Identity of the signed-in user.

    The remote store is not consistent about which fields it returns, so
    username and id are derived from the email when absent.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    username: str = Field(default="")
    email: str = Field(default="")

    @model_validator(mode="before")
    @classmethod
    def fill_identity(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        email = data.get("email") or ""
        if not data.get("username"):
            data["username"] = data.get("fullName") or data.get("name") or email.split("@")[0]
        if data.get("id") in (None, ""):
            data["id"] = email
        data["id"] = _coerce_id(data["id"])
        return data


class Category(BaseModel):
    """A user-defined income or expense category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: str = Field(..., min_length=1)

    normalize_id = field_validator("id", mode="before")(_coerce_id)
    normalize_type = field_validator("type", mode="before")(_coerce_type)

    def same_identity(self, name: str, type: TransactionType) -> bool:
        """True when ``(name, type)`` collides with this category."""
        return self.type == type and self.name.lower() == name.strip().lower()


class Transaction(BaseModel):
    """
    A single income or expense.

    ``category`` always holds the human-readable category name, never the
    numeric id the remote store uses.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    type: TransactionType
    name: Optional[str] = Field(default=None, max_length=200)
    category: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    date: dt.date
    description: Optional[str] = Field(default=None, max_length=500)

    normalize_id = field_validator("id", mode="before")(_coerce_id)
    normalize_type = field_validator("type", mode="before")(_coerce_type)

    @field_validator("date", mode="before")
    @classmethod
    def date_only(cls, v: Any) -> Any:
        # Remote timestamps ("2025-01-01T00:00:00") are reduced to the day
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v

    def to_record(self) -> dict:
        """JSON-safe dict used by the local store."""
        return self.model_dump(mode="json")


class LocalUserRecord(BaseModel):
    """Offline credential record kept in the local ``users`` collection."""

    id: str
    username: str
    email: str
    password_hash: str
    salt: str

    def to_summary(self) -> UserSummary:
        return UserSummary(id=self.id, username=self.username, email=self.email)


# =============================================================================
# INPUT MODELS
# =============================================================================

class TransactionDraft(BaseModel):
    """
    User input for a new income or expense.

    Every field is optional here; validation reports what is missing.
    Serialized with camelCase keys for the remote store.
    """
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: Optional[str] = None
    category_id: Optional[Union[int, str]] = Field(default=None, alias="categoryId")
    amount: Optional[float] = None
    date: Optional[dt.date] = None
    description: Optional[str] = None

    def to_wire(self) -> dict:
        return _numeric_category_id(
            self.model_dump(by_alias=True, exclude_none=True, mode="json")
        )


class TransactionUpdate(BaseModel):
    """Partial update for an existing income or expense."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: Optional[str] = None
    category_id: Optional[Union[int, str]] = Field(default=None, alias="categoryId")
    amount: Optional[float] = None
    date: Optional[dt.date] = None
    description: Optional[str] = None

    def to_wire(self) -> dict:
        return _numeric_category_id(
            self.model_dump(by_alias=True, exclude_none=True, mode="json")
        )

    @property
    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class CategoryDraft(BaseModel):
    """User input for a new category. Color is optional."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = ""
    type: TransactionType
    color: Optional[str] = None

    normalize_type = field_validator("type", mode="before")(_coerce_type)


class CategoryUpdate(BaseModel):
    """Partial update for an existing category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    type: Optional[TransactionType] = None
    color: Optional[str] = None

    normalize_type = field_validator("type", mode="before")(_coerce_type)

    def to_wire(self) -> dict:
        return self.model_dump(exclude_none=True, mode="json")


class TransactionFilter(BaseModel):
    """
    Criteria for the filter operation.

    All fields are optional; an empty filter matches everything.
    """
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    type: Optional[TransactionType] = None
    category: Optional[str] = None
    start_date: Optional[dt.date] = Field(default=None, alias="startDate")
    end_date: Optional[dt.date] = Field(default=None, alias="endDate")
    min_amount: Optional[float] = Field(default=None, alias="minAmount")
    max_amount: Optional[float] = Field(default=None, alias="maxAmount")

    normalize_type = field_validator("type", mode="before")(_coerce_type)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def matches(self, transaction: Transaction) -> bool:
        """Client-side evaluation, used when the remote store is unavailable."""
        if self.type and transaction.type != self.type:
            return False
        if self.category and transaction.category != self.category:
            return False
        if self.start_date and transaction.date < self.start_date:
            return False
        if self.end_date and transaction.date > self.end_date:
            return False
        if self.min_amount is not None and transaction.amount < self.min_amount:
            return False
        if self.max_amount is not None and transaction.amount > self.max_amount:
            return False
        return True


# =============================================================================
# AGGREGATES
# =============================================================================

class DashboardData(BaseModel):
    """Everything the dashboard needs, read consistently in one go."""

    incomes: list[Transaction] = Field(default_factory=list)
    expenses: list[Transaction] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)

    @property
    def total_income(self) -> float:
        return sum(t.amount for t in self.incomes)

    @property
    def total_expense(self) -> float:
        return sum(t.amount for t in self.expenses)

    @property
    def balance(self) -> float:
        return self.total_income - self.total_expense

    def recent_transactions(self, limit: int = 5) -> list[Transaction]:
        """Newest transactions across incomes and expenses."""
        merged = [*self.incomes, *self.expenses]
        merged.sort(key=lambda t: t.date, reverse=True)
        return merged[:limit]
