"""
Pre-flight Input Validation

DESIGN DECISION: Validation happens in two distinct stages, before any store
is touched:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (category, amount, date)
- Positive, finite amounts
- Non-empty names

STAGE 2 - SEMANTIC VALIDATION:
- Duplicate category detection against the user's current categories

Failing fast here avoids a wasted round trip, and keeps invalid data out of
the local store when the remote store is unreachable.

IMPORTANT: Validation NEVER silently fixes input. It reports every issue
in a single ValidationError.
"""

import math
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from money_manager.models.finance import (
    Category,
    CategoryDraft,
    CategoryUpdate,
    TransactionDraft,
    TransactionUpdate,
)


def _positive_amount(amount: float) -> bool:
    # NaN compares False against everything, so check finiteness first
    return math.isfinite(amount) and amount > 0


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'duplicate')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


class ValidationError(Exception):
    """Input rejected before reaching any store."""

    def __init__(self, issues: list[ValidationIssue], message: Optional[str] = None):
        self.issues = issues
        super().__init__(message or "; ".join(issue.message for issue in issues))

    @property
    def fields(self) -> list[str]:
        return [issue.field for issue in self.issues]


class DuplicateCategoryError(ValidationError):
    """A category with the same name and type already exists."""
    pass


class InputValidator:
    """
    Validates data access inputs.

    Stage 1 checks run on the input alone.
    Stage 2 checks need the user's current categories.
    """

    def _missing_transaction_fields(
        self,
        draft: TransactionDraft,
    ) -> list[ValidationIssue]:
        issues = []

        if draft.category_id in (None, ""):
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Category is required",
            ))
        if draft.amount is None or not _positive_amount(draft.amount):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing" if draft.amount is None else "invalid_value",
                message="Amount must be greater than 0",
            ))
        if draft.date is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="Date is required",
            ))

        return issues

    def validate_transaction_draft(self, draft: TransactionDraft) -> None:
        """
        Stage 1 for a new income or expense.

        Raises:
            ValidationError: listing every missing field
        """
        issues = self._missing_transaction_fields(draft)
        if issues:
            missing = ", ".join(issue.field for issue in issues)
            raise ValidationError(issues, f"Missing required fields: {missing}")

    def validate_transaction_update(self, changes: TransactionUpdate) -> None:
        """Stage 1 for a partial update: only provided fields are checked."""
        issues = []

        if changes.is_empty:
            issues.append(ValidationIssue(
                field="update",
                issue_type="empty",
                message="Nothing to update",
            ))
        if changes.amount is not None and not _positive_amount(changes.amount):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than 0",
            ))
        if changes.category_id == "":
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Category cannot be cleared",
            ))

        if issues:
            raise ValidationError(issues)

    def _check_duplicate_category(
        self,
        name: str,
        type,
        existing: Iterable[Category],
        exclude_id: Optional[str] = None,
    ) -> None:
        for category in existing:
            if category.id == exclude_id:
                continue
            if category.same_identity(name, type):
                raise DuplicateCategoryError([ValidationIssue(
                    field="name",
                    issue_type="duplicate",
                    message="A category with this name already exists for this type",
                )])

    def validate_category_draft(
        self,
        draft: CategoryDraft,
        existing: Iterable[Category] = (),
    ) -> None:
        """
        Both stages for a new category.

        Raises:
            ValidationError: if the name is empty
            DuplicateCategoryError: if (name, type) is already taken
        """
        if not draft.name:
            raise ValidationError([ValidationIssue(
                field="name",
                issue_type="missing",
                message="Please enter a category name",
            )])

        self._check_duplicate_category(draft.name, draft.type, existing)

    def validate_category_update(
        self,
        category_id: str,
        changes: CategoryUpdate,
        existing: Iterable[Category] = (),
    ) -> None:
        """Both stages for a category update. Renames must stay unique."""
        if not changes.model_dump(exclude_none=True):
            raise ValidationError([ValidationIssue(
                field="update",
                issue_type="empty",
                message="Nothing to update",
            )])
        if changes.name is not None and not changes.name:
            raise ValidationError([ValidationIssue(
                field="name",
                issue_type="missing",
                message="Category name cannot be empty",
            )])

        existing = list(existing)
        current = next((c for c in existing if c.id == category_id), None)
        if current is None:
            return

        name = changes.name if changes.name is not None else current.name
        type = changes.type or current.type
        self._check_duplicate_category(name, type, existing, exclude_id=category_id)

    def validate_credentials(
        self,
        email: str,
        password: str,
        username: Optional[str] = None,
        require_username: bool = False,
    ) -> None:
        """Login and register need every field filled in."""
        issues = []

        if require_username and not (username or "").strip():
            issues.append(ValidationIssue(
                field="username",
                issue_type="missing",
                message="Username is required",
            ))
        if not (email or "").strip():
            issues.append(ValidationIssue(
                field="email",
                issue_type="missing",
                message="Email is required",
            ))
        if not password:
            issues.append(ValidationIssue(
                field="password",
                issue_type="missing",
                message="Password is required",
            ))

        if issues:
            raise ValidationError(issues, "Please fill in all fields")
