"""Input validation package."""

from money_manager.validation.validator import (
    DuplicateCategoryError,
    InputValidator,
    ValidationError,
    ValidationIssue,
)

__all__ = [
    "DuplicateCategoryError",
    "InputValidator",
    "ValidationError",
    "ValidationIssue",
]
