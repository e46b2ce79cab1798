"""Validation package."""

from cashbook.validation.validator import (
    TemplateValidator,
    TransactionValidator,
    raise_for_errors,
)

__all__ = ["TemplateValidator", "TransactionValidator", "raise_for_errors"]
