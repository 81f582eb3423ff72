"""Validation package."""

from fluxplan.validation.validator import EntryValidator, ValidationFailedError

__all__ = ["EntryValidator", "ValidationFailedError"]
