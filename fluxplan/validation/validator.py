"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking through the pydantic models
- Required field presence (category)
- Positive amounts, real calendar dates

STAGE 2 - SEMANTIC VALIDATION:
- Repeat count bounds for recurring obligations
- Category exists and matches the entry kind

WHY TWO STAGES:
1. Better error messages (know exactly what kind of issue)
2. Stage 2 needs context (known categories, engine settings)
3. Can skip stage 2 if stage 1 fails

IMPORTANT: Validation runs before any state mutation. A failed
validation leaves the engine untouched.
"""

from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from fluxplan.config import EngineSettings, get_settings
from fluxplan.models.finance import (
    Category,
    EntryKind,
    ObligationTemplate,
    Transaction,
    ValidationIssue,
    ValidationResult,
)


class ValidationFailedError(Exception):
    """Input was rejected before any state change."""

    def __init__(self, result: ValidationResult, message: Optional[str] = None):
        self.result = result
        errors = [i.message for i in result.issues if i.severity == "error"]
        super().__init__(message or "; ".join(errors) or "Validation failed")


# Friendly messages for the fields users actually fill in
_FIELD_MESSAGES = {
    "amount": "Amount must be greater than zero",
    "category_id": "A category is required",
    "due_date": "Due date is not a valid calendar date",
    "date": "Date is not a valid calendar date",
    "kind": "Kind must be 'income' or 'expense'",
}


def _schema_issues(error: ValidationError) -> list[ValidationIssue]:
    issues = []
    for err in error.errors():
        field = str(err["loc"][0]) if err["loc"] else "record"
        issue_type = "missing" if err["type"] == "missing" else "invalid_value"
        issues.append(ValidationIssue(
            field=field,
            issue_type=issue_type,
            message=_FIELD_MESSAGES.get(field, err["msg"]),
            severity="error",
        ))
    return issues


class EntryValidator:
    """
    Validates user-declared obligations and ledger entries.

    Stage 1: Schema validation (can run without context)
    Stage 2: Semantic validation (uses known categories and settings)
    """

    def __init__(
        self,
        categories: Optional[list[Category]] = None,
        settings: Optional[EngineSettings] = None,
    ):
        """
        Initialize validator.

        Args:
            categories: Known categories. If None, category checks are skipped.
            settings: Engine settings (repeat count bounds).
        """
        self._categories = {c.id: c for c in categories or []}
        self._check_categories = categories is not None
        self._settings = settings or get_settings().engine

    def _validate_schema(
        self,
        model_cls: type[BaseModel],
        raw: Any,
    ) -> tuple[Optional[BaseModel], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Model instances are re-validated from their dump, so records built
        with model_construct() cannot slip through.
        """
        if isinstance(raw, BaseModel):
            raw = raw.model_dump()
        try:
            return model_cls.model_validate(raw), []
        except ValidationError as e:
            return None, _schema_issues(e)

    def _category_issues(self, category_id: str, kind: EntryKind) -> list[ValidationIssue]:
        if not self._check_categories:
            return []
        category = self._categories.get(category_id)
        if category is None:
            return [ValidationIssue(
                field="category_id",
                issue_type="unknown_category",
                message=f"Category {category_id!r} does not exist",
                severity="warning",
            )]
        if category.kind != kind:
            return [ValidationIssue(
                field="category_id",
                issue_type="kind_mismatch",
                message=(
                    f"Category {category.name!r} is for {category.kind.value}, "
                    f"entry is {kind.value}"
                ),
                severity="warning",
            )]
        return []

    def validate_obligation_template(
        self,
        raw: Any,
        repeat_count: int = 0,
    ) -> tuple[Optional[ObligationTemplate], ValidationResult]:
        """
        Validate a recurring obligation declaration.

        Returns: (template or None, result)
        """
        template, issues = self._validate_schema(ObligationTemplate, raw)
        if template is None:
            return None, ValidationResult(
                schema_valid=False, semantic_valid=False, issues=issues
            )

        if repeat_count < 0:
            issues.append(ValidationIssue(
                field="repeat_count",
                issue_type="invalid_value",
                message="Repeat count cannot be negative",
                severity="error",
            ))
        elif repeat_count > self._settings.max_repeat_count:
            issues.append(ValidationIssue(
                field="repeat_count",
                issue_type="invalid_value",
                message=f"Repeat count cannot exceed {self._settings.max_repeat_count}",
                severity="error",
            ))
        issues.extend(self._category_issues(template.category_id, template.kind))

        semantic_valid = not any(i.severity == "error" for i in issues)
        return (
            template if semantic_valid else None,
            ValidationResult(schema_valid=True, semantic_valid=semantic_valid, issues=issues),
        )

    def validate_transaction(
        self,
        raw: Any,
    ) -> tuple[Optional[Transaction], ValidationResult]:
        """Validate one ledger entry. Returns: (transaction or None, result)"""
        transaction, issues = self._validate_schema(Transaction, raw)
        if transaction is None:
            return None, ValidationResult(
                schema_valid=False, semantic_valid=False, issues=issues
            )
        issues.extend(self._category_issues(transaction.category_id, transaction.kind))
        return transaction, ValidationResult(
            schema_valid=True, semantic_valid=True, issues=issues
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """One line per issue, errors first."""
        if not result.issues:
            return "Looks good."
        ordered = sorted(result.issues, key=lambda i: i.severity != "error")
        return "\n".join(
            f"{'Error' if i.severity == 'error' else 'Note'}: {i.message}"
            for i in ordered
        )
