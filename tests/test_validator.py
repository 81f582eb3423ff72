"""Tests for the two-stage entry validator."""

from datetime import date

import pytest

from fluxplan.config import EngineSettings
from fluxplan.models.finance import EntryKind, Transaction
from fluxplan.validation import EntryValidator, ValidationFailedError


def raw_template(**overrides) -> dict:
    data = {
        "amount": 50,
        "kind": "expense",
        "category_id": "cat_rent",
        "description": "Rent",
        "due_date": "2024-05-05",
    }
    data.update(overrides)
    return data


class TestSchemaStage:
    """Stage 1: types and required fields."""

    def test_valid_template(self):
        template, result = EntryValidator().validate_obligation_template(raw_template())
        assert template is not None
        assert template.due_date == date(2024, 5, 5)
        assert result.is_valid

    def test_missing_category(self):
        template, result = EntryValidator().validate_obligation_template(
            raw_template(category_id="")
        )
        assert template is None
        assert result.schema_valid is False
        assert result.issues[0].field == "category_id"
        assert result.issues[0].message == "A category is required"

    def test_missing_field_is_reported_as_missing(self):
        data = raw_template()
        del data["due_date"]
        _, result = EntryValidator().validate_obligation_template(data)
        assert result.issues[0].issue_type == "missing"

    def test_model_built_without_validation_is_rechecked(self):
        sneaky = Transaction.model_construct(
            id="t1", amount=-1, kind=EntryKind.EXPENSE, category_id="c",
            date=date(2024, 1, 1), description="",
        )
        transaction, result = EntryValidator().validate_transaction(sneaky)
        assert transaction is None
        assert result.issues[0].field == "amount"


class TestSemanticStage:
    """Stage 2: repeat count bounds and category checks."""

    def test_repeat_count_bounds(self):
        validator = EntryValidator(settings=EngineSettings(max_repeat_count=5))
        assert validator.validate_obligation_template(raw_template(), 5)[0] is not None
        template, result = validator.validate_obligation_template(raw_template(), 6)
        assert template is None
        assert result.schema_valid is True
        assert result.semantic_valid is False

    def test_unknown_category_is_a_warning(self, categories):
        validator = EntryValidator(categories)
        template, result = validator.validate_obligation_template(
            raw_template(category_id="cat_unknown")
        )
        assert template is not None
        assert result.has_errors is False
        assert len(result.warnings) == 1

    def test_kind_mismatch_is_a_warning(self, categories):
        validator = EntryValidator(categories)
        transaction, result = validator.validate_transaction({
            "amount": 10, "kind": "income", "category_id": "cat_rent", "date": "2024-05-01",
        })
        assert transaction is not None
        assert result.issues[0].issue_type == "kind_mismatch"

    def test_no_categories_means_no_category_checks(self):
        _, result = EntryValidator().validate_obligation_template(
            raw_template(category_id="anything")
        )
        assert result.issues == []


class TestFriendlySummary:
    """Tests for get_user_friendly_summary and the raised error."""

    def test_clean_result(self):
        validator = EntryValidator()
        _, result = validator.validate_obligation_template(raw_template())
        assert validator.get_user_friendly_summary(result) == "Looks good."

    def test_errors_listed_first(self, categories):
        validator = EntryValidator(categories)
        _, result = validator.validate_obligation_template(
            raw_template(category_id="cat_unknown"), -1
        )
        lines = validator.get_user_friendly_summary(result).splitlines()
        assert lines[0].startswith("Error:")
        assert lines[1].startswith("Note:")

    def test_error_message_joins_errors(self):
        _, result = EntryValidator().validate_obligation_template(raw_template(amount=0))
        error = ValidationFailedError(result)
        assert str(error) == "Amount must be greater than zero"
        assert error.result is result


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
