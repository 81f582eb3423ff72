"""
Tests for Flux Planner models

Test strategy:
1. Unit tests for the pydantic models and their constraints
2. Audit event construction and serialization
3. No real store or API calls (in-memory storage only)
"""

import json
from datetime import date
from uuid import uuid4

import pytest

from fluxplan.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from fluxplan.models.finance import (
    CardRegistration,
    EntryKind,
    InstallmentPurchase,
    MonthlySummary,
    Obligation,
    ObligationStatus,
    Transaction,
    ValidationIssue,
    ValidationResult,
)


class TestFinanceModels:
    """Tests for ledger and obligation models."""

    def test_transaction_gets_an_id(self):
        """Test that a transaction without id gets a fresh one."""
        first = Transaction(amount=10, kind=EntryKind.EXPENSE, category_id="c", date=date(2024, 1, 1))
        second = Transaction(amount=10, kind=EntryKind.EXPENSE, category_id="c", date=date(2024, 1, 1))
        assert first.id and second.id
        assert first.id != second.id

    def test_transaction_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        with pytest.raises(ValueError):
            Transaction(amount=0, kind=EntryKind.EXPENSE, category_id="c", date=date(2024, 1, 1))
        with pytest.raises(ValueError):
            Transaction(amount=-5, kind=EntryKind.INCOME, category_id="c", date=date(2024, 1, 1))

    def test_transaction_requires_category(self):
        """Test that an empty category id is rejected."""
        with pytest.raises(ValueError):
            Transaction(amount=5, kind=EntryKind.INCOME, category_id="", date=date(2024, 1, 1))

    def test_signed_amount(self):
        """Test that expenses count negative and income positive."""
        spent = Transaction(amount=40, kind=EntryKind.EXPENSE, category_id="c", date=date(2024, 1, 1))
        earned = Transaction(amount=40, kind=EntryKind.INCOME, category_id="c", date=date(2024, 1, 1))
        assert spent.signed_amount == -40
        assert earned.signed_amount == 40

    def test_obligation_defaults(self):
        """Test that a new obligation is a pending manual one."""
        obligation = Obligation(
            amount=50,
            kind=EntryKind.EXPENSE,
            category_id="cat_rent",
            due_date=date(2024, 5, 5),
        )
        assert obligation.status == ObligationStatus.PENDING
        assert obligation.is_pending
        assert not obligation.is_generated
        assert obligation.settlement_transaction_id is None

    def test_obligation_rejects_invalid_date(self):
        """Test that an impossible calendar date is rejected."""
        with pytest.raises(ValueError):
            Obligation(
                amount=50,
                kind=EntryKind.EXPENSE,
                category_id="cat_rent",
                due_date="2024-02-30",
            )

    def test_installment_value(self):
        purchase = InstallmentPurchase(
            label="Laptop",
            card_name="Visa",
            total_amount=300,
            installment_count=3,
            purchase_date=date(2024, 1, 15),
        )
        assert purchase.installment_value == 100

    def test_installment_count_at_least_one(self):
        """Test that a purchase needs at least one installment."""
        with pytest.raises(ValueError):
            InstallmentPurchase(
                label="Laptop",
                card_name="Visa",
                total_amount=300,
                installment_count=0,
                purchase_date=date(2024, 1, 15),
            )

    def test_card_due_day_bounds(self):
        """Test that a card due day must be a day of month."""
        with pytest.raises(ValueError):
            CardRegistration(name="Visa", due_day=32)

    def test_monthly_summary_net(self):
        summary = MonthlySummary(income=1000, expense=400)
        assert summary.net == 600


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.OBLIGATION_CREATED,
            description="Created 1 obligation(s)",
        )
        assert event.event_type == AuditEventType.OBLIGATION_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_ADDED,
            description="2 transaction(s) added",
            details={"transaction_ids": ["a", "b"]},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "transactions_added"
        assert log_dict["details"]["transaction_ids"] == ["a", "b"]

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.OBLIGATION_SETTLED,
            description="Obligation settled",
            details={"amount": 50.0},
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "obligation_settled"  # event_type
        assert json.loads(row[8]) == {"amount": 50.0}
        assert row[10] == "True"  # is_user_action

    def test_audit_event_builder_obligation_settled(self):
        """Test AuditEventBuilder.obligation_settled."""
        correlation_id = uuid4()

        event = AuditEventBuilder.obligation_settled(
            obligation_id="gen_tithe_2024-03",
            transaction_id="tx-1",
            amount=100.0,
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.OBLIGATION_SETTLED
        assert event.entity_id == "gen_tithe_2024-03"
        assert event.correlation_id == correlation_id
        assert event.details["transaction_id"] == "tx-1"
        assert event.is_user_action is True

    def test_audit_event_builder_persistence_failed(self):
        """Test that persistence failures are error-level and system-originated."""
        event = AuditEventBuilder.persistence_failed(
            operation="settle",
            entity_type="obligation",
            entity_id="o-1",
            error_message="sheet unavailable",
        )
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "sheet unavailable"
        assert event.is_user_action is False

    def test_transactions_changed_single_entity(self):
        """Test that a single-row change carries the row id as entity id."""
        event = AuditEventBuilder.transactions_changed(
            AuditEventType.TRANSACTION_UPDATED, ["tx-1"], uuid4()
        )
        assert event.entity_id == "tx-1"
        assert event.description == "1 transaction(s) updated"


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            schema_valid=False,
            semantic_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount must be greater than zero",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1
        assert result.is_valid is False

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            schema_valid=True,
            semantic_valid=True,
            issues=[
                ValidationIssue(
                    field="category_id",
                    issue_type="unknown_category",
                    message="Category 'x' does not exist",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0
        assert result.warnings == ["Category 'x' does not exist"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
