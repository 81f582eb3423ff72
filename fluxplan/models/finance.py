"""
Core Data Models for Flux Planner

These models define the shapes exchanged with the stores and returned
to the dashboard:
1. Ledger entries (Transaction) - what actually happened
2. Obligations - what is planned, manual or generated
3. Source objects the generators read (InstallmentPurchase, Category,
   CardRegistration, UserPreferences)
4. Aggregates (MonthlySummary, BalancePoint)

DESIGN DECISION: Amounts are plain floats. Generated amounts are sums of
divided installments, so equality checks elsewhere use a relative
tolerance instead of exact decimal arithmetic.
"""

import datetime as dt
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_record_id() -> str:
    """Fresh random identity for user-created rows."""
    return str(uuid4())


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class EntryKind(str, Enum):
    """Direction of money for transactions, obligations and categories."""
    INCOME = "income"
    EXPENSE = "expense"

    @property
    def sign(self) -> int:
        return 1 if self is EntryKind.INCOME else -1


class ObligationStatus(str, Enum):
    """
    Obligation lifecycle status.

    An obligation only becomes SETTLED through the settlement lifecycle,
    which also writes the matching ledger transaction.
    """
    PENDING = "pending"
    SETTLED = "settled"


class CategoryRole(str, Enum):
    """
    Explicit role a category plays for the generators.

    DESIGN DECISION: Roles replace matching on a conventional category
    name. Name matching is still accepted as a fallback for categories
    created before roles existed.
    """
    TITHE = "tithe"
    CARD_INVOICE = "card_invoice"
    # Transfers between own accounts: one expense and one income category
    MOVEMENT = "movement"


# =============================================================================
# LEDGER
# =============================================================================

class Transaction(BaseModel):
    """
    An actual recorded financial event.

    Created by direct entry, bulk import or settlement of an obligation.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_record_id,
        min_length=1,
        description="Unique transaction ID"
    )
    amount: float = Field(
        ...,
        gt=0,
        description="Always positive; direction comes from kind"
    )
    kind: EntryKind
    category_id: str = Field(..., min_length=1)
    date: dt.date = Field(..., description="Calendar day of the event")
    description: str = Field(default="", max_length=500)

    @property
    def signed_amount(self) -> float:
        return self.kind.sign * self.amount


# =============================================================================
# OBLIGATIONS
# =============================================================================

class ObligationTemplate(BaseModel):
    """
    An obligation as the user declares it, before it gets an identity.

    The recurrence expander turns one template into one or more
    Obligations.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: float = Field(..., gt=0)
    kind: EntryKind
    category_id: str = Field(..., min_length=1)
    description: str = Field(default="", max_length=500)
    due_date: dt.date


class Obligation(ObligationTemplate):
    """
    A planned income or expense with a due date.

    Two provenances:
    - Manual: user-created, editable while pending.
    - Generated: computed from purchases or tithe-eligible income,
      with a deterministic id (see planning.identity). Generated rows are
      only stored once settled.
    """

    id: str = Field(default_factory=new_record_id, min_length=1)
    status: ObligationStatus = Field(default=ObligationStatus.PENDING)
    is_generated: bool = Field(default=False)

    # Ledger row written when this obligation was settled
    settlement_transaction_id: Optional[str] = Field(default=None)

    @property
    def is_pending(self) -> bool:
        return self.status == ObligationStatus.PENDING

    @property
    def is_settled(self) -> bool:
        return self.status == ObligationStatus.SETTLED

    @property
    def signed_amount(self) -> float:
        return self.kind.sign * self.amount


# =============================================================================
# GENERATOR SOURCES
# =============================================================================

class InstallmentPurchase(BaseModel):
    """A card purchase split into equal monthly installments."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_record_id, min_length=1)
    label: str = Field(..., min_length=1, max_length=200)
    card_name: str = Field(..., min_length=1, max_length=100)
    total_amount: float = Field(..., gt=0)
    installment_count: int = Field(..., ge=1)
    purchase_date: dt.date

    @property
    def installment_value(self) -> float:
        return self.total_amount / self.installment_count


class Category(BaseModel):
    """Spending or income category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_record_id, min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    kind: EntryKind
    tithe_eligible: bool = Field(
        default=False,
        description="Income in this category counts towards the tithe"
    )
    role: Optional[CategoryRole] = None
    sort_order: Optional[int] = None


class CardRegistration(BaseModel):
    """A credit card and the day of month its invoice is due."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_record_id, min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    due_day: int = Field(..., ge=1, le=31)


class UserPreferences(BaseModel):
    """User toggles persisted alongside the ledger (single row)."""

    id: str = Field(default="preferences")
    calculate_tithing: bool = Field(default=True)


# =============================================================================
# AGGREGATES
# =============================================================================

class MonthlySummary(BaseModel):
    """Totals shown on the dashboard header for one month."""

    income: float = 0.0
    expense: float = 0.0
    planned_income: float = 0.0
    planned_expense: float = 0.0

    @property
    def net(self) -> float:
        return self.income - self.expense


class BalancePoint(BaseModel):
    """Running balance at the end of a calendar day."""

    day: int = Field(..., ge=1, le=31)
    balance: float


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'unknown_category')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, required fields)
    Stage 2: Semantic validation (rules that need context)
    """

    schema_valid: bool
    semantic_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.semantic_valid

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]
