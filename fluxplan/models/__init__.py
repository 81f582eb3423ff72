"""
Data Models Package

This package contains all Pydantic models used in Flux Planner.
Every record read from or written to a store conforms to these schemas.
"""

from fluxplan.models.finance import (
    BalancePoint,
    CardRegistration,
    Category,
    CategoryRole,
    EntryKind,
    InstallmentPurchase,
    MonthlySummary,
    Obligation,
    ObligationStatus,
    ObligationTemplate,
    Transaction,
    UserPreferences,
    ValidationIssue,
    ValidationResult,
    new_record_id,
)
from fluxplan.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "BalancePoint",
    "CardRegistration",
    "Category",
    "CategoryRole",
    "EntryKind",
    "InstallmentPurchase",
    "MonthlySummary",
    "Obligation",
    "ObligationStatus",
    "ObligationTemplate",
    "Transaction",
    "UserPreferences",
    "ValidationIssue",
    "ValidationResult",
    "new_record_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
