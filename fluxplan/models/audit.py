"""
Audit Models for Flux Planner

Every mutation the engine performs is recorded as an audit event.
This provides:
1. Traceability of settlements and bulk ledger edits
2. A record of persistence failures the user was warned about
3. Debugging information when projections look wrong

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Obligations
    OBLIGATION_CREATED = "obligation_created"
    OBLIGATION_UPDATED = "obligation_updated"
    OBLIGATION_DELETED = "obligation_deleted"
    OBLIGATION_SETTLED = "obligation_settled"
    OBLIGATION_UNSETTLED = "obligation_unsettled"

    # Ledger
    TRANSACTIONS_ADDED = "transactions_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTIONS_DELETED = "transactions_deleted"
    TRANSACTIONS_RECATEGORIZED = "transactions_recategorized"

    # Reference data
    PURCHASE_SAVED = "purchase_saved"
    PURCHASE_DELETED = "purchase_deleted"
    CATEGORY_SAVED = "category_saved"
    CATEGORY_DELETED = "category_deleted"
    CARD_REGISTERED = "card_registered"
    PREFERENCES_UPDATED = "preferences_updated"

    # Backup
    BACKUP_EXPORTED = "backup_exported"
    BACKUP_IMPORTED = "backup_imported"
    BACKUP_IMPORT_FAILED = "backup_import_failed"

    # Planning
    VALIDATION_FAILED = "validation_failed"
    GENERATION_SKIPPED = "generation_skipped"
    MOVEMENT_BALANCE_CHANGED = "movement_balance_changed"

    # System events
    PERSISTENCE_FAILED = "persistence_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant engine action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'obligation', 'transaction')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one settlement)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.obligation_settled(obligation_id, transaction_id, amount, cid)
        event = AuditEventBuilder.persistence_failed("settle", "obligation", oid, str(exc), cid)
    """

    @staticmethod
    def obligations_created(
        obligation_ids: list[str],
        description: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_CREATED,
            entity_type="obligation",
            entity_id=obligation_ids[0] if obligation_ids else None,
            correlation_id=correlation_id,
            description=f"Created {len(obligation_ids)} obligation(s): {description}"[:500],
            details={"obligation_ids": obligation_ids},
            is_user_action=True,
        )

    @staticmethod
    def obligation_updated(obligation_id: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_UPDATED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description="Obligation updated",
            is_user_action=True,
        )

    @staticmethod
    def obligations_deleted(
        obligation_ids: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_DELETED,
            entity_type="obligation",
            entity_id=obligation_ids[0] if obligation_ids else None,
            correlation_id=correlation_id,
            description=f"Deleted {len(obligation_ids)} obligation(s)",
            details={"obligation_ids": obligation_ids},
            is_user_action=True,
        )

    @staticmethod
    def obligation_settled(
        obligation_id: str,
        transaction_id: str,
        amount: float,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_SETTLED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Obligation settled for {amount:.2f}",
            details={
                "transaction_id": transaction_id,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def obligation_unsettled(
        obligation_id: str,
        retracted_transaction_id: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_UNSETTLED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description="Obligation returned to pending",
            details={"retracted_transaction_id": retracted_transaction_id},
            is_user_action=True,
        )

    @staticmethod
    def transactions_changed(
        event_type: AuditEventType,
        transaction_ids: list[str],
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        verb = event_type.value.replace("transactions_", "").replace("transaction_", "")
        return AuditEvent(
            event_type=event_type,
            entity_type="transaction",
            entity_id=transaction_ids[0] if len(transaction_ids) == 1 else None,
            correlation_id=correlation_id,
            description=f"{len(transaction_ids)} transaction(s) {verb}",
            details={"transaction_ids": transaction_ids, **(details or {})},
            is_user_action=True,
        )

    @staticmethod
    def reference_changed(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.replace('_', ' ').capitalize()} {event_type.value.rsplit('_', 1)[-1]}",
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        operation: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Validation failed for {operation} with {len(issues)} issues",
            details={
                "operation": operation,
                "issues": issues,
            },
            is_user_action=True,
        )

    @staticmethod
    def generation_skipped(generator: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_SKIPPED,
            entity_type="generator",
            entity_id=generator,
            description=f"{generator} generation skipped: {reason}"[:500],
            details={"reason": reason},
        )

    @staticmethod
    def movement_balance_changed(
        obligation_id: str,
        amount: Optional[float],
        correlation_id: UUID,
    ) -> AuditEvent:
        """amount is None when the balance was cleared."""
        if amount is None:
            description = "Movement balance cleared"
        else:
            description = f"Movement balance now {amount:.2f}"
        return AuditEvent(
            event_type=AuditEventType.MOVEMENT_BALANCE_CHANGED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=description,
            details={"amount": amount},
        )

    @staticmethod
    def backup_exported(counts: dict[str, int], correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_EXPORTED,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Backup exported",
            details={"counts": counts},
            is_user_action=True,
        )

    @staticmethod
    def backup_imported(counts: dict[str, int], correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_IMPORTED,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Backup imported, collections replaced",
            details={"counts": counts},
            is_user_action=True,
        )

    @staticmethod
    def backup_import_failed(error_message: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_IMPORT_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Backup could not be parsed; nothing was applied",
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def persistence_failed(
        operation: str,
        entity_type: str,
        entity_id: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Store write failed during {operation}; local state kept",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
