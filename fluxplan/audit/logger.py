"""
Audit Logger

DESIGN DECISION: Every mutation the engine performs is logged.
This provides:
1. A trail of settlements and bulk ledger edits
2. Visibility of store writes that failed after the local update
3. Debugging capability when a projection looks wrong

The audit logger:
- Is async so it fits the engine's await points
- Gracefully handles failures (a broken audit sheet never breaks a settlement)
- Supports correlation IDs to trace the events of one user action
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from fluxplan.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from fluxplan.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store such as the AuditLog worksheet (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_obligations_created(
        self,
        obligation_ids: list[str],
        description: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.obligations_created(
            obligation_ids=obligation_ids,
            description=description,
            correlation_id=correlation_id,
        ))

    async def log_obligation_settled(
        self,
        obligation_id: str,
        transaction_id: str,
        amount: float,
        correlation_id: UUID,
    ) -> None:
        """Log a settlement (obligation turned into a ledger transaction)."""
        await self.log(AuditEventBuilder.obligation_settled(
            obligation_id=obligation_id,
            transaction_id=transaction_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_obligation_unsettled(
        self,
        obligation_id: str,
        retracted_transaction_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.obligation_unsettled(
            obligation_id=obligation_id,
            retracted_transaction_id=retracted_transaction_id,
            correlation_id=correlation_id,
        ))

    async def log_transactions_changed(
        self,
        event_type: AuditEventType,
        transaction_ids: list[str],
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        """Log an add, update, delete or recategorize of ledger entries."""
        await self.log(AuditEventBuilder.transactions_changed(
            event_type=event_type,
            transaction_ids=transaction_ids,
            correlation_id=correlation_id,
            details=details,
        ))

    async def log_validation_failed(
        self,
        operation: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            operation=operation,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_generation_skipped(self, generator: str, reason: str) -> None:
        await self.log(AuditEventBuilder.generation_skipped(generator, reason))

    async def log_persistence_failed(
        self,
        operation: str,
        entity_type: str,
        entity_id: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a store write that failed after the local state was updated."""
        await self.log(AuditEventBuilder.persistence_failed(
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g. a settlement).
    Pass it through all subsequent operations.
    """
    return uuid4()
