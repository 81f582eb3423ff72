"""
Planning Engine for Flux Planner

This module ties the planning functions to the stores and defines the
end-to-end flows for:
1. Reading: stores -> generators -> reconciler -> aggregator
2. Writing: validation -> local update -> store write -> audit

DESIGN DECISION: Optimistic local updates.
- Every mutation updates the engine's local collections first
- The store write is awaited afterwards
- A failed store write never rolls the local state back; it becomes a
  warning in `PlanningEngine.warnings` and a persistence_failed audit event

Validation always runs before the local update, so rejected input leaves
the engine untouched.
"""

from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

import structlog

from fluxplan.audit import AuditLogger, create_correlation_id
from fluxplan.backup import (
    BackupDocument,
    BackupParseError,
    export_backup,
    parse_backup,
)
from fluxplan.config import AppSettings, EngineSettings, get_settings, validate_all_settings
from fluxplan.models.audit import AuditEventBuilder, AuditEventType
from fluxplan.models.finance import (
    BalancePoint,
    CardRegistration,
    Category,
    InstallmentPurchase,
    MonthlySummary,
    Obligation,
    ObligationStatus,
    Transaction,
    UserPreferences,
    ValidationIssue,
    ValidationResult,
    new_record_id,
)
from fluxplan.planning import aggregator
from fluxplan.planning.dates import MonthKey
from fluxplan.planning.generators import GeneratorConfig, generate_for_month
from fluxplan.planning.identity import is_generated_id
from fluxplan.planning.movement import apply_movement_delta, is_movement_balance, movement_delta
from fluxplan.planning.reconciler import merge_obligations
from fluxplan.planning.recurrence import expand_recurrence
from fluxplan.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryAuditStorage,
    InMemoryRecordStore,
    RecordStore,
    StorageError,
)
from fluxplan.validation import EntryValidator, ValidationFailedError


logger = structlog.get_logger(__name__)


class GeneratedObligationEditError(Exception):
    """Generated obligations are derived data and cannot be edited."""

    def __init__(self, obligation_id: str):
        self.obligation_id = obligation_id
        super().__init__(
            f"Obligation {obligation_id} is generated and cannot be edited"
        )


class SettledObligationEditError(Exception):
    """Settled obligations are tied to a ledger row; unsettle them first."""

    def __init__(self, obligation_id: str):
        self.obligation_id = obligation_id
        super().__init__(
            f"Obligation {obligation_id} is settled; unsettle it before changing it"
        )


class RecordNotFoundError(LookupError):
    """The referenced record is not in the engine's local state."""

    def __init__(self, entity_type: str, record_id: str):
        self.entity_type = entity_type
        self.record_id = record_id
        super().__init__(f"No {entity_type} with id {record_id}")


@dataclass
class StoreBundle:
    """One store per collection the engine reads and writes."""

    transactions: RecordStore[Transaction]
    obligations: RecordStore[Obligation]
    purchases: RecordStore[InstallmentPurchase]
    categories: RecordStore[Category]
    cards: RecordStore[CardRegistration]
    preferences: RecordStore[UserPreferences]

    @classmethod
    def in_memory(cls) -> "StoreBundle":
        return cls(
            transactions=InMemoryRecordStore(),
            obligations=InMemoryRecordStore(),
            purchases=InMemoryRecordStore(),
            categories=InMemoryRecordStore(),
            cards=InMemoryRecordStore(),
            preferences=InMemoryRecordStore(),
        )

    @classmethod
    def google_sheets(cls, client: GoogleSheetsClient) -> "StoreBundle":
        names = client.settings
        return cls(
            transactions=GoogleSheetsRecordStore(
                Transaction, names.transactions_sheet_name, client
            ),
            obligations=GoogleSheetsRecordStore(
                Obligation, names.obligations_sheet_name, client
            ),
            purchases=GoogleSheetsRecordStore(
                InstallmentPurchase, names.purchases_sheet_name, client
            ),
            categories=GoogleSheetsRecordStore(
                Category, names.categories_sheet_name, client
            ),
            cards=GoogleSheetsRecordStore(
                CardRegistration, names.cards_sheet_name, client
            ),
            preferences=GoogleSheetsRecordStore(
                UserPreferences, names.preferences_sheet_name, client
            ),
        )


def _replace_by_id(records: list, record: Any) -> bool:
    """Replace the row with the same id in place; False if absent."""
    for idx, existing in enumerate(records):
        if existing.id == record.id:
            records[idx] = record
            return True
    return False


def _find_by_id(records: Iterable, record_id: str) -> Optional[Any]:
    for record in records:
        if record.id == record_id:
            return record
    return None


def _is_generated(obligation: Obligation) -> bool:
    return obligation.is_generated or is_generated_id(obligation.id)


class PlanningEngine:
    """
    Local view of the planner plus every operation the dashboard calls.

    Queries are synchronous and computed from the local collections.
    Mutations are async because they end with store writes.
    """

    def __init__(
        self,
        stores: StoreBundle,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[EngineSettings] = None,
        app_settings: Optional[AppSettings] = None,
        storage_error: Optional[str] = None,
    ):
        """
        Args:
            storage_error: Why the configured remote storage could not be
                used; reported by the first load().
        """
        self._stores = stores
        self._storage_error = storage_error
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().engine
        app_settings = app_settings or get_settings().app

        self.transactions: list[Transaction] = []
        self.obligations: list[Obligation] = []
        self.purchases: list[InstallmentPurchase] = []
        self.categories: list[Category] = []
        self.cards: list[CardRegistration] = []
        self.preferences = UserPreferences(
            calculate_tithing=app_settings.calculate_tithing
        )
        self.warnings: list[str] = []

    # =========================================================================
    # PLUMBING
    # =========================================================================

    async def _persist(
        self,
        operation: str,
        entity_type: str,
        entity_id: Optional[str],
        write: Awaitable,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Await a store write; on failure keep local state and warn."""
        try:
            await write
            return True
        except StorageError as e:
            self.warnings.append(
                f"Could not save {entity_type} changes ({operation}): {e}"
            )
            await self._audit_logger.log_persistence_failed(
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return False

    async def _load(self, name: str, store: RecordStore, current: list) -> list:
        try:
            return await store.list()
        except StorageError as e:
            self.warnings.append(f"Could not load {name}: {e}")
            await self._audit_logger.log_persistence_failed(
                operation="load",
                entity_type=name,
                entity_id=None,
                error_message=str(e),
            )
            return current

    def _validator(self) -> EntryValidator:
        return EntryValidator(self.categories, self._settings)

    async def _reject(
        self,
        operation: str,
        error: ValidationFailedError,
        correlation_id: UUID,
    ) -> None:
        await self._audit_logger.log_validation_failed(
            operation=operation,
            issues=[issue.model_dump() for issue in error.result.issues],
            correlation_id=correlation_id,
        )

    def pop_warnings(self) -> list[str]:
        """Return and clear the warnings collected so far."""
        warnings, self.warnings = self.warnings, []
        return warnings

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load(self) -> None:
        """
        Read every store into the local view.

        A collection whose store cannot be read keeps its current local
        contents and adds a warning.
        """
        if self._storage_error:
            self.warnings.append(
                f"Remote storage unavailable, changes are kept in memory: {self._storage_error}"
            )
            await self._audit_logger.log_error(
                error_type="storage_unavailable",
                error_message=self._storage_error,
            )
            self._storage_error = None

        stores = self._stores
        self.transactions = await self._load("transactions", stores.transactions, self.transactions)
        self.obligations = await self._load("obligations", stores.obligations, self.obligations)
        self.purchases = await self._load("installment purchases", stores.purchases, self.purchases)
        self.categories = await self._load("categories", stores.categories, self.categories)
        self.cards = await self._load("cards", stores.cards, self.cards)

        preferences = await self._load("preferences", stores.preferences, [])
        if preferences:
            self.preferences = preferences[0]

        await self._report_skipped_generators()
        logger.info(
            "engine_loaded",
            transactions=len(self.transactions),
            obligations=len(self.obligations),
            purchases=len(self.purchases),
            categories=len(self.categories),
            warnings=len(self.warnings),
        )

    async def _report_skipped_generators(self) -> None:
        config = self.generator_config()
        if config.invoice_category_id is None and self.purchases:
            await self._audit_logger.log_generation_skipped(
                "card_invoice", "no card invoice category"
            )
        if config.calculate_tithing and config.tithe_category_id is None:
            await self._audit_logger.log_generation_skipped(
                "tithe", "no tithe category"
            )

    # =========================================================================
    # QUERIES
    # =========================================================================

    def generator_config(self) -> GeneratorConfig:
        return GeneratorConfig.build(
            self.categories, self.cards, self.preferences, self._settings
        )

    def generated_obligations(self, month: MonthKey) -> list[Obligation]:
        """Card invoices and tithe for one month, settled rows taking precedence."""
        return generate_for_month(
            month,
            self.purchases,
            self.transactions,
            self.categories,
            self.generator_config(),
            stored=self.obligations,
        )

    def merged_obligations(self, month: MonthKey) -> list[Obligation]:
        month = MonthKey.coerce(month)
        return merge_obligations(
            self.obligations, self.generated_obligations(month), month
        )

    def monthly_summary(self, month: MonthKey) -> MonthlySummary:
        return aggregator.monthly_summary(self.transactions, self.obligations, month)

    def balance_series(
        self,
        month: MonthKey,
        downsample: bool = True,
    ) -> list[BalancePoint]:
        """Daily running balance for the month, downsampled for display by default."""
        month = MonthKey.coerce(month)
        points = aggregator.balance_series(
            self.transactions, self.merged_obligations(month), month
        )
        if downsample:
            points = aggregator.downsample(
                points,
                max_points=self._settings.downsample_max_points,
                target=self._settings.downsample_target,
            )
        return points

    def total_balance(self) -> float:
        return sum(tx.signed_amount for tx in self.transactions)

    # =========================================================================
    # OBLIGATIONS
    # =========================================================================

    async def add_recurring_obligation(
        self,
        template: Any,
        repeat_count: int = 0,
    ) -> list[Obligation]:
        """
        Expand a template into repeat_count + 1 monthly obligations and store them.

        Raises:
            ValidationFailedError: Before any state change.
        """
        correlation_id = create_correlation_id()
        try:
            created = expand_recurrence(template, repeat_count, self._validator())
        except ValidationFailedError as e:
            await self._reject("add_recurring_obligation", e, correlation_id)
            raise

        self.obligations.extend(created)
        await self._audit_logger.log_obligations_created(
            obligation_ids=[o.id for o in created],
            description=created[0].description,
            correlation_id=correlation_id,
        )
        await self._persist(
            "add_recurring_obligation",
            "obligation",
            created[0].id,
            self._stores.obligations.upsert_many(created),
            correlation_id,
        )
        return created

    async def update_obligation(self, obligation: Obligation) -> Obligation:
        """
        Replace a pending manual obligation.

        Raises:
            GeneratedObligationEditError: The obligation is generated.
            RecordNotFoundError: No manual obligation with that id.
            SettledObligationEditError: The obligation is settled.
            ValidationFailedError: Before any state change.
        """
        current = _find_by_id(self.obligations, obligation.id)
        if _is_generated(obligation) or (current is not None and _is_generated(current)):
            raise GeneratedObligationEditError(obligation.id)
        if current is None:
            raise RecordNotFoundError("obligation", obligation.id)
        if current.is_settled:
            raise SettledObligationEditError(obligation.id)

        correlation_id = create_correlation_id()
        template, result = self._validator().validate_obligation_template(obligation)
        if template is None:
            error = ValidationFailedError(result)
            await self._reject("update_obligation", error, correlation_id)
            raise error

        # Status only changes through settle/unsettle
        updated = current.model_copy(update=template.model_dump())
        _replace_by_id(self.obligations, updated)
        await self._audit_logger.log(
            AuditEventBuilder.obligation_updated(updated.id, correlation_id)
        )
        await self._persist(
            "update_obligation",
            "obligation",
            updated.id,
            self._stores.obligations.upsert(updated),
            correlation_id,
        )
        return updated

    async def delete_obligation(
        self,
        obligation_id: str,
        delete_future: bool = False,
    ) -> list[str]:
        """
        Delete an obligation, optionally with the later occurrences of its series.

        A series is recognised by equal description, category, amount and
        kind; only pending occurrences due after the target are removed.
        Generated obligations have nothing stored unless settled, and a
        settled obligation owns a ledger row; use unsettle() for both.

        Returns the ids removed.

        Raises:
            GeneratedObligationEditError: The obligation is generated.
            SettledObligationEditError: The obligation is settled.
        """
        target = _find_by_id(self.obligations, obligation_id)
        if target is None:
            return []
        if _is_generated(target):
            raise GeneratedObligationEditError(obligation_id)
        if target.is_settled:
            raise SettledObligationEditError(obligation_id)

        doomed = [target.id]
        if delete_future:
            doomed.extend(
                o.id for o in self.obligations
                if o.id != target.id
                and not _is_generated(o)
                and o.is_pending
                and o.description == target.description
                and o.category_id == target.category_id
                and o.amount == target.amount
                and o.kind == target.kind
                and o.due_date > target.due_date
            )

        correlation_id = create_correlation_id()
        doomed_set = set(doomed)
        self.obligations = [o for o in self.obligations if o.id not in doomed_set]
        await self._audit_logger.log(
            AuditEventBuilder.obligations_deleted(doomed, correlation_id)
        )
        await self._persist(
            "delete_obligation",
            "obligation",
            obligation_id,
            self._stores.obligations.delete_many(doomed),
            correlation_id,
        )
        return doomed

    # =========================================================================
    # SETTLEMENT LIFECYCLE
    # =========================================================================

    def _current_generated(self, obligation: Obligation) -> Obligation:
        """
        The authoritative version of a generated obligation.

        A stored settled row wins. Otherwise the freshly regenerated
        instance is used, falling back to the one given when its source
        data no longer produces it. Stored pending rows are stale.
        """
        stored = _find_by_id(self.obligations, obligation.id)
        if stored is not None and stored.is_settled:
            return stored
        regenerated = _find_by_id(
            self.generated_obligations(MonthKey.of(obligation.due_date)),
            obligation.id,
        )
        return regenerated or obligation

    async def settle(self, obligation: Obligation) -> Optional[Transaction]:
        """
        Turn a pending obligation into a ledger transaction.

        Writes the transaction (dated on the due date) first, then upserts
        the obligation with status settled and a link to that transaction.
        For a generated obligation the upsert creates its first stored row,
        which from then on wins over regeneration. The movement balance is
        deleted instead, so the next outgoing transfer starts a new one.

        Returns the new transaction, or None if it was already settled.

        Raises:
            RecordNotFoundError: A manual obligation the engine does not hold.
        """
        if _is_generated(obligation):
            source = self._current_generated(obligation)
        else:
            source = _find_by_id(self.obligations, obligation.id)
            if source is None:
                raise RecordNotFoundError("obligation", obligation.id)
        if source.is_settled:
            logger.info("settle_ignored", obligation_id=source.id, reason="already settled")
            return None

        correlation_id = create_correlation_id()
        transaction = Transaction(
            amount=source.amount,
            kind=source.kind,
            category_id=source.category_id,
            description=source.description,
            date=source.due_date,
        )

        self.transactions.append(transaction)
        if is_movement_balance(source, self.generator_config()):
            self.obligations = [o for o in self.obligations if o.id != source.id]
            write = self._stores.obligations.delete(source.id)
        else:
            settled = source.model_copy(update={
                "status": ObligationStatus.SETTLED,
                "settlement_transaction_id": transaction.id,
            })
            if not _replace_by_id(self.obligations, settled):
                self.obligations.append(settled)
            write = self._stores.obligations.upsert(settled)

        await self._audit_logger.log_obligation_settled(
            obligation_id=source.id,
            transaction_id=transaction.id,
            amount=transaction.amount,
            correlation_id=correlation_id,
        )
        await self._persist(
            "settle", "transaction", transaction.id,
            self._stores.transactions.upsert(transaction), correlation_id,
        )
        await self._persist("settle", "obligation", source.id, write, correlation_id)
        return transaction

    async def unsettle(self, obligation: Obligation) -> bool:
        """
        Return a settled obligation to pending.

        - Generated identity: the stored row is deleted; the next generator
          pass emits it again as pending (if its source data still exists).
        - Manual: the stored row goes back to status pending.

        The transaction written at settlement is deleted as well when the
        row carries its id. Rows settled without a link (older backups)
        leave the ledger untouched.

        Returns False if there was nothing settled to undo.
        """
        current = _find_by_id(self.obligations, obligation.id)
        if current is None or not current.is_settled:
            return False

        correlation_id = create_correlation_id()
        retracted = current.settlement_transaction_id
        if retracted:
            self.transactions = [t for t in self.transactions if t.id != retracted]

        if _is_generated(current):
            self.obligations = [o for o in self.obligations if o.id != current.id]
            write = self._stores.obligations.delete(current.id)
        else:
            reopened = current.model_copy(update={
                "status": ObligationStatus.PENDING,
                "settlement_transaction_id": None,
            })
            _replace_by_id(self.obligations, reopened)
            write = self._stores.obligations.upsert(reopened)

        await self._audit_logger.log_obligation_unsettled(
            obligation_id=current.id,
            retracted_transaction_id=retracted,
            correlation_id=correlation_id,
        )
        await self._persist("unsettle", "obligation", current.id, write, correlation_id)
        if retracted:
            await self._persist(
                "unsettle", "transaction", retracted,
                self._stores.transactions.delete(retracted), correlation_id,
            )
        return True

    # =========================================================================
    # LEDGER
    # =========================================================================

    async def _track_movement(
        self,
        transactions: list[Transaction],
        correlation_id: UUID,
    ) -> None:
        """Fold new transfers into the pending movement balance."""
        config = self.generator_config()
        delta, reference_date = movement_delta(transactions, config)
        update = apply_movement_delta(self.obligations, delta, reference_date, config)

        if update.upsert is not None:
            balance = update.upsert
            if not _replace_by_id(self.obligations, balance):
                self.obligations.append(balance)
            await self._audit_logger.log(AuditEventBuilder.movement_balance_changed(
                balance.id, balance.amount, correlation_id
            ))
            await self._persist(
                "movement_balance", "obligation", balance.id,
                self._stores.obligations.upsert(balance), correlation_id,
            )
        elif update.removed_id is not None:
            self.obligations = [o for o in self.obligations if o.id != update.removed_id]
            await self._audit_logger.log(AuditEventBuilder.movement_balance_changed(
                update.removed_id, None, correlation_id
            ))
            await self._persist(
                "movement_balance", "obligation", update.removed_id,
                self._stores.obligations.delete(update.removed_id), correlation_id,
            )

    async def add_many(self, entries: Iterable[Any]) -> list[Transaction]:
        """
        Validate and append several transactions at once.

        Nothing is added unless every entry is valid.
        Outgoing and incoming transfers among them adjust the movement
        balance.

        Raises:
            ValidationFailedError: Issues are prefixed with the entry position.
        """
        correlation_id = create_correlation_id()
        validator = self._validator()
        accepted: list[Transaction] = []
        issues: list[ValidationIssue] = []
        for position, entry in enumerate(entries, start=1):
            transaction, result = validator.validate_transaction(entry)
            if transaction is None:
                issues.extend(
                    issue.model_copy(update={"message": f"Entry {position}: {issue.message}"})
                    for issue in result.issues
                )
            else:
                accepted.append(transaction)

        if issues:
            error = ValidationFailedError(ValidationResult(
                schema_valid=False, semantic_valid=False, issues=issues
            ))
            await self._reject("add_many", error, correlation_id)
            raise error
        if not accepted:
            return []

        for transaction in accepted:
            if not _replace_by_id(self.transactions, transaction):
                self.transactions.append(transaction)

        ids = [t.id for t in accepted]
        await self._audit_logger.log_transactions_changed(
            AuditEventType.TRANSACTIONS_ADDED, ids, correlation_id
        )
        await self._persist(
            "add_many", "transaction", ids[0],
            self._stores.transactions.upsert_many(accepted), correlation_id,
        )
        await self._track_movement(accepted, correlation_id)
        return accepted

    async def add_transaction(self, entry: Any) -> Transaction:
        return (await self.add_many([entry]))[0]

    async def duplicate_transaction(self, transaction_id: str) -> Transaction:
        """Copy a transaction under a fresh id."""
        original = _find_by_id(self.transactions, transaction_id)
        if original is None:
            raise RecordNotFoundError("transaction", transaction_id)
        return await self.add_transaction(
            original.model_copy(update={"id": new_record_id()})
        )

    async def update_transaction(self, entry: Any) -> Transaction:
        """
        Replace a transaction with an edited version.

        Raises:
            RecordNotFoundError: No transaction with that id.
            ValidationFailedError: Before any state change.
        """
        correlation_id = create_correlation_id()
        transaction, result = self._validator().validate_transaction(entry)
        if transaction is None:
            error = ValidationFailedError(result)
            await self._reject("update_transaction", error, correlation_id)
            raise error
        if not _replace_by_id(self.transactions, transaction):
            raise RecordNotFoundError("transaction", transaction.id)

        await self._audit_logger.log_transactions_changed(
            AuditEventType.TRANSACTION_UPDATED, [transaction.id], correlation_id
        )
        await self._persist(
            "update_transaction", "transaction", transaction.id,
            self._stores.transactions.upsert(transaction), correlation_id,
        )
        return transaction

    async def delete_many(self, transaction_ids: Iterable[str]) -> int:
        """Delete transactions by id; unknown ids are ignored. Returns how many were removed."""
        wanted = set(transaction_ids)
        removed = [t.id for t in self.transactions if t.id in wanted]
        if not removed:
            return 0

        correlation_id = create_correlation_id()
        self.transactions = [t for t in self.transactions if t.id not in wanted]
        await self._audit_logger.log_transactions_changed(
            AuditEventType.TRANSACTIONS_DELETED, removed, correlation_id
        )
        await self._persist(
            "delete_many", "transaction", removed[0],
            self._stores.transactions.delete_many(removed), correlation_id,
        )
        return len(removed)

    async def delete_transaction(self, transaction_id: str) -> bool:
        return await self.delete_many([transaction_id]) == 1

    async def recategorize_many(
        self,
        transaction_ids: Iterable[str],
        category_id: str,
    ) -> int:
        """
        Move transactions to another category.

        Returns how many transactions changed.

        Raises:
            ValidationFailedError: Empty category id.
        """
        correlation_id = create_correlation_id()
        if not category_id or not category_id.strip():
            error = ValidationFailedError(ValidationResult(
                schema_valid=False,
                semantic_valid=False,
                issues=[ValidationIssue(
                    field="category_id",
                    issue_type="missing",
                    message="A category is required",
                    severity="error",
                )],
            ))
            await self._reject("recategorize_many", error, correlation_id)
            raise error

        wanted = set(transaction_ids)
        changed = []
        for idx, transaction in enumerate(self.transactions):
            if transaction.id in wanted and transaction.category_id != category_id:
                self.transactions[idx] = transaction.model_copy(
                    update={"category_id": category_id}
                )
                changed.append(self.transactions[idx])
        if not changed:
            return 0

        await self._audit_logger.log_transactions_changed(
            AuditEventType.TRANSACTIONS_RECATEGORIZED,
            [t.id for t in changed],
            correlation_id,
            details={"category_id": category_id},
        )
        await self._persist(
            "recategorize_many", "transaction", changed[0].id,
            self._stores.transactions.upsert_many(changed), correlation_id,
        )
        return len(changed)

    # =========================================================================
    # REFERENCE DATA
    # =========================================================================

    async def _save_reference(
        self,
        records: list,
        store: RecordStore,
        record: Any,
        entity_type: str,
        event_type: AuditEventType,
    ) -> Any:
        correlation_id = create_correlation_id()
        if not _replace_by_id(records, record):
            records.append(record)
        await self._audit_logger.log(AuditEventBuilder.reference_changed(
            event_type, entity_type, record.id, correlation_id
        ))
        await self._persist(
            f"save_{entity_type}", entity_type, record.id,
            store.upsert(record), correlation_id,
        )
        return record

    async def _delete_reference(
        self,
        records: list,
        store: RecordStore,
        record_id: str,
        entity_type: str,
        event_type: AuditEventType,
    ) -> bool:
        if _find_by_id(records, record_id) is None:
            return False
        correlation_id = create_correlation_id()
        records[:] = [r for r in records if r.id != record_id]
        await self._audit_logger.log(AuditEventBuilder.reference_changed(
            event_type, entity_type, record_id, correlation_id
        ))
        await self._persist(
            f"delete_{entity_type}", entity_type, record_id,
            store.delete(record_id), correlation_id,
        )
        return True

    async def add_purchase(self, purchase: InstallmentPurchase) -> InstallmentPurchase:
        return await self._save_reference(
            self.purchases, self._stores.purchases, purchase,
            "installment_purchase", AuditEventType.PURCHASE_SAVED,
        )

    async def update_purchase(self, purchase: InstallmentPurchase) -> InstallmentPurchase:
        if _find_by_id(self.purchases, purchase.id) is None:
            raise RecordNotFoundError("installment_purchase", purchase.id)
        return await self.add_purchase(purchase)

    async def delete_purchase(self, purchase_id: str) -> bool:
        return await self._delete_reference(
            self.purchases, self._stores.purchases, purchase_id,
            "installment_purchase", AuditEventType.PURCHASE_DELETED,
        )

    async def add_category(self, category: Category) -> Category:
        return await self._save_reference(
            self.categories, self._stores.categories, category,
            "category", AuditEventType.CATEGORY_SAVED,
        )

    async def update_category(self, category: Category) -> Category:
        if _find_by_id(self.categories, category.id) is None:
            raise RecordNotFoundError("category", category.id)
        return await self.add_category(category)

    async def delete_category(self, category_id: str) -> bool:
        """Remove a category. Transactions keep pointing at its id."""
        return await self._delete_reference(
            self.categories, self._stores.categories, category_id,
            "category", AuditEventType.CATEGORY_DELETED,
        )

    async def register_card(self, card: CardRegistration) -> CardRegistration:
        """Register a card, or change the invoice due day of a known one (matched by name)."""
        known = next(
            (c for c in self.cards if c.name.strip().lower() == card.name.strip().lower()),
            None,
        )
        if known is not None and known.id != card.id:
            card = card.model_copy(update={"id": known.id})
        return await self._save_reference(
            self.cards, self._stores.cards, card,
            "card", AuditEventType.CARD_REGISTERED,
        )

    async def update_preferences(self, calculate_tithing: bool) -> UserPreferences:
        self.preferences = self.preferences.model_copy(
            update={"calculate_tithing": calculate_tithing}
        )
        correlation_id = create_correlation_id()
        await self._audit_logger.log(AuditEventBuilder.reference_changed(
            AuditEventType.PREFERENCES_UPDATED, "preferences",
            self.preferences.id, correlation_id,
        ))
        await self._persist(
            "update_preferences", "preferences", self.preferences.id,
            self._stores.preferences.upsert(self.preferences), correlation_id,
        )
        return self.preferences

    # =========================================================================
    # BACKUP
    # =========================================================================

    def snapshot(self) -> BackupDocument:
        return BackupDocument(
            transactions=list(self.transactions),
            obligations=list(self.obligations),
            installment_purchases=list(self.purchases),
            categories=list(self.categories),
            cards=list(self.cards),
            preferences=self.preferences,
        )

    async def export_backup(self) -> str:
        """Serialize every collection plus preferences into one JSON document."""
        document = self.snapshot()
        await self._audit_logger.log(AuditEventBuilder.backup_exported(
            document.counts(), create_correlation_id()
        ))
        return export_backup(document)

    async def import_backup(self, raw: str) -> bool:
        """
        Replace local collections with the ones carried by a backup.

        Pending generated obligations in the document are dropped.

        Returns False, with nothing applied, when the document does not
        parse. Store writes after a successful parse follow the usual
        warning path.
        """
        correlation_id = create_correlation_id()
        try:
            document = parse_backup(raw)
        except BackupParseError as e:
            await self._audit_logger.log(
                AuditEventBuilder.backup_import_failed(str(e), correlation_id)
            )
            return False

        if document.obligations is not None:
            # Pending generated rows are recomputed, never stored
            document.obligations = [
                o for o in document.obligations
                if not (_is_generated(o) and o.is_pending)
            ]

        replacements = [
            ("transactions", document.transactions, self._stores.transactions),
            ("obligations", document.obligations, self._stores.obligations),
            ("purchases", document.installment_purchases, self._stores.purchases),
            ("categories", document.categories, self._stores.categories),
            ("cards", document.cards, self._stores.cards),
        ]
        previous = {name: list(getattr(self, name)) for name, _, _ in replacements}
        for name, records, _ in replacements:
            if records is not None:
                setattr(self, name, list(records))
        if document.preferences is not None:
            self.preferences = document.preferences

        await self._audit_logger.log(
            AuditEventBuilder.backup_imported(document.counts(), correlation_id)
        )
        for name, records, store in replacements:
            if records is None:
                continue
            incoming = {r.id for r in records}
            stale = [r.id for r in previous[name] if r.id not in incoming]
            await self._persist(
                "import_backup", name, None, store.delete_many(stale), correlation_id
            )
            await self._persist(
                "import_backup", name, None, store.upsert_many(records), correlation_id
            )
        if document.preferences is not None:
            await self._persist(
                "import_backup", "preferences", document.preferences.id,
                self._stores.preferences.upsert(document.preferences), correlation_id,
            )
        return True


def create_engine(
    use_storage: bool = True,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> PlanningEngine:
    """
    Factory function to create the planning engine.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False for testing without storage.
        audit_storage: Override for the audit trail backend.

    Returns:
        An engine that has not been loaded yet (await engine.load()).
        When remote storage is enabled but unusable the engine runs in
        memory and reports why on its first load.
    """
    stores = None
    storage_error = None

    if use_storage and get_settings().app.use_remote_storage:
        status = validate_all_settings()
        if not status["google_sheets"]:
            storage_error = status["google_sheets_error"]
        else:
            try:
                client = GoogleSheetsClient()
                stores = StoreBundle.google_sheets(client)
                audit_storage = audit_storage or GoogleSheetsAuditStorage(client)
            except Exception as e:
                storage_error = str(e)

    if stores is None:
        if storage_error:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=storage_error)
        stores = StoreBundle.in_memory()
        audit_storage = audit_storage or InMemoryAuditStorage()

    return PlanningEngine(
        stores,
        audit_logger=AuditLogger(audit_storage),
        storage_error=storage_error,
    )
