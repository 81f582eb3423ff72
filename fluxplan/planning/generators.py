"""
Synthetic Obligation Generators

Derive obligations from other domain objects:
- Card invoices: one per card and month, summing the installments of
  every purchase that falls due in that month.
- Tithe: a flat share of the month's tithe-eligible income.

Both are pure functions of their inputs plus an explicit GeneratorConfig.
Generated ids are deterministic (see planning.identity), so running a
generator twice over unchanged data yields identical output.

SETTLED ROWS WIN: when the store already holds a settled row with the id
a generator is about to emit, the stored row is returned unmodified
instead of a freshly computed pending one.

LOOKUP MISSES: when no category is designated for a generator, that
generator emits nothing. This is logged, never raised, so one missing
category cannot break the whole dashboard.
"""

from collections.abc import Iterable
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from fluxplan.config import EngineSettings
from fluxplan.models.finance import (
    CardRegistration,
    Category,
    CategoryRole,
    EntryKind,
    InstallmentPurchase,
    Obligation,
    ObligationStatus,
    Transaction,
    UserPreferences,
)
from fluxplan.planning.dates import MonthKey
from fluxplan.planning.identity import card_invoice_id, tithe_id


logger = structlog.get_logger(__name__)


def card_key(card_name: str) -> str:
    """Cards are told apart case-insensitively, ignoring outer whitespace."""
    return card_name.strip().lower()


# =============================================================================
# CONFIGURATION
# =============================================================================

def resolve_role_category(
    categories: Iterable[Category],
    role: CategoryRole,
    conventional_names: Iterable[str] = (),
    kind: EntryKind = EntryKind.EXPENSE,
) -> Optional[Category]:
    """
    Find the category of `kind` designated for a role.

    An explicit role wins. Otherwise fall back to a case-insensitive match
    of the category's name against the conventional names.
    """
    categories = [c for c in categories if c.kind == kind]
    for category in categories:
        if category.role == role:
            return category

    names = {name.strip().lower() for name in conventional_names}
    for category in categories:
        if category.name.strip().lower() in names:
            return category
    return None


class GeneratorConfig(BaseModel):
    """
    Everything the generators need besides their source data.

    Built once by the engine from settings, preferences and categories and
    passed in explicitly, so the generators hold no hidden state.
    """

    calculate_tithing: bool = True
    tithe_rate: float = Field(default=0.10, gt=0.0, le=1.0)
    tithe_due_day: int = Field(default=10, ge=1, le=31)
    tithe_category_id: Optional[str] = None

    invoice_category_id: Optional[str] = None
    default_invoice_due_day: int = Field(default=10, ge=1, le=31)
    # Lower-cased card name -> invoice due day
    card_due_days: dict[str, int] = Field(default_factory=dict)

    movement_out_category_id: Optional[str] = None
    movement_in_category_id: Optional[str] = None
    movement_clear_threshold: float = Field(default=0.01, ge=0.0)

    def invoice_due_day(self, card_name: str) -> int:
        return self.card_due_days.get(card_key(card_name), self.default_invoice_due_day)

    @classmethod
    def build(
        cls,
        categories: Iterable[Category],
        cards: Iterable[CardRegistration],
        preferences: UserPreferences,
        settings: EngineSettings,
    ) -> "GeneratorConfig":
        categories = list(categories)
        tithe_category = resolve_role_category(
            categories, CategoryRole.TITHE, settings.tithe_category_names_list
        )
        invoice_category = resolve_role_category(
            categories, CategoryRole.CARD_INVOICE, settings.invoice_category_names_list
        )
        movement_out = resolve_role_category(
            categories, CategoryRole.MOVEMENT, settings.movement_category_names_list
        )
        movement_in = resolve_role_category(
            categories,
            CategoryRole.MOVEMENT,
            settings.movement_category_names_list,
            kind=EntryKind.INCOME,
        )
        return cls(
            calculate_tithing=preferences.calculate_tithing,
            tithe_rate=settings.tithe_rate,
            tithe_due_day=settings.tithe_due_day,
            tithe_category_id=tithe_category.id if tithe_category else None,
            invoice_category_id=invoice_category.id if invoice_category else None,
            default_invoice_due_day=settings.default_invoice_due_day,
            card_due_days={card_key(card.name): card.due_day for card in cards},
            movement_out_category_id=movement_out.id if movement_out else None,
            movement_in_category_id=movement_in.id if movement_in else None,
            movement_clear_threshold=settings.movement_clear_threshold,
        )


def settled_index(stored: Iterable[Obligation]) -> dict[str, Obligation]:
    """Stored settled rows keyed by id."""
    return {o.id: o for o in stored if o.is_settled}


# =============================================================================
# CARD INVOICES
# =============================================================================

def generate_card_invoice_schedule(purchase: InstallmentPurchase) -> dict[MonthKey, float]:
    """
    Month -> amount contributed by one purchase.

    Installment i (1-based) falls due i months after the purchase month.
    The day of the purchase plays no part, so a purchase on the 31st never
    skips a short month.
    """
    purchase_month = MonthKey.of(purchase.purchase_date)
    value = purchase.installment_value
    return {
        purchase_month.shift(i): value
        for i in range(1, purchase.installment_count + 1)
    }


def generate_card_invoices(
    purchases: Iterable[InstallmentPurchase],
    month: MonthKey,
    config: GeneratorConfig,
    stored: Iterable[Obligation] = (),
) -> list[Obligation]:
    """
    One invoice obligation per card with installments due in `month`.

    Returns invoices ordered by card name.
    """
    month = MonthKey.coerce(month)
    if config.invoice_category_id is None:
        logger.info(
            "generation_skipped",
            generator="card_invoice",
            reason="no card invoice category",
            month=str(month),
        )
        return []

    # Card key -> total, and every spelling of the card name seen
    buckets: dict[str, float] = {}
    spellings: dict[str, set[str]] = {}
    for purchase in purchases:
        amount = generate_card_invoice_schedule(purchase).get(month)
        if amount is not None:
            key = card_key(purchase.card_name)
            buckets[key] = buckets.get(key, 0.0) + amount
            spellings.setdefault(key, set()).add(purchase.card_name.strip())

    settled = settled_index(stored)
    invoices = []
    for key in sorted(buckets):
        # Alphabetically first spelling names the invoice
        card_name = min(spellings[key])
        obligation_id = card_invoice_id(card_name, month)
        if obligation_id in settled:
            invoices.append(settled[obligation_id])
            continue
        invoices.append(Obligation(
            id=obligation_id,
            amount=buckets[key],
            kind=EntryKind.EXPENSE,
            category_id=config.invoice_category_id,
            description=f"Card invoice {card_name}",
            due_date=month.day(config.invoice_due_day(card_name)),
            status=ObligationStatus.PENDING,
            is_generated=True,
        ))
    return invoices


# =============================================================================
# TITHE
# =============================================================================

def eligible_income_by_month(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
) -> dict[MonthKey, float]:
    """Sum of income in tithe-eligible categories, per transaction month."""
    eligible = {c.id for c in categories if c.tithe_eligible}
    totals: dict[MonthKey, float] = {}
    for tx in transactions:
        if tx.kind != EntryKind.INCOME or tx.category_id not in eligible:
            continue
        key = MonthKey.of(tx.date)
        totals[key] = totals.get(key, 0.0) + tx.amount
    return totals


def generate_tithes(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    config: GeneratorConfig,
    months: Optional[Iterable[MonthKey]] = None,
    stored: Iterable[Obligation] = (),
) -> list[Obligation]:
    """
    One tithe obligation per month with eligible income.

    Args:
        months: Restrict output to these months. None means every month
            present in the transactions.

    Returns tithes ordered by month.
    """
    if not config.calculate_tithing:
        return []
    if config.tithe_category_id is None:
        logger.info(
            "generation_skipped",
            generator="tithe",
            reason="no tithe category",
        )
        return []

    totals = eligible_income_by_month(transactions, categories)
    if months is not None:
        wanted = {MonthKey.coerce(m) for m in months}
        totals = {m: total for m, total in totals.items() if m in wanted}

    settled = settled_index(stored)
    tithes = []
    for month in sorted(totals):
        if totals[month] <= 0:
            continue
        obligation_id = tithe_id(month)
        if obligation_id in settled:
            tithes.append(settled[obligation_id])
            continue
        tithes.append(Obligation(
            id=obligation_id,
            amount=config.tithe_rate * totals[month],
            kind=EntryKind.EXPENSE,
            category_id=config.tithe_category_id,
            description=f"Tithe ({month})",
            due_date=month.day(config.tithe_due_day),
            status=ObligationStatus.PENDING,
            is_generated=True,
        ))
    return tithes


def generate_for_month(
    month: MonthKey,
    purchases: Iterable[InstallmentPurchase],
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    config: GeneratorConfig,
    stored: Iterable[Obligation] = (),
) -> list[Obligation]:
    """Card invoices followed by the tithe for one month."""
    month = MonthKey.coerce(month)
    stored = list(stored)
    return (
        generate_card_invoices(purchases, month, config, stored)
        + generate_tithes(transactions, categories, config, [month], stored)
    )

