"""
Movement Balance

Transfers between the user's own accounts are entered as an expense in the
outgoing movement category and, once the money arrives, an income in the
incoming one. What has been sent but not yet received back is tracked as a
single pending income obligation, the movement balance:

- outgoing transfers raise it (creating it if needed)
- incoming transfers lower it
- once it drops to the clear threshold it is removed

Settling the movement balance removes it as well; the next outgoing
transfer starts a new one.
"""

from collections.abc import Iterable
from datetime import date
from typing import NamedTuple, Optional

import structlog

from fluxplan.models.finance import EntryKind, Obligation, Transaction
from fluxplan.planning.generators import GeneratorConfig


logger = structlog.get_logger(__name__)


MOVEMENT_BALANCE_DESCRIPTION = "Movement balance"


class MovementUpdate(NamedTuple):
    """Change to apply to the obligations; both fields None means nothing to do."""
    upsert: Optional[Obligation] = None
    removed_id: Optional[str] = None


def movement_delta(
    transactions: Iterable[Transaction],
    config: GeneratorConfig,
) -> tuple[float, Optional[date]]:
    """
    Net change the transactions make to the movement balance.

    Returns the change and the date of the last transfer among them
    (None when none of them is a transfer).
    """
    delta = 0.0
    reference_date = None
    for tx in transactions:
        if tx.kind == EntryKind.EXPENSE and tx.category_id == config.movement_out_category_id:
            delta += tx.amount
            reference_date = tx.date
        elif tx.kind == EntryKind.INCOME and tx.category_id == config.movement_in_category_id:
            delta -= tx.amount
            reference_date = tx.date
    return delta, reference_date


def is_movement_balance(obligation: Obligation, config: GeneratorConfig) -> bool:
    return (
        config.movement_in_category_id is not None
        and not obligation.is_generated
        and obligation.category_id == config.movement_in_category_id
        and obligation.description == MOVEMENT_BALANCE_DESCRIPTION
    )


def find_movement_balance(
    obligations: Iterable[Obligation],
    config: GeneratorConfig,
) -> Optional[Obligation]:
    """The pending movement balance, if there is one."""
    for obligation in obligations:
        if obligation.is_pending and is_movement_balance(obligation, config):
            return obligation
    return None


def apply_movement_delta(
    obligations: Iterable[Obligation],
    delta: float,
    reference_date: Optional[date],
    config: GeneratorConfig,
) -> MovementUpdate:
    """
    Work out how the movement balance changes by `delta`.

    A new balance is due on `reference_date`. A decrease with no balance
    to lower is ignored.
    """
    if delta == 0 or reference_date is None:
        return MovementUpdate()
    if config.movement_in_category_id is None:
        logger.info(
            "generation_skipped",
            generator="movement_balance",
            reason="no incoming movement category",
        )
        return MovementUpdate()

    current = find_movement_balance(obligations, config)
    if current is None:
        if delta <= 0:
            return MovementUpdate()
        return MovementUpdate(upsert=Obligation(
            amount=delta,
            kind=EntryKind.INCOME,
            category_id=config.movement_in_category_id,
            description=MOVEMENT_BALANCE_DESCRIPTION,
            due_date=reference_date,
        ))

    amount = current.amount + delta
    if amount <= config.movement_clear_threshold:
        return MovementUpdate(removed_id=current.id)
    return MovementUpdate(upsert=current.model_copy(update={"amount": amount}))
