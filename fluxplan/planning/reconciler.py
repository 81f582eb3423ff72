"""
Reconciler

Merges the obligations held in the store with generator output for one
month. The result feeds both the obligation list view and the balance
series.
"""

from collections.abc import Iterable

from fluxplan.models.finance import Obligation
from fluxplan.planning.dates import MonthKey


def merge_obligations(
    stored: Iterable[Obligation],
    generated: Iterable[Obligation],
    month: MonthKey,
) -> list[Obligation]:
    """
    Month-scoped merge of stored and generated obligations.

    Kept from the store: manual rows of any status and settled generated
    rows. A stored generated row that is still pending is stale (pending
    generated rows are never persisted) and is dropped in favour of the
    freshly computed one. Generator output is added unless a row with the
    same id is already present.

    Sorted ascending by due date; the sort is stable so ties keep store
    order followed by generator order.
    """
    month = MonthKey.coerce(month)
    merged: list[Obligation] = []
    seen: set[str] = set()

    for obligation in stored:
        if not month.contains(obligation.due_date):
            continue
        if obligation.is_generated and not obligation.is_settled:
            continue
        merged.append(obligation)
        seen.add(obligation.id)

    for obligation in generated:
        if obligation.id in seen or not month.contains(obligation.due_date):
            continue
        merged.append(obligation)
        seen.add(obligation.id)

    return sorted(merged, key=lambda o: o.due_date)
