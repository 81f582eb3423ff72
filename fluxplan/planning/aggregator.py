"""
Aggregator

Computes the figures the dashboard shows for one month:
1. Monthly totals (actual income/expense, planned income/expense)
2. The daily running balance, actual and projected
3. A bounded-size version of that series for display

KNOWN ASYMMETRY: planned totals in the monthly summary count pending
MANUAL obligations only. Generated obligations (card invoices, tithe)
are left out of the summary even though they appear in the merged
obligation list and move the balance series.
"""

import math
from collections.abc import Iterable

from fluxplan.models.finance import (
    BalancePoint,
    EntryKind,
    MonthlySummary,
    Obligation,
    Transaction,
)
from fluxplan.planning.dates import MonthKey


def monthly_summary(
    transactions: Iterable[Transaction],
    obligations: Iterable[Obligation],
    month: MonthKey,
) -> MonthlySummary:
    """Actual totals from the ledger, planned totals from pending manual obligations."""
    month = MonthKey.coerce(month)
    summary = MonthlySummary()

    for tx in transactions:
        if not month.contains(tx.date):
            continue
        if tx.kind == EntryKind.INCOME:
            summary.income += tx.amount
        else:
            summary.expense += tx.amount

    for obligation in obligations:
        if obligation.is_generated or not obligation.is_pending:
            continue
        if not month.contains(obligation.due_date):
            continue
        if obligation.kind == EntryKind.INCOME:
            summary.planned_income += obligation.amount
        else:
            summary.planned_expense += obligation.amount

    return summary


def starting_balance(transactions: Iterable[Transaction], month: MonthKey) -> float:
    """Signed sum of every transaction dated before the month's first day."""
    first_day = MonthKey.coerce(month).first_day
    return sum(tx.signed_amount for tx in transactions if tx.date < first_day)


def balance_series(
    transactions: Iterable[Transaction],
    merged_obligations: Iterable[Obligation],
    month: MonthKey,
) -> list[BalancePoint]:
    """
    One running-balance point per calendar day of the month.

    Settled obligations are skipped: their effect is already in the ledger
    as the transaction written at settlement.
    """
    month = MonthKey.coerce(month)
    transactions = list(transactions)
    deltas = [0.0] * (month.days + 1)

    for tx in transactions:
        if month.contains(tx.date):
            deltas[tx.date.day] += tx.signed_amount

    for obligation in merged_obligations:
        if obligation.is_pending and month.contains(obligation.due_date):
            deltas[obligation.due_date.day] += obligation.signed_amount

    running = starting_balance(transactions, month)
    points = []
    for day in range(1, month.days + 1):
        running += deltas[day]
        points.append(BalancePoint(day=day, balance=running))
    return points


def downsample(
    points: list[BalancePoint],
    max_points: int = 12,
    target: int = 10,
) -> list[BalancePoint]:
    """
    Reduce a series to roughly `target` interior points plus both ends.

    Series of at most `max_points` are returned unchanged. Otherwise the
    first and last points are kept and every stride-th point in between,
    starting at index 1 + stride, with stride = ceil((n - 2) / target).
    For the default settings the output never exceeds 12 points.
    """
    n = len(points)
    if n <= max_points:
        return list(points)

    stride = max(1, math.ceil((n - 2) / target))
    sampled = [points[0]]
    sampled.extend(points[i] for i in range(1 + stride, n - 1, stride))
    sampled.append(points[-1])
    return sampled
