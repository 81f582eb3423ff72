"""
Planning & Projection package.

Pure functions only: nothing here reads settings or touches storage.
The engine (fluxplan.orchestrator) feeds them data and configuration.
"""

from fluxplan.planning.aggregator import (
    balance_series,
    downsample,
    monthly_summary,
    starting_balance,
)
from fluxplan.planning.dates import MonthKey, add_months, days_in_month
from fluxplan.planning.generators import (
    GeneratorConfig,
    card_key,
    generate_card_invoice_schedule,
    generate_card_invoices,
    generate_for_month,
    generate_tithes,
    resolve_role_category,
)
from fluxplan.planning.identity import (
    GeneratedKind,
    card_invoice_id,
    generated_id,
    is_generated_id,
    tithe_id,
)
from fluxplan.planning.movement import (
    MOVEMENT_BALANCE_DESCRIPTION,
    MovementUpdate,
    apply_movement_delta,
    find_movement_balance,
    is_movement_balance,
    movement_delta,
)
from fluxplan.planning.reconciler import merge_obligations
from fluxplan.planning.recurrence import expand_recurrence

__all__ = [
    "GeneratedKind",
    "MOVEMENT_BALANCE_DESCRIPTION",
    "MovementUpdate",
    "GeneratorConfig",
    "MonthKey",
    "add_months",
    "apply_movement_delta",
    "balance_series",
    "card_invoice_id",
    "card_key",
    "days_in_month",
    "downsample",
    "expand_recurrence",
    "find_movement_balance",
    "generate_card_invoice_schedule",
    "generate_card_invoices",
    "generate_for_month",
    "generate_tithes",
    "generated_id",
    "is_generated_id",
    "is_movement_balance",
    "merge_obligations",
    "monthly_summary",
    "movement_delta",
    "resolve_role_category",
    "starting_balance",
    "tithe_id",
]
