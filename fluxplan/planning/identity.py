"""
Deterministic identities for generated obligations.

A generated obligation's id is a pure function of what it was generated
from: the generator kind, an optional grouping key and the month. The
same inputs always produce the same id, which is what lets a settled row
in the store suppress regeneration.

    gen_card_<card name>_<YYYY-MM>
    gen_tithe_<YYYY-MM>
"""

from enum import Enum
from typing import Optional

from fluxplan.planning.dates import MonthKey


GENERATED_PREFIX = "gen_"


class GeneratedKind(str, Enum):
    """Generators that produce synthetic obligations."""
    CARD_INVOICE = "card"
    TITHE = "tithe"


def generated_id(
    kind: GeneratedKind,
    month: MonthKey,
    grouping_key: Optional[str] = None,
) -> str:
    if grouping_key:
        return f"{GENERATED_PREFIX}{kind.value}_{grouping_key}_{month}"
    return f"{GENERATED_PREFIX}{kind.value}_{month}"


def card_invoice_id(card_name: str, month: MonthKey) -> str:
    return generated_id(GeneratedKind.CARD_INVOICE, month, card_name)


def tithe_id(month: MonthKey) -> str:
    return generated_id(GeneratedKind.TITHE, month)


def is_generated_id(obligation_id: str) -> bool:
    """True for ids produced by generated_id."""
    return any(
        obligation_id.startswith(f"{GENERATED_PREFIX}{kind.value}_")
        for kind in GeneratedKind
    )
