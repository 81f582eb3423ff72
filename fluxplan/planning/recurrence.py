"""
Recurrence Expander

Turns one obligation template plus a repeat count into independent
obligations, one per month. Each occurrence gets its own random id and
can be edited, settled or deleted on its own afterwards.
"""

from typing import Any, Optional

from fluxplan.models.finance import Obligation, ObligationStatus
from fluxplan.planning.dates import add_months
from fluxplan.validation import EntryValidator, ValidationFailedError


def expand_recurrence(
    template: Any,
    repeat_count: int,
    validator: Optional[EntryValidator] = None,
) -> list[Obligation]:
    """
    Expand a template into repeat_count + 1 pending obligations.

    Occurrence i is due add_months(template.due_date, i): anchored on the
    template's date and clamped to the end of shorter months.

    Raises:
        ValidationFailedError: amount <= 0, empty category, invalid due
            date or a repeat count out of bounds.
    """
    validator = validator or EntryValidator()
    validated, result = validator.validate_obligation_template(template, repeat_count)
    if validated is None:
        raise ValidationFailedError(result)

    fields = validated.model_dump()
    anchor = validated.due_date
    return [
        Obligation(
            **{**fields, "due_date": add_months(anchor, i)},
            status=ObligationStatus.PENDING,
            is_generated=False,
        )
        for i in range(repeat_count + 1)
    ]
