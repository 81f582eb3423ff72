"""Tests for the movement balance kept for transfers between own accounts."""

from datetime import date

import pytest

from fluxplan.models.finance import EntryKind, ObligationStatus
from fluxplan.planning.generators import GeneratorConfig
from fluxplan.planning.movement import (
    MOVEMENT_BALANCE_DESCRIPTION,
    apply_movement_delta,
    find_movement_balance,
    is_movement_balance,
    movement_delta,
)

from factories import expense, income, manual_obligation


@pytest.fixture
def config() -> GeneratorConfig:
    return GeneratorConfig(
        movement_out_category_id="cat_move_out",
        movement_in_category_id="cat_move_in",
    )


def balance(amount: float, due: date = date(2024, 5, 3)):
    return manual_obligation(
        amount,
        due,
        kind=EntryKind.INCOME,
        category_id="cat_move_in",
        description=MOVEMENT_BALANCE_DESCRIPTION,
    )


class TestMovementDelta:
    """Tests for movement_delta."""

    def test_out_raises_and_in_lowers(self, config):
        delta, reference = movement_delta([
            expense(300, date(2024, 5, 3), "cat_move_out"),
            expense(40, date(2024, 5, 4), "cat_food"),
            income(120, date(2024, 5, 9), "cat_move_in"),
        ], config)
        assert delta == pytest.approx(180.0)
        assert reference == date(2024, 5, 9)

    def test_no_transfers(self, config):
        assert movement_delta([expense(40, date(2024, 5, 4))], config) == (0.0, None)

    def test_kind_must_match_category_side(self, config):
        """An income booked in the outgoing category is not a transfer."""
        delta, _ = movement_delta([income(50, date(2024, 5, 3), "cat_move_out")], config)
        assert delta == 0.0


class TestApplyMovementDelta:
    """Tests for apply_movement_delta."""

    def test_first_transfer_creates_pending_income(self, config):
        update = apply_movement_delta([], 300.0, date(2024, 5, 3), config)
        created = update.upsert
        assert update.removed_id is None
        assert created.amount == 300.0
        assert created.kind == EntryKind.INCOME
        assert created.category_id == "cat_move_in"
        assert created.due_date == date(2024, 5, 3)
        assert created.status == ObligationStatus.PENDING
        assert created.is_generated is False
        assert is_movement_balance(created, config)

    def test_existing_balance_is_adjusted_in_place(self, config):
        current = balance(300)
        update = apply_movement_delta([current], -120.0, date(2024, 5, 9), config)
        assert update.upsert.id == current.id
        assert update.upsert.amount == pytest.approx(180.0)
        assert update.upsert.due_date == current.due_date

    def test_balance_paid_back_is_removed(self, config):
        current = balance(300)
        update = apply_movement_delta([current], -299.995, date(2024, 5, 9), config)
        assert update.upsert is None
        assert update.removed_id == current.id

    def test_incoming_without_balance_is_ignored(self, config):
        assert apply_movement_delta([], -50.0, date(2024, 5, 9), config) == (None, None)

    def test_settled_balance_is_not_reused(self, config):
        old = balance(300).model_copy(update={"status": ObligationStatus.SETTLED})
        assert find_movement_balance([old], config) is None
        update = apply_movement_delta([old], 80.0, date(2024, 6, 1), config)
        assert update.upsert.id != old.id

    def test_without_incoming_category_nothing_happens(self, config):
        config = config.model_copy(update={"movement_in_category_id": None})
        assert apply_movement_delta([], 300.0, date(2024, 5, 3), config) == (None, None)

    def test_ordinary_obligations_are_not_the_balance(self, config):
        rent = manual_obligation(300, date(2024, 5, 3))
        assert not is_movement_balance(rent, config)
        assert find_movement_balance([rent], config) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
