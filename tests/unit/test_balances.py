"""Unit tests for the pure balance transitions"""

import random
import pytest
from dataclasses import replace
from decimal import Decimal
from credit_ledger.domain import balances as ops
from credit_ledger.domain.exceptions import InsufficientBalance, InvalidAmount
from credit_ledger.domain.models import BalanceField, Balances, Direction, Transition


def funded(assigned="1000", available=None, debt="0") -> Balances:
    available = Decimal(available if available is not None else assigned)
    return Balances(
        assigned_credit=Decimal(assigned),
        available_balance=available,
        outstanding_debt=Decimal(debt),
        credit_limit=available,
        treasury_balance=Decimal("0.00"),
    )


def test_assign_initial_credit_sets_all_spending_fields():
    transition = ops.assign_initial_credit(Balances.zero(), Decimal("1000"))

    assert transition.balances.assigned_credit == Decimal("1000.00")
    assert transition.balances.available_balance == Decimal("1000.00")
    assert transition.balances.credit_limit == Decimal("1000.00")
    assert transition.balances.outstanding_debt == Decimal("0.00")
    assert [c.balance_field for c in transition.changes] == [BalanceField.ASSIGNED, BalanceField.AVAILABLE]


@pytest.mark.parametrize("amount", [0, -5, "0.001"])
def test_assign_initial_credit_rejects_non_positive(amount):
    with pytest.raises(InvalidAmount):
        ops.assign_initial_credit(Balances.zero(), amount)


def test_purchase_order_moves_available_into_debt():
    transition = ops.create_purchase_order(funded("1000"), Decimal("300"))

    assert transition.balances.available_balance == Decimal("700.00")
    assert transition.balances.outstanding_debt == Decimal("300.00")
    assert transition.balances.credit_limit == Decimal("700.00")
    assert len(transition.changes) == 2


def test_purchase_order_over_available_raises():
    with pytest.raises(InsufficientBalance) as exc_info:
        ops.create_purchase_order(funded("1000", available="100"), Decimal("100.01"))
    assert exc_info.value.available == Decimal("100")


def test_purchase_order_for_exact_available_is_allowed():
    transition = ops.create_purchase_order(funded("500"), Decimal("500"))
    assert transition.balances.available_balance == Decimal("0.00")


def test_payment_capped_at_outstanding_debt():
    after_po = ops.create_purchase_order(funded("1000"), Decimal("300")).balances

    transition = ops.approve_payment(after_po, Decimal("500"))

    assert transition.applied_amount == Decimal("300.00")
    assert transition.balances.outstanding_debt == Decimal("0.00")
    assert transition.balances.available_balance == Decimal("1000.00")
    assert transition.balances.credit_limit == Decimal("1000.00")
    assert all(change.amount == Decimal("300.00") for change in transition.changes)


def test_payment_never_pushes_available_above_assigned():
    # Debt includes interest, so paying it all would overshoot assigned
    state = funded("1000", available="0", debt="1050")

    transition = ops.approve_payment(state, Decimal("1050"))

    assert transition.balances.available_balance == Decimal("1000")
    assert transition.balances.outstanding_debt == Decimal("0")


def test_payment_without_debt_moves_nothing():
    transition = ops.approve_payment(funded("1000"), Decimal("50"))

    assert transition.applied_amount == Decimal("0")
    assert transition.changes == []
    assert transition.balances == funded("1000")


def test_interest_reduces_available_and_floors_at_zero():
    state = funded("1000", available="20", debt="980")

    transition = ops.apply_interest(state, Decimal("50"))

    assert transition.balances.outstanding_debt == Decimal("1030.00")
    assert transition.balances.available_balance == Decimal("0.00")
    assert transition.balances.credit_limit == Decimal("0.00")
    assert transition.balances.assigned_credit == Decimal("1000")


def test_non_positive_interest_is_a_no_op():
    state = funded("1000", available="700", debt="300")
    transition = ops.apply_interest(state, Decimal("0"))
    assert transition.balances == state
    assert transition.changes == []


def test_adjust_assigned_credit_increase():
    state = funded("1000", available="700", debt="300")

    transition = ops.adjust_assigned_credit(state, Decimal("1500"))

    assert transition.balances.assigned_credit == Decimal("1500.00")
    assert transition.balances.available_balance == Decimal("1200.00")
    assert transition.balances.credit_limit == Decimal("1200.00")
    assert transition.balances.outstanding_debt == Decimal("300")
    assert {c.direction for c in transition.changes} == {Direction.CREDIT}


def test_adjust_assigned_credit_decrease_clamps_available():
    state = funded("1000", available="200", debt="800")

    transition = ops.adjust_assigned_credit(state, Decimal("500"))

    assert transition.balances.available_balance == Decimal("0")
    assert transition.balances.outstanding_debt == Decimal("800")
    assert {c.direction for c in transition.changes} == {Direction.DEBIT}


def test_adjust_assigned_credit_rejects_negative():
    with pytest.raises(InvalidAmount):
        ops.adjust_assigned_credit(funded("1000"), Decimal("-1"))


def test_treasury_add_and_subtract_floor_at_zero():
    added = ops.update_treasury(Balances.zero(), Decimal("250"), ops.TREASURY_ADD).balances
    assert added.treasury_balance == Decimal("250.00")

    subtracted = ops.update_treasury(added, Decimal("400"), ops.TREASURY_SUBTRACT)
    assert subtracted.balances.treasury_balance == Decimal("0.00")
    assert subtracted.applied_amount == Decimal("250.00")


def test_treasury_unknown_operation():
    with pytest.raises(InvalidAmount):
        ops.update_treasury(Balances.zero(), Decimal("10"), "multiply")


def test_reconcile_rebuilds_from_history():
    drifted = funded("1000", available="900", debt="50")

    transition = ops.reconcile(drifted, Decimal("400"), Decimal("150"))

    assert transition.balances.outstanding_debt == Decimal("250.00")
    assert transition.balances.available_balance == Decimal("750.00")
    assert transition.balances.credit_limit == Decimal("750.00")
    assert len(transition.changes) == 2


def test_reconcile_clean_account_logs_nothing():
    state = funded("1000", available="600", debt="400")
    transition = ops.reconcile(state, Decimal("400"), Decimal("0"))
    assert transition.changes == []


def test_validate_clean_account():
    assert ops.validate(funded("1000", available="700", debt="300")) == []


def test_validate_reports_hard_violations():
    broken = replace(funded("1000", available="1200", debt="-5"), credit_limit=Decimal("10"))

    codes = {v.code for v in ops.validate(broken) if not v.soft}

    assert codes == {"available_exceeds_assigned", "debt_negative", "credit_limit_mismatch"}


def test_validate_uncollateralized_interest_is_soft():
    state = ops.apply_interest(funded("1000", available="20", debt="980"), Decimal("50")).balances

    violations = ops.validate(state)

    assert [v.code for v in violations] == ["debt_drift"]
    assert violations[0].soft is True


def random_step(rng: random.Random, state: Balances) -> Transition:
    """One purchase order, payment, rejection, interest, adjustment or treasury move"""
    kind = rng.choice(["po", "payment", "reject", "interest", "adjust", "treasury"])
    amount = Decimal(rng.randint(1, 60000)) / 100
    if kind == "po":
        return ops.create_purchase_order(state, min(amount, state.available_balance) or amount)
    if kind == "payment":
        return ops.approve_payment(state, amount)
    if kind == "reject":
        return ops.restore_spending_power(state, amount)
    if kind == "interest":
        return ops.apply_interest(state, amount / 10)
    if kind == "adjust":
        return ops.adjust_assigned_credit(state, Decimal(rng.randint(0, 300000)) / 100)
    return ops.update_treasury(state, amount, rng.choice([ops.TREASURY_ADD, ops.TREASURY_SUBTRACT]))


@pytest.mark.parametrize("seed", range(8))
def test_hard_invariants_hold_across_random_sequences(seed):
    rng = random.Random(seed)
    state = ops.assign_initial_credit(Balances.zero(), Decimal("1000")).balances

    for _ in range(200):
        before = state
        try:
            transition = random_step(rng, state)
        except InsufficientBalance:
            continue
        state = transition.balances

        hard = [v for v in ops.validate(state) if not v.soft]
        assert hard == [], f"step from {before} to {state}"
        assert state.credit_limit == state.available_balance
        assert Decimal("0") <= state.available_balance <= state.assigned_credit
        assert state.outstanding_debt >= 0
        assert all(change.amount >= 0 for change in transition.changes)
        assert all(change.balance_before == before.get(change.balance_field) for change in transition.changes)


def test_payment_never_credits_more_than_debt():
    rng = random.Random(42)
    for _ in range(100):
        debt = Decimal(rng.randint(0, 100000)) / 100
        state = funded("1000", available=str(max(Decimal("0"), 1000 - debt)), debt=str(debt))
        paid = Decimal(rng.randint(1, 200000)) / 100

        transition = ops.approve_payment(state, paid)

        assert transition.applied_amount == min(paid, debt)
        assert transition.balances.outstanding_debt == debt - transition.applied_amount
