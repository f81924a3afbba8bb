"""
Balance state machine - pure transitions over the four-balance model.

Every function takes the current Balances and returns a Transition holding
the new Balances and the BalanceChange records to log. Nothing here touches
the database; LedgerService wraps each call in a locked transaction.

Invariants kept by every transition:
- 0 <= available_balance <= assigned_credit
- outstanding_debt >= 0
- credit_limit == available_balance
"""

from dataclasses import replace
from decimal import Decimal
from typing import List

from credit_ledger.domain.exceptions import InsufficientBalance, InvalidAmount
from credit_ledger.domain.interest import ZERO, round_money, to_decimal
from credit_ledger.domain.models import (
    BalanceChange,
    BalanceField,
    Balances,
    Direction,
    InvariantViolation,
    Transition,
)

TREASURY_ADD = "add"
TREASURY_SUBTRACT = "subtract"


def positive_amount(amount, what: str = "Amount") -> Decimal:
    amount = round_money(to_decimal(amount))
    if amount <= 0:
        raise InvalidAmount(f"{what} must be greater than zero, got {amount}")
    return amount


def _change(balance_field: BalanceField, before: Decimal, after: Decimal, amount=None) -> BalanceChange:
    direction = Direction.CREDIT if after >= before else Direction.DEBIT
    if amount is None:
        amount = abs(after - before)
    return BalanceChange(balance_field, direction, amount, before, after)


def _with_available(balances: Balances, available: Decimal, **changes) -> Balances:
    """Set available_balance and keep credit_limit mirrored"""
    return replace(balances, available_balance=available, credit_limit=available, **changes)


def can_afford(balances: Balances, amount) -> bool:
    return balances.available_balance >= to_decimal(amount)


def assign_initial_credit(balances: Balances, amount) -> Transition:
    amount = positive_amount(amount, "Initial credit")
    new = _with_available(balances, amount, assigned_credit=amount, outstanding_debt=ZERO)
    return Transition(
        new,
        [
            _change(BalanceField.ASSIGNED, balances.assigned_credit, amount),
            _change(BalanceField.AVAILABLE, balances.available_balance, amount),
        ],
        amount,
    )


def create_purchase_order(balances: Balances, amount) -> Transition:
    amount = positive_amount(amount, "Purchase order amount")
    if not can_afford(balances, amount):
        raise InsufficientBalance(amount, balances.available_balance)

    available = balances.available_balance - amount
    debt = balances.outstanding_debt + amount
    new = _with_available(balances, available, outstanding_debt=debt)
    return Transition(
        new,
        [
            _change(BalanceField.AVAILABLE, balances.available_balance, available),
            _change(BalanceField.DEBT, balances.outstanding_debt, debt),
        ],
        amount,
    )


def restore_spending_power(balances: Balances, amount) -> Transition:
    """
    Give back `amount` of spending power and remove it from debt.

    Used by payment approval and purchase order rejection. The restored
    amount is capped at the outstanding debt and available is clamped to
    assigned credit. With no debt outstanding nothing moves and nothing is
    logged; the caller still records the payment as confirmed with an
    applied amount of zero.
    """
    amount = positive_amount(amount)
    actual = min(amount, balances.outstanding_debt)
    if actual <= 0:
        return Transition(balances, [], ZERO)

    available = min(balances.available_balance + actual, balances.assigned_credit)
    debt = max(ZERO, balances.outstanding_debt - actual)
    new = _with_available(balances, available, outstanding_debt=debt)
    return Transition(
        new,
        [
            BalanceChange(BalanceField.AVAILABLE, Direction.CREDIT, actual, balances.available_balance, available),
            BalanceChange(BalanceField.DEBT, Direction.DEBIT, actual, balances.outstanding_debt, debt),
        ],
        actual,
    )


def approve_payment(balances: Balances, amount) -> Transition:
    return restore_spending_power(balances, amount)


def apply_interest(balances: Balances, interest) -> Transition:
    """
    Add interest to debt and take the same amount out of spending power.

    Available balance floors at zero; once it does, debt keeps growing past
    assigned credit minus available.
    """
    interest = round_money(to_decimal(interest))
    if interest <= 0:
        return Transition(balances, [], ZERO)

    debt = balances.outstanding_debt + interest
    available = max(ZERO, balances.available_balance - interest)
    new = _with_available(balances, available, outstanding_debt=debt)
    return Transition(
        new,
        [
            _change(BalanceField.DEBT, balances.outstanding_debt, debt),
            _change(BalanceField.AVAILABLE, balances.available_balance, available),
        ],
        interest,
    )


def adjust_assigned_credit(balances: Balances, new_amount) -> Transition:
    new_amount = round_money(to_decimal(new_amount))
    if new_amount < 0:
        raise InvalidAmount(f"Assigned credit cannot be negative, got {new_amount}")

    delta = new_amount - balances.assigned_credit
    available = max(ZERO, balances.available_balance + delta)
    new = _with_available(balances, available, assigned_credit=new_amount)
    direction = Direction.CREDIT if delta >= 0 else Direction.DEBIT
    return Transition(
        new,
        [
            BalanceChange(BalanceField.ASSIGNED, direction, abs(delta), balances.assigned_credit, new_amount),
            BalanceChange(BalanceField.AVAILABLE, direction, abs(delta), balances.available_balance, available),
        ],
        delta,
    )


def update_treasury(balances: Balances, amount, operation: str) -> Transition:
    amount = positive_amount(amount, "Treasury amount")
    before = balances.treasury_balance
    if operation == TREASURY_ADD:
        after = before + amount
    elif operation == TREASURY_SUBTRACT:
        after = max(ZERO, before - amount)
    else:
        raise InvalidAmount(f"Treasury operation must be 'add' or 'subtract', got {operation!r}")

    return Transition(
        replace(balances, treasury_balance=after),
        [_change(BalanceField.TREASURY, before, after)],
        abs(after - before),
    )


def reconcile(balances: Balances, purchase_order_total, confirmed_payment_total) -> Transition:
    """Rebuild debt and available from history, overwriting current values"""
    debt = max(ZERO, round_money(to_decimal(purchase_order_total) - to_decimal(confirmed_payment_total)))
    available = min(max(ZERO, balances.assigned_credit - debt), balances.assigned_credit)
    new = _with_available(balances, available, outstanding_debt=debt)

    changes = []
    if debt != balances.outstanding_debt:
        changes.append(_change(BalanceField.DEBT, balances.outstanding_debt, debt))
    if available != balances.available_balance:
        changes.append(_change(BalanceField.AVAILABLE, balances.available_balance, available))
    return Transition(new, changes, debt)


def validate(balances: Balances, tolerance: Decimal = Decimal("0.01")) -> List[InvariantViolation]:
    """Report invariant violations without changing anything"""
    violations = []
    if balances.available_balance < 0:
        violations.append(InvariantViolation("available_negative", f"available_balance {balances.available_balance} < 0"))
    if balances.available_balance > balances.assigned_credit:
        violations.append(
            InvariantViolation(
                "available_exceeds_assigned",
                f"available_balance {balances.available_balance} > assigned_credit {balances.assigned_credit}",
            )
        )
    if balances.outstanding_debt < 0:
        violations.append(InvariantViolation("debt_negative", f"outstanding_debt {balances.outstanding_debt} < 0"))
    if balances.credit_limit != balances.available_balance:
        violations.append(
            InvariantViolation(
                "credit_limit_mismatch",
                f"credit_limit {balances.credit_limit} != available_balance {balances.available_balance}",
            )
        )

    expected_debt = balances.assigned_credit - balances.available_balance
    if abs(balances.outstanding_debt - expected_debt) > tolerance:
        # Expected after clamping (interest past zero available, credit cuts)
        violations.append(
            InvariantViolation(
                "debt_drift",
                f"outstanding_debt {balances.outstanding_debt} != assigned - available ({expected_debt})",
                soft=True,
            )
        )
    return violations
