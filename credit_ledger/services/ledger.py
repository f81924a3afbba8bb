"""
Ledger service - atomic, logged balance operations on one account.

Each mutating method runs as a single unit of work:
    lock account row -> pure balance transition -> write log entries -> commit
Any failure rolls the whole unit back. Domain errors propagate unchanged;
storage errors are raised as PersistenceFailure chained to the SQLAlchemy error.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from credit_ledger.config import settings
from credit_ledger.domain import balances as ops
from credit_ledger.domain.exceptions import (
    AccountInactive,
    AccountNotFound,
    DuplicateReference,
    PersistenceFailure,
    RecordNotFound,
)
from credit_ledger.domain.frequencies import Frequency
from credit_ledger.domain.interest import ZERO, interest_for_periods, round_money, to_decimal
from credit_ledger.domain.models import (
    AccrualItem,
    BalanceChange,
    BalanceField,
    Balances,
    Direction,
    InvariantViolation,
    ResolvedRate,
    Transition,
)
from credit_ledger.domain.rates import build_rate_config
from credit_ledger.domain.scheduling import is_due
from credit_ledger.domain.status import (
    PaymentStatus,
    PurchaseOrderStatus,
    transition_payment,
    transition_purchase_order,
)
from credit_ledger.infrastructure.database.models import BalanceTransaction, LedgerAccount
from credit_ledger.infrastructure.database.repositories import (
    AccountRepository,
    PaymentRepository,
    PurchaseOrderRepository,
    RateHistoryRepository,
    RiskTierRepository,
    TransactionLogRepository,
)
from credit_ledger.infrastructure.observability.logging import log_ledger_operation
from credit_ledger.infrastructure.observability.metrics import record_ledger_operation


@contextmanager
def unit_of_work(db: Session, operation: str):
    """Commit on success; roll back and re-raise on any failure"""
    try:
        yield
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        record_ledger_operation(operation, e)
        logging.error(f"{operation} aborted by storage: {e}")
        raise PersistenceFailure(f"{operation} aborted: {e}") from e
    except Exception as e:
        db.rollback()
        record_ledger_operation(operation, e)
        raise
    record_ledger_operation(operation)


class LedgerService:
    """Balance operations for ledger accounts"""

    def __init__(self, db: Session):
        self.db = db
        self.accounts = AccountRepository(db)
        self.log = TransactionLogRepository(db)
        self.purchase_orders = PurchaseOrderRepository(db)
        self.payments = PaymentRepository(db)
        self.tiers = RiskTierRepository(db)
        self.rate_history = RateHistoryRepository(db)

    # ------------------------------------------------------------------
    # Unit-of-work plumbing
    # ------------------------------------------------------------------

    def _atomic(self, operation: str):
        return unit_of_work(self.db, operation)

    def _locked(self, account_id: int, require_active: bool = True) -> LedgerAccount:
        account = self.accounts.get_for_update(account_id)
        if account is None:
            raise AccountNotFound(account_id)
        if require_active and not account.is_active:
            raise AccountInactive(account_id)
        return account

    def _commit_transition(
        self,
        account: LedgerAccount,
        transition: Transition,
        description: str,
        reference_kind: str,
        reference_id=None,
        actor_id: Optional[str] = None,
    ) -> None:
        account.apply_balances(transition.balances)
        for change in transition.changes:
            self.log.append(account.id, change, description, reference_kind, reference_id, actor_id)
        self.db.flush()

    def _log_marker(
        self,
        account: LedgerAccount,
        direction: Direction,
        amount: Decimal,
        description: str,
        reference_kind: str,
        reference_id,
        actor_id: Optional[str] = None,
    ) -> None:
        """Log entry that records an event without moving any balance"""
        debt = account.outstanding_debt
        change = BalanceChange(BalanceField.DEBT, direction, amount, debt, debt)
        self.log.append(account.id, change, description, reference_kind, reference_id, actor_id)
        self.db.flush()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_account(self, account_id: int) -> LedgerAccount:
        account = self.accounts.get(account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account

    def balances(self, account_id: int) -> Balances:
        return self.get_account(account_id).balances

    def can_afford(self, account_id: int, amount) -> bool:
        return ops.can_afford(self.balances(account_id), amount)

    def transactions(
        self,
        account_id: int,
        balance_field: Optional[BalanceField] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[BalanceTransaction]:
        self.get_account(account_id)
        return self.log.for_account(account_id, balance_field, limit, offset)

    def validate(self, account_id: int) -> List[InvariantViolation]:
        return ops.validate(self.balances(account_id), settings.balance_tolerance)

    # ------------------------------------------------------------------
    # Account lifecycle
    # ------------------------------------------------------------------

    def open_account(self, name: str, actor_id: Optional[str] = None, risk_tier_id: Optional[int] = None) -> LedgerAccount:
        """Create an account with every balance at zero"""
        with self._atomic("open_account"):
            if risk_tier_id is not None and self.tiers.get(risk_tier_id) is None:
                raise RecordNotFound(f"Risk tier {risk_tier_id} not found")
            account = self.accounts.create(name, created_by=actor_id, risk_tier_id=risk_tier_id)
        logging.info("Ledger account opened", extra={"account_id": account.id, "actor_id": actor_id})
        return account

    def set_active(self, account_id: int, is_active: bool) -> LedgerAccount:
        with self._atomic("set_active"):
            account = self._locked(account_id, require_active=False)
            account.is_active = is_active
        return account

    def assign_risk_tier(self, account_id: int, risk_tier_id: Optional[int]) -> LedgerAccount:
        with self._atomic("assign_risk_tier"):
            account = self._locked(account_id)
            if risk_tier_id is not None and self.tiers.get(risk_tier_id) is None:
                raise RecordNotFound(f"Risk tier {risk_tier_id} not found")
            account.risk_tier_id = risk_tier_id
        return account

    def set_custom_rate(
        self,
        account_id: int,
        rate,
        frequency=None,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> LedgerAccount:
        """Set (or clear, with rate=None) the per-account rate override"""
        with self._atomic("set_custom_rate"):
            account = self._locked(account_id)
            previous = account.custom_rate or ZERO

            if rate is None:
                account.custom_rate = None
                account.custom_frequency = None
                new_rate = ZERO
                note = "cleared"
            else:
                config = build_rate_config(rate, frequency)
                account.custom_rate = config.rate
                account.custom_frequency = config.frequency.value
                new_rate = config.rate
                note = f"Frequency: {config.frequency.value}"

            self.rate_history.log_rate_change(
                f"business_{account.id}_custom",
                previous,
                new_rate,
                f"{reason or 'Custom rate change'} ({note})",
                changed_by=actor_id,
            )
        return account

    # ------------------------------------------------------------------
    # Credit
    # ------------------------------------------------------------------

    def assign_initial_credit(self, account_id: int, amount, actor_id: Optional[str] = None) -> Balances:
        with self._atomic("assign_initial_credit"):
            account = self._locked(account_id)
            transition = ops.assign_initial_credit(account.balances, amount)
            self._commit_transition(
                account,
                transition,
                f"Initial credit assigned: {transition.applied_amount}",
                "credit_assignment",
                account.id,
                actor_id,
            )
        log_ledger_operation("assign_initial_credit", account_id, transition.balances, transition.applied_amount, actor_id=actor_id)
        return transition.balances

    def adjust_assigned_credit(self, account_id: int, new_amount, reason: str, actor_id: Optional[str] = None) -> Balances:
        with self._atomic("adjust_assigned_credit"):
            account = self._locked(account_id)
            previous = account.assigned_credit
            transition = ops.adjust_assigned_credit(account.balances, new_amount)
            self._commit_transition(
                account,
                transition,
                f"Assigned credit adjusted from {previous} to {transition.balances.assigned_credit}: {reason}",
                "credit_adjustment",
                account.id,
                actor_id,
            )
        log_ledger_operation("adjust_assigned_credit", account_id, transition.balances, transition.applied_amount, actor_id=actor_id)
        return transition.balances

    def update_treasury(
        self,
        account_id: int,
        amount,
        operation: str,
        description: str,
        actor_id: Optional[str] = None,
    ) -> Balances:
        with self._atomic("update_treasury"):
            account = self._locked(account_id)
            transition = ops.update_treasury(account.balances, amount, operation)
            self._commit_transition(
                account,
                transition,
                f"Treasury {operation}: {description}",
                "treasury",
                account.id,
                actor_id,
            )
        log_ledger_operation("update_treasury", account_id, transition.balances, transition.applied_amount, actor_id=actor_id)
        return transition.balances

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    def create_purchase_order(self, account_id: int, amount, po_ref: str, actor_id: Optional[str] = None) -> Balances:
        """
        Spend available balance on a purchase order.

        Raises:
            InsufficientBalance: amount exceeds available balance
            DuplicateReference: po_ref already recorded on this account
        """
        with self._atomic("create_purchase_order"):
            account = self._locked(account_id)
            if self.purchase_orders.get_by_reference(account.id, po_ref) is not None:
                raise DuplicateReference(f"Purchase order {po_ref} already exists")

            transition = ops.create_purchase_order(account.balances, amount)
            self.purchase_orders.create(account.id, po_ref, transition.applied_amount)
            self._commit_transition(
                account,
                transition,
                f"Purchase order {po_ref} created",
                "purchase_order",
                po_ref,
                actor_id,
            )
        log_ledger_operation("create_purchase_order", account_id, transition.balances, transition.applied_amount, po_ref, actor_id)
        return transition.balances

    def approve_purchase_order(self, account_id: int, po_ref: str, actor_id: Optional[str] = None) -> None:
        """Status change only; the spend was taken at creation"""
        with self._atomic("approve_purchase_order"):
            account = self._locked(account_id)
            po = self._purchase_order(account.id, po_ref)
            po.status = transition_purchase_order(po.status, PurchaseOrderStatus.APPROVED).value

    def reject_purchase_order(self, account_id: int, po_ref: str, reason: str, actor_id: Optional[str] = None) -> Balances:
        """Reject a pending purchase order and hand its amount back"""
        with self._atomic("reject_purchase_order"):
            account = self._locked(account_id)
            po = self._purchase_order(account.id, po_ref)
            po.status = transition_purchase_order(po.status, PurchaseOrderStatus.REJECTED).value

            transition = ops.restore_spending_power(account.balances, po.net_amount)
            self._commit_transition(
                account,
                transition,
                f"Spending power restored due to PO rejection: {reason}",
                "po_rejection",
                po_ref,
                actor_id,
            )
        log_ledger_operation("reject_purchase_order", account_id, transition.balances, transition.applied_amount, po_ref, actor_id)
        return transition.balances

    def _purchase_order(self, account_id: int, po_ref: str):
        po = self.purchase_orders.get_by_reference(account_id, po_ref)
        if po is None:
            raise RecordNotFound(f"Purchase order {po_ref} not found")
        return po

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def submit_payment(self, account_id: int, amount, payment_ref: str, actor_id: Optional[str] = None) -> Balances:
        """Record a payment awaiting review; balances do not move"""
        with self._atomic("submit_payment"):
            account = self._locked(account_id)
            amount = ops.positive_amount(amount, "Payment amount")
            if self.payments.get_by_reference(account.id, payment_ref) is not None:
                raise DuplicateReference(f"Payment {payment_ref} already exists")

            self.payments.create(account.id, payment_ref, amount)
            self._log_marker(
                account,
                Direction.PENDING,
                amount,
                f"Payment {payment_ref} submitted, awaiting approval",
                "payment",
                payment_ref,
                actor_id,
            )
            result = account.balances
        log_ledger_operation("submit_payment", account_id, result, amount, payment_ref, actor_id)
        return result

    def approve_payment(self, account_id: int, amount, payment_ref: str, actor_id: Optional[str] = None) -> Balances:
        """
        Credit a payment against debt.

        The credited amount is min(amount, outstanding_debt); any excess is
        dropped. amount=None uses the submitted payment's amount.
        """
        with self._atomic("approve_payment"):
            account = self._locked(account_id)
            payment = self.payments.get_by_reference(account.id, payment_ref)
            if amount is None:
                if payment is None:
                    raise RecordNotFound(f"Payment {payment_ref} not found")
                amount = payment.amount

            transition = ops.approve_payment(account.balances, amount)

            if payment is None:
                payment = self.payments.create(account.id, payment_ref, round_money(to_decimal(amount)), PaymentStatus.CONFIRMED)
            else:
                payment.status = transition_payment(payment.status, PaymentStatus.CONFIRMED).value
            payment.applied_amount = transition.applied_amount
            payment.reviewed_by = actor_id

            self._commit_transition(
                account,
                transition,
                f"Payment {payment_ref} approved",
                "payment",
                payment_ref,
                actor_id,
            )
        log_ledger_operation("approve_payment", account_id, transition.balances, transition.applied_amount, payment_ref, actor_id)
        return transition.balances

    def reject_payment(
        self,
        account_id: int,
        amount,
        payment_ref: str,
        reason: str,
        actor_id: Optional[str] = None,
    ) -> Balances:
        """Mark a payment rejected; balances do not move"""
        with self._atomic("reject_payment"):
            account = self._locked(account_id)
            payment = self.payments.get_by_reference(account.id, payment_ref)
            if amount is None:
                if payment is None:
                    raise RecordNotFound(f"Payment {payment_ref} not found")
                amount = payment.amount
            amount = ops.positive_amount(amount, "Payment amount")

            if payment is None:
                payment = self.payments.create(account.id, payment_ref, amount, PaymentStatus.REJECTED)
            else:
                payment.status = transition_payment(payment.status, PaymentStatus.REJECTED).value
            payment.rejection_reason = reason
            payment.reviewed_by = actor_id

            self._log_marker(
                account,
                Direction.REJECTED,
                amount,
                f"Payment {payment_ref} rejected: {reason}",
                "payment",
                payment_ref,
                actor_id,
            )
            result = account.balances
        log_ledger_operation("reject_payment", account_id, result, amount, payment_ref, actor_id)
        return result

    # ------------------------------------------------------------------
    # Interest
    # ------------------------------------------------------------------

    def apply_interest(
        self,
        account_id: int,
        interest_amount,
        reason: str,
        applied_at: Optional[datetime] = None,
        actor_id: Optional[str] = None,
    ) -> Decimal:
        """
        Add interest to debt and reduce spending power by the same amount.

        Returns the interest applied (0 for a non-positive amount, in which
        case nothing is written). When applied_at is given the account's
        last_interest_applied_at watermark moves in the same transaction.
        """
        if round_money(to_decimal(interest_amount)) <= 0:
            return ZERO

        with self._atomic("apply_interest"):
            account = self._locked(account_id)
            transition = ops.apply_interest(account.balances, interest_amount)
            self._commit_transition(
                account,
                transition,
                f"Interest applied: {reason}",
                "interest",
                account.id,
                actor_id,
            )
            if applied_at is not None:
                account.last_interest_applied_at = applied_at
        log_ledger_operation("apply_interest", account_id, transition.balances, transition.applied_amount, actor_id=actor_id)
        return transition.applied_amount

    def accrue_period(
        self,
        account_id: int,
        frequency: Frequency,
        resolve: Callable[[LedgerAccount], ResolvedRate],
        method: str,
        now: datetime,
        reason: str,
        force: bool = False,
        dry_run: bool = False,
        require_auto_apply: bool = False,
    ) -> Optional[AccrualItem]:
        """
        Charge one period of interest if the account is still due.

        Rate, due check, the debt interest is computed on and the watermark
        move all happen under the account row lock, so two overlapping runs
        charge a given period once. Returns None when the account is skipped.
        """
        with self._atomic("accrue_period"):
            account = self._locked(account_id, require_active=False)
            item = self._accrual_item(account, frequency, resolve(account), method, now, force, require_auto_apply)
            if item is None or dry_run:
                return item

            transition = ops.apply_interest(account.balances, item.interest)
            self._commit_transition(
                account,
                transition,
                f"Interest applied: {reason}",
                "interest",
                account.id,
            )
            account.last_interest_applied_at = now
        log_ledger_operation("accrue_period", account_id, transition.balances, transition.applied_amount)
        return item

    @staticmethod
    def _accrual_item(
        account: LedgerAccount,
        frequency: Frequency,
        config: ResolvedRate,
        method: str,
        now: datetime,
        force: bool,
        require_auto_apply: bool,
    ) -> Optional[AccrualItem]:
        if not account.is_active or account.outstanding_debt <= 0:
            return None
        if config.frequency is not frequency or config.rate <= 0:
            return None
        if require_auto_apply and not config.auto_apply:
            return None

        watermark = account.last_interest_applied_at or account.created_at
        if not force and not is_due(watermark, config.frequency, now, config.apply_day):
            return None

        interest = interest_for_periods(method, account.outstanding_debt, config.rate, 1)
        if interest <= 0:
            return None
        return AccrualItem(
            account_id=account.id,
            interest=interest,
            rate=config.rate,
            source=config.source,
            outstanding_debt=account.outstanding_debt,
        )

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def reconcile(self, account_id: int, actor_id: Optional[str] = None) -> Balances:
        """
        Recompute debt and available balance from purchase order and payment
        history, overwriting the stored values.
        """
        with self._atomic("reconcile"):
            account = self._locked(account_id, require_active=False)
            po_total = self.purchase_orders.outstanding_total(account.id)
            paid_total = self.payments.confirmed_total(account.id)
            transition = ops.reconcile(account.balances, po_total, paid_total)
            self._commit_transition(
                account,
                transition,
                f"Reconciliation: purchase orders {po_total}, confirmed payments {paid_total}",
                "reconciliation",
                account.id,
                actor_id,
            )
        if transition.changes:
            logging.warning(
                "Reconciliation corrected balance drift",
                extra={"account_id": account_id, "changes": len(transition.changes)},
            )
        log_ledger_operation("reconcile", account_id, transition.balances, actor_id=actor_id)
        return transition.balances
