"""Data access layer for ledger entities"""

from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from credit_ledger.domain.frequencies import parse_frequency
from credit_ledger.domain.models import BalanceChange, BalanceField, RateConfig, RiskTierSnapshot
from credit_ledger.domain.rates import DEFAULT_RATES, RateSettings
from credit_ledger.domain.status import PaymentStatus, PurchaseOrderStatus
from credit_ledger.infrastructure.database.models import (
    BalanceTransaction,
    InterestRateHistory,
    LedgerAccount,
    Payment,
    PurchaseOrder,
    RateSetting,
    RiskTier,
    SettingsState,
)

# Debt / assigned credit ratio above which an account counts as highly utilized
HIGH_UTILIZATION = Decimal("0.8")


class AccountRepository:
    """Repository for ledger accounts"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, name: str, created_by: Optional[str] = None, risk_tier_id: Optional[int] = None) -> LedgerAccount:
        zero = Decimal("0.00")
        account = LedgerAccount(
            name=name,
            created_by=created_by,
            risk_tier_id=risk_tier_id,
            is_active=True,
            assigned_credit=zero,
            available_balance=zero,
            outstanding_debt=zero,
            credit_limit=zero,
            treasury_balance=zero,
        )
        self.db.add(account)
        self.db.flush()
        return account

    def get(self, account_id: int) -> Optional[LedgerAccount]:
        return self.db.query(LedgerAccount).filter(LedgerAccount.id == account_id).first()

    def get_for_update(self, account_id: int) -> Optional[LedgerAccount]:
        """Fetch and row-lock the account for the rest of the transaction"""
        return (
            self.db.query(LedgerAccount)
            .filter(LedgerAccount.id == account_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def accrual_candidates(
        self,
        account_id: Optional[int] = None,
        tier_id: Optional[int] = None,
        high_utilization: bool = False,
    ) -> List[LedgerAccount]:
        """
        Active accounts carrying debt, oldest first.

        tier_id keeps accounts on that risk tier; high_utilization keeps
        accounts whose debt is over HIGH_UTILIZATION of assigned credit.
        """
        query = self.db.query(LedgerAccount).filter(
            LedgerAccount.outstanding_debt > 0,
            LedgerAccount.is_active.is_(True),
        )
        if account_id is not None:
            query = query.filter(LedgerAccount.id == account_id)
        if tier_id is not None:
            query = query.filter(LedgerAccount.risk_tier_id == tier_id)
        if high_utilization:
            query = query.filter(
                LedgerAccount.assigned_credit > 0,
                LedgerAccount.outstanding_debt > LedgerAccount.assigned_credit * HIGH_UTILIZATION,
            )
        return query.order_by(LedgerAccount.id).all()

    def count_on_tier(self, tier_id: int) -> int:
        return self.db.query(func.count(LedgerAccount.id)).filter(LedgerAccount.risk_tier_id == tier_id).scalar()


class TransactionLogRepository:
    """Append-only access to balance transactions"""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        account_id: int,
        change: BalanceChange,
        description: str,
        reference_kind: Optional[str] = None,
        reference_id: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> BalanceTransaction:
        entry = BalanceTransaction(
            account_id=account_id,
            balance_field=change.balance_field.value,
            direction=change.direction.value,
            amount=change.amount,
            balance_before=change.balance_before,
            balance_after=change.balance_after,
            reference_kind=reference_kind,
            reference_id=str(reference_id) if reference_id is not None else None,
            description=description,
            actor_id=actor_id,
        )
        self.db.add(entry)
        return entry

    def for_account(
        self,
        account_id: int,
        balance_field: Optional[BalanceField] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[BalanceTransaction]:
        """Most recent entries first"""
        query = self.db.query(BalanceTransaction).filter(BalanceTransaction.account_id == account_id)
        if balance_field is not None:
            query = query.filter(BalanceTransaction.balance_field == BalanceField(balance_field).value)
        return query.order_by(BalanceTransaction.id.desc()).offset(offset).limit(limit).all()

    def count_for_account(self, account_id: int) -> int:
        return self.db.query(func.count(BalanceTransaction.id)).filter(BalanceTransaction.account_id == account_id).scalar()

    def by_reference(self, reference_kind: str, reference_id: str) -> List[BalanceTransaction]:
        return (
            self.db.query(BalanceTransaction)
            .filter(
                BalanceTransaction.reference_kind == reference_kind,
                BalanceTransaction.reference_id == str(reference_id),
            )
            .order_by(BalanceTransaction.id)
            .all()
        )


class PurchaseOrderRepository:
    """Repository for purchase orders"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, account_id: int, reference: str, net_amount: Decimal) -> PurchaseOrder:
        po = PurchaseOrder(
            account_id=account_id,
            reference=reference,
            net_amount=net_amount,
            status=PurchaseOrderStatus.PENDING.value,
        )
        self.db.add(po)
        return po

    def get_by_reference(self, account_id: int, reference: str) -> Optional[PurchaseOrder]:
        return (
            self.db.query(PurchaseOrder)
            .filter(PurchaseOrder.account_id == account_id, PurchaseOrder.reference == reference)
            .first()
        )

    def outstanding_total(self, account_id: int) -> Decimal:
        """Sum of net amounts of every purchase order not rejected"""
        total = (
            self.db.query(func.coalesce(func.sum(PurchaseOrder.net_amount), 0))
            .filter(
                PurchaseOrder.account_id == account_id,
                PurchaseOrder.status != PurchaseOrderStatus.REJECTED.value,
            )
            .scalar()
        )
        return Decimal(str(total))


class PaymentRepository:
    """Repository for submitted payments"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, account_id: int, reference: str, amount: Decimal, status: PaymentStatus = PaymentStatus.PENDING) -> Payment:
        payment = Payment(account_id=account_id, reference=reference, amount=amount, status=status.value)
        self.db.add(payment)
        return payment

    def get_by_reference(self, account_id: int, reference: str) -> Optional[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.account_id == account_id, Payment.reference == reference)
            .first()
        )

    def confirmed_total(self, account_id: int) -> Decimal:
        """Sum of amounts actually credited by approved payments"""
        total = (
            self.db.query(func.coalesce(func.sum(Payment.applied_amount), 0))
            .filter(Payment.account_id == account_id, Payment.status == PaymentStatus.CONFIRMED.value)
            .scalar()
        )
        return Decimal(str(total))


def to_tier_snapshot(tier: RiskTier) -> RiskTierSnapshot:
    return RiskTierSnapshot(
        id=tier.id,
        name=tier.name,
        code=tier.code,
        interest_rate=tier.interest_rate,
        interest_frequency=parse_frequency(tier.interest_frequency) if tier.interest_frequency else None,
        credit_limit_multiplier=tier.credit_limit_multiplier,
        criteria=dict(tier.criteria or {}),
        is_active=tier.is_active,
    )


class RiskTierRepository:
    """Repository for risk tiers"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        name: str,
        code: str,
        interest_rate: Optional[Decimal],
        interest_frequency: Optional[str] = None,
        credit_limit_multiplier: Decimal = Decimal("1.00"),
        criteria: Optional[dict] = None,
        is_active: bool = True,
    ) -> RiskTier:
        tier = RiskTier(
            name=name,
            code=code,
            interest_rate=interest_rate,
            interest_frequency=parse_frequency(interest_frequency).value if interest_frequency else None,
            credit_limit_multiplier=credit_limit_multiplier,
            criteria=criteria,
            is_active=is_active,
        )
        self.db.add(tier)
        self.db.flush()
        return tier

    def get(self, tier_id: int) -> Optional[RiskTier]:
        return self.db.query(RiskTier).filter(RiskTier.id == tier_id).first()

    def get_by_code(self, code: str) -> Optional[RiskTier]:
        return self.db.query(RiskTier).filter(RiskTier.code == code).first()

    def list_tiers(self, include_inactive: bool = False) -> List[RiskTier]:
        query = self.db.query(RiskTier)
        if not include_inactive:
            query = query.filter(RiskTier.is_active.is_(True))
        return query.order_by(RiskTier.code).all()

    def delete(self, tier: RiskTier) -> None:
        self.db.delete(tier)
        self.db.flush()

    def snapshots(self) -> Dict[int, RiskTierSnapshot]:
        """All tiers keyed by id; the resolver ignores inactive ones"""
        return {tier.id: to_tier_snapshot(tier) for tier in self.db.query(RiskTier).all()}


class RateHistoryRepository:
    """Append-only rate change audit"""

    def __init__(self, db: Session):
        self.db = db

    def log_rate_change(
        self,
        rate_type: str,
        previous_rate: Decimal,
        new_rate: Decimal,
        reason: Optional[str] = None,
        effective_date: Optional[date] = None,
        changed_by: Optional[str] = None,
    ) -> InterestRateHistory:
        entry = InterestRateHistory(
            rate_type=rate_type,
            previous_rate=previous_rate,
            new_rate=new_rate,
            reason=reason,
            effective_date=effective_date or date.today(),
            changed_by=changed_by,
        )
        self.db.add(entry)
        return entry

    def history(self, rate_type: str, limit: int = 10) -> List[InterestRateHistory]:
        return (
            self.db.query(InterestRateHistory)
            .filter(InterestRateHistory.rate_type == rate_type)
            .order_by(InterestRateHistory.id.desc())
            .limit(limit)
            .all()
        )


class SettingsRepository:
    """Loads and stores RateSettings snapshots"""

    def __init__(self, db: Session):
        self.db = db

    def _state(self) -> Optional[SettingsState]:
        return self.db.query(SettingsState).filter(SettingsState.id == 1).first()

    def load(self) -> RateSettings:
        """Current snapshot; seeded defaults fill keys never stored"""
        state = self._state()
        if state is None:
            return RateSettings.defaults()

        rates = dict(DEFAULT_RATES)
        for row in self.db.query(RateSetting).all():
            rates[row.key] = RateConfig(
                rate=row.rate,
                frequency=parse_frequency(row.frequency),
                auto_apply=row.auto_apply,
                apply_day=row.apply_day,
            )
        return RateSettings(
            version=state.version,
            rates=MappingProxyType(rates),
            calculation_method=state.calculation_method,
            auto_accrual_enabled=state.auto_accrual_enabled,
        )

    def save(self, snapshot: RateSettings, changed_key: Optional[str] = None, updated_by: Optional[str] = None) -> None:
        """Persist a new snapshot's flags and, if given, one changed rate key"""
        state = self._state()
        if state is None:
            state = SettingsState(id=1)
            self.db.add(state)
        state.version = snapshot.version
        state.calculation_method = snapshot.calculation_method
        state.auto_accrual_enabled = snapshot.auto_accrual_enabled

        if changed_key is not None:
            config = snapshot.get(changed_key)
            row = self.db.query(RateSetting).filter(RateSetting.key == changed_key).first()
            if row is None:
                row = RateSetting(key=changed_key)
                self.db.add(row)
            row.rate = config.rate
            row.frequency = config.frequency.value
            row.auto_apply = config.auto_apply
            row.apply_day = config.apply_day
            row.updated_by = updated_by
