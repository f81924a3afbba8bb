"""SQLAlchemy ORM models for the ledger tables"""

from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from credit_ledger.domain.exceptions import ImmutableRecordError
from credit_ledger.domain.frequencies import FREQUENCY_TABLE, Frequency, parse_frequency
from credit_ledger.domain.interest import annual_equivalent_rate
from credit_ledger.domain.models import Balances
from credit_ledger.utils.date_utils import utcnow

Base = declarative_base()

Money = Numeric(15, 2)
Rate = Numeric(7, 4)
ZERO = Decimal("0.00")


class RiskTier(Base):
    """Named rate/multiplier profile shared by many accounts"""

    __tablename__ = "risk_tier"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    code = Column(String(20), nullable=False, unique=True)
    interest_rate = Column(Rate, nullable=True)
    interest_frequency = Column(String(20), nullable=True)
    credit_limit_multiplier = Column(Numeric(4, 2), nullable=False, default=Decimal("1.00"))
    criteria = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    @property
    def frequency(self) -> Frequency:
        return parse_frequency(self.interest_frequency or Frequency.ANNUAL)

    def annual_equivalent_rate(self) -> Decimal:
        if self.interest_rate is None:
            return Decimal("0.00")
        return annual_equivalent_rate(self.interest_rate, self.frequency)

    def interest_description(self) -> str:
        if not self.interest_rate:
            return "No tier rate (system default applies)"
        info = FREQUENCY_TABLE[self.frequency]
        return f"{self.interest_rate}% {info.label.lower()} ({self.annual_equivalent_rate()}% per year)"


class LedgerAccount(Base):
    """Per-business balance state"""

    __tablename__ = "ledger_account"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    assigned_credit = Column(Money, nullable=False, default=ZERO)
    available_balance = Column(Money, nullable=False, default=ZERO)
    outstanding_debt = Column(Money, nullable=False, default=ZERO, index=True)
    credit_limit = Column(Money, nullable=False, default=ZERO)
    treasury_balance = Column(Money, nullable=False, default=ZERO)

    last_interest_applied_at = Column(DateTime(timezone=True), nullable=True)
    custom_rate = Column(Rate, nullable=True)
    custom_frequency = Column(String(20), nullable=True)
    risk_tier_id = Column(Integer, ForeignKey("risk_tier.id", ondelete="SET NULL"), nullable=True, index=True)

    created_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    risk_tier = relationship("RiskTier")
    transactions = relationship("BalanceTransaction", back_populates="account", order_by="BalanceTransaction.id")

    @property
    def balances(self) -> Balances:
        return Balances(
            assigned_credit=self.assigned_credit,
            available_balance=self.available_balance,
            outstanding_debt=self.outstanding_debt,
            credit_limit=self.credit_limit,
            treasury_balance=self.treasury_balance,
        )

    def apply_balances(self, balances: Balances) -> None:
        self.assigned_credit = balances.assigned_credit
        self.available_balance = balances.available_balance
        self.outstanding_debt = balances.outstanding_debt
        self.credit_limit = balances.credit_limit
        self.treasury_balance = balances.treasury_balance


class BalanceTransaction(Base):
    """Append-only log of balance movements"""

    __tablename__ = "balance_transaction"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("ledger_account.id"), nullable=False, index=True)
    balance_field = Column(String(20), nullable=False)
    direction = Column(String(20), nullable=False)
    amount = Column(Money, nullable=False)
    balance_before = Column(Money, nullable=False)
    balance_after = Column(Money, nullable=False)
    reference_kind = Column(String(50), nullable=True, index=True)
    reference_id = Column(String(100), nullable=True)
    description = Column(Text, nullable=False)
    actor_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    account = relationship("LedgerAccount", back_populates="transactions")


class PurchaseOrder(Base):
    """Spend recorded against an account; source of truth for reconciliation"""

    __tablename__ = "purchase_order"
    __table_args__ = (UniqueConstraint("account_id", "reference", name="uq_purchase_order_reference"),)

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("ledger_account.id"), nullable=False, index=True)
    reference = Column(String(100), nullable=False)
    net_amount = Column(Money, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)


class Payment(Base):
    """Repayment submitted by a business, pending admin review"""

    __tablename__ = "payment"
    __table_args__ = (UniqueConstraint("account_id", "reference", name="uq_payment_reference"),)

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("ledger_account.id"), nullable=False, index=True)
    reference = Column(String(100), nullable=False)
    amount = Column(Money, nullable=False)
    applied_amount = Column(Money, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    rejection_reason = Column(Text, nullable=True)
    reviewed_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)


class RateSetting(Base):
    """One system rate key (base_interest_rate, late_payment_rate, ...)"""

    __tablename__ = "rate_setting"

    key = Column(String(100), primary_key=True)
    rate = Column(Rate, nullable=False)
    frequency = Column(String(20), nullable=False, default="annual")
    auto_apply = Column(Boolean, nullable=False, default=False)
    apply_day = Column(Integer, nullable=False, default=1)
    updated_by = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class SettingsState(Base):
    """Singleton row holding snapshot version and global interest flags"""

    __tablename__ = "settings_state"

    id = Column(Integer, primary_key=True, default=1)
    version = Column(Integer, nullable=False, default=1)
    calculation_method = Column(String(20), nullable=False, default="simple")
    auto_accrual_enabled = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class InterestRateHistory(Base):
    """Append-only audit of rate changes"""

    __tablename__ = "interest_rate_history"

    id = Column(Integer, primary_key=True)
    rate_type = Column(String(100), nullable=False, index=True)
    previous_rate = Column(Rate, nullable=False)
    new_rate = Column(Rate, nullable=False)
    reason = Column(Text, nullable=True)
    effective_date = Column(Date, nullable=False)
    changed_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    def change_type(self) -> str:
        if self.new_rate > self.previous_rate:
            return "increase"
        if self.new_rate < self.previous_rate:
            return "decrease"
        return "no_change"

    def change_percentage(self) -> Decimal:
        if not self.previous_rate:
            return Decimal("0")
        return (self.new_rate - self.previous_rate) / self.previous_rate * 100


def _reject_mutation(mapper, connection, target):
    raise ImmutableRecordError(f"{type(target).__name__} {target.id} is append-only")


for _append_only in (BalanceTransaction, InterestRateHistory):
    event.listen(_append_only, "before_update", _reject_mutation)
    event.listen(_append_only, "before_delete", _reject_mutation)
