"""Domain models - pure Python dataclasses representing ledger entities"""

from dataclasses import dataclass, field, asdict
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from credit_ledger.domain.frequencies import Frequency


class BalanceField(str, Enum):
    """Which balance a log entry refers to"""

    AVAILABLE = "available"
    ASSIGNED = "assigned"
    DEBT = "debt"
    TREASURY = "treasury"


class Direction(str, Enum):
    """credit = balance went up, debit = went down; pending/rejected leave it as is"""

    CREDIT = "credit"
    DEBIT = "debit"
    PENDING = "pending"
    REJECTED = "rejected"


class RateSource(str, Enum):
    CUSTOM = "custom"
    RISK_TIER = "risk_tier"
    SYSTEM_DEFAULT = "system_default"


@dataclass(frozen=True)
class Balances:
    """The five balance columns of a ledger account"""

    assigned_credit: Decimal
    available_balance: Decimal
    outstanding_debt: Decimal
    credit_limit: Decimal
    treasury_balance: Decimal

    @classmethod
    def zero(cls) -> "Balances":
        z = Decimal("0.00")
        return cls(z, z, z, z, z)

    def get(self, balance_field: BalanceField) -> Decimal:
        return {
            BalanceField.ASSIGNED: self.assigned_credit,
            BalanceField.AVAILABLE: self.available_balance,
            BalanceField.DEBT: self.outstanding_debt,
            BalanceField.TREASURY: self.treasury_balance,
        }[balance_field]

    def to_dict(self) -> Dict[str, Decimal]:
        return asdict(self)


@dataclass(frozen=True)
class BalanceChange:
    """One log-worthy movement produced by a balance transition"""

    balance_field: BalanceField
    direction: Direction
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal


@dataclass(frozen=True)
class Transition:
    """Result of a pure balance operation: new state plus what to log"""

    balances: Balances
    changes: List[BalanceChange]
    applied_amount: Decimal = Decimal("0.00")


@dataclass(frozen=True)
class InvariantViolation:
    code: str
    message: str
    soft: bool = False


@dataclass(frozen=True)
class RateConfig:
    """System default configuration for one rate key"""

    rate: Decimal
    frequency: Frequency = Frequency.ANNUAL
    auto_apply: bool = False
    apply_day: int = 1


@dataclass(frozen=True)
class ResolvedRate:
    """Effective rate for an account and where it came from"""

    rate: Decimal
    frequency: Frequency
    auto_apply: bool
    apply_day: int
    source: RateSource


@dataclass(frozen=True)
class RiskTierSnapshot:
    """Read-only view of a risk tier"""

    id: int
    name: str
    code: str
    interest_rate: Optional[Decimal]
    interest_frequency: Optional[Frequency]
    credit_limit_multiplier: Decimal = Decimal("1.00")
    criteria: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = True


@dataclass
class AccrualItem:
    """Interest applied (or previewed) for one account"""

    account_id: int
    interest: Decimal
    rate: Decimal
    source: RateSource
    outstanding_debt: Decimal


@dataclass
class AccrualError:
    account_id: int
    error: str


@dataclass
class AccrualSummary:
    """Outcome of one accrual run"""

    frequency: Frequency
    processed_count: int = 0
    skipped_count: int = 0
    total_interest: Decimal = Decimal("0.00")
    errors: List[AccrualError] = field(default_factory=list)
    items: List[AccrualItem] = field(default_factory=list)
    dry_run: bool = False
    aborted: bool = False
