"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# --- Requests -------------------------------------------------------------


class OpenAccountRequest(BaseModel):
    """Request body for POST /v1/accounts"""

    name: str = Field(..., min_length=1, description="Business name")
    risk_tier_id: Optional[int] = None


class AccountStatusRequest(BaseModel):
    is_active: bool


class RiskTierAssignmentRequest(BaseModel):
    risk_tier_id: Optional[int] = Field(None, description="Tier id, or null to detach")


class CreditRequest(BaseModel):
    """Request body for POST /v1/accounts/{id}/credit"""

    amount: Decimal = Field(..., description="Credit to grant")


class CreditAdjustmentRequest(BaseModel):
    new_amount: Decimal = Field(..., description="New assigned credit")
    reason: str = Field(..., min_length=1)


class TreasuryRequest(BaseModel):
    amount: Decimal
    operation: Literal["add", "subtract"]
    description: str = ""


class PurchaseOrderRequest(BaseModel):
    """Request body for POST /v1/accounts/{id}/purchase-orders"""

    po_ref: str = Field(..., min_length=1, max_length=100)
    amount: Decimal


class RejectionRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class PaymentRequest(BaseModel):
    """Request body for POST /v1/accounts/{id}/payments"""

    payment_ref: str = Field(..., min_length=1, max_length=100)
    amount: Decimal


class PaymentApprovalRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, description="Defaults to the submitted amount")


class PaymentRejectionRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    amount: Optional[Decimal] = None


class ManualInterestRequest(BaseModel):
    amount: Decimal
    reason: str = "Manual interest application"


class CustomRateRequest(BaseModel):
    """Null rate clears the override"""

    rate: Optional[Decimal] = None
    frequency: Optional[str] = None
    reason: Optional[str] = None


class AccrualRequest(BaseModel):
    """Request body for POST /v1/interest/accrual"""

    frequency: str
    account_id: Optional[int] = None
    apply_to: Literal["all", "specific_tier", "high_utilization"] = "all"
    tier_id: Optional[int] = None
    force: bool = False
    dry_run: bool = False
    reason: Optional[str] = None


class RateConfigRequest(BaseModel):
    """Request body for PUT /v1/interest/settings/{key}"""

    rate: Decimal
    frequency: str = "annual"
    auto_apply: bool = False
    apply_day: int = 1
    reason: str = Field(..., min_length=1)
    effective_date: Optional[date] = None


class GlobalSettingsRequest(BaseModel):
    calculation_method: Optional[Literal["simple", "compound"]] = None
    auto_accrual_enabled: Optional[bool] = None


class RiskTierRequest(BaseModel):
    name: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1, max_length=20)
    interest_rate: Optional[Decimal] = None
    interest_frequency: Optional[str] = None
    credit_limit_multiplier: Decimal = Decimal("1.00")
    criteria: Optional[dict] = None
    is_active: bool = True


class RiskTierUpdateRequest(BaseModel):
    """Partial update; omitted fields keep their value"""

    name: Optional[str] = Field(None, min_length=1)
    code: Optional[str] = Field(None, min_length=1, max_length=20)
    interest_rate: Optional[Decimal] = None
    interest_frequency: Optional[str] = None
    credit_limit_multiplier: Optional[Decimal] = None
    criteria: Optional[dict] = None
    is_active: Optional[bool] = None


# --- Responses ------------------------------------------------------------


class BalancesSchema(BaseModel):
    """The five balances of an account"""

    assigned_credit: Decimal
    available_balance: Decimal
    outstanding_debt: Decimal
    credit_limit: Decimal
    treasury_balance: Decimal


class ResolvedRateSchema(BaseModel):
    rate: Decimal
    frequency: str
    auto_apply: bool
    apply_day: int
    source: str


class AccountResponse(BaseModel):
    """Response for GET /v1/accounts/{id}"""

    account_id: int
    name: str
    is_active: bool
    risk_tier_id: Optional[int] = None
    balances: BalancesSchema
    interest_rate: ResolvedRateSchema
    last_interest_applied_at: Optional[datetime] = None
    created_at: datetime


class OperationResponse(BaseModel):
    """Balances after a mutating operation"""

    account_id: int
    balances: BalancesSchema
    applied_amount: Optional[Decimal] = None


class AffordabilityResponse(BaseModel):
    account_id: int
    amount: Decimal
    can_afford: bool


class ViolationSchema(BaseModel):
    code: str
    message: str
    soft: bool


class ValidationResponse(BaseModel):
    """Response for GET /v1/accounts/{id}/validate"""

    account_id: int
    valid: bool
    violations: List[ViolationSchema]


class TransactionItem(BaseModel):
    """Single transaction log entry"""

    id: int
    balance_field: str
    direction: str
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    reference_kind: Optional[str] = None
    reference_id: Optional[str] = None
    description: str
    actor_id: Optional[str] = None
    created_at: datetime


class TransactionsResponse(BaseModel):
    account_id: int
    total: int
    transactions: List[TransactionItem]


class AccrualItemSchema(BaseModel):
    account_id: int
    interest: Decimal
    rate: Decimal
    source: str
    outstanding_debt: Decimal


class AccrualErrorSchema(BaseModel):
    account_id: int
    error: str


class AccrualSummaryResponse(BaseModel):
    """Response for POST /v1/interest/accrual"""

    frequency: str
    processed_count: int
    skipped_count: int
    total_interest: Decimal
    dry_run: bool
    aborted: bool
    items: List[AccrualItemSchema]
    errors: List[AccrualErrorSchema]


class ScheduleItem(BaseModel):
    frequency: str
    schedule: str
    next_run_at: datetime
    accounts_affected: int
    accounts_due: int


class RateConfigSchema(BaseModel):
    rate: Decimal
    frequency: str
    auto_apply: bool
    apply_day: int
    annual_equivalent: Decimal


class SettingsResponse(BaseModel):
    """Response for GET /v1/interest/settings"""

    version: int
    calculation_method: str
    auto_accrual_enabled: bool
    rates: Dict[str, RateConfigSchema]


class RateHistoryItem(BaseModel):
    id: int
    rate_type: str
    previous_rate: Decimal
    new_rate: Decimal
    change_type: str
    change_percentage: Decimal
    reason: Optional[str] = None
    effective_date: date
    changed_by: Optional[str] = None
    created_at: datetime


class RateHistoryResponse(BaseModel):
    rate_type: str
    history: List[RateHistoryItem]


class FrequencyItem(BaseModel):
    frequency: str
    label: str
    description: str
    periods_per_year: int
    average_days: Decimal


class FrequenciesResponse(BaseModel):
    """Response for GET /v1/interest/frequencies"""

    frequencies: List[FrequencyItem]
    comparison: Dict[str, dict]


class RiskTierResponse(BaseModel):
    id: int
    name: str
    code: str
    interest_rate: Optional[Decimal] = None
    interest_frequency: str
    credit_limit_multiplier: Decimal
    is_active: bool
    interest_description: str
    annual_equivalent_rate: Decimal
    accounts_count: Optional[int] = None


class RiskTiersResponse(BaseModel):
    risk_tiers: List[RiskTierResponse]
