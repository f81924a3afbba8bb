"""/v1/accounts - account admin, credit, treasury and recovery endpoints"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from credit_ledger.api.dependencies import get_actor_id, get_ledger_service, get_rate_service, get_request_id
from credit_ledger.api.errors import http_error
from credit_ledger.api.v1.schemas import (
    AccountResponse,
    AccountStatusRequest,
    AffordabilityResponse,
    BalancesSchema,
    CreditAdjustmentRequest,
    CreditRequest,
    CustomRateRequest,
    ManualInterestRequest,
    OpenAccountRequest,
    OperationResponse,
    ResolvedRateSchema,
    RiskTierAssignmentRequest,
    TransactionItem,
    TransactionsResponse,
    TreasuryRequest,
    ValidationResponse,
    ViolationSchema,
)
from credit_ledger.domain.exceptions import LedgerError
from credit_ledger.domain.models import BalanceField, Balances
from credit_ledger.services.ledger import LedgerService
from credit_ledger.services.rates import RateConfigService

router = APIRouter()


def operation_response(account_id: int, balances: Balances, applied_amount: Optional[Decimal] = None) -> OperationResponse:
    return OperationResponse(
        account_id=account_id,
        balances=BalancesSchema(**balances.to_dict()),
        applied_amount=applied_amount,
    )


def _account_response(account, rate_service: RateConfigService) -> AccountResponse:
    resolved = rate_service.resolver().resolve(account)
    return AccountResponse(
        account_id=account.id,
        name=account.name,
        is_active=account.is_active,
        risk_tier_id=account.risk_tier_id,
        balances=BalancesSchema(**account.balances.to_dict()),
        interest_rate=ResolvedRateSchema(
            rate=resolved.rate,
            frequency=resolved.frequency.value,
            auto_apply=resolved.auto_apply,
            apply_day=resolved.apply_day,
            source=resolved.source.value,
        ),
        last_interest_applied_at=account.last_interest_applied_at,
        created_at=account.created_at,
    )


@router.post("/accounts", response_model=AccountResponse, status_code=201)
def open_account(
    body: OpenAccountRequest,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    rate_service: RateConfigService = Depends(get_rate_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """Open a ledger account with all balances at zero"""
    try:
        account = ledger.open_account(body.name, actor_id, body.risk_tier_id)
        return _account_response(account, rate_service)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: int,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    rate_service: RateConfigService = Depends(get_rate_service),
):
    """Balances plus the effective interest rate and where it comes from"""
    try:
        return _account_response(ledger.get_account(account_id), rate_service)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.put("/accounts/{account_id}/status", response_model=AccountResponse)
def set_account_status(
    account_id: int,
    body: AccountStatusRequest,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    rate_service: RateConfigService = Depends(get_rate_service),
):
    try:
        return _account_response(ledger.set_active(account_id, body.is_active), rate_service)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.put("/accounts/{account_id}/risk-tier", response_model=AccountResponse)
def assign_risk_tier(
    account_id: int,
    body: RiskTierAssignmentRequest,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    rate_service: RateConfigService = Depends(get_rate_service),
):
    try:
        return _account_response(ledger.assign_risk_tier(account_id, body.risk_tier_id), rate_service)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.post("/accounts/{account_id}/credit", response_model=OperationResponse)
def assign_initial_credit(
    account_id: int,
    body: CreditRequest,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    try:
        balances = ledger.assign_initial_credit(account_id, body.amount, actor_id)
        return operation_response(account_id, balances, balances.assigned_credit)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.post("/accounts/{account_id}/credit/adjust", response_model=OperationResponse)
def adjust_assigned_credit(
    account_id: int,
    body: CreditAdjustmentRequest,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    try:
        balances = ledger.adjust_assigned_credit(account_id, body.new_amount, body.reason, actor_id)
        return operation_response(account_id, balances)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.post("/accounts/{account_id}/treasury", response_model=OperationResponse)
def update_treasury(
    account_id: int,
    body: TreasuryRequest,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    try:
        balances = ledger.update_treasury(account_id, body.amount, body.operation, body.description, actor_id)
        return operation_response(account_id, balances)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.get("/accounts/{account_id}/can-afford", response_model=AffordabilityResponse)
def can_afford(
    account_id: int,
    request: Request,
    amount: Decimal = Query(..., description="Amount to check against available balance"),
    ledger: LedgerService = Depends(get_ledger_service),
):
    try:
        return AffordabilityResponse(account_id=account_id, amount=amount, can_afford=ledger.can_afford(account_id, amount))
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.post("/accounts/{account_id}/reconcile", response_model=OperationResponse)
def reconcile(
    account_id: int,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """Rebuild debt and available balance from purchase order and payment history"""
    try:
        return operation_response(account_id, ledger.reconcile(account_id, actor_id))
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.get("/accounts/{account_id}/validate", response_model=ValidationResponse)
def validate(
    account_id: int,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
):
    """
    Check balance invariants without changing anything.

    Soft violations (debt drift after clamping) do not make the account invalid.
    """
    try:
        violations = ledger.validate(account_id)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))

    return ValidationResponse(
        account_id=account_id,
        valid=not any(not v.soft for v in violations),
        violations=[ViolationSchema(code=v.code, message=v.message, soft=v.soft) for v in violations],
    )


@router.get("/accounts/{account_id}/transactions", response_model=TransactionsResponse)
def list_transactions(
    account_id: int,
    request: Request,
    balance_field: Optional[BalanceField] = Query(None, description="available | assigned | debt | treasury"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Transaction log for an account, newest first"""
    try:
        entries = ledger.transactions(account_id, balance_field, limit, offset)
        total = ledger.log.count_for_account(account_id)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))

    return TransactionsResponse(
        account_id=account_id,
        total=total,
        transactions=[
            TransactionItem(
                id=t.id,
                balance_field=t.balance_field,
                direction=t.direction,
                amount=t.amount,
                balance_before=t.balance_before,
                balance_after=t.balance_after,
                reference_kind=t.reference_kind,
                reference_id=t.reference_id,
                description=t.description,
                actor_id=t.actor_id,
                created_at=t.created_at,
            )
            for t in entries
        ],
    )


@router.post("/accounts/{account_id}/interest", response_model=OperationResponse)
def apply_manual_interest(
    account_id: int,
    body: ManualInterestRequest,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """Apply an explicit interest amount; does not move the accrual watermark"""
    try:
        applied = ledger.apply_interest(account_id, body.amount, body.reason, actor_id=actor_id)
        return operation_response(account_id, ledger.balances(account_id), applied)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.put("/accounts/{account_id}/interest-rate", response_model=AccountResponse)
def set_custom_rate(
    account_id: int,
    body: CustomRateRequest,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    rate_service: RateConfigService = Depends(get_rate_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """Set a per-business rate override, or clear it with a null rate"""
    if body.rate is not None and body.frequency is None:
        raise HTTPException(status_code=422, detail="frequency is required when setting a custom rate")
    try:
        account = ledger.set_custom_rate(account_id, body.rate, body.frequency, body.reason, actor_id)
        return _account_response(account, rate_service)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))
