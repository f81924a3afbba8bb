"""/v1/accounts/{id}/purchase-orders and /payments - spend and repayment endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from credit_ledger.api.dependencies import get_actor_id, get_ledger_service, get_request_id
from credit_ledger.api.errors import http_error
from credit_ledger.api.v1.accounts import operation_response
from credit_ledger.api.v1.schemas import (
    OperationResponse,
    PaymentApprovalRequest,
    PaymentRejectionRequest,
    PaymentRequest,
    PurchaseOrderRequest,
    RejectionRequest,
)
from credit_ledger.domain.exceptions import LedgerError
from credit_ledger.services.ledger import LedgerService

router = APIRouter()


@router.post("/accounts/{account_id}/purchase-orders", response_model=OperationResponse, status_code=201)
def create_purchase_order(
    account_id: int,
    body: PurchaseOrderRequest,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """
    Spend available balance on a purchase order.

    Flow:
    1. Affordability pre-check (fast 422 without taking the row lock)
    2. Locked create: re-checks the balance, records the PO, logs two entries
    """
    request_id = get_request_id(request)
    try:
        if not ledger.can_afford(account_id, body.amount):
            available = ledger.balances(account_id).available_balance
            logging.warning(
                "Purchase order exceeds available balance",
                extra={"request_id": request_id, "account_id": account_id, "po_ref": body.po_ref},
            )
            raise HTTPException(
                status_code=422,
                detail=f"Insufficient available balance: requested {body.amount}, available {available}",
            )

        balances = ledger.create_purchase_order(account_id, body.amount, body.po_ref, actor_id)
        return operation_response(account_id, balances, body.amount)
    except LedgerError as e:
        raise http_error(e, request_id)


@router.post("/accounts/{account_id}/purchase-orders/{po_ref}/approve", status_code=204)
def approve_purchase_order(
    account_id: int,
    po_ref: str,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    try:
        ledger.approve_purchase_order(account_id, po_ref, actor_id)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.post("/accounts/{account_id}/purchase-orders/{po_ref}/reject", response_model=OperationResponse)
def reject_purchase_order(
    account_id: int,
    po_ref: str,
    body: RejectionRequest,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """Reject a pending purchase order and restore its spending power"""
    try:
        balances = ledger.reject_purchase_order(account_id, po_ref, body.reason, actor_id)
        return operation_response(account_id, balances)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.post("/accounts/{account_id}/payments", response_model=OperationResponse, status_code=201)
def submit_payment(
    account_id: int,
    body: PaymentRequest,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """Record a payment for admin review; balances are unchanged until approval"""
    try:
        balances = ledger.submit_payment(account_id, body.amount, body.payment_ref, actor_id)
        return operation_response(account_id, balances)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.post("/accounts/{account_id}/payments/{payment_ref}/approve", response_model=OperationResponse)
def approve_payment(
    account_id: int,
    payment_ref: str,
    request: Request,
    body: Optional[PaymentApprovalRequest] = None,
    ledger: LedgerService = Depends(get_ledger_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """Credit the payment against debt, capped at the outstanding amount"""
    amount = body.amount if body is not None else None
    try:
        before = ledger.balances(account_id).outstanding_debt
        balances = ledger.approve_payment(account_id, amount, payment_ref, actor_id)
        return operation_response(account_id, balances, before - balances.outstanding_debt)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.post("/accounts/{account_id}/payments/{payment_ref}/reject", response_model=OperationResponse)
def reject_payment(
    account_id: int,
    payment_ref: str,
    body: PaymentRejectionRequest,
    request: Request,
    ledger: LedgerService = Depends(get_ledger_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    try:
        balances = ledger.reject_payment(account_id, body.amount, payment_ref, body.reason, actor_id)
        return operation_response(account_id, balances)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))
