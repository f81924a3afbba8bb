"""Map ledger domain errors onto HTTP responses"""

import logging

from fastapi import HTTPException

from credit_ledger.domain.exceptions import (
    AccountInactive,
    AccountNotFound,
    DuplicateReference,
    ImmutableRecordError,
    InsufficientBalance,
    InvalidAmount,
    InvalidStatusTransition,
    LedgerError,
    PersistenceFailure,
    RecordNotFound,
    RiskTierInUse,
    UnsupportedFrequency,
)

STATUS_CODES = {
    InvalidAmount: 422,
    InsufficientBalance: 422,
    UnsupportedFrequency: 422,
    AccountInactive: 409,
    DuplicateReference: 409,
    InvalidStatusTransition: 409,
    RiskTierInUse: 409,
    AccountNotFound: 404,
    RecordNotFound: 404,
    ImmutableRecordError: 500,
    PersistenceFailure: 503,
}


def http_error(error: LedgerError, request_id: str) -> HTTPException:
    """Build the HTTPException for a domain error and log it"""
    status_code = STATUS_CODES.get(type(error), 500)

    if status_code >= 500:
        logging.error(f"Ledger error: {error}", extra={"request_id": request_id, "error_type": type(error).__name__})
        detail = "Storage unavailable" if status_code == 503 else "Internal server error"
    else:
        logging.warning(f"Rejected request: {error}", extra={"request_id": request_id, "error_type": type(error).__name__})
        detail = str(error)

    return HTTPException(status_code=status_code, detail=detail)
