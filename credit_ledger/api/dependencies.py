"""Dependency injection for FastAPI endpoints"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from credit_ledger.infrastructure.database.session import get_db
from credit_ledger.services.ledger import LedgerService
from credit_ledger.services.rates import RateConfigService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_actor_id(x_actor_id: Optional[str] = Header(None)) -> Optional[str]:
    """Acting admin or business user, as asserted by the caller"""
    return x_actor_id


def get_ledger_service(db: Session = Depends(get_db)) -> LedgerService:
    return LedgerService(db)


def get_rate_service(db: Session = Depends(get_db)) -> RateConfigService:
    return RateConfigService(db)
