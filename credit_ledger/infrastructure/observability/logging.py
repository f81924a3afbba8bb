"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from credit_ledger.config import settings
from credit_ledger.domain.models import AccrualSummary, Balances


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        json_default=str,  # Decimals and datetimes
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_ledger_operation(
    operation: str,
    account_id: int,
    balances: Balances,
    amount: Optional[Decimal] = None,
    reference: Optional[str] = None,
    actor_id: Optional[str] = None,
) -> None:
    """Log structured outcome of a balance mutation"""
    logging.info(
        "Ledger operation completed",
        extra={
            "step": "ledger_operation",
            "operation": operation,
            "account_id": account_id,
            "amount": str(amount) if amount is not None else None,
            "reference": reference,
            "actor_id": actor_id,
            "available_balance": str(balances.available_balance),
            "outstanding_debt": str(balances.outstanding_debt),
            "assigned_credit": str(balances.assigned_credit),
        },
    )


def log_accrual_run(summary: AccrualSummary, duration_ms: float) -> None:
    """Log structured outcome of an accrual batch"""
    logging.info(
        "Interest accrual run completed",
        extra={
            "step": "accrual_complete",
            "frequency": summary.frequency.value,
            "accounts_processed": summary.processed_count,
            "accounts_skipped": summary.skipped_count,
            "total_interest_applied": str(summary.total_interest),
            "error_count": len(summary.errors),
            "dry_run": summary.dry_run,
            "aborted": summary.aborted,
            "duration_ms": duration_ms,
        },
    )
