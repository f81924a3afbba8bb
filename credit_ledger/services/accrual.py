"""Batch interest accrual across ledger accounts"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Mapping, Optional

from sqlalchemy.orm import Session

from credit_ledger.config import settings
from credit_ledger.domain.exceptions import InvalidAmount
from credit_ledger.domain.frequencies import Frequency, parse_frequency
from credit_ledger.domain.models import AccrualError, AccrualItem, AccrualSummary, RiskTierSnapshot
from credit_ledger.domain.rates import RateResolver, RateSettings
from credit_ledger.infrastructure.database.repositories import (
    AccountRepository,
    RiskTierRepository,
    SettingsRepository,
)
from credit_ledger.infrastructure.observability.logging import log_accrual_run
from credit_ledger.infrastructure.observability.metrics import record_accrual_run
from credit_ledger.services.ledger import LedgerService
from credit_ledger.utils.date_utils import utcnow

APPLY_TO_ALL = "all"
APPLY_TO_TIER = "specific_tier"
APPLY_TO_HIGH_UTILIZATION = "high_utilization"
APPLY_TO = (APPLY_TO_ALL, APPLY_TO_TIER, APPLY_TO_HIGH_UTILIZATION)


class AccrualOrchestrator:
    """
    Applies one period of interest to every eligible account.

    Each account is its own transaction: a failure is logged, recorded in the
    summary and the run moves on to the next account.
    """

    def __init__(
        self,
        db: Session,
        rate_settings: RateSettings,
        tiers: Optional[Mapping[int, RiskTierSnapshot]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.rate_settings = rate_settings
        self.resolver = RateResolver(rate_settings, tiers)
        self.accounts = AccountRepository(db)
        self.ledger = LedgerService(db)
        self.clock = clock

    @classmethod
    def from_db(cls, db: Session, clock: Callable[[], datetime] = utcnow) -> "AccrualOrchestrator":
        """Build with the current settings snapshot and risk tiers"""
        return cls(db, SettingsRepository(db).load(), RiskTierRepository(db).snapshots(), clock)

    def run(
        self,
        frequency,
        account_id: Optional[int] = None,
        apply_to: str = APPLY_TO_ALL,
        tier_id: Optional[int] = None,
        force: bool = False,
        dry_run: bool = False,
        require_auto_apply: bool = False,
        reason: Optional[str] = None,
        rate_key: str = settings.default_rate_key,
        cancel_event: Optional[threading.Event] = None,
    ) -> AccrualSummary:
        """
        Accrue interest for accounts whose effective frequency matches.

        Args:
            frequency: Target frequency tier
            account_id: Restrict the run to one account
            apply_to: "all", "specific_tier" (needs tier_id) or "high_utilization"
            force: Apply even when the period has not elapsed
            dry_run: Compute and report, persist nothing
            require_auto_apply: Skip configs without auto_apply (scheduled runs)
            cancel_event: Checked between accounts; set it to stop the run

        Returns:
            AccrualSummary with counts, total interest, per-account items and errors
        """
        frequency = parse_frequency(frequency)
        if apply_to not in APPLY_TO:
            raise InvalidAmount(f"apply_to must be one of {', '.join(APPLY_TO)}, got {apply_to!r}")
        if apply_to == APPLY_TO_TIER and tier_id is None:
            raise InvalidAmount("tier_id is required when applying to a specific tier")
        reason = reason or f"{'Automatic' if require_auto_apply else 'Manual'} {frequency.value} interest application"
        now = self.clock()
        start_time = time.time()
        summary = AccrualSummary(frequency=frequency, dry_run=dry_run)

        candidate_ids = [
            account.id
            for account in self.accounts.accrual_candidates(
                account_id,
                tier_id=tier_id if apply_to == APPLY_TO_TIER else None,
                high_utilization=apply_to == APPLY_TO_HIGH_UTILIZATION,
            )
        ]
        logging.info(
            "Interest accrual run started",
            extra={"frequency": frequency.value, "candidates": len(candidate_ids), "force": force, "dry_run": dry_run},
        )

        for index, candidate_id in enumerate(candidate_ids, start=1):
            if cancel_event is not None and cancel_event.is_set():
                summary.aborted = True
                logging.warning(
                    "Interest accrual run aborted",
                    extra={"frequency": frequency.value, "remaining": len(candidate_ids) - index + 1},
                )
                break

            try:
                item = self._process(candidate_id, frequency, now, force, dry_run, require_auto_apply, reason, rate_key)
            except Exception as e:
                self.db.rollback()
                summary.errors.append(AccrualError(account_id=candidate_id, error=str(e)))
                summary.skipped_count += 1
                logging.error(
                    f"Failed to apply {frequency.value} interest",
                    extra={"account_id": candidate_id, "error": str(e)},
                )
                continue

            if item is None:
                summary.skipped_count += 1
            else:
                summary.items.append(item)
                summary.processed_count += 1
                summary.total_interest += item.interest

            if index % settings.accrual_batch_log_every == 0:
                logging.info("Interest accrual progress", extra={"frequency": frequency.value, "visited": index})

        duration = time.time() - start_time
        record_accrual_run(summary, duration)
        log_accrual_run(summary, duration * 1000)
        return summary

    def _process(
        self,
        account_id: int,
        frequency: Frequency,
        now: datetime,
        force: bool,
        dry_run: bool,
        require_auto_apply: bool,
        reason: str,
        rate_key: str,
    ) -> Optional[AccrualItem]:
        """Unlocked pre-check, then the locked accrual for one account; None means skipped"""
        account = self.accounts.get(account_id)
        config = self.resolver.resolve(account, rate_key)
        if config.frequency is not frequency or config.rate <= 0:
            return None

        return self.ledger.accrue_period(
            account_id,
            frequency,
            lambda locked: self.resolver.resolve(locked, rate_key),
            self.rate_settings.calculation_method,
            now,
            reason,
            force=force,
            dry_run=dry_run,
            require_auto_apply=require_auto_apply,
        )
