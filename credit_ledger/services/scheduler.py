"""Fixed time-of-day schedule for accrual jobs, one per frequency tier"""

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from credit_ledger.config import settings
from credit_ledger.domain.frequencies import Frequency, parse_frequency
from credit_ledger.domain.models import AccrualSummary
from credit_ledger.domain.rates import RateResolver
from credit_ledger.domain.scheduling import PERIOD_DELTAS, is_due
from credit_ledger.infrastructure.database.repositories import (
    AccountRepository,
    RiskTierRepository,
    SettingsRepository,
)
from credit_ledger.infrastructure.database.session import SessionLocal, session_scope
from credit_ledger.services.accrual import AccrualOrchestrator
from credit_ledger.utils.date_utils import ensure_utc, utcnow


@dataclass(frozen=True)
class AccrualSchedule:
    frequency: Frequency
    run_at: time  # UTC
    description: str


ACCRUAL_SCHEDULE: Dict[Frequency, AccrualSchedule] = {
    Frequency.DAILY: AccrualSchedule(Frequency.DAILY, time(0, 5), "Daily 00:05"),
    Frequency.WEEKLY: AccrualSchedule(Frequency.WEEKLY, time(0, 10), "Monday 00:10"),
    Frequency.MONTHLY: AccrualSchedule(Frequency.MONTHLY, time(0, 15), "1st 00:15"),
    Frequency.QUARTERLY: AccrualSchedule(Frequency.QUARTERLY, time(0, 20), "Quarter start 00:20"),
    Frequency.ANNUAL: AccrualSchedule(Frequency.ANNUAL, time(0, 25), "Jan 1 00:25"),
}


def _period_start(frequency: Frequency, day: date) -> date:
    if frequency is Frequency.DAILY:
        return day
    if frequency is Frequency.WEEKLY:
        return day - timedelta(days=day.weekday())
    if frequency is Frequency.MONTHLY:
        return day.replace(day=1)
    if frequency is Frequency.QUARTERLY:
        return day.replace(month=3 * ((day.month - 1) // 3) + 1, day=1)
    return day.replace(month=1, day=1)


def next_run_at(frequency, now: datetime) -> datetime:
    """Next scheduled run strictly after `now`"""
    frequency = parse_frequency(frequency)
    now = ensure_utc(now)
    schedule = ACCRUAL_SCHEDULE[frequency]

    candidate = datetime.combine(_period_start(frequency, now.date()), schedule.run_at, tzinfo=timezone.utc)
    if candidate <= now:
        candidate = candidate + PERIOD_DELTAS[frequency]
    return candidate


def schedule_status(db: Session, now: Optional[datetime] = None) -> List[dict]:
    """Per-frequency next run and how many indebted accounts it covers"""
    now = now or utcnow()
    resolver = RateResolver(SettingsRepository(db).load(), RiskTierRepository(db).snapshots())

    affected = {frequency: 0 for frequency in Frequency}
    due = {frequency: 0 for frequency in Frequency}
    for account in AccountRepository(db).accrual_candidates():
        config = resolver.resolve(account, settings.default_rate_key)
        affected[config.frequency] += 1
        watermark = account.last_interest_applied_at or account.created_at
        if is_due(watermark, config.frequency, now, config.apply_day):
            due[config.frequency] += 1

    return [
        {
            "frequency": frequency.value,
            "schedule": schedule.description,
            "next_run_at": next_run_at(frequency, now),
            "accounts_affected": affected[frequency],
            "accounts_due": due[frequency],
        }
        for frequency, schedule in ACCRUAL_SCHEDULE.items()
    ]


def run_scheduled_accrual(
    frequency,
    session_factory: sessionmaker = SessionLocal,
    now: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Optional[AccrualSummary]:
    """
    Entry point for the scheduled trigger.

    Does nothing (returns None) while auto accrual is disabled system-wide;
    otherwise only rate configs with auto_apply are accrued.
    """
    frequency = parse_frequency(frequency)
    clock = (lambda: now) if now is not None else utcnow

    with session_scope(session_factory) as db:
        rate_settings = SettingsRepository(db).load()
        if not rate_settings.auto_accrual_enabled:
            logging.info(
                "Scheduled accrual skipped: auto accrual disabled",
                extra={"frequency": frequency.value, "settings_version": rate_settings.version},
            )
            return None

        orchestrator = AccrualOrchestrator(db, rate_settings, RiskTierRepository(db).snapshots(), clock)
        return orchestrator.run(frequency, require_auto_apply=True, cancel_event=cancel_event)
