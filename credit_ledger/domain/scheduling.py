"""Due-date logic for periodic interest application"""

from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from credit_ledger.domain.frequencies import Frequency, parse_frequency
from credit_ledger.utils.date_utils import clamp_day, ensure_utc

# One period per frequency; monthly day clamping is handled separately
PERIOD_DELTAS = {
    Frequency.DAILY: timedelta(days=1),
    Frequency.WEEKLY: timedelta(weeks=1),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.QUARTERLY: relativedelta(months=3),
    Frequency.ANNUAL: relativedelta(years=1),
}


def is_due(last_applied_at: datetime, frequency, now: datetime, apply_day: int = 1) -> bool:
    """
    Decide whether a full period has passed since interest was last applied.

    Callers pass the account's created_at when interest was never applied.
    Monthly interest additionally waits for the configured day of the month,
    clamped to the length of the current month (apply_day=31 fires on Feb 28).

    Raises:
        UnsupportedFrequency: On an unrecognized frequency token
    """
    frequency = parse_frequency(frequency)
    last = ensure_utc(last_applied_at)
    now = ensure_utc(now)

    period_elapsed = last + PERIOD_DELTAS[frequency] <= now

    if frequency is Frequency.MONTHLY:
        return now.day >= clamp_day(now.year, now.month, apply_day) and period_elapsed

    return period_elapsed


def next_due_date(last_applied_at: datetime, frequency, apply_day: int = 1) -> datetime:
    """
    Add one period to the watermark.

    For monthly frequency the day of month becomes min(apply_day, days in
    the resulting month).
    """
    frequency = parse_frequency(frequency)
    last = ensure_utc(last_applied_at)
    candidate = last + PERIOD_DELTAS[frequency]

    if frequency is Frequency.MONTHLY:
        return candidate.replace(day=clamp_day(candidate.year, candidate.month, apply_day))

    return candidate
