"""Interest calculation - pure functions over Decimal amounts"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Union

from credit_ledger.domain.exceptions import InvalidAmount
from credit_ledger.domain.frequencies import FREQUENCY_TABLE, frequency_info

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

SIMPLE = "simple"
COMPOUND = "compound"
CALCULATION_METHODS = (SIMPLE, COMPOUND)


def to_decimal(value: Number) -> Decimal:
    """Convert to Decimal without inheriting binary float noise"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(value: Number) -> Decimal:
    """Round half-up to 2 decimal places"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def period_interest(principal: Number, rate: Number, periods: Number) -> Decimal:
    """
    Simple interest for a number of periods.

    rate is a percentage per period (12 means 12%). Returns 0.00 when any
    input is non-positive.

    Example:
        period_interest(1000, 12, 1) -> Decimal("120.00")
    """
    principal, rate, periods = to_decimal(principal), to_decimal(rate), to_decimal(periods)
    if principal <= 0 or rate <= 0 or periods <= 0:
        return ZERO

    return round_money(principal * (rate / HUNDRED) * periods)


def compound_interest(principal: Number, rate: Number, periods: Number) -> Decimal:
    """Interest earned by compounding rate% once per period"""
    principal, rate, periods = to_decimal(principal), to_decimal(rate), to_decimal(periods)
    if principal <= 0 or rate <= 0 or periods <= 0:
        return ZERO

    growth = (Decimal(1) + rate / HUNDRED) ** periods
    return round_money(principal * growth - principal)


def periods_elapsed(frequency, elapsed_days: Number) -> Decimal:
    """Convert calendar days into a (fractional) period count"""
    return to_decimal(elapsed_days) / frequency_info(frequency).average_days


def calendar_interest(principal: Number, rate: Number, frequency, elapsed_days: Number) -> Decimal:
    """
    Simple interest over a span of calendar days.

    Raises:
        UnsupportedFrequency: On an unrecognized frequency token
    """
    periods = periods_elapsed(frequency, elapsed_days)
    return period_interest(principal, rate, periods)


def interest_for_periods(method: str, principal: Number, rate: Number, periods: Number = 1) -> Decimal:
    """Dispatch on the configured calculation method"""
    if method == SIMPLE:
        return period_interest(principal, rate, periods)
    if method == COMPOUND:
        return compound_interest(principal, rate, periods)
    raise InvalidAmount(f"Unknown interest calculation method: {method!r}")


def annual_equivalent_rate(rate: Number, frequency) -> Decimal:
    """Nominal annual rate for a per-period rate (no compounding)"""
    return round_money(to_decimal(rate) * frequency_info(frequency).periods_per_year)


def rate_comparison(annual_rate: Number = 12) -> Dict[str, dict]:
    """Show how one annual rate splits across each frequency"""
    annual_rate = to_decimal(annual_rate)
    comparisons = {}
    for frequency, info in FREQUENCY_TABLE.items():
        per_period = annual_rate / info.periods_per_year
        comparisons[frequency.value] = {
            "frequency": frequency.value,
            "label": info.label,
            "periods_per_year": info.periods_per_year,
            "rate_per_period": per_period.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP),
            "annual_equivalent": round_money(per_period * info.periods_per_year),
            "example_interest_on_1000": period_interest(1000, per_period, 1),
        }
    return comparisons
