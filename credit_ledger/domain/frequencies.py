"""Interest frequency enum and the lookup table shared by calculator and scheduler"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict

from credit_ledger.domain.exceptions import UnsupportedFrequency


class Frequency(str, Enum):
    """How often interest is applied to outstanding debt"""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


@dataclass(frozen=True)
class FrequencyInfo:
    """Per-frequency constants"""

    periods_per_year: int
    average_days: Decimal
    label: str
    description: str


FREQUENCY_TABLE: Dict[Frequency, FrequencyInfo] = {
    Frequency.DAILY: FrequencyInfo(365, Decimal("1"), "Daily", "Applied every day"),
    Frequency.WEEKLY: FrequencyInfo(52, Decimal("7"), "Weekly", "Applied every week"),
    Frequency.MONTHLY: FrequencyInfo(12, Decimal("30.44"), "Monthly", "Applied every month"),
    Frequency.QUARTERLY: FrequencyInfo(4, Decimal("91.31"), "Quarterly", "Applied every 3 months"),
    Frequency.ANNUAL: FrequencyInfo(1, Decimal("365"), "Annual", "Applied once per year"),
}


def parse_frequency(value) -> Frequency:
    """
    Coerce a token or enum into a Frequency.

    Raises:
        UnsupportedFrequency: For anything outside the closed set
    """
    if isinstance(value, Frequency):
        return value
    try:
        return Frequency(str(value).strip().lower())
    except ValueError as e:
        raise UnsupportedFrequency(value) from e


def frequency_info(value) -> FrequencyInfo:
    return FREQUENCY_TABLE[parse_frequency(value)]
