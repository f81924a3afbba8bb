"""Rate settings snapshot and effective-rate resolution"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional

from credit_ledger.domain.exceptions import InvalidAmount
from credit_ledger.domain.frequencies import Frequency, parse_frequency
from credit_ledger.domain.interest import CALCULATION_METHODS, SIMPLE, to_decimal
from credit_ledger.domain.models import RateConfig, RateSource, ResolvedRate, RiskTierSnapshot

BASE_RATE_KEY = "base_interest_rate"

DEFAULT_RATES = {
    "base_interest_rate": RateConfig(Decimal("12.00"), Frequency.ANNUAL, auto_apply=False, apply_day=1),
    "late_payment_rate": RateConfig(Decimal("18.00"), Frequency.MONTHLY, auto_apply=True, apply_day=1),
    "premium_tier_rate": RateConfig(Decimal("8.00"), Frequency.ANNUAL),
    "high_risk_tier_rate": RateConfig(Decimal("2.00"), Frequency.MONTHLY, auto_apply=True, apply_day=1),
    "daily_interest_rate": RateConfig(Decimal("0.033"), Frequency.DAILY),
}

MISSING_RATE = RateConfig(Decimal("0"), Frequency.ANNUAL, auto_apply=False, apply_day=1)


def build_rate_config(rate, frequency, auto_apply: bool = False, apply_day: int = 1) -> RateConfig:
    """
    Validate raw admin input into a RateConfig.

    Raises:
        InvalidAmount: rate outside 0-100 or apply_day outside 1-31
        UnsupportedFrequency: unknown frequency token
    """
    rate = to_decimal(rate)
    if rate < 0 or rate > 100:
        raise InvalidAmount(f"Interest rate must be between 0 and 100, got {rate}")
    if not 1 <= int(apply_day) <= 31:
        raise InvalidAmount(f"Apply day must be between 1 and 31, got {apply_day}")
    return RateConfig(rate, parse_frequency(frequency), bool(auto_apply), int(apply_day))


@dataclass(frozen=True)
class RateSettings:
    """
    Immutable, versioned view of system-wide rate configuration.

    Changes never mutate a snapshot; the with_* helpers return a new one with
    the version bumped, and SettingsRepository persists it alongside an
    InterestRateHistory row.
    """

    version: int = 1
    rates: Mapping[str, RateConfig] = field(default_factory=lambda: MappingProxyType(dict(DEFAULT_RATES)))
    calculation_method: str = SIMPLE
    auto_accrual_enabled: bool = False

    @classmethod
    def defaults(cls) -> "RateSettings":
        return cls()

    def get(self, key: str) -> RateConfig:
        return self.rates.get(key, MISSING_RATE)

    def with_rate(self, key: str, config: RateConfig) -> "RateSettings":
        rates = dict(self.rates)
        rates[key] = config
        return replace(self, version=self.version + 1, rates=MappingProxyType(rates))

    def with_calculation_method(self, method: str) -> "RateSettings":
        if method not in CALCULATION_METHODS:
            raise InvalidAmount(f"Calculation method must be one of {CALCULATION_METHODS}, got {method!r}")
        return replace(self, version=self.version + 1, calculation_method=method)

    def with_auto_accrual(self, enabled: bool) -> "RateSettings":
        return replace(self, version=self.version + 1, auto_accrual_enabled=bool(enabled))


class RateResolver:
    """Determines the effective interest rate for an account"""

    def __init__(self, settings: RateSettings, tiers: Optional[Mapping[int, RiskTierSnapshot]] = None):
        self.settings = settings
        self.tiers = tiers or {}

    def resolve(self, account, rate_key: str = BASE_RATE_KEY) -> ResolvedRate:
        """
        Precedence: custom override -> risk tier -> system default.

        `account` needs custom_rate, custom_frequency and risk_tier_id
        attributes (the ORM LedgerAccount satisfies this). Auto-apply and
        apply day always come from the system entry for rate_key.
        """
        default = self.settings.get(rate_key)

        if account.custom_rate is not None and account.custom_frequency:
            return ResolvedRate(
                rate=to_decimal(account.custom_rate),
                frequency=parse_frequency(account.custom_frequency),
                auto_apply=default.auto_apply,
                apply_day=default.apply_day,
                source=RateSource.CUSTOM,
            )

        tier = self.tiers.get(account.risk_tier_id) if account.risk_tier_id is not None else None
        if tier is not None and tier.is_active and tier.interest_rate:
            return ResolvedRate(
                rate=to_decimal(tier.interest_rate),
                frequency=parse_frequency(tier.interest_frequency or Frequency.ANNUAL),
                auto_apply=default.auto_apply,
                apply_day=default.apply_day,
                source=RateSource.RISK_TIER,
            )

        return ResolvedRate(
            rate=default.rate,
            frequency=default.frequency,
            auto_apply=default.auto_apply,
            apply_day=default.apply_day,
            source=RateSource.SYSTEM_DEFAULT,
        )
