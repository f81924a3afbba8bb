"""Admin changes to system rate configuration and risk tiers"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from credit_ledger.domain.exceptions import DuplicateReference, InvalidAmount, RecordNotFound, RiskTierInUse
from credit_ledger.domain.frequencies import parse_frequency
from credit_ledger.domain.rates import RateResolver, RateSettings, build_rate_config
from credit_ledger.infrastructure.database.models import InterestRateHistory, RiskTier
from credit_ledger.infrastructure.database.repositories import (
    AccountRepository,
    RateHistoryRepository,
    RiskTierRepository,
    SettingsRepository,
)
from credit_ledger.services.ledger import unit_of_work

TIER_FIELDS = (
    "name",
    "code",
    "interest_rate",
    "interest_frequency",
    "credit_limit_multiplier",
    "criteria",
    "is_active",
)
NULLABLE_TIER_FIELDS = ("interest_rate", "interest_frequency", "criteria")


class RateConfigService:
    """Every change stores a new settings snapshot and a history row together"""

    def __init__(self, db: Session):
        self.db = db
        self.settings = SettingsRepository(db)
        self.history = RateHistoryRepository(db)
        self.tiers = RiskTierRepository(db)
        self.accounts = AccountRepository(db)

    def current(self) -> RateSettings:
        return self.settings.load()

    def resolver(self) -> RateResolver:
        """Resolver bound to the current snapshot and tiers"""
        return RateResolver(self.settings.load(), self.tiers.snapshots())

    def update_rate_config(
        self,
        key: str,
        rate,
        frequency,
        auto_apply: bool = False,
        apply_day: int = 1,
        reason: str = "",
        actor_id: Optional[str] = None,
        effective_date: Optional[date] = None,
    ) -> RateSettings:
        if effective_date is not None and effective_date < date.today():
            raise InvalidAmount(f"Effective date {effective_date} is in the past")

        config = build_rate_config(rate, frequency, auto_apply, apply_day)

        with unit_of_work(self.db, "update_rate_config"):
            current = self.settings.load()
            previous = current.get(key)
            snapshot = current.with_rate(key, config)
            self.settings.save(snapshot, changed_key=key, updated_by=actor_id)
            self.history.log_rate_change(
                key,
                previous.rate,
                config.rate,
                f"{reason} (Frequency: {config.frequency.value})",
                effective_date,
                actor_id,
            )

        logging.info(
            "Interest rate configuration updated",
            extra={
                "rate_key": key,
                "previous_rate": str(previous.rate),
                "new_rate": str(config.rate),
                "frequency": config.frequency.value,
                "settings_version": snapshot.version,
                "actor_id": actor_id,
            },
        )
        return snapshot

    def set_calculation_method(self, method: str, actor_id: Optional[str] = None) -> RateSettings:
        with unit_of_work(self.db, "set_calculation_method"):
            snapshot = self.settings.load().with_calculation_method(method)
            self.settings.save(snapshot, updated_by=actor_id)
        return snapshot

    def set_auto_accrual(self, enabled: bool, actor_id: Optional[str] = None) -> RateSettings:
        with unit_of_work(self.db, "set_auto_accrual"):
            snapshot = self.settings.load().with_auto_accrual(enabled)
            self.settings.save(snapshot, updated_by=actor_id)
        return snapshot

    def rate_history(self, rate_type: str, limit: int = 10) -> List[InterestRateHistory]:
        return self.history.history(rate_type, limit)

    def create_risk_tier(
        self,
        name: str,
        code: str,
        interest_rate: Optional[Decimal],
        interest_frequency: Optional[str] = None,
        credit_limit_multiplier: Decimal = Decimal("1.00"),
        criteria: Optional[dict] = None,
        is_active: bool = True,
    ) -> RiskTier:
        if interest_rate is not None:
            build_rate_config(interest_rate, interest_frequency or "annual")
        with unit_of_work(self.db, "create_risk_tier"):
            if self.tiers.get_by_code(code) is not None:
                raise DuplicateReference(f"Risk tier code {code} already exists")
            tier = self.tiers.create(
                name,
                code,
                interest_rate,
                interest_frequency,
                credit_limit_multiplier,
                criteria,
                is_active,
            )
        return tier

    def list_risk_tiers(self, include_inactive: bool = False) -> List[Tuple[RiskTier, int]]:
        """Tiers ordered by code, each with the number of accounts on it"""
        return [(tier, self.accounts.count_on_tier(tier.id)) for tier in self.tiers.list_tiers(include_inactive)]

    def update_risk_tier(self, tier_id: int, **changes) -> RiskTier:
        """
        Admin edit of a risk tier.

        Only the keys in TIER_FIELDS are accepted; a None value for anything
        but interest_rate, interest_frequency and criteria is ignored.
        """
        unknown = set(changes) - set(TIER_FIELDS)
        if unknown:
            raise InvalidAmount(f"Unknown risk tier fields: {', '.join(sorted(unknown))}")

        with unit_of_work(self.db, "update_risk_tier"):
            tier = self._tier(tier_id)
            code = changes.get("code")
            if code is not None and code != tier.code and self.tiers.get_by_code(code) is not None:
                raise DuplicateReference(f"Risk tier code {code} already exists")

            for key, value in changes.items():
                if value is None and key not in NULLABLE_TIER_FIELDS:
                    continue
                if key == "interest_frequency" and value is not None:
                    value = parse_frequency(value).value
                setattr(tier, key, value)

            if tier.interest_rate is not None:
                build_rate_config(tier.interest_rate, tier.frequency)
            self.db.flush()

        logging.info("Risk tier updated", extra={"tier_id": tier_id, "fields": sorted(changes)})
        return tier

    def delete_risk_tier(self, tier_id: int) -> None:
        """Delete a tier no account is using"""
        with unit_of_work(self.db, "delete_risk_tier"):
            tier = self._tier(tier_id)
            in_use = self.accounts.count_on_tier(tier.id)
            if in_use:
                raise RiskTierInUse(tier.id, in_use)
            self.tiers.delete(tier)
        logging.info("Risk tier deleted", extra={"tier_id": tier_id})

    def _tier(self, tier_id: int) -> RiskTier:
        tier = self.tiers.get(tier_id)
        if tier is None:
            raise RecordNotFound(f"Risk tier {tier_id} not found")
        return tier
