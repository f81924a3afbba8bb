"""Unit tests for rate settings snapshots and rate resolution"""

import pytest
from decimal import Decimal
from types import SimpleNamespace
from credit_ledger.domain.exceptions import InvalidAmount, UnsupportedFrequency
from credit_ledger.domain.frequencies import Frequency
from credit_ledger.domain.models import RateSource, RiskTierSnapshot
from credit_ledger.domain.rates import RateResolver, RateSettings, build_rate_config


def account(custom_rate=None, custom_frequency=None, risk_tier_id=None):
    return SimpleNamespace(custom_rate=custom_rate, custom_frequency=custom_frequency, risk_tier_id=risk_tier_id)


def tier(tier_id=1, rate="2.5", frequency=Frequency.MONTHLY, is_active=True) -> RiskTierSnapshot:
    return RiskTierSnapshot(
        id=tier_id,
        name="High risk",
        code="HR",
        interest_rate=Decimal(rate) if rate is not None else None,
        interest_frequency=frequency,
        is_active=is_active,
    )


def test_default_snapshot_mirrors_seed_rates():
    settings = RateSettings.defaults()

    base = settings.get("base_interest_rate")
    assert base.rate == Decimal("12.00")
    assert base.frequency is Frequency.ANNUAL
    assert base.auto_apply is False
    assert settings.get("late_payment_rate").frequency is Frequency.MONTHLY
    assert settings.calculation_method == "simple"
    assert settings.auto_accrual_enabled is False


def test_with_rate_returns_new_version_and_leaves_original():
    original = RateSettings.defaults()

    updated = original.with_rate("base_interest_rate", build_rate_config("15", "quarterly"))

    assert updated.version == original.version + 1
    assert updated.get("base_interest_rate").rate == Decimal("15")
    assert original.get("base_interest_rate").rate == Decimal("12.00")
    with pytest.raises(TypeError):
        updated.rates["base_interest_rate"] = None


def test_with_calculation_method_validates():
    assert RateSettings.defaults().with_calculation_method("compound").calculation_method == "compound"
    with pytest.raises(InvalidAmount):
        RateSettings.defaults().with_calculation_method("continuous")


@pytest.mark.parametrize("rate,apply_day", [("-0.01", 1), ("100.01", 1), ("5", 0), ("5", 32)])
def test_build_rate_config_rejects_out_of_range(rate, apply_day):
    with pytest.raises(InvalidAmount):
        build_rate_config(rate, "monthly", apply_day=apply_day)


def test_build_rate_config_rejects_unknown_frequency():
    with pytest.raises(UnsupportedFrequency):
        build_rate_config("5", "biweekly")


def test_resolve_custom_rate_wins():
    resolver = RateResolver(RateSettings.defaults(), {1: tier()})

    resolved = resolver.resolve(account(Decimal("9"), "weekly", risk_tier_id=1))

    assert resolved.source is RateSource.CUSTOM
    assert resolved.rate == Decimal("9")
    assert resolved.frequency is Frequency.WEEKLY


def test_resolve_custom_rate_without_frequency_is_ignored():
    resolved = RateResolver(RateSettings.defaults()).resolve(account(Decimal("9"), None))
    assert resolved.source is RateSource.SYSTEM_DEFAULT


def test_resolve_risk_tier():
    resolved = RateResolver(RateSettings.defaults(), {1: tier()}).resolve(account(risk_tier_id=1))

    assert resolved.source is RateSource.RISK_TIER
    assert resolved.rate == Decimal("2.5")
    assert resolved.frequency is Frequency.MONTHLY


def test_resolve_tier_without_frequency_defaults_to_annual():
    resolved = RateResolver(RateSettings.defaults(), {1: tier(frequency=None)}).resolve(account(risk_tier_id=1))
    assert resolved.frequency is Frequency.ANNUAL


@pytest.mark.parametrize("snapshot", [tier(is_active=False), tier(rate="0"), tier(rate=None)])
def test_resolve_falls_back_past_unusable_tiers(snapshot):
    resolved = RateResolver(RateSettings.defaults(), {1: snapshot}).resolve(account(risk_tier_id=1))

    assert resolved.source is RateSource.SYSTEM_DEFAULT
    assert resolved.rate == Decimal("12.00")


def test_custom_and_tier_inherit_auto_apply_from_system_key():
    settings = RateSettings.defaults().with_rate(
        "base_interest_rate", build_rate_config("12", "annual", auto_apply=True, apply_day=10)
    )

    resolved = RateResolver(settings, {1: tier()}).resolve(account(risk_tier_id=1))

    assert resolved.auto_apply is True
    assert resolved.apply_day == 10


def test_unknown_rate_key_resolves_to_zero():
    resolved = RateResolver(RateSettings.defaults()).resolve(account(), "no_such_rate")
    assert resolved.rate == Decimal("0")
    assert resolved.frequency is Frequency.ANNUAL
