"""/v1/interest - accrual runs, schedule and rate configuration"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from credit_ledger.api.dependencies import get_actor_id, get_rate_service, get_request_id
from credit_ledger.api.errors import http_error
from credit_ledger.api.v1.schemas import (
    AccrualErrorSchema,
    AccrualItemSchema,
    AccrualRequest,
    AccrualSummaryResponse,
    FrequenciesResponse,
    FrequencyItem,
    GlobalSettingsRequest,
    RateConfigRequest,
    RateConfigSchema,
    RateHistoryItem,
    RateHistoryResponse,
    RiskTierRequest,
    RiskTierResponse,
    RiskTiersResponse,
    RiskTierUpdateRequest,
    ScheduleItem,
    SettingsResponse,
)
from credit_ledger.domain.exceptions import LedgerError
from credit_ledger.domain.frequencies import FREQUENCY_TABLE
from credit_ledger.domain.interest import annual_equivalent_rate, rate_comparison
from credit_ledger.domain.rates import RateSettings
from credit_ledger.infrastructure.database.models import RiskTier
from credit_ledger.infrastructure.database.session import get_db
from credit_ledger.services.accrual import AccrualOrchestrator
from credit_ledger.services.rates import RateConfigService
from credit_ledger.services.scheduler import schedule_status

router = APIRouter()


def _settings_response(snapshot: RateSettings) -> SettingsResponse:
    return SettingsResponse(
        version=snapshot.version,
        calculation_method=snapshot.calculation_method,
        auto_accrual_enabled=snapshot.auto_accrual_enabled,
        rates={
            key: RateConfigSchema(
                rate=config.rate,
                frequency=config.frequency.value,
                auto_apply=config.auto_apply,
                apply_day=config.apply_day,
                annual_equivalent=annual_equivalent_rate(config.rate, config.frequency),
            )
            for key, config in snapshot.rates.items()
        },
    )


@router.post("/interest/accrual", response_model=AccrualSummaryResponse)
def run_accrual(
    body: AccrualRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """
    Apply (or preview, with dry_run) one period of interest for a frequency tier.

    Per-account failures do not fail the request; they are listed in `errors`.
    """
    request_id = get_request_id(request)
    try:
        orchestrator = AccrualOrchestrator.from_db(db)
        summary = orchestrator.run(
            body.frequency,
            account_id=body.account_id,
            apply_to=body.apply_to,
            tier_id=body.tier_id,
            force=body.force,
            dry_run=body.dry_run,
            reason=body.reason or (f"Admin {body.frequency} interest application by {actor_id}" if actor_id else None),
        )
    except LedgerError as e:
        raise http_error(e, request_id)

    return AccrualSummaryResponse(
        frequency=summary.frequency.value,
        processed_count=summary.processed_count,
        skipped_count=summary.skipped_count,
        total_interest=summary.total_interest,
        dry_run=summary.dry_run,
        aborted=summary.aborted,
        items=[
            AccrualItemSchema(
                account_id=item.account_id,
                interest=item.interest,
                rate=item.rate,
                source=item.source.value,
                outstanding_debt=item.outstanding_debt,
            )
            for item in summary.items
        ],
        errors=[AccrualErrorSchema(account_id=e.account_id, error=e.error) for e in summary.errors],
    )


@router.get("/interest/schedule", response_model=List[ScheduleItem])
def get_schedule(db: Session = Depends(get_db)):
    """Next run per frequency and the indebted accounts each one covers"""
    return [ScheduleItem(**row) for row in schedule_status(db)]


@router.get("/interest/settings", response_model=SettingsResponse)
def get_settings(rate_service: RateConfigService = Depends(get_rate_service)):
    return _settings_response(rate_service.current())


@router.put("/interest/settings", response_model=SettingsResponse)
def update_global_settings(
    body: GlobalSettingsRequest,
    request: Request,
    rate_service: RateConfigService = Depends(get_rate_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """Switch calculation method and/or system-wide auto accrual"""
    try:
        snapshot = rate_service.current()
        if body.calculation_method is not None:
            snapshot = rate_service.set_calculation_method(body.calculation_method, actor_id)
        if body.auto_accrual_enabled is not None:
            snapshot = rate_service.set_auto_accrual(body.auto_accrual_enabled, actor_id)
        return _settings_response(snapshot)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.put("/interest/settings/{key}", response_model=SettingsResponse)
def update_rate_config(
    key: str,
    body: RateConfigRequest,
    request: Request,
    rate_service: RateConfigService = Depends(get_rate_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    try:
        snapshot = rate_service.update_rate_config(
            key,
            body.rate,
            body.frequency,
            auto_apply=body.auto_apply,
            apply_day=body.apply_day,
            reason=body.reason,
            actor_id=actor_id,
            effective_date=body.effective_date,
        )
        return _settings_response(snapshot)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))


@router.get("/interest/history/{rate_type}", response_model=RateHistoryResponse)
def get_rate_history(
    rate_type: str,
    limit: int = Query(10, ge=1, le=100),
    rate_service: RateConfigService = Depends(get_rate_service),
):
    """Recent changes to one rate key, newest first"""
    entries = rate_service.rate_history(rate_type, limit)
    return RateHistoryResponse(
        rate_type=rate_type,
        history=[
            RateHistoryItem(
                id=entry.id,
                rate_type=entry.rate_type,
                previous_rate=entry.previous_rate,
                new_rate=entry.new_rate,
                change_type=entry.change_type(),
                change_percentage=entry.change_percentage(),
                reason=entry.reason,
                effective_date=entry.effective_date,
                changed_by=entry.changed_by,
                created_at=entry.created_at,
            )
            for entry in entries
        ],
    )


@router.get("/interest/frequencies", response_model=FrequenciesResponse)
def list_frequencies(annual_rate: float = Query(12.0, ge=0, le=100)):
    """Supported frequencies and how one annual rate splits across them"""
    return FrequenciesResponse(
        frequencies=[
            FrequencyItem(
                frequency=frequency.value,
                label=info.label,
                description=info.description,
                periods_per_year=info.periods_per_year,
                average_days=info.average_days,
            )
            for frequency, info in FREQUENCY_TABLE.items()
        ],
        comparison=rate_comparison(annual_rate),
    )


def _tier_response(tier: RiskTier, accounts_count: Optional[int] = None) -> RiskTierResponse:
    return RiskTierResponse(
        id=tier.id,
        name=tier.name,
        code=tier.code,
        interest_rate=tier.interest_rate,
        interest_frequency=tier.frequency.value,
        credit_limit_multiplier=tier.credit_limit_multiplier,
        is_active=tier.is_active,
        interest_description=tier.interest_description(),
        annual_equivalent_rate=tier.annual_equivalent_rate(),
        accounts_count=accounts_count,
    )


@router.get("/interest/risk-tiers", response_model=RiskTiersResponse)
def list_risk_tiers(
    include_inactive: bool = Query(False),
    rate_service: RateConfigService = Depends(get_rate_service),
):
    """Tiers ordered by code, with how many accounts each one covers"""
    return RiskTiersResponse(
        risk_tiers=[_tier_response(tier, count) for tier, count in rate_service.list_risk_tiers(include_inactive)]
    )


@router.post("/interest/risk-tiers", response_model=RiskTierResponse, status_code=201)
def create_risk_tier(
    body: RiskTierRequest,
    request: Request,
    rate_service: RateConfigService = Depends(get_rate_service),
):
    try:
        tier = rate_service.create_risk_tier(
            body.name,
            body.code,
            body.interest_rate,
            body.interest_frequency,
            body.credit_limit_multiplier,
            body.criteria,
            body.is_active,
        )
    except LedgerError as e:
        raise http_error(e, get_request_id(request))

    return _tier_response(tier, 0)


@router.put("/interest/risk-tiers/{tier_id}", response_model=RiskTierResponse)
def update_risk_tier(
    tier_id: int,
    body: RiskTierUpdateRequest,
    request: Request,
    rate_service: RateConfigService = Depends(get_rate_service),
):
    """Fields left out of the body keep their current value"""
    try:
        tier = rate_service.update_risk_tier(tier_id, **body.model_dump(exclude_unset=True))
    except LedgerError as e:
        raise http_error(e, get_request_id(request))

    return _tier_response(tier)


@router.delete("/interest/risk-tiers/{tier_id}", status_code=204)
def delete_risk_tier(
    tier_id: int,
    request: Request,
    rate_service: RateConfigService = Depends(get_rate_service),
):
    """Refused with 409 while any account is on the tier"""
    try:
        rate_service.delete_risk_tier(tier_id)
    except LedgerError as e:
        raise http_error(e, get_request_id(request))
