"""Integration tests for API endpoints"""

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient

ADMIN = {"X-Actor-Id": "admin_1"}


@pytest.fixture
def funded_account(client: TestClient) -> int:
    """Account with 1000 of assigned credit"""
    response = client.post("/v1/accounts", json={"name": "Globex Wholesale"}, headers=ADMIN)
    account_id = response.json()["account_id"]
    client.post(f"/v1/accounts/{account_id}/credit", json={"amount": "1000"}, headers=ADMIN)
    return account_id


def balances(response) -> dict:
    return {key: Decimal(value) for key, value in response.json()["balances"].items()}


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "credit-ledger"}


def test_metrics_endpoint(client: TestClient, funded_account: int):
    """Ledger operations show up in Prometheus output"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "ledger_operations_total" in response.text
    assert "http_request_duration_seconds" in response.text


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert client.get("/health").headers["X-Request-ID"]


def test_open_account_returns_zero_balances_and_default_rate(client: TestClient):
    response = client.post("/v1/accounts", json={"name": "Initech"}, headers=ADMIN)

    assert response.status_code == 201
    data = response.json()
    assert all(value == Decimal("0") for value in balances(response).values())
    assert data["is_active"] is True
    assert data["interest_rate"]["source"] == "system_default"
    assert data["interest_rate"]["frequency"] == "annual"
    assert Decimal(data["interest_rate"]["rate"]) == Decimal("12")


def test_get_unknown_account(client: TestClient):
    response = client.get("/v1/accounts/424242")
    assert response.status_code == 404


def test_purchase_order_and_payment_flow(client: TestClient, funded_account: int):
    po = client.post(
        f"/v1/accounts/{funded_account}/purchase-orders",
        json={"po_ref": "PO1", "amount": "300"},
        headers={"X-Actor-Id": "buyer_9"},
    )
    assert po.status_code == 201
    assert balances(po)["available_balance"] == Decimal("700")
    assert balances(po)["outstanding_debt"] == Decimal("300")
    assert balances(po)["credit_limit"] == Decimal("700")

    submitted = client.post(f"/v1/accounts/{funded_account}/payments", json={"payment_ref": "PAY1", "amount": "500"})
    assert submitted.status_code == 201
    assert balances(submitted)["outstanding_debt"] == Decimal("300")

    approved = client.post(f"/v1/accounts/{funded_account}/payments/PAY1/approve", headers=ADMIN)
    assert approved.status_code == 200
    assert Decimal(approved.json()["applied_amount"]) == Decimal("300")
    assert balances(approved)["outstanding_debt"] == Decimal("0")
    assert balances(approved)["available_balance"] == Decimal("1000")

    log = client.get(f"/v1/accounts/{funded_account}/transactions").json()
    assert log["total"] == 7  # credit x2, PO x2, pending marker, payment x2
    assert log["transactions"][0]["reference_id"] == "PAY1"
    assert log["transactions"][0]["actor_id"] == "admin_1"


def test_purchase_order_over_available(client: TestClient, funded_account: int):
    response = client.post(
        f"/v1/accounts/{funded_account}/purchase-orders",
        json={"po_ref": "PO-BIG", "amount": "1000.01"},
    )
    assert response.status_code == 422
    assert "Insufficient available balance" in response.json()["detail"]


def test_duplicate_purchase_order_is_conflict(client: TestClient, funded_account: int):
    body = {"po_ref": "PO-DUP", "amount": "10"}
    assert client.post(f"/v1/accounts/{funded_account}/purchase-orders", json=body).status_code == 201
    assert client.post(f"/v1/accounts/{funded_account}/purchase-orders", json=body).status_code == 409


def test_reject_purchase_order(client: TestClient, funded_account: int):
    client.post(f"/v1/accounts/{funded_account}/purchase-orders", json={"po_ref": "PO-R", "amount": "250"})

    response = client.post(
        f"/v1/accounts/{funded_account}/purchase-orders/PO-R/reject",
        json={"reason": "Out of stock"},
        headers=ADMIN,
    )

    assert response.status_code == 200
    assert balances(response)["available_balance"] == Decimal("1000")
    missing = client.post(f"/v1/accounts/{funded_account}/purchase-orders/NOPE/reject", json={"reason": "x"})
    assert missing.status_code == 404


def test_reject_payment_then_approve_is_conflict(client: TestClient, funded_account: int):
    client.post(f"/v1/accounts/{funded_account}/purchase-orders", json={"po_ref": "PO2", "amount": "100"})
    client.post(f"/v1/accounts/{funded_account}/payments", json={"payment_ref": "PAY2", "amount": "100"})

    rejected = client.post(
        f"/v1/accounts/{funded_account}/payments/PAY2/reject",
        json={"reason": "Bounced"},
        headers=ADMIN,
    )
    assert rejected.status_code == 200
    assert balances(rejected)["outstanding_debt"] == Decimal("100")

    approved = client.post(f"/v1/accounts/{funded_account}/payments/PAY2/approve", json={})
    assert approved.status_code == 409


def test_invalid_amount_is_unprocessable(client: TestClient, funded_account: int):
    response = client.post(f"/v1/accounts/{funded_account}/credit", json={"amount": "0"})
    assert response.status_code == 422


def test_adjust_credit_and_treasury(client: TestClient, funded_account: int):
    client.post(f"/v1/accounts/{funded_account}/purchase-orders", json={"po_ref": "PO3", "amount": "300"})

    adjusted = client.post(
        f"/v1/accounts/{funded_account}/credit/adjust",
        json={"new_amount": "1500", "reason": "Annual review"},
        headers=ADMIN,
    )
    assert balances(adjusted)["assigned_credit"] == Decimal("1500")
    assert balances(adjusted)["available_balance"] == Decimal("1200")

    treasury = client.post(
        f"/v1/accounts/{funded_account}/treasury",
        json={"amount": "75", "operation": "add", "description": "Escrow deposit"},
        headers=ADMIN,
    )
    assert balances(treasury)["treasury_balance"] == Decimal("75")
    assert balances(treasury)["available_balance"] == Decimal("1200")


def test_inactive_account_is_conflict(client: TestClient, funded_account: int):
    client.put(f"/v1/accounts/{funded_account}/status", json={"is_active": False}, headers=ADMIN)

    response = client.post(
        f"/v1/accounts/{funded_account}/purchase-orders",
        json={"po_ref": "PO-OFF", "amount": "10"},
    )
    assert response.status_code == 409


def test_validate_and_reconcile(client: TestClient, funded_account: int):
    client.post(f"/v1/accounts/{funded_account}/purchase-orders", json={"po_ref": "PO4", "amount": "400"})

    report = client.get(f"/v1/accounts/{funded_account}/validate").json()
    assert report["valid"] is True
    assert report["violations"] == []

    reconciled = client.post(f"/v1/accounts/{funded_account}/reconcile", headers=ADMIN)
    assert reconciled.status_code == 200
    assert balances(reconciled)["outstanding_debt"] == Decimal("400")


def test_manual_interest_past_zero_available_is_soft_violation(client: TestClient, funded_account: int):
    client.post(f"/v1/accounts/{funded_account}/purchase-orders", json={"po_ref": "PO5", "amount": "990"})

    response = client.post(
        f"/v1/accounts/{funded_account}/interest",
        json={"amount": "25", "reason": "Late fee"},
        headers=ADMIN,
    )
    assert Decimal(response.json()["applied_amount"]) == Decimal("25")
    assert balances(response)["available_balance"] == Decimal("0")
    assert balances(response)["outstanding_debt"] == Decimal("1015")

    report = client.get(f"/v1/accounts/{funded_account}/validate").json()
    assert report["valid"] is True
    assert [v["code"] for v in report["violations"]] == ["debt_drift"]


def test_custom_rate_changes_resolution(client: TestClient, funded_account: int):
    response = client.put(
        f"/v1/accounts/{funded_account}/interest-rate",
        json={"rate": "1.5", "frequency": "monthly", "reason": "Negotiated"},
        headers=ADMIN,
    )
    assert response.status_code == 200
    assert response.json()["interest_rate"]["source"] == "custom"
    assert response.json()["interest_rate"]["frequency"] == "monthly"

    bad = client.put(f"/v1/accounts/{funded_account}/interest-rate", json={"rate": "1.5", "frequency": "hourly"})
    assert bad.status_code == 422

    history = client.get(f"/v1/interest/history/business_{funded_account}_custom").json()
    assert history["history"][0]["change_type"] == "increase"


def test_accrual_dry_run_then_apply(client: TestClient, funded_account: int):
    client.post(f"/v1/accounts/{funded_account}/purchase-orders", json={"po_ref": "PO6", "amount": "1000"})
    body = {"frequency": "annual", "account_id": funded_account, "force": True}

    preview = client.post("/v1/interest/accrual", json={**body, "dry_run": True}, headers=ADMIN)
    assert preview.status_code == 200
    assert preview.json()["processed_count"] == 1
    assert Decimal(preview.json()["total_interest"]) == Decimal("120")
    assert balances(client.get(f"/v1/accounts/{funded_account}"))["outstanding_debt"] == Decimal("1000")

    applied = client.post("/v1/interest/accrual", json=body, headers=ADMIN)
    assert applied.json()["dry_run"] is False
    assert balances(client.get(f"/v1/accounts/{funded_account}"))["outstanding_debt"] == Decimal("1120")


def test_accrual_unknown_frequency(client: TestClient):
    response = client.post("/v1/interest/accrual", json={"frequency": "hourly"})
    assert response.status_code == 422


def test_rate_settings_update_bumps_version_and_logs_history(client: TestClient):
    before = client.get("/v1/interest/settings").json()
    assert before["rates"]["base_interest_rate"]["frequency"] == "annual"

    response = client.put(
        "/v1/interest/settings/base_interest_rate",
        json={"rate": "18", "frequency": "quarterly", "auto_apply": True, "apply_day": 5, "reason": "Policy change"},
        headers=ADMIN,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["version"] == before["version"] + 1
    assert data["rates"]["base_interest_rate"]["frequency"] == "quarterly"
    assert Decimal(data["rates"]["base_interest_rate"]["annual_equivalent"]) == Decimal("72")

    history = client.get("/v1/interest/history/base_interest_rate").json()["history"]
    assert history[0]["changed_by"] == "admin_1"
    assert history[0]["reason"] == "Policy change (Frequency: quarterly)"
    assert Decimal(history[0]["previous_rate"]) == Decimal("12")


@pytest.mark.parametrize("rate,apply_day", [("101", 1), ("5", 40)])
def test_rate_settings_validation(client: TestClient, rate, apply_day):
    response = client.put(
        "/v1/interest/settings/base_interest_rate",
        json={"rate": rate, "frequency": "monthly", "apply_day": apply_day, "reason": "Bad input"},
    )
    assert response.status_code == 422


def test_global_settings_toggle(client: TestClient):
    response = client.put("/v1/interest/settings", json={"calculation_method": "compound", "auto_accrual_enabled": True})
    data = response.json()
    assert data["calculation_method"] == "compound"
    assert data["auto_accrual_enabled"] is True


def test_schedule_and_frequencies(client: TestClient, funded_account: int):
    schedule = client.get("/v1/interest/schedule").json()
    assert [row["frequency"] for row in schedule] == ["daily", "weekly", "monthly", "quarterly", "annual"]

    frequencies = client.get("/v1/interest/frequencies").json()
    assert len(frequencies["frequencies"]) == 5
    assert Decimal(frequencies["comparison"]["monthly"]["rate_per_period"]) == Decimal("1")


def test_risk_tier_assignment(client: TestClient, funded_account: int):
    tier = client.post(
        "/v1/interest/risk-tiers",
        json={"name": "Premium", "code": "PREM", "interest_rate": "8", "interest_frequency": "annual"},
    )
    assert tier.status_code == 201
    assert tier.json()["interest_description"].endswith("annual (8.00% per year)")

    response = client.put(f"/v1/accounts/{funded_account}/risk-tier", json={"risk_tier_id": tier.json()["id"]})
    assert response.json()["interest_rate"]["source"] == "risk_tier"
    assert Decimal(response.json()["interest_rate"]["rate"]) == Decimal("8")


def test_risk_tier_admin_lifecycle(client: TestClient, funded_account: int):
    tier_id = client.post(
        "/v1/interest/risk-tiers",
        json={"name": "Standard", "code": "STD", "interest_rate": "1.5", "interest_frequency": "monthly"},
    ).json()["id"]
    client.put(f"/v1/accounts/{funded_account}/risk-tier", json={"risk_tier_id": tier_id})

    listed = client.get("/v1/interest/risk-tiers").json()["risk_tiers"]
    assert [(t["code"], t["accounts_count"]) for t in listed] == [("STD", 1)]
    assert Decimal(listed[0]["annual_equivalent_rate"]) == Decimal("18.00")

    updated = client.put(f"/v1/interest/risk-tiers/{tier_id}", json={"interest_rate": "2"})
    assert updated.status_code == 200
    assert Decimal(updated.json()["interest_rate"]) == Decimal("2")
    assert updated.json()["interest_frequency"] == "monthly"
    assert updated.json()["name"] == "Standard"

    in_use = client.delete(f"/v1/interest/risk-tiers/{tier_id}")
    assert in_use.status_code == 409
    assert "1 accounts" in in_use.json()["detail"]

    client.put(f"/v1/accounts/{funded_account}/risk-tier", json={"risk_tier_id": None})
    assert client.delete(f"/v1/interest/risk-tiers/{tier_id}").status_code == 204
    assert client.get("/v1/interest/risk-tiers").json()["risk_tiers"] == []
    assert client.delete(f"/v1/interest/risk-tiers/{tier_id}").status_code == 404


def test_risk_tier_update_rejects_bad_rate(client: TestClient):
    tier_id = client.post("/v1/interest/risk-tiers", json={"name": "Flat", "code": "FLAT"}).json()["id"]

    assert client.put(f"/v1/interest/risk-tiers/{tier_id}", json={"interest_rate": "150"}).status_code == 422
    assert client.put(f"/v1/interest/risk-tiers/{tier_id}", json={"interest_frequency": "hourly"}).status_code == 422
    assert client.post("/v1/interest/risk-tiers", json={"name": "Again", "code": "FLAT"}).status_code == 409


def test_accrual_preview_for_high_utilization(client: TestClient, funded_account: int):
    client.post(f"/v1/accounts/{funded_account}/purchase-orders", json={"po_ref": "PO-HU", "amount": "900"})
    low = client.post("/v1/accounts", json={"name": "Light User"}, headers=ADMIN).json()["account_id"]
    client.post(f"/v1/accounts/{low}/credit", json={"amount": "1000"}, headers=ADMIN)
    client.post(f"/v1/accounts/{low}/purchase-orders", json={"po_ref": "PO-LU", "amount": "100"})

    response = client.post(
        "/v1/interest/accrual",
        json={"frequency": "annual", "apply_to": "high_utilization", "force": True, "dry_run": True},
    )

    assert response.status_code == 200
    assert [item["account_id"] for item in response.json()["items"]] == [funded_account]


def test_accrual_for_specific_tier_needs_tier_id(client: TestClient):
    response = client.post("/v1/interest/accrual", json={"frequency": "annual", "apply_to": "specific_tier"})
    assert response.status_code == 422
