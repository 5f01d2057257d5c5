"""Integration tests for API endpoints"""

import pytest
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from float_ledger.domain.exceptions import RailRejectedError, RailTimeoutError
from float_ledger.infrastructure.clients.rail import RailReceipt
from float_ledger.infrastructure.database.models import FloatAccountRecord
from float_ledger.services.monitoring import FloatBalanceMonitor


@pytest.fixture
def supplier(client: TestClient) -> dict:
    response = client.post(
        "/v1/float-accounts",
        json={
            "account_id": "SUP-001",
            "display_name": "Acme Airtime",
            "opening_balance_cents": 100000,
            "minimum_balance_cents": 10000,
            "maximum_balance_cents": 1000000,
            "bank_account_number": "62001234567",
        },
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def dual(client: TestClient) -> dict:
    response = client.post(
        "/v1/float-accounts",
        json={
            "account_id": "DUAL-001",
            "display_name": "Corner Spaza",
            "role": "dual_role",
            "net_settlement_threshold_cents": 100000,
            "auto_settlement_enabled": True,
            "settlement_frequency": "real_time",
        },
    )
    assert response.status_code == 201
    return response.json()


def pending_withdrawal(client: TestClient, amount_cents: int = 30000) -> dict:
    response = client.post(
        "/v1/settlements",
        json={
            "account_id": "SUP-001",
            "settlement_type": "withdrawal",
            "direction": "outbound",
            "amount_cents": amount_cents,
        },
    )
    assert response.status_code == 201
    return response.json()


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "float-ledger"}


def test_metrics_endpoint(client: TestClient, supplier: dict):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "float_ledger_settlements_total" in response.text


def test_request_id_header(client: TestClient):
    assert client.get("/health").headers["X-Request-ID"]
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_create_and_get_float_account(client: TestClient, supplier: dict):
    assert supplier["balance_cents"] == 100000
    assert supplier["status"] == "active"
    assert supplier["utilization_percentage"] == 10.0

    response = client.get("/v1/float-accounts/SUP-001")
    assert response.status_code == 200
    assert response.json()["display_name"] == "Acme Airtime"


def test_duplicate_account_conflict(client: TestClient, supplier: dict):
    response = client.post("/v1/float-accounts", json={"account_id": "SUP-001", "display_name": "Again"})
    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_account"


def test_unknown_account_not_found(client: TestClient):
    response = client.get("/v1/float-accounts/NOPE")
    assert response.status_code == 404
    assert response.json() == {"error": "account_not_found", "detail": "Float account NOPE not found"}


def test_invalid_request_body(client: TestClient):
    response = client.post("/v1/float-accounts", json={"account_id": "X", "display_name": "X", "role": "bank"})
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


def test_apply_settlement_and_list(client: TestClient, supplier: dict):
    response = client.post(
        "/v1/float-accounts/SUP-001/settlements",
        json={"settlement_type": "topup", "direction": "inbound", "amount_cents": 25000},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "completed"
    assert body["balance_before_cents"] == 100000
    assert body["balance_after_cents"] == 125000

    listing = client.get("/v1/float-accounts/SUP-001/settlements", params={"status": "completed"}).json()
    assert listing["account_id"] == "SUP-001"
    assert len(listing["settlements"]) == 2

    audit = client.get("/v1/float-accounts/SUP-001/audit").json()
    assert audit["balanced"] is True
    assert audit["roles"]["supplier"] == {"stored_cents": 125000, "settled_cents": 125000}


def test_audit_mismatch_is_server_error(client: TestClient, supplier: dict, db: Session):
    db.query(FloatAccountRecord).filter(FloatAccountRecord.account_id == "SUP-001").update(
        {"supplier_balance_cents": 1}
    )
    db.commit()

    response = client.get("/v1/float-accounts/SUP-001/audit")
    assert response.status_code == 500
    assert response.json()["error"] == "invariant_violation"


def test_payshap_settlement_is_priced(client: TestClient, supplier: dict):
    response = client.post(
        "/v1/float-accounts/SUP-001/settlements",
        json={
            "settlement_type": "withdrawal",
            "direction": "outbound",
            "amount_cents": 10000,
            "transaction_class": "push_payment",
            "settlement_method": "payShap",
        },
    )
    assert response.status_code == 201
    body = response.json()
    assert body["fee_cents"] == 675
    assert body["net_amount_cents"] == 9325
    assert body["fee_breakdown"]["net_vat_payable_cents"] == 13


def test_balance_limit_is_unprocessable(client: TestClient, supplier: dict):
    response = client.post(
        "/v1/float-accounts/SUP-001/settlements",
        json={"settlement_type": "topup", "direction": "inbound", "amount_cents": 950000},
    )
    assert response.status_code == 422
    assert response.json()["error"] == "balance_limit_exceeded"


def test_suspended_account_conflict(client: TestClient, supplier: dict):
    assert client.post("/v1/float-accounts/SUP-001/status", json={"action": "suspend"}).json()["status"] == "suspended"

    response = client.post(
        "/v1/float-accounts/SUP-001/settlements",
        json={"settlement_type": "topup", "direction": "inbound", "amount_cents": 1000},
    )
    assert response.status_code == 409
    assert response.json()["error"] == "account_inactive"


def test_closed_account_cannot_reactivate(client: TestClient, supplier: dict):
    client.post("/v1/float-accounts/SUP-001/status", json={"action": "close"})
    response = client.post("/v1/float-accounts/SUP-001/status", json={"action": "reactivate"})
    assert response.status_code == 409
    assert response.json()["error"] == "invalid_status_transition"


@patch("float_ledger.infrastructure.clients.rail.RailClient.dispatch", new_callable=AsyncMock)
def test_dispatch_and_callback(mock_dispatch: AsyncMock, client: TestClient, supplier: dict):
    mock_dispatch.return_value = RailReceipt(bank_reference="RAIL-77", rail_status="accepted")
    settlement = pending_withdrawal(client)
    assert settlement["status"] == "pending"
    assert settlement["balance_after_cents"] is None

    response = client.post(f"/v1/settlements/{settlement['settlement_id']}/dispatch")
    assert response.status_code == 200
    assert response.json()["status"] == "processing"
    assert response.json()["bank_reference"] == "RAIL-77"

    response = client.post(f"/v1/settlements/{settlement['settlement_id']}/callback", json={"status": "completed"})
    assert response.json()["status"] == "completed"
    assert client.get("/v1/float-accounts/SUP-001").json()["balance_cents"] == 70000


@patch("float_ledger.infrastructure.clients.rail.RailClient.dispatch", new_callable=AsyncMock)
def test_dispatch_rejected_then_retry(mock_dispatch: AsyncMock, client: TestClient, supplier: dict):
    mock_dispatch.side_effect = RailRejectedError("AC01", "Incorrect account number")
    settlement = pending_withdrawal(client)

    failed = client.post(f"/v1/settlements/{settlement['settlement_id']}/dispatch").json()
    assert failed["status"] == "failed"
    assert failed["error_code"] == "AC01"

    retry = client.post(f"/v1/settlements/{settlement['settlement_id']}/retry")
    assert retry.status_code == 201
    assert retry.json()["retry_of"] == settlement["settlement_id"]
    assert retry.json()["status"] == "pending"
    assert client.get(f"/v1/settlements/{settlement['settlement_id']}").json()["status"] == "failed"


@patch("float_ledger.infrastructure.clients.rail.RailClient.dispatch", new_callable=AsyncMock)
def test_dispatch_timeout_stays_processing(mock_dispatch: AsyncMock, client: TestClient, supplier: dict):
    mock_dispatch.side_effect = RailTimeoutError("Payment rail timeout after 5.0s")
    settlement = pending_withdrawal(client)

    response = client.post(f"/v1/settlements/{settlement['settlement_id']}/dispatch")

    assert response.status_code == 200
    assert response.json()["status"] == "processing"
    assert client.get("/v1/float-accounts/SUP-001").json()["balance_cents"] == 100000


def test_cancel_pending_and_completed(client: TestClient, supplier: dict):
    settlement = pending_withdrawal(client)
    response = client.post(f"/v1/settlements/{settlement['settlement_id']}/cancel", json={"reason": "duplicate"})
    assert response.json()["status"] == "cancelled"

    response = client.post(f"/v1/settlements/{settlement['settlement_id']}/cancel")
    assert response.status_code == 409
    assert response.json()["error"] == "invalid_settlement_transition"


def test_unknown_settlement(client: TestClient):
    response = client.get("/v1/settlements/STL-MISSING")
    assert response.status_code == 404
    assert response.json()["error"] == "settlement_not_found"


def test_net_settlement_flow(client: TestClient, dual: dict):
    client.post(
        "/v1/float-accounts/DUAL-001/settlements",
        json={"settlement_type": "topup", "direction": "inbound", "amount_cents": 20000, "role": "merchant"},
    )
    client.post(
        "/v1/float-accounts/DUAL-001/settlements",
        json={"settlement_type": "topup", "direction": "inbound", "amount_cents": 140000, "role": "supplier"},
    )

    position = client.get("/v1/float-accounts/DUAL-001/net-position").json()
    assert position["net_balance_cents"] == 120000
    assert position["direction"] == "payout"
    assert position["requires_settlement"] is True

    due = client.get("/v1/settlements/due").json()
    assert len(due) == 1
    assert due[0]["is_net_settlement"] is True
    assert due[0]["amount_cents"] == 120000

    summary = client.get("/v1/float-accounts/settlement-summary").json()
    assert [p["account_id"] for p in summary["positions"]] == ["DUAL-001"]

    assert client.post("/v1/float-accounts/DUAL-001/net-settlement").json() is None


def test_dual_role_requires_role(client: TestClient, dual: dict):
    response = client.post(
        "/v1/float-accounts/DUAL-001/settlements",
        json={"settlement_type": "topup", "direction": "inbound", "amount_cents": 1000},
    )
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


def test_fee_quote(client: TestClient, supplier: dict):
    response = client.post("/v1/fees/quote", json={"account_id": "SUP-001", "transaction_class": "push_payment"})
    assert response.status_code == 200
    body = response.json()
    assert body["monthly_count"] == 0
    assert body["total_user_charge_incl_vat_cents"] == 675
    assert body["net_revenue_ex_vat_cents"] == 87

    rtp = client.post("/v1/fees/quote", json={"account_id": "SUP-001", "transaction_class": "request_to_pay"}).json()
    assert rtp["total_user_charge_incl_vat_cents"] == 575
    assert rtp["net_revenue_ex_vat_cents"] == 0


@patch("float_ledger.infrastructure.database.repositories.SettlementCountOracle.count", return_value=50000)
def test_negotiated_tier_unconfigured_fails_closed(mock_count, client: TestClient, supplier: dict):
    response = client.post("/v1/fees/quote", json={"account_id": "SUP-001", "transaction_class": "push_payment"})
    assert response.status_code == 500
    assert response.json()["error"] == "negotiated_fee_not_configured"


def test_proxy_validation_fee(client: TestClient):
    response = client.get("/v1/fees/proxy-validation")
    assert response.json() == {"fee_incl_vat_cents": 125, "fee_ex_vat_cents": 109, "vat_cents": 16}


@patch("float_ledger.api.v1.float_accounts.balance_monitor", new_callable=FloatBalanceMonitor)
def test_balance_alerts(mock_monitor, client: TestClient, supplier: dict):
    client.post(
        "/v1/float-accounts/SUP-001/settlements",
        json={"settlement_type": "withdrawal", "direction": "outbound", "amount_cents": 89000},
    )

    alerts = client.get("/v1/float-accounts/balance-alerts").json()

    assert alerts == [
        {"account_id": "SUP-001", "level": "warning", "balance_cents": 11000, "minimum_balance_cents": 10000}
    ]
