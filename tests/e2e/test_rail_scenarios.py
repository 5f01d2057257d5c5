"""
E2E tests dispatching settlements to the mock payment rail.

These tests require the mock rail server to be running on RAIL_API_BASE:
    uvicorn mock.rail_server.main:app --port 8001

Scenarios:
- supplier with bank details: rail accepts, settlement waits in processing
- supplier without bank details: rail rejects, settlement fails and can be retried
- dual-role shop: net settlement raised in real time and paid out through the rail
"""

import pytest
from fastapi.testclient import TestClient


def create_account(client: TestClient, **fields) -> dict:
    response = client.post("/v1/float-accounts", json=fields)
    assert response.status_code == 201
    return response.json()


def create_withdrawal(client: TestClient, account_id: str, amount_cents: int) -> dict:
    response = client.post(
        "/v1/settlements",
        json={
            "account_id": account_id,
            "settlement_type": "withdrawal",
            "direction": "outbound",
            "amount_cents": amount_cents,
            "settlement_method": "eft",
        },
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.integration
def test_supplier_with_bank_details_is_accepted(client: TestClient):
    """
    Expected: rail accepts, settlement processing with a rail reference,
    balance untouched until the callback confirms it
    """
    create_account(
        client,
        account_id="SUP-E2E-1",
        display_name="Acme Airtime",
        opening_balance_cents=500000,
        bank_account_number="62001234567",
        bank_code="250655",
    )
    settlement = create_withdrawal(client, "SUP-E2E-1", 200000)

    data = client.post(f"/v1/settlements/{settlement['settlement_id']}/dispatch").json()

    assert data["status"] == "processing"
    assert data["bank_reference"].startswith("RAIL-")
    assert client.get("/v1/float-accounts/SUP-E2E-1").json()["balance_cents"] == 500000

    data = client.post(f"/v1/settlements/{settlement['settlement_id']}/callback", json={"status": "completed"}).json()
    assert data["balance_after_cents"] == 300000


@pytest.mark.integration
def test_supplier_without_bank_details_is_rejected(client: TestClient):
    """
    Expected: rail rejects, settlement failed with the rail's error code,
    a retry is a new pending settlement
    """
    create_account(client, account_id="SUP-E2E-2", display_name="No Bank Ltd", opening_balance_cents=50000)
    settlement = create_withdrawal(client, "SUP-E2E-2", 10000)

    data = client.post(f"/v1/settlements/{settlement['settlement_id']}/dispatch").json()

    assert data["status"] == "failed"
    assert data["error_code"] == "NO_BENEFICIARY"
    retry = client.post(f"/v1/settlements/{settlement['settlement_id']}/retry").json()
    assert retry["retry_of"] == settlement["settlement_id"]
    assert client.get("/v1/float-accounts/SUP-E2E-2").json()["balance_cents"] == 50000


@pytest.mark.integration
def test_dual_role_net_payout(client: TestClient):
    """
    Expected: crossing the threshold raises a net payout that is due at once,
    and paying it out leaves the account balanced
    """
    create_account(
        client,
        account_id="DUAL-E2E-1",
        display_name="Corner Spaza",
        role="dual_role",
        net_settlement_threshold_cents=100000,
        auto_settlement_enabled=True,
        settlement_frequency="real_time",
        bank_account_number="1234567890",
    )
    client.post(
        "/v1/float-accounts/DUAL-E2E-1/settlements",
        json={"settlement_type": "topup", "direction": "inbound", "amount_cents": 150000, "role": "supplier"},
    )

    due = client.get("/v1/settlements/due").json()
    net = next(s for s in due if s["account_id"] == "DUAL-E2E-1")
    data = client.post(f"/v1/settlements/{net['settlement_id']}/dispatch").json()
    assert data["status"] == "processing"

    client.post(f"/v1/settlements/{net['settlement_id']}/callback", json={"status": "completed"})
    position = client.get("/v1/float-accounts/DUAL-E2E-1/net-position").json()
    assert position["net_balance_cents"] == 0
    assert position["direction"] == "balanced"
