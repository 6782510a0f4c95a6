"""
Integration tests for profit reporting, the ledger and reconciliation.
"""
from datetime import date, timedelta

import pytest

from app.api.deps import success
from app.models import FinancialLedger


def _window():
    today = date.today()
    return {"startDate": (today - timedelta(days=1)).isoformat(), "endDate": (today + timedelta(days=1)).isoformat()}


@pytest.mark.asyncio
async def test_compare_matches_when_ledger_agrees(client, admin_headers, delivered_order):
    delivered_order("1000.00", "600.00")

    response = await client.post("/api/v1/admin/financial/ledger/reconcile", headers=admin_headers, json={
        "action": "compare", **_window(),
    })
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["overallMatch"] is True
    assert data["revenueDifference"] == 0
    assert data["cogsDifference"] == 0
    assert data["orders"]["count"] == 1


@pytest.mark.asyncio
async def test_compare_flags_missing_ledger_entries(client, admin_headers, delivered_order):
    delivered_order("500.00", "200.00", with_ledger=False)

    response = await client.post("/api/v1/admin/financial/ledger/reconcile", headers=admin_headers, json={
        "action": "compare", **_window(),
    })
    data = response.json()["data"]
    assert data["overallMatch"] is False
    assert data["revenueDifference"] == 500.0
    assert any("Revenue mismatch" in notice for notice in data["notices"])


@pytest.mark.asyncio
async def test_reconcile_marks_entries(client, db_session, admin_headers, delivered_order):
    delivered_order("1000.00", "600.00")
    ids = [entry.id for entry in db_session.query(FinancialLedger).all()]

    response = await client.post("/api/v1/admin/financial/ledger/reconcile", headers=admin_headers, json={
        "action": "reconcile", "entryIds": ids,
    })
    assert response.status_code == 200
    assert response.json()["data"]["reconciledCount"] == 2

    response = await client.get("/api/v1/admin/financial/ledger", headers=admin_headers, params={"reconciled": "false"})
    assert response.json()["pagination"]["total"] == 0

    response = await client.post("/api/v1/admin/financial/ledger/reconcile", headers=admin_headers, json={"action": "merge"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid action"


@pytest.mark.asyncio
async def test_ledger_listing_totals(client, admin_headers, delivered_order):
    delivered_order("1000.00", "600.00")

    response = await client.get("/api/v1/admin/financial/ledger", headers=admin_headers)
    assert response.status_code == 200
    body = response.json()
    assert len(body["data"]) == 2
    assert body["totals"] == {"credits": 1000.0, "debits": 600.0, "netBalance": 400.0}

    response = await client.get("/api/v1/admin/financial/ledger", headers=admin_headers, params={"direction": "DEBIT"})
    assert response.json()["totals"]["credits"] == 0


@pytest.mark.asyncio
async def test_adjustment_is_a_new_entry(client, db_session, admin_headers):
    response = await client.post("/api/v1/admin/financial/ledger", headers=admin_headers, json={
        "amount": "25.00", "direction": "DEBIT", "reason": "Bank charge missed in March",
    })
    assert response.status_code == 201
    assert response.json()["data"]["sourceType"] == "ADJUSTMENT"
    assert db_session.query(FinancialLedger).count() == 1


@pytest.mark.asyncio
async def test_period_profit(client, admin_headers, delivered_order):
    delivered_order("1000.00", "600.00")

    response = await client.get("/api/v1/admin/profits", headers=admin_headers, params=_window())
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["revenue"] == 1000.0
    assert data["cogs"] == 600.0
    assert data["grossProfit"] == 400.0
    assert data["netProfit"] == 400.0
    assert data["orderCount"] == 1

    response = await client.get("/api/v1/admin/profits", headers=admin_headers)
    assert response.status_code == 400

    response = await client.get("/api/v1/admin/profits", headers=admin_headers, params={"action": "summary", "period": "this_month"})
    assert response.status_code == 200
    assert response.json()["data"]["netProfit"] == 400.0


@pytest.mark.asyncio
async def test_profit_loss_report(client, admin_headers, delivered_order):
    delivered_order("1000.00", "600.00")
    today = date.today()

    response = await client.get("/api/v1/admin/profit-loss", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "year is required"

    response = await client.get("/api/v1/admin/profit-loss", headers=admin_headers, params={"year": today.year})
    assert response.status_code == 400

    response = await client.get(
        "/api/v1/admin/profit-loss", headers=admin_headers, params={"year": today.year, "month": today.month}
    )
    assert response.status_code == 200
    assert response.json()["data"]


@pytest.mark.asyncio
async def test_buyer_cannot_view_profit(client, buyer_headers):
    response = await client.get("/api/v1/admin/profits", headers=buyer_headers, params=_window())
    assert response.status_code == 403


def test_envelope_uses_camel_case_keys_but_keeps_data_keys():
    body = success(
        {"net_balance": 1, "by_category": {"OPERATING_EXPENSE": {"CREDIT": 0}}, "items": [{"in_stock": 2}]},
        total_net=3,
    )
    assert body == {
        "success": True,
        "data": {"netBalance": 1, "byCategory": {"OPERATING_EXPENSE": {"CREDIT": 0}}, "items": [{"inStock": 2}]},
        "totalNet": 3,
    }
