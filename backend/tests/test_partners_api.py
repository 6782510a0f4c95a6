"""
Integration tests for partners, the share limit and profit distribution.
"""
from datetime import date, timedelta

import pytest

from app.core.roles import UserRole
from app.models import FinancialLedger, Partner
from conftest import make_user, auth_header


def _period():
    today = date.today()
    return {
        "periodType": "MONTHLY",
        "startDate": (today - timedelta(days=1)).isoformat(),
        "endDate": (today + timedelta(days=1)).isoformat(),
    }


async def _partner(client, headers, name, share, **extra):
    response = await client.post("/api/v1/admin/partners", headers=headers, json={
        "name": name, "profitSharePercentage": share, **extra,
    })
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_share_limit_and_super_admin_override(client, admin_headers, super_admin_headers):
    await _partner(client, admin_headers, "Alpha", "60")
    await _partner(client, admin_headers, "Beta", "40")

    response = await client.post("/api/v1/admin/partners", headers=admin_headers, json={
        "name": "Gamma", "profitSharePercentage": "10",
    })
    assert response.status_code == 400
    assert "exceeds 100%" in response.json()["error"]

    response = await client.post("/api/v1/admin/partners", headers=super_admin_headers, json={
        "name": "Gamma", "profitSharePercentage": "10",
    })
    assert response.status_code == 201
    assert "Super admin override" in response.json()["warning"]

    response = await client.get("/api/v1/admin/partners", headers=admin_headers)
    summary = response.json()["summary"]
    assert summary["totalPartners"] == 3
    assert summary["totalActiveShare"] == 110.0
    assert summary["remainingShare"] == 0


@pytest.mark.asyncio
async def test_contact_edits_allowed_while_shares_over_limit(client, admin_headers, super_admin_headers):
    alpha = await _partner(client, admin_headers, "Alpha", "60")
    await _partner(client, admin_headers, "Beta", "40")
    await _partner(client, super_admin_headers, "Gamma", "10")

    response = await client.patch(
        f"/api/v1/admin/partners/{alpha['id']}", headers=admin_headers, json={"phone": "555-0100"}
    )
    assert response.status_code == 200, response.text
    assert response.json()["data"]["phone"] == "555-0100"

    response = await client.patch(
        f"/api/v1/admin/partners/{alpha['id']}", headers=admin_headers, json={"profitSharePercentage": "61"}
    )
    assert response.status_code == 400
    assert "exceeds 100%" in response.json()["error"]


@pytest.mark.asyncio
async def test_inactive_partners_do_not_count_toward_limit(client, admin_headers):
    await _partner(client, admin_headers, "Alpha", "90")
    sleeper = await _partner(client, admin_headers, "Sleeper", "50", isActive=False)

    response = await client.patch(
        f"/api/v1/admin/partners/{sleeper['id']}", headers=admin_headers, json={"isActive": True}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_distribution_run(client, db_session, admin_headers, delivered_order):
    """Net profit of 400 split 60/40, paid out, and never distributed twice."""
    alpha = await _partner(client, admin_headers, "Alpha", "60")
    beta = await _partner(client, admin_headers, "Beta", "40")
    delivered_order("1000.00", "600.00")

    response = await client.post("/api/v1/admin/profits", headers=admin_headers, json={"action": "distribute", **_period()})
    assert response.status_code == 201
    data = response.json()["data"]
    amounts = {d["partnerId"]: d["distributionAmount"] for d in data["distributions"]}
    assert amounts == {alpha["id"]: 240.0, beta["id"]: 160.0}
    assert data["totalDistributed"] == data["period"]["netProfit"] == 400.0
    assert all(d["status"] == "PENDING" for d in data["distributions"])
    assert {d["partnerName"] for d in data["distributions"]} == {"Alpha", "Beta"}

    response = await client.post("/api/v1/admin/profits", headers=admin_headers, json={"action": "distribute", **_period()})
    assert response.status_code == 400
    assert "already been distributed" in response.json()["error"]

    payouts = {d["partnerId"]: d["id"] for d in data["distributions"]}

    response = await client.patch(
        f"/api/v1/admin/payouts/{payouts[alpha['id']]}", headers=admin_headers,
        json={"status": "PAID", "paymentMethod": "BANK_TRANSFER", "paymentReference": "TRX-1"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["paidAt"] is not None

    db_session.expire_all()
    assert float(db_session.get(Partner, alpha["id"]).total_profit_received) == 240.0
    commission = db_session.query(FinancialLedger).filter_by(source_type="COMMISSION").one()
    assert commission.direction == "DEBIT"
    assert float(commission.amount) == 240.0

    response = await client.patch(
        f"/api/v1/admin/payouts/{payouts[alpha['id']]}", headers=admin_headers, json={"status": "REJECTED"}
    )
    assert response.status_code == 400

    response = await client.delete(f"/api/v1/admin/payouts/{payouts[alpha['id']]}", headers=admin_headers)
    assert response.status_code == 400

    response = await client.delete(f"/api/v1/admin/payouts/{payouts[beta['id']]}", headers=admin_headers)
    assert response.status_code == 200

    response = await client.get("/api/v1/admin/payouts", headers=admin_headers)
    totals = response.json()["totals"]
    assert totals["PAID"] == 240.0
    assert totals["total"] == 240.0

    response = await client.delete(f"/api/v1/admin/partners/{alpha['id']}", headers=admin_headers)
    assert response.json()["data"] == {"deleted": False}


@pytest.mark.asyncio
async def test_nothing_to_distribute_without_profit(client, admin_headers):
    await _partner(client, admin_headers, "Alpha", "100")

    response = await client.post("/api/v1/admin/profits", headers=admin_headers, json={"action": "distribute", **_period()})
    assert response.status_code == 400
    assert response.json()["error"].startswith("No profit to distribute")


@pytest.mark.asyncio
async def test_partner_sees_own_distributions(client, db_session, admin_headers, delivered_order):
    user = make_user(db_session, UserRole.PARTNER, "partner@example.com", "Pat")
    await _partner(client, admin_headers, "Pat", "100", userId=user.id)
    delivered_order("1000.00", "600.00")
    await client.post("/api/v1/admin/profits", headers=admin_headers, json={"action": "distribute", **_period()})

    response = await client.get("/api/v1/partner/distributions", headers=auth_header(user))
    assert response.status_code == 200
    body = response.json()
    assert body["data"]["partner"]["name"] == "Pat"
    assert len(body["data"]["distributions"]) == 1
    assert body["totals"]["PENDING"] == 400.0

    response = await client.post("/api/v1/admin/profits", headers=auth_header(user), json={"action": "distribute", **_period()})
    assert response.status_code == 403
