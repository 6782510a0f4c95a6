"""
Integration tests for checkout, cancellation, status changes and completion.
"""
import pytest

from app.core.roles import UserRole
from app.models import FinancialLedger, InventoryLog, Product, StockLot
from app.services.inventory_service import StockService
from conftest import make_user, auth_header

ADDRESS = "House 7, Road 3, Dhanmondi"


async def _place(client, headers, product_id, quantity, **extra):
    payload = {
        "items": [{"productId": product_id, "quantity": quantity}],
        "shippingAddress": ADDRESS,
        "paymentMethod": "COD",
        **extra,
    }
    return await client.post("/api/v1/orders", headers=headers, json=payload)


@pytest.mark.asyncio
async def test_wholesale_price_applies_at_moq(client, db_session, buyer_headers, product):
    """12 units reach the MOQ of 10, so the wholesale price is charged."""
    response = await _place(client, buyer_headers, product.id, 12)
    assert response.status_code == 201
    order = response.json()["data"]
    assert order["orderNumber"].startswith("ORD-")
    assert order["status"] == "PENDING"
    assert order["items"][0]["unitPrice"] == 8.0
    assert order["subtotal"] == 96.0
    assert order["tax"] == 4.8
    assert order["shippingFee"] == 50.0
    assert order["total"] == 150.8

    db_session.expire_all()
    assert db_session.get(Product, product.id).stock_quantity == 88
    log = db_session.query(InventoryLog).one()
    assert (log.action, log.quantity, log.previous_stock, log.new_stock) == ("SALE", -12, 100, 88)


@pytest.mark.asyncio
async def test_below_moq_pays_base_price(client, buyer_headers, product):
    response = await _place(client, buyer_headers, product.id, 5)
    assert response.status_code == 201
    order = response.json()["data"]
    assert order["items"][0]["unitPrice"] == 10.0
    assert order["total"] == 102.5


@pytest.mark.asyncio
async def test_repeated_lines_are_merged(client, buyer_headers, product):
    response = await client.post("/api/v1/orders", headers=buyer_headers, json={
        "items": [{"productId": product.id, "quantity": 6}, {"productId": product.id, "quantity": 6}],
        "shippingAddress": ADDRESS,
        "paymentMethod": "COD",
    })
    items = response.json()["data"]["items"]
    assert len(items) == 1
    assert items[0]["quantity"] == 12
    assert items[0]["unitPrice"] == 8.0


@pytest.mark.asyncio
async def test_guest_checkout(client, product):
    response = await _place(client, {}, product.id, 2)
    assert response.status_code == 400
    assert "guest" in response.json()["error"].lower()

    response = await _place(client, {}, product.id, 2, guestName="Karim", guestMobile="01711111111")
    assert response.status_code == 201
    assert response.json()["data"]["userId"] is None


@pytest.mark.asyncio
async def test_insufficient_stock_rolls_back(client, db_session, buyer_headers, product):
    response = await _place(client, buyer_headers, product.id, 101)
    assert response.status_code == 400
    assert response.json()["error"].startswith("Insufficient stock")

    db_session.expire_all()
    assert db_session.get(Product, product.id).stock_quantity == 100


@pytest.mark.asyncio
async def test_cancel_restocks_once(client, db_session, buyer_headers, product):
    order_id = (await _place(client, buyer_headers, product.id, 12)).json()["data"]["id"]

    response = await client.post(f"/api/v1/orders/{order_id}/cancel", headers=buyer_headers, json={"reason": "Changed mind"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "CANCELLED"
    assert response.json()["data"]["cancelReason"] == "Changed mind"

    db_session.expire_all()
    assert db_session.get(Product, product.id).stock_quantity == 100
    assert db_session.query(InventoryLog).filter_by(action="CANCELLATION").count() == 1

    response = await client.post(f"/api/v1/orders/{order_id}/cancel", headers=buyer_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Order is already cancelled"


@pytest.mark.asyncio
async def test_other_buyers_cannot_see_or_cancel(client, db_session, buyer_headers, product):
    order_id = (await _place(client, buyer_headers, product.id, 1)).json()["data"]["id"]
    stranger = auth_header(make_user(db_session, UserRole.BUYER, "stranger@example.com"))

    response = await client.get(f"/api/v1/orders/{order_id}", headers=stranger)
    assert response.status_code == 404

    response = await client.post(f"/api/v1/orders/{order_id}/cancel", headers=stranger)
    assert response.status_code == 403

    response = await client.get("/api/v1/orders", headers=stranger)
    assert response.json()["pagination"]["total"] == 0


@pytest.mark.asyncio
async def test_complete_with_fifo_lots(client, db_session, admin_headers, buyer_headers, product):
    await client.post("/api/v1/admin/inventory/restock", headers=admin_headers, json={
        "productId": product.id, "quantity": 50, "costPerUnit": "5.00",
    })
    order_id = (await _place(client, buyer_headers, product.id, 12)).json()["data"]["id"]

    response = await client.post(f"/api/v1/admin/orders/{order_id}/complete", headers=admin_headers)
    assert response.status_code == 400

    response = await client.patch(f"/api/v1/admin/orders/{order_id}/status", headers=admin_headers, json={"status": "SHIPPED"})
    assert response.status_code == 200

    response = await client.post(
        f"/api/v1/admin/orders/{order_id}/complete", headers=admin_headers, json={"costingMethod": "FIFO"}
    )
    assert response.status_code == 200
    order = response.json()["data"]
    assert order["status"] == "DELIVERED"
    assert order["totalCost"] == 60.0
    assert order["grossProfit"] == 90.8
    assert order["costingMethod"] == "FIFO"
    assert order["completedAt"] is not None

    db_session.expire_all()
    assert db_session.query(StockLot).one().quantity_remaining == 38
    entries = {e.direction: e for e in db_session.query(FinancialLedger).filter_by(source_type="ORDER")}
    assert float(entries["CREDIT"].amount) == 150.8
    assert float(entries["DEBIT"].amount) == 60.0
    assert entries["CREDIT"].order_id == order_id

    response = await client.post(f"/api/v1/admin/orders/{order_id}/complete", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Order already completed"

    response = await client.post(f"/api/v1/orders/{order_id}/cancel", headers=buyer_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_delivering_without_lots_uses_cost_price(client, admin_headers, buyer_headers, product):
    order_id = (await _place(client, buyer_headers, product.id, 12)).json()["data"]["id"]

    response = await client.patch(f"/api/v1/admin/orders/{order_id}/status", headers=admin_headers, json={"status": "DELIVERED"})
    assert response.status_code == 200
    order = response.json()["data"]
    assert order["totalCost"] == 48.0
    assert order["items"][0]["costPerUnit"] == 4.0


@pytest.mark.asyncio
async def test_status_moves_forward_only(client, admin_headers, buyer_headers, product):
    order_id = (await _place(client, buyer_headers, product.id, 1)).json()["data"]["id"]
    await client.patch(f"/api/v1/admin/orders/{order_id}/status", headers=admin_headers, json={"status": "SHIPPED"})

    response = await client.patch(f"/api/v1/admin/orders/{order_id}/status", headers=admin_headers, json={"status": "PROCESSING"})
    assert response.status_code == 400

    response = await client.patch(f"/api/v1/admin/orders/{order_id}/status", headers=admin_headers, json={"paymentStatus": "PAID"})
    assert response.status_code == 200
    assert response.json()["data"]["paymentStatus"] == "PAID"

    response = await client.patch(f"/api/v1/admin/orders/{order_id}/status", headers=admin_headers, json={})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_cancel_locks_products_before_restocking(client, buyer_headers, product, monkeypatch):
    order_id = (await _place(client, buyer_headers, product.id, 12)).json()["data"]["id"]

    calls = []
    original = StockService.product_query

    def recording(self, product_id, for_update=False):
        calls.append((product_id, for_update))
        return original(self, product_id, for_update)

    monkeypatch.setattr(StockService, "product_query", recording)
    response = await client.post(f"/api/v1/orders/{order_id}/cancel", headers=buyer_headers)
    assert response.status_code == 200
    assert calls == [(product.id, True)]


@pytest.mark.asyncio
async def test_tier_and_customer_discount_at_checkout(client, admin_headers, buyer, buyer_headers, product):
    response = await client.put(f"/api/v1/admin/products/{product.id}", headers=admin_headers, json={
        "priceTiers": [
            {"minQuantity": 50, "unitPrice": "7.00"},
            {"minQuantity": 10, "maxQuantity": 49, "unitPrice": "7.50"},
        ],
    })
    assert response.status_code == 200, response.text
    assert [t["unitPrice"] for t in response.json()["data"]["priceTiers"]] == [7.5, 7.0]

    response = await client.patch(f"/api/v1/admin/customers/{buyer.id}/discount", headers=buyer_headers, json={
        "discountPercentage": 10,
    })
    assert response.status_code == 403

    response = await client.patch(f"/api/v1/admin/customers/{buyer.id}/discount", headers=admin_headers, json={
        "discountPercentage": 150,
    })
    assert response.status_code == 400

    response = await client.patch(f"/api/v1/admin/customers/{buyer.id}/discount", headers=admin_headers, json={
        "discountPercentage": 10, "discountReason": "Volume account",
    })
    assert response.status_code == 200
    assert response.json()["data"]["discountPercentage"] == 10.0

    response = await client.get(f"/api/v1/products/{product.id}/price", headers=buyer_headers, params={"quantity": 60})
    quote = response.json()["data"]
    assert quote["tier"]["minQuantity"] == 50
    assert quote["finalUnitPrice"] == 6.3

    response = await client.get(f"/api/v1/products/{product.id}/price", params={"quantity": 60})
    assert response.json()["data"]["customerDiscountPercent"] == 0

    response = await _place(client, buyer_headers, product.id, 60)
    assert response.status_code == 201
    order = response.json()["data"]
    item = order["items"][0]
    assert item["unitPrice"] == 7.0
    assert item["discountAmount"] == 42.0
    assert item["totalPrice"] == 378.0
    assert order["subtotal"] == 420.0
    assert order["discount"] == 42.0
    assert order["tax"] == 18.9
    assert order["total"] == 446.9


@pytest.mark.asyncio
async def test_overlapping_price_tiers_rejected(client, admin_headers, product):
    response = await client.put(f"/api/v1/admin/products/{product.id}", headers=admin_headers, json={
        "priceTiers": [
            {"minQuantity": 10, "maxQuantity": 60, "unitPrice": "7.50"},
            {"minQuantity": 50, "unitPrice": "7.00"},
        ],
    })
    assert response.status_code == 400
