"""
Integration tests for verified-purchase reviews and moderation.
"""
import pytest

from app.core.roles import UserRole
from conftest import make_user, auth_header


async def _order(client, headers, product_id, quantity=12):
    response = await client.post("/api/v1/orders", headers=headers, json={
        "items": [{"productId": product_id, "quantity": quantity}],
        "shippingAddress": "House 7, Road 3, Dhanmondi",
        "paymentMethod": "COD",
    })
    assert response.status_code == 201, response.text
    return response.json()["data"]["id"]


async def _deliver(client, admin_headers, order_id):
    response = await client.patch(
        f"/api/v1/admin/orders/{order_id}/status", headers=admin_headers, json={"status": "DELIVERED"}
    )
    assert response.status_code == 200, response.text


async def _review(client, headers, product_id, rating=5, **extra):
    return await client.post("/api/v1/reviews", headers=headers, json={
        "productId": product_id, "rating": rating, "comment": "Stitching holds up after many washes", **extra,
    })


@pytest.mark.asyncio
async def test_review_requires_delivered_purchase(client, admin_headers, buyer_headers, product):
    order_id = await _order(client, buyer_headers, product.id)

    response = await _review(client, buyer_headers, product.id)
    assert response.status_code == 403
    assert response.json()["error"] == "You can only review products from your delivered orders"

    await _deliver(client, admin_headers, order_id)
    response = await _review(client, buyer_headers, product.id)
    assert response.status_code == 201
    review = response.json()["data"]
    assert review["status"] == "PENDING"
    assert review["orderId"] == order_id
    assert review["userName"] == "Buyer"

    response = await _review(client, buyer_headers, product.id, rating=1)
    assert response.status_code == 400
    assert response.json()["error"] == "You have already reviewed this product"


@pytest.mark.asyncio
async def test_cannot_review_through_someone_elses_order(client, db_session, admin_headers, buyer_headers, product):
    order_id = await _order(client, buyer_headers, product.id)
    await _deliver(client, admin_headers, order_id)

    other = make_user(db_session, UserRole.BUYER, "other@example.com", "Other")
    response = await _review(client, auth_header(other), product.id, orderId=order_id)
    assert response.status_code == 403

    response = await _review(client, buyer_headers, product.id, rating=6)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_moderation_and_public_listing(client, admin_headers, buyer_headers, product):
    await _deliver(client, admin_headers, await _order(client, buyer_headers, product.id))
    review_id = (await _review(client, buyer_headers, product.id, rating=4)).json()["data"]["id"]

    response = await client.get(f"/api/v1/reviews/product/{product.id}")
    assert response.json()["pagination"]["total"] == 0

    response = await client.patch(f"/api/v1/admin/reviews/{review_id}", headers=buyer_headers, json={"status": "APPROVED"})
    assert response.status_code == 403

    response = await client.patch(f"/api/v1/admin/reviews/{review_id}", headers=admin_headers, json={"status": "APPROVED"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "APPROVED"
    assert response.json()["data"]["moderatedAt"] is not None

    response = await client.get(f"/api/v1/reviews/product/{product.id}")
    body = response.json()
    assert body["pagination"]["total"] == 1
    assert body["summary"]["averageRating"] == 4.0
    assert body["summary"]["totalReviews"] == 1
    assert body["summary"]["ratingDistribution"]["4"] == 1

    response = await client.patch(f"/api/v1/reviews/{review_id}", headers=buyer_headers, json={"comment": "Faded a bit"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "PENDING"

    response = await client.get("/api/v1/admin/reviews", headers=admin_headers, params={"status": "pending"})
    assert response.json()["pagination"]["total"] == 1

    response = await client.delete(f"/api/v1/admin/reviews/{review_id}", headers=admin_headers)
    assert response.status_code == 200
    response = await client.get("/api/v1/admin/reviews", headers=admin_headers)
    assert response.json()["pagination"]["total"] == 0


@pytest.mark.asyncio
async def test_only_the_author_edits_or_deletes(client, db_session, admin_headers, buyer_headers, product):
    await _deliver(client, admin_headers, await _order(client, buyer_headers, product.id))
    review_id = (await _review(client, buyer_headers, product.id)).json()["data"]["id"]

    stranger = auth_header(make_user(db_session, UserRole.BUYER, "stranger@example.com", "Stranger"))
    response = await client.patch(f"/api/v1/reviews/{review_id}", headers=stranger, json={"rating": 1})
    assert response.status_code == 403
    response = await client.delete(f"/api/v1/reviews/{review_id}", headers=stranger)
    assert response.status_code == 403

    response = await client.delete(f"/api/v1/reviews/{review_id}", headers=buyer_headers)
    assert response.status_code == 200
    response = await client.delete(f"/api/v1/reviews/{review_id}", headers=buyer_headers)
    assert response.status_code == 404
