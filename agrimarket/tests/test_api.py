"""
HTTP-level tests: routing, authentication and error mapping.
"""
from decimal import Decimal

import pytest

from agrimarket.app.models.product import Product
from agrimarket.tests.helpers import auth_header, reload

ADMIN = {"X-Admin-Token": "test_admin_secret"}


# ============================================
# SERVICE ENDPOINTS
# ============================================

@pytest.mark.asyncio
async def test_root_and_health(client):
    assert (await client.get("/")).json() == {"status": "ok"}

    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "ok"


@pytest.mark.asyncio
async def test_metrics_endpoint(client):
    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "orders_created_total" in response.text


# ============================================
# ORDERS
# ============================================

@pytest.mark.asyncio
async def test_create_order(client, buyer, farmer, product, notifier):
    response = await client.post(
        "/orders",
        json={"product_id": product.id, "quantity": 3, "delivery_method": "delivery"},
        headers=auth_header(buyer.id),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["farmer_id"] == farmer.id
    assert Decimal(str(data["total_price"])) == Decimal("35.00")
    assert [n.user_id for n in notifier.of_type("order_received")] == [farmer.id]


@pytest.mark.asyncio
async def test_create_order_requires_token(client, product):
    response = await client.post("/orders", json={"product_id": product.id, "quantity": 1})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_order_rejects_bad_token(client, product):
    response = await client.post(
        "/orders",
        json={"product_id": product.id, "quantity": 1},
        headers={"Authorization": "Bearer not-a-token"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_order_error_mapping(client, buyer, farmer, product):
    missing = await client.post("/orders", json={"product_id": 9999, "quantity": 1}, headers=auth_header(buyer.id))
    assert missing.status_code == 404

    too_many = await client.post("/orders", json={"product_id": product.id, "quantity": 50}, headers=auth_header(buyer.id))
    assert too_many.status_code == 400

    own = await client.post("/orders", json={"product_id": product.id, "quantity": 1}, headers=auth_header(farmer.id))
    assert own.status_code == 400

    bad_method = await client.post(
        "/orders",
        json={"product_id": product.id, "quantity": 1, "delivery_method": "drone"},
        headers=auth_header(buyer.id),
    )
    assert bad_method.status_code == 400

    zero = await client.post("/orders", json={"product_id": product.id, "quantity": 0}, headers=auth_header(buyer.id))
    assert zero.status_code == 422


@pytest.mark.asyncio
async def test_order_lifecycle(client, session_factory, buyer, farmer, product):
    created = await client.post("/orders", json={"product_id": product.id, "quantity": 2}, headers=auth_header(buyer.id))
    order_id = created.json()["id"]

    forbidden = await client.post(f"/orders/{order_id}/confirm", headers=auth_header(buyer.id))
    assert forbidden.status_code == 403

    confirmed = await client.post(
        f"/orders/{order_id}/confirm",
        json={"farmer_notes": "Picked this morning"},
        headers=auth_header(farmer.id),
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"
    assert confirmed.json()["farmer_notes"] == "Picked this morning"
    assert (await reload(session_factory, Product, product.id)).remaining_quantity == 3

    again = await client.post(f"/orders/{order_id}/confirm", headers=auth_header(farmer.id))
    assert again.status_code == 409

    preparing = await client.post(
        f"/orders/{order_id}/status", json={"status": "preparing"}, headers=auth_header(farmer.id)
    )
    assert preparing.json()["status"] == "preparing"

    cancelled = await client.post(
        f"/orders/{order_id}/cancel", json={"reason": "Changed plans"}, headers=auth_header(buyer.id)
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["cancelled_by"] == "buyer"
    assert (await reload(session_factory, Product, product.id)).remaining_quantity == 5

    delivered = await client.post(
        f"/orders/{order_id}/status", json={"status": "delivered"}, headers=auth_header(farmer.id)
    )
    assert delivered.status_code == 400


@pytest.mark.asyncio
async def test_order_reads(client, buyer, other_buyer, farmer, product):
    created = await client.post("/orders", json={"product_id": product.id, "quantity": 1}, headers=auth_header(buyer.id))
    order_id = created.json()["id"]

    assert (await client.get(f"/orders/{order_id}", headers=auth_header(buyer.id))).status_code == 200
    assert (await client.get(f"/orders/{order_id}", headers=auth_header(other_buyer.id))).status_code == 403
    assert (await client.get("/orders/9999", headers=auth_header(buyer.id))).status_code == 404

    mine = await client.get("/orders/mine", headers=auth_header(buyer.id))
    assert [o["id"] for o in mine.json()] == [order_id]

    incoming = await client.get("/orders/mine?as_farmer=true&status=pending", headers=auth_header(farmer.id))
    assert [o["id"] for o in incoming.json()] == [order_id]

    bad_filter = await client.get("/orders/mine?as_farmer=true&status=lost", headers=auth_header(farmer.id))
    assert bad_filter.status_code == 400


# ============================================
# STOCK
# ============================================

@pytest.mark.asyncio
async def test_adjust_stock_endpoint(client, farmer, buyer, product):
    response = await client.post(
        f"/products/{product.id}/stock",
        json={"delta": 5, "operation": "subtract"},
        headers=auth_header(farmer.id),
    )
    assert response.status_code == 200
    assert response.json()["remaining_quantity"] == 0
    assert response.json()["status"] == "sold_out"

    conflict = await client.post(
        f"/products/{product.id}/stock", json={"delta": 1}, headers=auth_header(farmer.id)
    )
    assert conflict.status_code == 409

    not_owner = await client.post(
        f"/products/{product.id}/stock", json={"delta": 1, "operation": "add"}, headers=auth_header(buyer.id)
    )
    assert not_owner.status_code == 403


# ============================================
# CONVERSATIONS
# ============================================

@pytest.mark.asyncio
async def test_conversation_flow(client, buyer, farmer, notifier):
    opened = await client.post("/conversations", json={"other_user_id": farmer.id}, headers=auth_header(buyer.id))
    assert opened.status_code == 201
    assert opened.json()["created"] is True
    conversation_id = opened.json()["id"]

    reopened = await client.post("/conversations", json={"other_user_id": buyer.id}, headers=auth_header(farmer.id))
    assert reopened.status_code == 200
    assert reopened.json()["id"] == conversation_id
    assert reopened.json()["created"] is False

    sent = await client.post(
        f"/conversations/{conversation_id}/messages",
        json={"content": "Are the dates organic?"},
        headers=auth_header(buyer.id),
    )
    assert sent.status_code == 201
    assert sent.json()["sender_id"] == buyer.id
    assert [n.user_id for n in notifier.of_type("new_message")] == [farmer.id]

    listed = await client.get("/conversations", headers=auth_header(farmer.id))
    assert listed.json()[0]["last_message_preview"] == "Are the dates organic?"

    read = await client.post(f"/conversations/{conversation_id}/read", headers=auth_header(farmer.id))
    assert read.status_code == 200
    assert read.json()["user1_unread_count"] == 0
    assert read.json()["user2_unread_count"] == 0


@pytest.mark.asyncio
async def test_conversation_errors(client, buyer, farmer, other_buyer, conversation):
    self_chat = await client.post("/conversations", json={"other_user_id": buyer.id}, headers=auth_header(buyer.id))
    assert self_chat.status_code == 400

    nobody = await client.post("/conversations", json={"other_user_id": 9999}, headers=auth_header(buyer.id))
    assert nobody.status_code == 404

    outsider = await client.post(
        f"/conversations/{conversation.id}/messages", json={"content": "hi"}, headers=auth_header(other_buyer.id)
    )
    assert outsider.status_code == 403

    empty = await client.post(
        f"/conversations/{conversation.id}/messages", json={"content": ""}, headers=auth_header(buyer.id)
    )
    assert empty.status_code == 422

    blocked = await client.post(f"/conversations/{conversation.id}/block", headers=auth_header(farmer.id))
    assert blocked.status_code == 200
    rejected = await client.post(
        f"/conversations/{conversation.id}/messages", json={"content": "hello?"}, headers=auth_header(buyer.id)
    )
    assert rejected.status_code == 400


@pytest.mark.asyncio
async def test_archived_conversations_are_hidden(client, buyer, conversation):
    archived = await client.post(f"/conversations/{conversation.id}/archive", headers=auth_header(buyer.id))
    assert archived.status_code == 200

    assert (await client.get("/conversations", headers=auth_header(buyer.id))).json() == []
    everything = await client.get("/conversations?include_archived=true", headers=auth_header(buyer.id))
    assert [c["id"] for c in everything.json()] == [conversation.id]


# ============================================
# ADMIN
# ============================================

@pytest.mark.asyncio
async def test_admin_requires_token(client):
    assert (await client.get("/admin/integrity")).status_code == 401
    assert (await client.get("/admin/integrity", headers={"X-Admin-Token": "wrong"})).status_code == 401


@pytest.mark.asyncio
async def test_admin_integrity_report(client, buyer, product, make_order):
    await make_order(buyer, product, quantity=3, delivery_fee="5", total_price="40")

    response = await client.get("/admin/integrity", headers=ADMIN)

    assert response.status_code == 200
    data = response.json()
    assert data["has_issues"] is True
    assert data["issues"][0]["type"] == "inconsistent_order_totals"


@pytest.mark.asyncio
async def test_admin_cleanup(client):
    response = await client.post("/admin/cleanup", headers=ADMIN)

    assert response.status_code == 200
    assert response.json() == {"expired_feed_posts": 0, "archived_conversations": 0, "cancelled_orders": 0}
