import json
import re

import pytest

from tests.fakes import make_minimal_payload, make_order_payload

ORDER_NUMBER_RE = re.compile(r"^ORD-\d{6}-\d{4}$")
MISSING_ID = "f" * 32


def send(client, cmd, data=None):
    return client.post("/rpc", json={"pattern": {"cmd": cmd}, "data": data or {}})


def create(client, user_id="user-123", **overrides):
    response = send(client, "create-order", make_order_payload(user_id, **overrides))
    assert response.status_code == 200, response.text
    return response.json()


class TestCreateOrderCommand:
    def test_create_order_returns_camel_case(self, client):
        """create-order answers with the stored order in camelCase"""
        body = create(client)

        assert body["status"] == "pending"
        assert ORDER_NUMBER_RE.match(body["orderNumber"])
        assert body["userId"] == "user-123"
        assert body["total"] == 75.38
        assert body["shippingCost"] == 10.0
        assert body["paymentId"] == "pay-123"
        assert body["shippingAddress"]["fullName"] == "John Doe"
        assert body["items"][0]["productId"] == "prod-123"
        assert body["items"][0]["subtotal"] == 59.98
        assert "createdAt" in body
        assert "shippedAt" not in body
        assert "order_number" not in body

    def test_minimal_order_omits_optional_keys(self, client):
        response = send(client, "create-order", make_minimal_payload())

        assert response.status_code == 200
        body = response.json()
        assert "paymentId" not in body
        assert "notes" not in body
        assert "addressLine2" not in body["shippingAddress"]
        assert body["tax"] == 0

    def test_sequential_numbers(self, client):
        first = create(client)["orderNumber"]
        second = create(client)["orderNumber"]

        assert first[:10] == second[:10]
        assert int(second.rsplit("-", 1)[1]) == int(first.rsplit("-", 1)[1]) + 1

    def test_validation_errors(self, client):
        payload = make_order_payload(items=[])
        del payload["shippingAddress"]

        response = send(client, "create-order", payload)

        assert response.status_code == 400
        body = response.json()
        assert body["statusCode"] == 400
        assert body["error"] == "Bad Request"
        assert "items must contain at least 1 elements" in body["errors"]
        assert "shippingAddress should not be empty" in body["errors"]

    def test_pricing_mismatch(self, client):
        response = send(client, "create-order", make_order_payload(total=99.99))

        assert response.status_code == 400
        assert response.json()["errors"] == ["total must equal subtotal + tax + shippingCost (75.38)"]


class TestOrderQueries:
    def test_get_order(self, client):
        order = create(client)

        response = send(client, "get-order", {"orderId": order["id"], "userId": "user-123"})

        assert response.status_code == 200
        assert response.json()["orderNumber"] == order["orderNumber"]

    def test_get_order_of_other_user(self, client):
        order = create(client)

        response = send(client, "get-order", {"orderId": order["id"], "userId": "intruder"})

        assert response.status_code == 404
        assert response.json() == {"statusCode": 404, "message": "Order not found", "error": "Not Found"}

    def test_get_missing_order(self, client):
        response = send(client, "get-order", {"orderId": MISSING_ID, "userId": "user-123"})
        assert response.status_code == 404

    def test_get_order_invalid_id(self, client):
        response = send(client, "get-order", {"orderId": "not-an-id", "userId": "user-123"})

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid order ID"

    def test_get_user_orders(self, client):
        for _ in range(3):
            create(client)
        create(client, "someone-else")

        response = send(client, "get-user-orders", {"userId": "user-123", "page": 1, "limit": 2})

        assert response.status_code == 200
        body = response.json()
        assert len(body["orders"]) == 2
        assert body["total"] == 3
        assert body["page"] == 1
        assert body["limit"] == 2
        assert body["totalPages"] == 2
        assert all(order["userId"] == "user-123" for order in body["orders"])

    def test_get_all_orders(self, client):
        create(client, "alice")
        create(client, "bob")

        body = send(client, "get-all-orders").json()

        assert body["total"] == 2
        assert body["limit"] == 10
        assert body["totalPages"] == 1

    def test_get_all_orders_by_status(self, client):
        order = create(client)
        create(client)
        send(client, "update-order-status", {"orderId": order["id"], "status": "processing"})

        body = send(client, "get-all-orders", {"status": "processing"}).json()

        assert [o["id"] for o in body["orders"]] == [order["id"]]

    def test_limit_above_maximum(self, client):
        response = send(client, "get-all-orders", {"limit": 1000})

        assert response.status_code == 400
        assert response.json()["errors"] == ["limit must not be greater than 100"]


class TestStatusCommands:
    def test_cancel_order(self, client):
        order = create(client)

        response = send(
            client, "cancel-order", {"orderId": order["id"], "userId": "user-123", "reason": "Changed my mind"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "cancelled"
        assert body["cancellationReason"] == "Changed my mind"
        assert "cancelledAt" in body

    def test_cancel_shipped_order(self, client):
        order = create(client)
        send(client, "update-order-status", {"orderId": order["id"], "status": "processing"})
        send(client, "update-order-status", {"orderId": order["id"], "status": "shipped"})

        response = send(client, "cancel-order", {"orderId": order["id"], "userId": "user-123"})

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot cancel order with status: shipped"

    def test_status_workflow(self, client):
        order = create(client)

        processing = send(client, "update-order-status", {"orderId": order["id"], "status": "processing"})
        assert processing.status_code == 200

        shipped = send(
            client,
            "update-order-status",
            {"orderId": order["id"], "status": "shipped", "trackingNumber": "TRACK123"},
        ).json()
        assert shipped["trackingNumber"] == "TRACK123"
        assert "shippedAt" in shipped

        delivered = send(client, "update-order-status", {"orderId": order["id"], "status": "delivered"}).json()
        assert delivered["status"] == "delivered"
        assert delivered["shippedAt"] == shipped["shippedAt"]
        assert "deliveredAt" in delivered

    def test_invalid_transition(self, client):
        order = create(client)

        response = send(client, "update-order-status", {"orderId": order["id"], "status": "delivered"})

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot transition from pending to delivered"
        stored = send(client, "get-order", {"orderId": order["id"], "userId": "user-123"}).json()
        assert stored["status"] == "pending"

    def test_unknown_status(self, client):
        order = create(client)

        response = send(client, "update-order-status", {"orderId": order["id"], "status": "lost"})

        assert response.status_code == 400
        assert response.json()["errors"] == [
            "status must be one of the following values: pending, processing, shipped, delivered, cancelled"
        ]


class TestTransport:
    def test_unknown_command(self, client):
        response = send(client, "refund-order", {})

        assert response.status_code == 404
        assert response.json() == {
            "statusCode": 404,
            "message": "There is no matching message handler defined in the remote service.",
            "error": "Not Found",
        }

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "Order Service"}


def send_raw(client, cmd, data, replacements):
    body = json.dumps({"pattern": {"cmd": cmd}, "data": data})
    for placeholder, literal in replacements.items():
        body = body.replace(f'"{placeholder}"', literal)
    return client.post("/rpc", content=body, headers={"content-type": "application/json"})


class TestNumericInput:
    @pytest.mark.parametrize("literal", ["Infinity", "-Infinity", "NaN", "1e400"])
    def test_non_finite_price_is_rejected(self, client, literal):
        payload = make_order_payload()
        payload["items"][0]["price"] = "PRICE"

        response = send_raw(client, "create-order", payload, {"PRICE": literal})

        assert response.status_code == 400
        assert response.json()["errors"] == ["items.0.price must be a finite number"]

    @pytest.mark.parametrize("literal", ["Infinity", "NaN", "1e400"])
    def test_non_finite_quantity_is_rejected(self, client, literal):
        payload = make_order_payload()
        payload["items"][0]["quantity"] = "QUANTITY"

        response = send_raw(client, "create-order", payload, {"QUANTITY": literal})

        assert response.status_code == 400
        assert response.json()["errors"] == ["items.0.quantity must be an integer number"]

    def test_huge_page_is_rejected(self, client):
        response = send(client, "get-all-orders", {"page": 10**20})

        assert response.status_code == 400
        assert response.json()["errors"] == ["page must not be greater than 1000000"]

    def test_far_page_is_empty(self, client):
        create(client)

        body = send(client, "get-all-orders", {"page": 1000000, "limit": 100}).json()

        assert body["orders"] == []
        assert body["total"] == 1
