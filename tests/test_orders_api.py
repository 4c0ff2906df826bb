"""
API tests for order placement, lookup and cancellation
"""

from decimal import Decimal

from conftest import order_payload, make_headers


def create_order(client, headers, **overrides):
    response = client.post("/api/v1/orders/", json=order_payload(**overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestPlaceOrder:
    """Test cases for POST /api/v1/orders/"""

    def test_place_order_success(self, client, business_headers):
        response = client.post("/api/v1/orders/", json=order_payload(), headers=business_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "confirmed"
        assert data["order_number"].startswith("DL-")
        assert data["business_id"] == "business-1"
        assert data["customer_id"] == "business-1"
        assert data["driver_id"] is None
        assert Decimal(data["delivery_fee"]) == Decimal("300.00")
        assert Decimal(data["platform_fee"]) == Decimal("45.00")
        assert Decimal(data["total_cost"]) == Decimal("345.00")
        assert data["confirmed_at"] is not None

    def test_place_urgent_order(self, client, business_headers):
        data = create_order(client, business_headers, priority="urgent")
        assert Decimal(data["total_cost"]) == Decimal("517.50")

    def test_place_order_for_customer(self, client, business_headers):
        data = create_order(client, business_headers, customer_id="customer-9")
        assert data["customer_id"] == "customer-9"
        assert data["business_id"] == "business-1"

    def test_admin_may_place_orders(self, client, admin_headers):
        data = create_order(client, admin_headers)
        assert data["business_id"] == "admin-1"

    def test_driver_cannot_place_orders(self, client, driver_headers):
        response = client.post("/api/v1/orders/", json=order_payload(), headers=driver_headers)
        assert response.status_code == 403

    def test_place_order_unauthenticated(self, client):
        response = client.post("/api/v1/orders/", json=order_payload())
        assert response.status_code in (401, 403)

    def test_place_order_invalid_token(self, client):
        response = client.post(
            "/api/v1/orders/",
            json=order_payload(),
            headers={"Authorization": "Bearer not-a-token"}
        )
        assert response.status_code == 401

    def test_place_order_invalid_phone(self, client, business_headers):
        response = client.post(
            "/api/v1/orders/",
            json=order_payload(dropoff_contact_phone="12ab"),
            headers=business_headers
        )
        assert response.status_code == 422

    def test_place_order_unknown_priority(self, client, business_headers):
        response = client.post(
            "/api/v1/orders/",
            json=order_payload(priority="express"),
            headers=business_headers
        )
        assert response.status_code == 422

    def test_place_order_requires_positive_distance(self, client, business_headers):
        response = client.post(
            "/api/v1/orders/",
            json=order_payload(estimated_distance_km=0),
            headers=business_headers
        )
        assert response.status_code == 422

    def test_scheduled_order_without_pickup_time(self, client, business_headers):
        response = client.post(
            "/api/v1/orders/",
            json=order_payload(priority="scheduled"),
            headers=business_headers
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["field"] == "scheduled_pickup_time"


class TestListOrders:
    """Test cases for GET /api/v1/orders/"""

    def test_business_sees_only_own_orders(self, client, business_headers, other_business_headers):
        create_order(client, business_headers)
        create_order(client, business_headers)
        create_order(client, other_business_headers)

        response = client.get("/api/v1/orders/", headers=business_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert {order["business_id"] for order in data["orders"]} == {"business-1"}

    def test_customer_sees_orders_placed_for_them(self, client, business_headers):
        create_order(client, business_headers, customer_id="customer-9")

        response = client.get("/api/v1/orders/", headers=make_headers("customer-9", "business"))
        assert response.json()["total"] == 1

    def test_admin_sees_all_orders(self, client, business_headers, other_business_headers, admin_headers):
        create_order(client, business_headers)
        create_order(client, other_business_headers)

        response = client.get("/api/v1/orders/", headers=admin_headers)
        assert response.json()["total"] == 2

    def test_driver_sees_assigned_orders(self, client, business_headers, driver_headers):
        first = create_order(client, business_headers)
        create_order(client, business_headers)

        assert client.get("/api/v1/orders/", headers=driver_headers).json()["total"] == 0

        client.post(f"/api/v1/deliveries/{first['id']}/accept", headers=driver_headers)
        data = client.get("/api/v1/orders/", headers=driver_headers).json()
        assert data["total"] == 1
        assert data["orders"][0]["id"] == first["id"]

    def test_pagination(self, client, business_headers):
        for _ in range(3):
            create_order(client, business_headers)

        response = client.get("/api/v1/orders/?page=2&page_size=2", headers=business_headers)

        data = response.json()
        assert data["total"] == 3
        assert data["page"] == 2
        assert data["total_pages"] == 2
        assert len(data["orders"]) == 1

    def test_status_filter(self, client, business_headers):
        keep = create_order(client, business_headers)
        cancelled = create_order(client, business_headers)
        client.post(
            f"/api/v1/orders/{cancelled['id']}/cancel",
            json={"reason": "Ordered twice"},
            headers=business_headers
        )

        data = client.get("/api/v1/orders/?status=confirmed", headers=business_headers).json()
        assert [order["id"] for order in data["orders"]] == [keep["id"]]

    def test_unknown_status_filter(self, client, business_headers):
        response = client.get("/api/v1/orders/?status=lost", headers=business_headers)
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestGetOrder:
    """Test cases for order detail and tracking lookups"""

    def test_get_order_detail(self, client, business_headers):
        order = create_order(client, business_headers)

        response = client.get(f"/api/v1/orders/{order['id']}", headers=business_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["order"]["id"] == order["id"]
        assert [entry["status"] for entry in data["status_history"]] == ["confirmed"]
        assert [event["event_type"] for event in data["tracking_events"]] == ["order_created"]

    def test_get_order_not_found(self, client, business_headers):
        response = client.get("/api/v1/orders/99999", headers=business_headers)

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert "request_id" in error

    def test_other_business_cannot_view_order(self, client, business_headers, other_business_headers):
        order = create_order(client, business_headers)

        response = client.get(f"/api/v1/orders/{order['id']}", headers=other_business_headers)
        assert response.status_code == 404

    def test_track_by_order_number(self, client, business_headers, driver_headers):
        order = create_order(client, business_headers)

        response = client.get(f"/api/v1/orders/track/{order['order_number']}", headers=driver_headers)

        assert response.status_code == 200
        assert response.json()["order"]["id"] == order["id"]

    def test_track_unknown_order_number(self, client, business_headers):
        response = client.get("/api/v1/orders/track/DL-1999-000000", headers=business_headers)
        assert response.status_code == 404


class TestCancelOrder:
    """Test cases for POST /api/v1/orders/{id}/cancel"""

    def test_cancel_confirmed_order(self, client, business_headers):
        order = create_order(client, business_headers)

        response = client.post(
            f"/api/v1/orders/{order['id']}/cancel",
            json={"reason": "Customer no longer needs it"},
            headers=business_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "cancelled"
        assert data["cancellation_reason"] == "Customer no longer needs it"
        assert data["cancelled_at"] is not None

    def test_cancel_requires_reason(self, client, business_headers):
        order = create_order(client, business_headers)

        response = client.post(
            f"/api/v1/orders/{order['id']}/cancel",
            json={"reason": "   "},
            headers=business_headers
        )
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["method"] == "POST"
        assert error["details"]["errors"][0]["loc"] == ["body", "reason"]

    def test_missing_body_uses_error_envelope(self, client, business_headers):
        order = create_order(client, business_headers)

        response = client.post(f"/api/v1/orders/{order['id']}/cancel", headers=business_headers)

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert "detail" not in response.json()

    def test_cancel_twice_is_invalid_state(self, client, business_headers):
        order = create_order(client, business_headers)
        url = f"/api/v1/orders/{order['id']}/cancel"
        client.post(url, json={"reason": "First"}, headers=business_headers)

        response = client.post(url, json={"reason": "Second"}, headers=business_headers)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_STATE"

    def test_stranger_cannot_cancel(self, client, business_headers, other_business_headers):
        order = create_order(client, business_headers)

        response = client.post(
            f"/api/v1/orders/{order['id']}/cancel",
            json={"reason": "Not mine"},
            headers=other_business_headers
        )
        assert response.status_code == 404

    def test_admin_can_cancel(self, client, business_headers, admin_headers):
        order = create_order(client, business_headers)

        response = client.post(
            f"/api/v1/orders/{order['id']}/cancel",
            json={"reason": "Fraud check"},
            headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
