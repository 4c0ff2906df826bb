"""
API tests for statistics and reporting endpoints
"""

from datetime import datetime, timedelta
from decimal import Decimal

from conftest import order_payload


def create_order(client, headers, **overrides):
    response = client.post("/api/v1/orders/", json=order_payload(**overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def date_range(days_back: int = 0) -> str:
    today = datetime.utcnow().date()
    start = today - timedelta(days=days_back)
    return f"start_date={start.isoformat()}&end_date={today.isoformat()}"


class TestDashboard:
    """Test cases for GET /api/v1/statistics/dashboard"""

    def test_empty_dashboard(self, client, admin_headers):
        response = client.get("/api/v1/statistics/dashboard", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["active_orders"] == 0
        assert Decimal(data["today_revenue"]) == Decimal("0")

    def test_dashboard_reflects_new_orders(self, client, business_headers, admin_headers):
        create_order(client, business_headers)
        create_order(client, business_headers, priority="urgent")

        data = client.get("/api/v1/statistics/dashboard", headers=admin_headers).json()

        assert data["active_orders"] == 2
        assert data["confirmed_orders"] == 2
        assert data["today_orders"] == 2
        assert Decimal(data["today_revenue"]) == Decimal("862.50")

    def test_dashboard_is_admin_only(self, client, business_headers, driver_headers):
        assert client.get("/api/v1/statistics/dashboard", headers=business_headers).status_code == 403
        assert client.get("/api/v1/statistics/dashboard", headers=driver_headers).status_code == 403


class TestDailyStatistics:
    """Test cases for system-wide daily figures"""

    def test_daily_range(self, client, business_headers, admin_headers):
        create_order(client, business_headers)

        response = client.get(f"/api/v1/statistics/daily?{date_range(7)}", headers=admin_headers)

        assert response.status_code == 200
        rows = response.json()
        assert len(rows) == 1
        assert rows[0]["total_orders"] == 1

    def test_today(self, client, business_headers, admin_headers):
        assert client.get("/api/v1/statistics/daily/today", headers=admin_headers).json() is None

        create_order(client, business_headers, package_size="large", is_fragile=True)
        data = client.get("/api/v1/statistics/daily/today", headers=admin_headers).json()

        assert data["total_orders"] == 1
        assert data["large_packages"] == 1
        assert data["fragile_packages"] == 1

    def test_aggregate(self, client, business_headers, admin_headers):
        first = create_order(client, business_headers)
        create_order(client, business_headers)
        client.post(
            f"/api/v1/orders/{first['id']}/cancel",
            json={"reason": "Duplicate"},
            headers=business_headers
        )

        data = client.get(f"/api/v1/statistics/daily/aggregate?{date_range(30)}", headers=admin_headers).json()

        assert data["total_orders"] == 2
        assert data["total_cancelled"] == 1
        assert Decimal(data["total_revenue"]) == Decimal("690.00")
        assert Decimal(data["avg_revenue_per_day"]) == Decimal("690.00")
        assert Decimal(data["cancellation_rate"]) == Decimal("50.00")
        assert Decimal(data["delivery_rate"]) == Decimal("0")

    def test_reversed_range_is_rejected(self, client, admin_headers):
        today = datetime.utcnow().date()
        response = client.get(
            f"/api/v1/statistics/daily?start_date={today}&end_date={today - timedelta(days=1)}",
            headers=admin_headers
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_daily_is_admin_only(self, client, business_headers):
        response = client.get(f"/api/v1/statistics/daily?{date_range()}", headers=business_headers)
        assert response.status_code == 403


class TestBusinessStatistics:
    """Test cases for per-business figures"""

    def test_business_reads_own_figures(self, client, business_headers, other_business_headers):
        create_order(client, business_headers)
        create_order(client, business_headers, priority="urgent")
        create_order(client, other_business_headers)

        today = client.get("/api/v1/statistics/business/today", headers=business_headers).json()
        assert today["business_id"] == "business-1"
        assert today["total_orders"] == 2

        aggregate = client.get(
            f"/api/v1/statistics/business/aggregate?{date_range(7)}", headers=business_headers
        ).json()
        assert aggregate["total_orders"] == 2
        assert Decimal(aggregate["total_spent"]) == Decimal("862.50")
        assert Decimal(aggregate["avg_order_value"]) == Decimal("431.25")

    def test_business_cannot_read_another_business(self, client, business_headers):
        response = client.get(
            f"/api/v1/statistics/business?{date_range()}&business_id=business-2",
            headers=business_headers
        )
        assert response.status_code == 403

    def test_admin_reads_any_business(self, client, business_headers, admin_headers):
        create_order(client, business_headers)

        rows = client.get(
            f"/api/v1/statistics/business?{date_range()}&business_id=business-1",
            headers=admin_headers
        ).json()
        assert [row["business_id"] for row in rows] == ["business-1"]


class TestDriverStatistics:
    """Test cases for per-driver figures"""

    def test_driver_reads_own_figures(self, client, business_headers, driver_headers):
        order = create_order(client, business_headers)
        client.post(f"/api/v1/deliveries/{order['id']}/accept", headers=driver_headers)

        rows = client.get(f"/api/v1/statistics/drivers/driver-1?{date_range()}", headers=driver_headers).json()
        assert rows[0]["total_assigned_orders"] == 1

        aggregate = client.get(
            f"/api/v1/statistics/drivers/driver-1/aggregate?{date_range()}", headers=driver_headers
        ).json()
        assert aggregate["total_assigned"] == 1
        assert aggregate["total_delivered"] == 0
        assert Decimal(aggregate["completion_rate"]) == Decimal("0")

    def test_driver_cannot_read_another_driver(self, client, driver_headers):
        response = client.get(f"/api/v1/statistics/drivers/driver-2?{date_range()}", headers=driver_headers)
        assert response.status_code == 403


class TestRankingsAndBreakdowns:
    """Test cases for admin rankings and distributions"""

    def test_top_businesses(self, client, business_headers, other_business_headers, admin_headers):
        create_order(client, business_headers)
        create_order(client, other_business_headers)
        create_order(client, other_business_headers)

        rows = client.get(f"/api/v1/statistics/top-businesses?{date_range()}", headers=admin_headers).json()

        assert [row["business_id"] for row in rows] == ["business-2", "business-1"]
        assert rows[0]["total_orders"] == 2

    def test_top_drivers(self, client, business_headers, driver_headers, other_driver_headers, admin_headers):
        first = create_order(client, business_headers)
        second = create_order(client, business_headers)
        client.post(f"/api/v1/deliveries/{first['id']}/accept", headers=driver_headers)
        client.post(f"/api/v1/deliveries/{second['id']}/accept", headers=other_driver_headers)

        rows = client.get(f"/api/v1/statistics/top-drivers?{date_range()}", headers=admin_headers).json()

        assert {row["driver_id"] for row in rows} == {"driver-1", "driver-2"}
        assert all(row["total_assigned"] == 1 for row in rows)

    def test_priority_distribution(self, client, business_headers, admin_headers):
        create_order(client, business_headers)
        create_order(client, business_headers)
        create_order(client, business_headers, priority="urgent")
        create_order(
            client, business_headers, priority="scheduled", scheduled_pickup_time="2030-01-01T09:00:00"
        )

        data = client.get(f"/api/v1/statistics/distribution/priority?{date_range()}", headers=admin_headers).json()

        assert (data["urgent"], data["normal"], data["scheduled"], data["total"]) == (1, 2, 1, 4)
        assert Decimal(data["normal_percentage"]) == Decimal("50.00")

    def test_size_distribution(self, client, business_headers, admin_headers):
        create_order(client, business_headers, package_size="small")
        create_order(client, business_headers, package_size="large")

        data = client.get(f"/api/v1/statistics/distribution/size?{date_range()}", headers=admin_headers).json()

        assert (data["small"], data["medium"], data["large"]) == (1, 0, 1)
        assert Decimal(data["small_percentage"]) == Decimal("50.00")

    def test_revenue_breakdown(self, client, business_headers, admin_headers):
        create_order(client, business_headers)

        data = client.get(f"/api/v1/statistics/revenue-breakdown?{date_range()}", headers=admin_headers).json()

        assert Decimal(data["total_revenue"]) == Decimal("345.00")
        assert Decimal(data["platform_fees"]) == Decimal("45.00")
        assert Decimal(data["delivery_fees"]) == Decimal("300.00")
        # 45 / 345
        assert Decimal(data["platform_fee_percentage"]) == Decimal("13.04")
        assert Decimal(data["delivery_fee_percentage"]) == Decimal("86.96")
