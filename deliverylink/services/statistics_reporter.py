"""
Read-side statistics queries over the rollup tables and driver orders
"""

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional, Dict, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from deliverylink.models.order import Order, OrderStatus, OrderPriority
from deliverylink.models.statistics import (
    DailyStatistics, BusinessStatistics, DriverStatistics, DashboardSnapshot, SNAPSHOT_ID
)
from deliverylink.services.statistics_aggregator import to_money, ZERO

logger = logging.getLogger(__name__)

EARNINGS_PERIODS = ("today", "week", "month", "all")

HUNDRED = Decimal("100")


def percentage(part, whole) -> Decimal:
    """part/whole as a 2-dp percentage, 0.00 when whole is empty"""
    if not whole:
        return ZERO
    return to_money(Decimal(str(part)) * HUNDRED / Decimal(str(whole)))


def average(total, count) -> Decimal:
    if not count:
        return ZERO
    return to_money(Decimal(str(total)) / Decimal(count))


class StatisticsReporter:
    """Query helpers for the statistics and driver endpoints"""

    def __init__(self, db: Session):
        self.db = db

    def _totals(self, model, columns: List[str], *criteria) -> Dict[str, Any]:
        row = (
            self.db.query(*[func.coalesce(func.sum(getattr(model, name)), 0).label(name) for name in columns])
            .filter(*criteria)
            .one()
        )
        return row._asdict()

    # ---- dashboard ----

    def dashboard(self) -> DashboardSnapshot:
        snapshot = self.db.query(DashboardSnapshot).filter(DashboardSnapshot.id == SNAPSHOT_ID).first()
        if snapshot is None:
            # Nothing has transitioned yet
            snapshot = DashboardSnapshot(id=SNAPSHOT_ID, last_updated=datetime.utcnow())
            for column in DashboardSnapshot.__table__.columns:
                if column.name not in ("id", "last_updated"):
                    setattr(snapshot, column.name, 0)
        return snapshot

    # ---- daily ----

    def daily(self, start: date, end: date) -> List[DailyStatistics]:
        return (
            self.db.query(DailyStatistics)
            .filter(DailyStatistics.date >= start, DailyStatistics.date <= end)
            .order_by(DailyStatistics.date.desc())
            .all()
        )

    def daily_for(self, day: date) -> Optional[DailyStatistics]:
        return self.db.query(DailyStatistics).filter(DailyStatistics.date == day).first()

    def daily_aggregate(self, start: date, end: date) -> Dict[str, Any]:
        criteria = (DailyStatistics.date >= start, DailyStatistics.date <= end)
        totals = self._totals(DailyStatistics, [
            "total_orders", "delivered_orders", "cancelled_orders",
            "total_revenue", "platform_fees", "delivery_fees", "total_package_value",
            "urgent_orders", "normal_orders", "scheduled_orders", "fragile_packages",
            "small_packages", "medium_packages", "large_packages",
        ], *criteria)
        days = self.db.query(func.count(DailyStatistics.id)).filter(*criteria).scalar() or 0

        total_orders = int(totals["total_orders"])
        return {
            "total_orders": total_orders,
            "total_delivered": int(totals["delivered_orders"]),
            "total_cancelled": int(totals["cancelled_orders"]),
            "total_revenue": to_money(totals["total_revenue"]),
            "total_platform_fees": to_money(totals["platform_fees"]),
            "total_delivery_fees": to_money(totals["delivery_fees"]),
            "total_package_value": to_money(totals["total_package_value"]),
            "urgent_orders": int(totals["urgent_orders"]),
            "normal_orders": int(totals["normal_orders"]),
            "scheduled_orders": int(totals["scheduled_orders"]),
            "fragile_packages": int(totals["fragile_packages"]),
            "small_packages": int(totals["small_packages"]),
            "medium_packages": int(totals["medium_packages"]),
            "large_packages": int(totals["large_packages"]),
            "avg_revenue_per_day": average(to_money(totals["total_revenue"]), days),
            "avg_orders_per_day": average(total_orders, days),
            "delivery_rate": percentage(totals["delivered_orders"], total_orders),
            "cancellation_rate": percentage(totals["cancelled_orders"], total_orders),
        }

    # ---- business ----

    def business(self, business_id: str, start: date, end: date) -> List[BusinessStatistics]:
        return (
            self.db.query(BusinessStatistics)
            .filter(
                BusinessStatistics.business_id == business_id,
                BusinessStatistics.date >= start,
                BusinessStatistics.date <= end,
            )
            .order_by(BusinessStatistics.date.desc())
            .all()
        )

    def business_for(self, business_id: str, day: date) -> Optional[BusinessStatistics]:
        return (
            self.db.query(BusinessStatistics)
            .filter(BusinessStatistics.business_id == business_id, BusinessStatistics.date == day)
            .first()
        )

    def business_aggregate(self, business_id: str, start: date, end: date) -> Dict[str, Any]:
        totals = self._totals(BusinessStatistics, [
            "total_orders", "delivered_orders", "cancelled_orders",
            "total_spent", "total_platform_fees", "total_delivery_fees", "total_package_value",
            "urgent_orders", "normal_orders", "scheduled_orders", "fragile_packages",
            "small_packages", "medium_packages", "large_packages",
        ],
            BusinessStatistics.business_id == business_id,
            BusinessStatistics.date >= start,
            BusinessStatistics.date <= end,
        )

        total_orders = int(totals["total_orders"])
        total_spent = to_money(totals["total_spent"])
        return {
            "business_id": business_id,
            "total_orders": total_orders,
            "total_delivered": int(totals["delivered_orders"]),
            "total_cancelled": int(totals["cancelled_orders"]),
            "total_spent": total_spent,
            "total_platform_fees": to_money(totals["total_platform_fees"]),
            "total_delivery_fees": to_money(totals["total_delivery_fees"]),
            "total_package_value": to_money(totals["total_package_value"]),
            "urgent_orders": int(totals["urgent_orders"]),
            "normal_orders": int(totals["normal_orders"]),
            "scheduled_orders": int(totals["scheduled_orders"]),
            "fragile_packages": int(totals["fragile_packages"]),
            "small_packages": int(totals["small_packages"]),
            "medium_packages": int(totals["medium_packages"]),
            "large_packages": int(totals["large_packages"]),
            "avg_order_value": average(total_spent, total_orders),
            "delivery_rate": percentage(totals["delivered_orders"], total_orders),
            "cancellation_rate": percentage(totals["cancelled_orders"], total_orders),
        }

    # ---- drivers ----

    def driver(self, driver_id: str, start: date, end: date) -> List[DriverStatistics]:
        return (
            self.db.query(DriverStatistics)
            .filter(
                DriverStatistics.driver_id == driver_id,
                DriverStatistics.date >= start,
                DriverStatistics.date <= end,
            )
            .order_by(DriverStatistics.date.desc())
            .all()
        )

    def driver_aggregate(self, driver_id: str, start: date, end: date) -> Dict[str, Any]:
        totals = self._totals(DriverStatistics, [
            "total_assigned_orders", "total_delivered_orders", "total_cancelled_orders",
            "total_earnings", "urgent_deliveries", "normal_deliveries",
            "scheduled_deliveries", "fragile_packages_handled",
        ],
            DriverStatistics.driver_id == driver_id,
            DriverStatistics.date >= start,
            DriverStatistics.date <= end,
        )

        assigned = int(totals["total_assigned_orders"])
        delivered = int(totals["total_delivered_orders"])
        cancelled = int(totals["total_cancelled_orders"])
        earnings = to_money(totals["total_earnings"])
        return {
            "driver_id": driver_id,
            "total_assigned": assigned,
            "total_delivered": delivered,
            "total_cancelled": cancelled,
            "total_earnings": earnings,
            "urgent_deliveries": int(totals["urgent_deliveries"]),
            "normal_deliveries": int(totals["normal_deliveries"]),
            "scheduled_deliveries": int(totals["scheduled_deliveries"]),
            "fragile_packages": int(totals["fragile_packages_handled"]),
            "completion_rate": percentage(delivered, assigned),
            "cancellation_rate": percentage(cancelled, assigned),
            "avg_earnings_per_delivery": average(earnings, delivered),
        }

    # ---- rankings and distributions ----

    def top_businesses(self, start: date, end: date, limit: int = 10) -> List[Dict[str, Any]]:
        total_orders = func.sum(BusinessStatistics.total_orders)
        rows = (
            self.db.query(
                BusinessStatistics.business_id,
                total_orders.label("total_orders"),
                func.sum(BusinessStatistics.total_spent).label("total_spent"),
                func.sum(BusinessStatistics.delivered_orders).label("total_delivered"),
            )
            .filter(BusinessStatistics.date >= start, BusinessStatistics.date <= end)
            .group_by(BusinessStatistics.business_id)
            .order_by(total_orders.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "business_id": row.business_id,
                "total_orders": int(row.total_orders or 0),
                "total_spent": to_money(row.total_spent),
                "total_delivered": int(row.total_delivered or 0),
            }
            for row in rows
        ]

    def top_drivers(self, start: date, end: date, limit: int = 10) -> List[Dict[str, Any]]:
        deliveries = func.sum(DriverStatistics.total_delivered_orders)
        rows = (
            self.db.query(
                DriverStatistics.driver_id,
                deliveries.label("total_deliveries"),
                func.sum(DriverStatistics.total_earnings).label("total_earnings"),
                func.sum(DriverStatistics.total_assigned_orders).label("total_assigned"),
            )
            .filter(DriverStatistics.date >= start, DriverStatistics.date <= end)
            .group_by(DriverStatistics.driver_id)
            .order_by(deliveries.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "driver_id": row.driver_id,
                "total_deliveries": int(row.total_deliveries or 0),
                "total_earnings": to_money(row.total_earnings),
                "total_assigned": int(row.total_assigned or 0),
            }
            for row in rows
        ]

    def priority_distribution(self, start: date, end: date) -> Dict[str, Any]:
        totals = self._totals(
            DailyStatistics, ["urgent_orders", "normal_orders", "scheduled_orders"],
            DailyStatistics.date >= start, DailyStatistics.date <= end,
        )
        urgent, normal, scheduled = (int(totals[name]) for name in ("urgent_orders", "normal_orders", "scheduled_orders"))
        total = urgent + normal + scheduled
        return {
            "urgent": urgent,
            "normal": normal,
            "scheduled": scheduled,
            "total": total,
            "urgent_percentage": percentage(urgent, total),
            "normal_percentage": percentage(normal, total),
            "scheduled_percentage": percentage(scheduled, total),
        }

    def size_distribution(self, start: date, end: date) -> Dict[str, Any]:
        totals = self._totals(
            DailyStatistics, ["small_packages", "medium_packages", "large_packages"],
            DailyStatistics.date >= start, DailyStatistics.date <= end,
        )
        small, medium, large = (int(totals[name]) for name in ("small_packages", "medium_packages", "large_packages"))
        total = small + medium + large
        return {
            "small": small,
            "medium": medium,
            "large": large,
            "total": total,
            "small_percentage": percentage(small, total),
            "medium_percentage": percentage(medium, total),
            "large_percentage": percentage(large, total),
        }

    def revenue_breakdown(self, start: date, end: date) -> Dict[str, Any]:
        totals = self._totals(
            DailyStatistics, ["total_revenue", "platform_fees", "delivery_fees"],
            DailyStatistics.date >= start, DailyStatistics.date <= end,
        )
        revenue = to_money(totals["total_revenue"])
        platform_fees = to_money(totals["platform_fees"])
        delivery_fees = to_money(totals["delivery_fees"])
        return {
            "total_revenue": revenue,
            "platform_fees": platform_fees,
            "delivery_fees": delivery_fees,
            "platform_fee_percentage": percentage(platform_fees, revenue),
            "delivery_fee_percentage": percentage(delivery_fees, revenue),
        }

    # ---- driver order summaries ----

    def driver_summary(self, driver_id: str) -> Dict[str, Any]:
        """Lifetime and today's figures for a driver, straight from the order table"""
        today_start = datetime.combine(datetime.utcnow().date(), time.min)
        base = self.db.query(Order).filter(Order.driver_id == driver_id, Order.deleted_at.is_(None))
        delivered = base.filter(Order.status == OrderStatus.DELIVERED)

        total = base.count()
        completed = delivered.count()
        active = base.filter(Order.status.in_(OrderStatus.ACTIVE_DELIVERY)).count()
        total_earnings = delivered.with_entities(func.coalesce(func.sum(Order.delivery_fee), 0)).scalar()

        delivered_today = delivered.filter(Order.created_at >= today_start)
        return {
            "total": total,
            "completed": completed,
            "active": active,
            "total_earnings": to_money(total_earnings),
            "today_deliveries": delivered_today.count(),
            "today_earnings": to_money(
                delivered_today.with_entities(func.coalesce(func.sum(Order.delivery_fee), 0)).scalar()
            ),
            "completion_rate": percentage(completed, total),
        }

    def earnings_summary(self, driver_id: str, period: str = "all") -> Dict[str, Any]:
        """Delivered earnings over today, the last 7 or 30 days, or all time"""
        query = self.db.query(Order).filter(
            Order.driver_id == driver_id,
            Order.status == OrderStatus.DELIVERED,
            Order.deleted_at.is_(None),
        )

        now = datetime.utcnow()
        if period == "today":
            query = query.filter(Order.delivered_at >= datetime.combine(now.date(), time.min))
        elif period == "week":
            query = query.filter(Order.delivered_at >= now - timedelta(days=7))
        elif period == "month":
            query = query.filter(Order.delivered_at >= now - timedelta(days=30))

        fee_sum = func.coalesce(func.sum(Order.delivery_fee), 0)
        deliveries, earnings = query.with_entities(func.count(Order.id), fee_sum).one()
        urgent = query.filter(Order.priority == OrderPriority.URGENT)
        urgent_deliveries, urgent_earnings = urgent.with_entities(func.count(Order.id), fee_sum).one()

        earnings = to_money(earnings)
        return {
            "period": period,
            "total_deliveries": deliveries,
            "total_earnings": earnings,
            "urgent_deliveries": urgent_deliveries,
            "urgent_earnings": to_money(urgent_earnings),
            "average_earnings_per_delivery": average(earnings, deliveries),
        }
