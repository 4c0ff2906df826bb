"""
Statistics aggregator

Keeps the daily, business and driver accumulators plus the dashboard
snapshot consistent with every lifecycle transition. All writes happen in
the caller's transaction, so a failure here aborts the transition.
"""

import logging
from dataclasses import dataclass, fields
from datetime import datetime, date, time, timedelta
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import Integer, Numeric, and_, case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from deliverylink.models.order import Order, OrderStatus, OrderPriority, PackageSize
from deliverylink.models.statistics import (
    DailyStatistics, BusinessStatistics, DriverStatistics, DashboardSnapshot, SNAPSHOT_ID
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENTS = Decimal("0.01")

STATUS_COUNTERS = {
    OrderStatus.CONFIRMED: "confirmed_orders",
    OrderStatus.ASSIGNED: "assigned_orders",
    OrderStatus.PICKED_UP: "picked_up_orders",
    OrderStatus.IN_TRANSIT: "in_transit_orders",
    OrderStatus.DELIVERED: "delivered_orders",
    OrderStatus.CANCELLED: "cancelled_orders",
}

PRIORITY_COUNTERS = {
    OrderPriority.URGENT: "urgent_orders",
    OrderPriority.NORMAL: "normal_orders",
    OrderPriority.SCHEDULED: "scheduled_orders",
}

SIZE_COUNTERS = {
    PackageSize.SMALL: "small_packages",
    PackageSize.MEDIUM: "medium_packages",
    PackageSize.LARGE: "large_packages",
}

DASHBOARD_ACTIVE = (OrderStatus.PENDING, OrderStatus.CONFIRMED) + OrderStatus.ACTIVE_DELIVERY


def to_money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENTS)


@dataclass(frozen=True)
class StatisticsDelta:
    """Increment applied to a daily or business statistics row"""
    total_orders: int = 0
    confirmed_orders: int = 0
    assigned_orders: int = 0
    picked_up_orders: int = 0
    in_transit_orders: int = 0
    delivered_orders: int = 0
    cancelled_orders: int = 0
    revenue: Decimal = ZERO
    platform_fees: Decimal = ZERO
    delivery_fees: Decimal = ZERO
    package_value: Decimal = ZERO
    urgent_orders: int = 0
    normal_orders: int = 0
    scheduled_orders: int = 0
    fragile_packages: int = 0
    small_packages: int = 0
    medium_packages: int = 0
    large_packages: int = 0

    @classmethod
    def for_status(cls, status: str) -> "StatisticsDelta":
        """Status-only accumulation: bump the counter for the new status"""
        counter = STATUS_COUNTERS.get(status)
        return cls(**{counter: 1}) if counter else cls()

    @classmethod
    def for_new_order(cls, order: Order) -> "StatisticsDelta":
        """New-order accumulation; also counts the order's initial status"""
        increments = {
            "total_orders": 1,
            "revenue": to_money(order.total_cost),
            "platform_fees": to_money(order.platform_fee),
            "delivery_fees": to_money(order.delivery_fee),
            "package_value": to_money(order.package_value),
            "fragile_packages": 1 if order.is_fragile else 0,
        }
        for mapping, key in (
            (STATUS_COUNTERS, order.status),
            (PRIORITY_COUNTERS, order.priority),
            (SIZE_COUNTERS, order.package_size),
        ):
            counter = mapping.get(key)
            if counter:
                increments[counter] = 1
        return cls(**increments)

    def apply_to(self, row, field_map: Dict[str, str]) -> None:
        for field in fields(self):
            amount = getattr(self, field.name)
            if amount:
                column = field_map[field.name]
                setattr(row, column, (getattr(row, column) or 0) + amount)


_COUNTER_FIELDS = [f.name for f in fields(StatisticsDelta)
                   if f.name not in ("revenue", "platform_fees", "delivery_fees", "package_value")]

DAILY_FIELD_MAP = {
    **{name: name for name in _COUNTER_FIELDS},
    "revenue": "total_revenue",
    "platform_fees": "platform_fees",
    "delivery_fees": "delivery_fees",
    "package_value": "total_package_value",
}

BUSINESS_FIELD_MAP = {
    **{name: name for name in _COUNTER_FIELDS},
    "revenue": "total_spent",
    "platform_fees": "total_platform_fees",
    "delivery_fees": "total_delivery_fees",
    "package_value": "total_package_value",
}


@dataclass(frozen=True)
class DriverStatisticsDelta:
    """Increment applied to a driver statistics row"""
    assigned_orders: int = 0
    picked_up_orders: int = 0
    in_transit_orders: int = 0
    delivered_orders: int = 0
    cancelled_orders: int = 0
    earnings: Decimal = ZERO
    urgent_deliveries: int = 0
    normal_deliveries: int = 0
    scheduled_deliveries: int = 0
    fragile_packages_handled: int = 0

    @classmethod
    def for_status(cls, order: Order) -> "DriverStatisticsDelta":
        counter = STATUS_COUNTERS.get(order.status)
        if counter is None or counter == "confirmed_orders":
            return cls()

        increments = {counter: 1}
        if order.status == OrderStatus.DELIVERED:
            increments["earnings"] = to_money(order.delivery_fee)
            increments[f"{order.priority}_deliveries"] = 1
            if order.is_fragile:
                increments["fragile_packages_handled"] = 1
        return cls(**increments)

    def apply_to(self, row) -> None:
        for field in fields(self):
            amount = getattr(self, field.name)
            if amount:
                column = DRIVER_FIELD_MAP[field.name]
                setattr(row, column, (getattr(row, column) or 0) + amount)


DRIVER_FIELD_MAP = {
    "assigned_orders": "total_assigned_orders",
    "picked_up_orders": "total_picked_up_orders",
    "in_transit_orders": "total_in_transit_orders",
    "delivered_orders": "total_delivered_orders",
    "cancelled_orders": "total_cancelled_orders",
    "earnings": "total_earnings",
    "urgent_deliveries": "urgent_deliveries",
    "normal_deliveries": "normal_deliveries",
    "scheduled_deliveries": "scheduled_deliveries",
    "fragile_packages_handled": "fragile_packages_handled",
}


def _zero_values(model) -> dict:
    values = {}
    for column in model.__table__.columns:
        if column.primary_key:
            continue
        if isinstance(column.type, Numeric):
            values[column.name] = ZERO
        elif isinstance(column.type, Integer):
            values[column.name] = 0
    return values


class StatisticsAggregator:
    """Applies lifecycle deltas to the statistics rollups"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _today() -> date:
        return datetime.utcnow().date()

    def _locked_row(self, model, **keys):
        """Locked read of the row for keys, inserting a zero row if absent"""
        query = self.db.query(model).filter_by(**keys)
        row = query.with_for_update().first()
        if row is not None:
            return row

        row = model(**{**_zero_values(model), **keys})
        try:
            with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            # A concurrent transaction created it first
            logger.info(f"Concurrent insert on {model.__tablename__} for {keys}, re-reading")
            row = query.with_for_update().one()
        return row

    def record_new_order(self, order: Order) -> None:
        """Run exactly once per order, at placement"""
        delta = StatisticsDelta.for_new_order(order)
        today = self._today()
        delta.apply_to(self._locked_row(DailyStatistics, date=today), DAILY_FIELD_MAP)
        delta.apply_to(
            self._locked_row(BusinessStatistics, business_id=order.business_id, date=today),
            BUSINESS_FIELD_MAP,
        )

    def record_status_change(self, order: Order) -> None:
        """Count the status the order has just reached"""
        delta = StatisticsDelta.for_status(order.status)
        today = self._today()
        delta.apply_to(self._locked_row(DailyStatistics, date=today), DAILY_FIELD_MAP)
        delta.apply_to(
            self._locked_row(BusinessStatistics, business_id=order.business_id, date=today),
            BUSINESS_FIELD_MAP,
        )

        if order.driver_id:
            DriverStatisticsDelta.for_status(order).apply_to(
                self._locked_row(DriverStatistics, driver_id=order.driver_id, date=today)
            )

    def refresh_dashboard_snapshot(self, now: Optional[datetime] = None) -> DashboardSnapshot:
        """Recompute the singleton snapshot from the live order table"""
        self.db.flush()

        now = now or datetime.utcnow()
        today_start = datetime.combine(now.date(), time.min)
        week_start = now - timedelta(days=7)
        month_start = now - timedelta(days=30)

        def count_where(*conditions):
            return func.sum(case((and_(*conditions), 1), else_=0))

        def money_where(column, *conditions):
            return func.sum(case((and_(*conditions), column), else_=0))

        created_today = Order.created_at >= today_start
        created_this_week = Order.created_at >= week_start
        created_this_month = Order.created_at >= month_start
        delivered = Order.status == OrderStatus.DELIVERED

        totals = (
            self.db.query(
                count_where(Order.status.in_(DASHBOARD_ACTIVE)).label("active_orders"),
                count_where(Order.status == OrderStatus.PENDING).label("pending_orders"),
                count_where(Order.status == OrderStatus.CONFIRMED).label("confirmed_orders"),
                count_where(Order.status == OrderStatus.ASSIGNED).label("assigned_orders"),
                count_where(Order.status == OrderStatus.PICKED_UP).label("picked_up_orders"),
                count_where(Order.status == OrderStatus.IN_TRANSIT).label("in_transit_orders"),
                count_where(created_today).label("today_orders"),
                money_where(Order.total_cost, created_today).label("today_revenue"),
                money_where(Order.platform_fee, created_today).label("today_platform_fees"),
                money_where(Order.delivery_fee, created_today).label("today_delivery_fees"),
                count_where(created_today, delivered).label("today_delivered"),
                count_where(created_today, Order.status == OrderStatus.CANCELLED).label("today_cancelled"),
                count_where(created_this_week).label("week_orders"),
                money_where(Order.total_cost, created_this_week).label("week_revenue"),
                count_where(created_this_week, delivered).label("week_delivered"),
                count_where(created_this_month).label("month_orders"),
                money_where(Order.total_cost, created_this_month).label("month_revenue"),
                count_where(created_this_month, delivered).label("month_delivered"),
            )
            .filter(Order.deleted_at.is_(None))
            .one()
        )

        snapshot = self._locked_row(DashboardSnapshot, id=SNAPSHOT_ID)
        for name, value in totals._asdict().items():
            if isinstance(DashboardSnapshot.__table__.columns[name].type, Numeric):
                setattr(snapshot, name, to_money(value))
            else:
                setattr(snapshot, name, int(value or 0))
        snapshot.last_updated = now

        self.db.flush()
        return snapshot
