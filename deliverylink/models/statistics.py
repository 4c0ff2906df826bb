"""
Statistics rollup models

Daily, business and driver rows are accumulators keyed by calendar date.
The dashboard snapshot is a single row with the well-known id SNAPSHOT_ID.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, UniqueConstraint

from deliverylink.database import Base

SNAPSHOT_ID = 1


class DailyStatistics(Base):
    """System-wide daily totals"""
    __tablename__ = "daily_statistics"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, unique=True, index=True, nullable=False)

    total_orders = Column(Integer, default=0, nullable=False)
    confirmed_orders = Column(Integer, default=0, nullable=False)
    assigned_orders = Column(Integer, default=0, nullable=False)
    picked_up_orders = Column(Integer, default=0, nullable=False)
    in_transit_orders = Column(Integer, default=0, nullable=False)
    delivered_orders = Column(Integer, default=0, nullable=False)
    cancelled_orders = Column(Integer, default=0, nullable=False)

    total_revenue = Column(Numeric(12, 2), default=0, nullable=False)
    platform_fees = Column(Numeric(12, 2), default=0, nullable=False)
    delivery_fees = Column(Numeric(12, 2), default=0, nullable=False)
    total_package_value = Column(Numeric(12, 2), default=0, nullable=False)

    urgent_orders = Column(Integer, default=0, nullable=False)
    normal_orders = Column(Integer, default=0, nullable=False)
    scheduled_orders = Column(Integer, default=0, nullable=False)
    fragile_packages = Column(Integer, default=0, nullable=False)
    small_packages = Column(Integer, default=0, nullable=False)
    medium_packages = Column(Integer, default=0, nullable=False)
    large_packages = Column(Integer, default=0, nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<DailyStatistics(date={self.date}, total_orders={self.total_orders})>"


class BusinessStatistics(Base):
    """Per-business daily totals"""
    __tablename__ = "business_statistics"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(String(64), index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)

    total_orders = Column(Integer, default=0, nullable=False)
    confirmed_orders = Column(Integer, default=0, nullable=False)
    assigned_orders = Column(Integer, default=0, nullable=False)
    picked_up_orders = Column(Integer, default=0, nullable=False)
    in_transit_orders = Column(Integer, default=0, nullable=False)
    delivered_orders = Column(Integer, default=0, nullable=False)
    cancelled_orders = Column(Integer, default=0, nullable=False)

    total_spent = Column(Numeric(12, 2), default=0, nullable=False)
    total_platform_fees = Column(Numeric(12, 2), default=0, nullable=False)
    total_delivery_fees = Column(Numeric(12, 2), default=0, nullable=False)
    total_package_value = Column(Numeric(12, 2), default=0, nullable=False)

    urgent_orders = Column(Integer, default=0, nullable=False)
    normal_orders = Column(Integer, default=0, nullable=False)
    scheduled_orders = Column(Integer, default=0, nullable=False)
    fragile_packages = Column(Integer, default=0, nullable=False)
    small_packages = Column(Integer, default=0, nullable=False)
    medium_packages = Column(Integer, default=0, nullable=False)
    large_packages = Column(Integer, default=0, nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("business_id", "date", name="uq_business_statistics_business_date"),
    )

    def __repr__(self):
        return f"<BusinessStatistics(business_id='{self.business_id}', date={self.date})>"


class DriverStatistics(Base):
    """Per-driver daily totals"""
    __tablename__ = "driver_statistics"

    id = Column(Integer, primary_key=True, index=True)
    driver_id = Column(String(64), index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)

    total_assigned_orders = Column(Integer, default=0, nullable=False)
    total_picked_up_orders = Column(Integer, default=0, nullable=False)
    total_in_transit_orders = Column(Integer, default=0, nullable=False)
    total_delivered_orders = Column(Integer, default=0, nullable=False)
    total_cancelled_orders = Column(Integer, default=0, nullable=False)
    total_earnings = Column(Numeric(12, 2), default=0, nullable=False)

    urgent_deliveries = Column(Integer, default=0, nullable=False)
    normal_deliveries = Column(Integer, default=0, nullable=False)
    scheduled_deliveries = Column(Integer, default=0, nullable=False)
    fragile_packages_handled = Column(Integer, default=0, nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("driver_id", "date", name="uq_driver_statistics_driver_date"),
    )

    def __repr__(self):
        return f"<DriverStatistics(driver_id='{self.driver_id}', date={self.date})>"


class DashboardSnapshot(Base):
    """Live system-wide counters, recomputed on every transition"""
    __tablename__ = "dashboard_snapshot"

    id = Column(Integer, primary_key=True)

    active_orders = Column(Integer, default=0, nullable=False)
    pending_orders = Column(Integer, default=0, nullable=False)
    confirmed_orders = Column(Integer, default=0, nullable=False)
    assigned_orders = Column(Integer, default=0, nullable=False)
    picked_up_orders = Column(Integer, default=0, nullable=False)
    in_transit_orders = Column(Integer, default=0, nullable=False)

    today_orders = Column(Integer, default=0, nullable=False)
    today_revenue = Column(Numeric(12, 2), default=0, nullable=False)
    today_platform_fees = Column(Numeric(12, 2), default=0, nullable=False)
    today_delivery_fees = Column(Numeric(12, 2), default=0, nullable=False)
    today_delivered = Column(Integer, default=0, nullable=False)
    today_cancelled = Column(Integer, default=0, nullable=False)

    week_orders = Column(Integer, default=0, nullable=False)
    week_revenue = Column(Numeric(12, 2), default=0, nullable=False)
    week_delivered = Column(Integer, default=0, nullable=False)

    month_orders = Column(Integer, default=0, nullable=False)
    month_revenue = Column(Numeric(12, 2), default=0, nullable=False)
    month_delivered = Column(Integer, default=0, nullable=False)

    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<DashboardSnapshot(active_orders={self.active_orders}, today_orders={self.today_orders})>"
