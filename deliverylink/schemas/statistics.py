"""
Pydantic schemas for statistics responses
"""

from pydantic import BaseModel
from typing import Optional
import datetime as dt
from decimal import Decimal


class DashboardSnapshotResponse(BaseModel):
    active_orders: int
    pending_orders: int
    confirmed_orders: int
    assigned_orders: int
    picked_up_orders: int
    in_transit_orders: int
    today_orders: int
    today_revenue: Decimal
    today_platform_fees: Decimal
    today_delivery_fees: Decimal
    today_delivered: int
    today_cancelled: int
    week_orders: int
    week_revenue: Decimal
    week_delivered: int
    month_orders: int
    month_revenue: Decimal
    month_delivered: int
    last_updated: dt.datetime

    class Config:
        from_attributes = True


class _OrderCounters(BaseModel):
    total_orders: int
    confirmed_orders: int
    assigned_orders: int
    picked_up_orders: int
    in_transit_orders: int
    delivered_orders: int
    cancelled_orders: int
    urgent_orders: int
    normal_orders: int
    scheduled_orders: int
    fragile_packages: int
    small_packages: int
    medium_packages: int
    large_packages: int
    total_package_value: Decimal


class DailyStatisticsResponse(_OrderCounters):
    date: dt.date
    total_revenue: Decimal
    platform_fees: Decimal
    delivery_fees: Decimal
    updated_at: Optional[dt.datetime]

    class Config:
        from_attributes = True


class BusinessStatisticsResponse(_OrderCounters):
    business_id: str
    date: dt.date
    total_spent: Decimal
    total_platform_fees: Decimal
    total_delivery_fees: Decimal
    updated_at: Optional[dt.datetime]

    class Config:
        from_attributes = True


class DriverStatisticsResponse(BaseModel):
    driver_id: str
    date: dt.date
    total_assigned_orders: int
    total_picked_up_orders: int
    total_in_transit_orders: int
    total_delivered_orders: int
    total_cancelled_orders: int
    total_earnings: Decimal
    urgent_deliveries: int
    normal_deliveries: int
    scheduled_deliveries: int
    fragile_packages_handled: int
    updated_at: Optional[dt.datetime]

    class Config:
        from_attributes = True


class _AggregateTotals(BaseModel):
    total_orders: int
    total_delivered: int
    total_cancelled: int
    total_platform_fees: Decimal
    total_delivery_fees: Decimal
    total_package_value: Decimal
    urgent_orders: int
    normal_orders: int
    scheduled_orders: int
    fragile_packages: int
    small_packages: int
    medium_packages: int
    large_packages: int
    delivery_rate: Decimal
    cancellation_rate: Decimal


class DailyAggregateResponse(_AggregateTotals):
    total_revenue: Decimal
    avg_revenue_per_day: Decimal
    avg_orders_per_day: Decimal


class BusinessAggregateResponse(_AggregateTotals):
    business_id: str
    total_spent: Decimal
    avg_order_value: Decimal


class DriverAggregateResponse(BaseModel):
    driver_id: str
    total_assigned: int
    total_delivered: int
    total_cancelled: int
    total_earnings: Decimal
    urgent_deliveries: int
    normal_deliveries: int
    scheduled_deliveries: int
    fragile_packages: int
    completion_rate: Decimal
    cancellation_rate: Decimal
    avg_earnings_per_delivery: Decimal


class TopBusinessResponse(BaseModel):
    business_id: str
    total_orders: int
    total_spent: Decimal
    total_delivered: int


class TopDriverResponse(BaseModel):
    driver_id: str
    total_deliveries: int
    total_earnings: Decimal
    total_assigned: int


class PriorityDistributionResponse(BaseModel):
    urgent: int
    normal: int
    scheduled: int
    total: int
    urgent_percentage: Decimal
    normal_percentage: Decimal
    scheduled_percentage: Decimal


class SizeDistributionResponse(BaseModel):
    small: int
    medium: int
    large: int
    total: int
    small_percentage: Decimal
    medium_percentage: Decimal
    large_percentage: Decimal


class RevenueBreakdownResponse(BaseModel):
    total_revenue: Decimal
    platform_fees: Decimal
    delivery_fees: Decimal
    platform_fee_percentage: Decimal
    delivery_fee_percentage: Decimal
