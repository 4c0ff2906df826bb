"""
Order, ledger and OTP models for database operations
"""

from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Float, Numeric, Boolean, JSON, ForeignKey, Index, text
)
from sqlalchemy.orm import relationship

from deliverylink.database import Base


class OrderStatus:
    """Order status values, persisted verbatim"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"

    ALL = (PENDING, CONFIRMED, ASSIGNED, PICKED_UP, IN_TRANSIT, DELIVERED, CANCELLED, FAILED)

    # A driver may hold at most one order in these states
    ACTIVE_DELIVERY = (ASSIGNED, PICKED_UP, IN_TRANSIT)
    CANCELLABLE = (PENDING, CONFIRMED, ASSIGNED)
    OTP_ELIGIBLE = (PICKED_UP, IN_TRANSIT)
    TERMINAL = (DELIVERED, CANCELLED, FAILED)


# Rows covered by the one-active-delivery-per-driver unique index
ACTIVE_DRIVER_PREDICATE = (
    "driver_id IS NOT NULL AND deleted_at IS NULL AND status IN ("
    + ", ".join(f"'{s}'" for s in OrderStatus.ACTIVE_DELIVERY)
    + ")"
)


class OrderPriority:
    URGENT = "urgent"
    NORMAL = "normal"
    SCHEDULED = "scheduled"

    ALL = (URGENT, NORMAL, SCHEDULED)


class PackageSize:
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"

    ALL = (SMALL, MEDIUM, LARGE)


class Order(Base):
    """Delivery order entity"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(20), unique=True, index=True, nullable=False)

    # Parties
    customer_id = Column(String(64), index=True, nullable=False)
    business_id = Column(String(64), index=True, nullable=False)
    driver_id = Column(String(64), index=True, nullable=True)

    status = Column(String(20), default=OrderStatus.PENDING, index=True, nullable=False)
    priority = Column(String(20), default=OrderPriority.NORMAL, nullable=False)

    # Pickup
    pickup_contact_name = Column(String(100), nullable=False)
    pickup_contact_phone = Column(String(20), nullable=False)
    pickup_address = Column(Text, nullable=False)
    pickup_latitude = Column(Float, nullable=True)
    pickup_longitude = Column(Float, nullable=True)
    pickup_instructions = Column(Text, nullable=True)
    scheduled_pickup_time = Column(DateTime, nullable=True)

    # Dropoff
    dropoff_contact_name = Column(String(100), nullable=False)
    dropoff_contact_phone = Column(String(20), nullable=False)
    dropoff_address = Column(Text, nullable=False)
    dropoff_latitude = Column(Float, nullable=True)
    dropoff_longitude = Column(Float, nullable=True)
    dropoff_instructions = Column(Text, nullable=True)

    # Package
    package_description = Column(Text, nullable=False)
    package_weight = Column(Float, nullable=True)
    package_size = Column(String(10), nullable=True)
    package_quantity = Column(Integer, default=1, nullable=False)
    package_value = Column(Numeric(12, 2), nullable=True)
    is_fragile = Column(Boolean, default=False, nullable=False)

    # Commercial
    delivery_fee = Column(Numeric(12, 2), nullable=False)
    platform_fee = Column(Numeric(12, 2), nullable=False)
    total_cost = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), default="KES", nullable=False)
    estimated_distance_km = Column(Float, nullable=True)
    estimated_duration_minutes = Column(Integer, nullable=True)
    actual_distance_km = Column(Float, nullable=True)
    actual_duration_minutes = Column(Integer, nullable=True)

    # Lifecycle milestones
    confirmed_at = Column(DateTime, nullable=True)
    assigned_at = Column(DateTime, nullable=True)
    picked_up_at = Column(DateTime, nullable=True)
    in_transit_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Delivery proof
    delivery_proof_type = Column(String(20), nullable=True)
    delivery_proof_data = Column(Text, nullable=True)
    recipient_name = Column(String(100), nullable=True)
    delivery_notes = Column(Text, nullable=True)

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    status_history = relationship(
        "OrderStatusHistory", back_populates="order", order_by="OrderStatusHistory.id"
    )
    tracking_events = relationship(
        "OrderTrackingEvent", back_populates="order", order_by="OrderTrackingEvent.id"
    )

    __table_args__ = (
        Index("idx_orders_driver_status", "driver_id", "status"),
        Index("idx_orders_business_created", "business_id", "created_at"),
        Index(
            "uq_orders_driver_active", "driver_id", unique=True,
            postgresql_where=text(ACTIVE_DRIVER_PREDICATE),
            sqlite_where=text(ACTIVE_DRIVER_PREDICATE),
        ),
    )

    @property
    def route_summary(self) -> str:
        return f"{self.pickup_address} to {self.dropoff_address}"

    def __repr__(self):
        return f"<Order(id={self.id}, order_number='{self.order_number}', status='{self.status}')>"


class OrderStatusHistory(Base):
    """Append-only audit row written for every transition"""
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    status = Column(String(20), nullable=False)
    changed_by = Column(String(64), nullable=False)
    notes = Column(Text, nullable=True)
    location = Column(JSON, nullable=True)
    changed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    order = relationship("Order", back_populates="status_history")

    def __repr__(self):
        return f"<OrderStatusHistory(order_id={self.order_id}, status='{self.status}')>"


class OrderTrackingEvent(Base):
    """Append-only fine-grained tracking event"""
    __tablename__ = "order_tracking_events"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    event_type = Column(String(50), index=True, nullable=False)
    event_data = Column(JSON, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    order = relationship("Order", back_populates="tracking_events")

    def __repr__(self):
        return f"<OrderTrackingEvent(order_id={self.order_id}, event_type='{self.event_type}')>"


class OtpCode(Base):
    """One-time delivery code; several may exist per order after resends"""
    __tablename__ = "otp_codes"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    code = Column(String(6), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_otp_order_code", "order_id", "code"),
    )
