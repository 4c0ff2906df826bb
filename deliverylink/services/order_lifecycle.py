"""
Order lifecycle engine

Every mutating operation runs as one unit of work: the order row is locked,
the state guard is checked against the locked row, and the status change,
ledger rows, statistics upserts and dashboard recompute commit together.
Notifications are returned to the caller for dispatch after commit.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any, Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from deliverylink.config import settings
from deliverylink.models.order import Order, OrderStatus, OrderPriority
from deliverylink.services.assignment_guard import DriverAssignmentGuard
from deliverylink.services.fee_calculator import calculate_fees
from deliverylink.services.notification_dispatcher import (
    Notification, delivery_notification, otp_notification, issue_notification, ISSUE_PHRASES
)
from deliverylink.services.otp_verifier import OtpVerifier
from deliverylink.services.statistics_aggregator import StatisticsAggregator
from deliverylink.services.tracking_ledger import TrackingLedger
from deliverylink.utils.error_handler import (
    UnitOfWork, NotFoundError, InvalidStateError, ExclusivityViolationError, ValidationError, InternalError
)

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5

MILESTONES = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.ASSIGNED: "assigned_at",
    OrderStatus.PICKED_UP: "picked_up_at",
    OrderStatus.IN_TRANSIT: "in_transit_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

ISSUE_TYPES = tuple(ISSUE_PHRASES)


@dataclass
class TransitionResult:
    """Outcome of a lifecycle operation"""
    order: Order
    notification: Optional[Notification] = None
    message: Optional[str] = None


class OrderLifecycleEngine:
    """Drives orders through the delivery state machine"""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = TrackingLedger(db)
        self.statistics = StatisticsAggregator(db)
        self.guard = DriverAssignmentGuard(db)
        self.otp = OtpVerifier(db)

    # ---- helpers ----

    def _generate_order_number(self, now: datetime) -> str:
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            candidate = f"DL-{now.year}-{secrets.randbelow(10 ** 6):06d}"
            exists = self.db.query(Order.id).filter(Order.order_number == candidate).first()
            if not exists:
                return candidate
        raise InternalError("Could not allocate a unique order number")

    def _locked_order(self, order_id: int) -> Order:
        order = (
            self.db.query(Order)
            .filter(Order.id == order_id, Order.deleted_at.is_(None))
            .with_for_update()
            .first()
        )
        if not order:
            raise NotFoundError("Order not found", details={"order_id": order_id})
        return order

    @staticmethod
    def _require_status(order: Order, allowed: Iterable[str], action: str) -> None:
        if order.status not in allowed:
            raise InvalidStateError(
                f"Cannot {action} an order that is {order.status}",
                details={"order_id": order.id, "status": order.status},
            )

    @staticmethod
    def _require_driver(order: Order, driver_id: str) -> None:
        # Another driver's order is reported as missing rather than forbidden
        if order.driver_id != driver_id:
            raise NotFoundError("Order not found", details={"order_id": order.id})

    def _transition(
        self,
        order: Order,
        new_status: str,
        actor_id: str,
        notes: str,
        event_type: str,
        event_data: Optional[Dict[str, Any]] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        history_location: bool = False,
        previous: Optional[str] = None,
    ) -> None:
        """Apply a status change with its ledger rows and statistics updates"""
        previous = previous or order.status
        order.status = new_status
        setattr(order, MILESTONES[new_status], datetime.utcnow())

        self.ledger.record_status(
            order.id,
            new_status,
            actor_id,
            notes=notes,
            latitude=latitude if history_location else None,
            longitude=longitude if history_location else None,
        )
        self.ledger.record_event(order.id, event_type, event_data, latitude=latitude, longitude=longitude)
        self.db.flush()

        self.statistics.record_status_change(order)
        self.statistics.refresh_dashboard_snapshot()

        logger.info(f"Order {order.order_number} moved {previous} -> {new_status} by {actor_id}")

    # ---- operations ----

    def place_order(self, actor_id: str, data: Dict[str, Any]) -> TransitionResult:
        """Create a confirmed order priced from its estimated distance"""
        data = dict(data)
        customer_id = data.pop("customer_id", None) or actor_id
        priority = data.pop("priority", None) or OrderPriority.NORMAL

        if priority == OrderPriority.SCHEDULED and not data.get("scheduled_pickup_time"):
            raise ValidationError("Scheduled orders need a pickup time", field="scheduled_pickup_time")
        if priority != OrderPriority.SCHEDULED:
            data["scheduled_pickup_time"] = None

        with UnitOfWork(self.db):
            fees = calculate_fees(data.get("estimated_distance_km"), priority)
            now = datetime.utcnow()

            order = Order(
                order_number=self._generate_order_number(now),
                customer_id=customer_id,
                business_id=actor_id,
                status=OrderStatus.CONFIRMED,
                priority=priority,
                delivery_fee=fees.delivery_fee,
                platform_fee=fees.platform_fee,
                total_cost=fees.total_cost,
                currency=settings.DEFAULT_CURRENCY,
                confirmed_at=now,
                created_at=now,
                **data,
            )
            self.db.add(order)
            self.db.flush()

            self.ledger.record_status(order.id, OrderStatus.CONFIRMED, actor_id, notes="Order placed")
            self.ledger.record_event(order.id, "order_created", {
                "orderNumber": order.order_number,
                "priority": priority,
                "totalCost": str(fees.total_cost),
            })
            self.db.flush()

            self.statistics.record_new_order(order)
            self.statistics.refresh_dashboard_snapshot()

            notification = delivery_notification(order)

        logger.info(f"Order {order.order_number} placed by {actor_id} for {fees.total_cost}")
        return TransitionResult(order, notification)

    def accept_order(self, driver_id: str, order_id: int) -> TransitionResult:
        """Assign a confirmed order to a driver with no active delivery"""
        with UnitOfWork(self.db):
            order = self._locked_order(order_id)
            self.guard.ensure_can_accept(driver_id)

            if order.status != OrderStatus.CONFIRMED or order.driver_id is not None:
                raise InvalidStateError(
                    "Order is no longer available for assignment",
                    details={"order_id": order.id, "status": order.status},
                )

            # The partial unique index on active driver orders rejects a
            # concurrent accept that slipped past the guard
            order.driver_id = driver_id
            order.status = OrderStatus.ASSIGNED
            try:
                self.db.flush()
            except IntegrityError as e:
                logger.warning(f"Driver {driver_id} already holds an active delivery, order {order_id} not assigned")
                raise ExclusivityViolationError(
                    "You must complete your current delivery before accepting a new order",
                    details={"order_id": order_id},
                ) from e

            self._transition(
                order, OrderStatus.ASSIGNED, driver_id,
                notes="Order assigned to driver",
                event_type="order_assigned",
                event_data={"driverId": driver_id},
                previous=OrderStatus.CONFIRMED,
            )
            notification = delivery_notification(order)

        return TransitionResult(order, notification)

    def decline_order(self, driver_id: str, order_id: int, reason: str) -> TransitionResult:
        """Record that a driver passed on an available order"""
        with UnitOfWork(self.db):
            order = self._locked_order(order_id)
            if order.status != OrderStatus.CONFIRMED or order.driver_id is not None:
                raise InvalidStateError(
                    "Only unassigned confirmed orders can be declined",
                    details={"order_id": order.id, "status": order.status},
                )
            self.ledger.record_event(order.id, "order_declined", {"driverId": driver_id, "reason": reason})

        logger.info(f"Driver {driver_id} declined order {order_id}")
        return TransitionResult(order, message="Order declined")

    def mark_picked_up(self, driver_id: str, order_id: int, notes: Optional[str] = None) -> TransitionResult:
        with UnitOfWork(self.db):
            order = self._locked_order(order_id)
            self._require_driver(order, driver_id)
            self._require_status(order, (OrderStatus.ASSIGNED,), "pick up")

            self._transition(
                order, OrderStatus.PICKED_UP, driver_id,
                notes=notes or "Package picked up",
                event_type="package_picked_up",
                event_data={"notes": notes},
            )
            notification = delivery_notification(order)

        return TransitionResult(order, notification)

    def mark_in_transit(
        self,
        driver_id: str,
        order_id: int,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        with UnitOfWork(self.db):
            order = self._locked_order(order_id)
            self._require_driver(order, driver_id)
            self._require_status(order, (OrderStatus.PICKED_UP,), "start transit for")

            self._transition(
                order, OrderStatus.IN_TRANSIT, driver_id,
                notes=notes or "Package in transit",
                event_type="in_transit",
                event_data={"latitude": latitude, "longitude": longitude, "notes": notes},
                latitude=latitude,
                longitude=longitude,
            )
            notification = delivery_notification(order)

        return TransitionResult(order, notification)

    def send_delivery_otp(self, driver_id: str, order_id: int) -> TransitionResult:
        """Issue a delivery code to the recipient; status is unchanged"""
        with UnitOfWork(self.db):
            order = self._locked_order(order_id)
            self._require_driver(order, driver_id)
            self._require_status(order, OrderStatus.OTP_ELIGIBLE, "send a delivery code for")

            otp = self.otp.issue(order.id)
            notification = otp_notification(order, otp.code)

        return TransitionResult(order, notification, message="OTP sent to recipient")

    def mark_delivered(
        self,
        driver_id: str,
        order_id: int,
        otp: str,
        recipient_name: Optional[str] = None,
        notes: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> TransitionResult:
        with UnitOfWork(self.db):
            order = self._locked_order(order_id)
            self._require_driver(order, driver_id)
            self._require_status(order, OrderStatus.OTP_ELIGIBLE, "deliver")

            self.otp.verify(order.id, otp)

            order.delivery_proof_type = "otp"
            order.delivery_proof_data = otp
            order.recipient_name = recipient_name
            order.delivery_notes = notes
            self._transition(
                order, OrderStatus.DELIVERED, driver_id,
                notes=notes or "Package delivered successfully with OTP verification",
                event_type="delivered",
                event_data={"recipientName": recipient_name, "otpVerified": True, "notes": notes},
                latitude=latitude,
                longitude=longitude,
                history_location=True,
            )
            notification = delivery_notification(order)

        return TransitionResult(
            order, notification, message="Order marked as delivered. You can now accept new orders!"
        )

    def cancel_order(self, actor_id: str, order_id: int, reason: str, is_admin: bool = False) -> TransitionResult:
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required", field="reason")
        reason = reason.strip()

        with UnitOfWork(self.db):
            order = self._locked_order(order_id)
            if not is_admin and actor_id not in (order.business_id, order.customer_id):
                raise NotFoundError("Order not found", details={"order_id": order.id})
            self._require_status(order, OrderStatus.CANCELLABLE, "cancel")

            released_driver = order.driver_id
            order.cancellation_reason = reason
            self._transition(
                order, OrderStatus.CANCELLED, actor_id,
                notes=f"Order cancelled: {reason}",
                event_type="order_cancelled",
                event_data={"reason": reason, "cancelledBy": actor_id, "driverId": released_driver},
            )
            notification = delivery_notification(order)

        return TransitionResult(order, notification)

    def report_issue(
        self,
        driver_id: str,
        order_id: int,
        issue_type: str,
        description: str,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> TransitionResult:
        """Log a delivery problem without changing the order's status"""
        if issue_type not in ISSUE_TYPES:
            raise ValidationError(f"Unknown issue type '{issue_type}'", field="issue_type")

        with UnitOfWork(self.db):
            order = self._locked_order(order_id)
            self._require_driver(order, driver_id)
            self._require_status(order, OrderStatus.ACTIVE_DELIVERY, "report an issue on")

            self.ledger.record_event(order.id, "issue_reported", {
                "issueType": issue_type,
                "description": description,
                "latitude": latitude,
                "longitude": longitude,
                "reportedBy": driver_id,
            })
            self.ledger.record_status(
                order.id, order.status, driver_id,
                notes=f"Issue reported: {issue_type} - {description}",
            )
            notification = issue_notification(order, issue_type, description)

        logger.warning(f"Issue '{issue_type}' reported on order {order.order_number} by {driver_id}")
        return TransitionResult(
            order, notification, message="Issue reported successfully. Support team has been notified."
        )

    def update_location(self, driver_id: str, order_id: int, latitude: float, longitude: float) -> TransitionResult:
        with UnitOfWork(self.db):
            order = self._locked_order(order_id)
            self._require_driver(order, driver_id)
            self._require_status(order, OrderStatus.OTP_ELIGIBLE, "update location for")

            self.ledger.record_event(
                order.id, "location_update",
                {"latitude": latitude, "longitude": longitude, "driverId": driver_id},
                latitude=latitude,
                longitude=longitude,
            )

        return TransitionResult(order, message="Location updated successfully")
