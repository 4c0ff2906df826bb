"""
Driver assignment guard: one active delivery per driver
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from deliverylink.models.order import Order, OrderStatus
from deliverylink.utils.error_handler import ExclusivityViolationError

logger = logging.getLogger(__name__)


class DriverAssignmentGuard:
    """Early rejection before an assignment write.

    Must run in the same transaction as the assignment. Two accepts of
    different orders by the same driver can both pass this check, so the
    store backs it with the uq_orders_driver_active partial unique index.
    """

    def __init__(self, db: Session):
        self.db = db

    def _active_query(self, driver_id: str):
        return self.db.query(Order).filter(
            Order.driver_id == driver_id,
            Order.status.in_(OrderStatus.ACTIVE_DELIVERY),
            Order.deleted_at.is_(None),
        )

    def active_delivery(self, driver_id: str) -> Optional[Order]:
        return self._active_query(driver_id).order_by(Order.assigned_at.desc()).first()

    def ensure_can_accept(self, driver_id: str) -> None:
        active = self._active_query(driver_id).with_for_update().first()
        if active is not None:
            logger.info(f"Driver {driver_id} rejected: order {active.id} still {active.status}")
            raise ExclusivityViolationError(
                "You must complete your current delivery before accepting a new order",
                details={"active_order_id": active.id},
            )
