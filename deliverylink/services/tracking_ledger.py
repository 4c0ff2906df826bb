"""
Tracking ledger: append-only status history and tracking events per order
"""

from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from deliverylink.models.order import OrderStatusHistory, OrderTrackingEvent


class TrackingLedger:
    """Writes ledger rows inside the caller's transaction; never commits"""

    def __init__(self, db: Session):
        self.db = db

    def record_status(
        self,
        order_id: int,
        status: str,
        changed_by: str,
        notes: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> OrderStatusHistory:
        """Append one status-history row"""
        location = None
        if latitude is not None and longitude is not None:
            location = {"lat": latitude, "lng": longitude}

        entry = OrderStatusHistory(
            order_id=order_id,
            status=status,
            changed_by=changed_by,
            notes=notes,
            location=location,
        )
        self.db.add(entry)
        return entry

    def record_event(
        self,
        order_id: int,
        event_type: str,
        event_data: Optional[Dict[str, Any]] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> OrderTrackingEvent:
        """Append one tracking event; None values are dropped from the payload"""
        payload = {key: value for key, value in (event_data or {}).items() if value is not None}

        event = OrderTrackingEvent(
            order_id=order_id,
            event_type=event_type,
            event_data=payload,
            latitude=latitude,
            longitude=longitude,
        )
        self.db.add(event)
        return event

    def status_history(self, order_id: int) -> List[OrderStatusHistory]:
        return (
            self.db.query(OrderStatusHistory)
            .filter(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.id.asc())
            .all()
        )

    def tracking_events(self, order_id: int) -> List[OrderTrackingEvent]:
        return (
            self.db.query(OrderTrackingEvent)
            .filter(OrderTrackingEvent.order_id == order_id)
            .order_by(OrderTrackingEvent.id.asc())
            .all()
        )
