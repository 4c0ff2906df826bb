"""
Driver delivery endpoints
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy import case
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address
from typing import Optional
from datetime import date, datetime, time, timedelta
import logging

from deliverylink.config import settings
from deliverylink.database import get_db
from deliverylink.models.order import Order, OrderStatus, OrderPriority
from deliverylink.schemas.order import OrderResponse
from deliverylink.schemas.delivery import (
    PickupRequest, InTransitRequest, DeliverRequest, DeclineRequest, IssueReportRequest,
    LocationUpdateRequest, TransitionResponse, AvailableOrdersResponse, DriverOrdersResponse,
    DeliveryHistoryResponse, EarningsSummaryResponse, DriverSummaryResponse, OtpPurgeResponse
)
from deliverylink.services.assignment_guard import DriverAssignmentGuard
from deliverylink.services.notification_dispatcher import notification_dispatcher
from deliverylink.services.order_lifecycle import OrderLifecycleEngine, TransitionResult
from deliverylink.services.otp_verifier import OtpVerifier
from deliverylink.services.statistics_aggregator import to_money
from deliverylink.services.statistics_reporter import StatisticsReporter, EARNINGS_PERIODS
from deliverylink.auth.auth_handler import driver_required, admin_required
from deliverylink.utils.error_handler import UnitOfWork, ValidationError

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

router = APIRouter()

# Urgent work is offered first, scheduled pickups last
PRIORITY_RANK = case(
    (Order.priority == OrderPriority.URGENT, 0),
    (Order.priority == OrderPriority.NORMAL, 1),
    else_=2,
)


def _respond(result: TransitionResult, background_tasks: BackgroundTasks) -> TransitionResponse:
    if result.notification is not None:
        background_tasks.add_task(notification_dispatcher.dispatch, result.notification)
    return TransitionResponse(success=True, message=result.message, order=result.order)


# ---- reads ----

@router.get("/available", response_model=AvailableOrdersResponse)
@limiter.limit("60/minute")
async def available_orders(
    request: Request,
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    """Confirmed orders with no driver; empty while the caller has an active delivery"""
    active = DriverAssignmentGuard(db).active_delivery(current_user["user_id"])

    query = db.query(Order).filter(
        Order.status == OrderStatus.CONFIRMED,
        Order.driver_id.is_(None),
        Order.deleted_at.is_(None)
    )
    total = query.count()
    orders = []
    if active is None:
        orders = query.order_by(PRIORITY_RANK, Order.created_at.desc()).offset(offset).limit(limit).all()

    return AvailableOrdersResponse(
        has_active_delivery=active is not None,
        active_delivery=active,
        can_accept_orders=active is None,
        available_orders=orders,
        total=total
    )


@router.get("/current", response_model=Optional[OrderResponse])
@limiter.limit("60/minute")
async def current_delivery(
    request: Request,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    """The caller's active delivery, or null"""
    return DriverAssignmentGuard(db).active_delivery(current_user["user_id"])


@router.get("/mine", response_model=DriverOrdersResponse)
@limiter.limit("30/minute")
async def my_orders(
    request: Request,
    status: str = Query("all", description="assigned, picked_up, in_transit, delivered or all"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    """Orders assigned to the caller"""
    allowed = OrderStatus.ACTIVE_DELIVERY + (OrderStatus.DELIVERED, "all")
    if status not in allowed:
        raise ValidationError(f"Status must be one of: {', '.join(allowed)}", field="status")

    query = db.query(Order).filter(
        Order.driver_id == current_user["user_id"],
        Order.deleted_at.is_(None)
    )
    if status != "all":
        query = query.filter(Order.status == status)

    total = query.count()
    orders = query.order_by(Order.created_at.desc()).offset(offset).limit(limit).all()
    return DriverOrdersResponse(orders=orders, total=total)


@router.get("/history", response_model=DeliveryHistoryResponse)
@limiter.limit("30/minute")
async def delivery_history(
    request: Request,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    """Completed deliveries, newest first"""
    query = db.query(Order).filter(
        Order.driver_id == current_user["user_id"],
        Order.status == OrderStatus.DELIVERED,
        Order.deleted_at.is_(None)
    )
    if start_date:
        query = query.filter(Order.delivered_at >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(Order.delivered_at < datetime.combine(end_date + timedelta(days=1), time.min))

    total = query.count()
    deliveries = query.order_by(Order.delivered_at.desc()).offset(offset).limit(limit).all()

    return DeliveryHistoryResponse(
        deliveries=deliveries,
        total=total,
        total_earnings=to_money(sum((order.delivery_fee for order in deliveries), 0))
    )


@router.get("/earnings", response_model=EarningsSummaryResponse)
@limiter.limit("30/minute")
async def earnings_summary(
    request: Request,
    period: str = Query("all", description="today, week, month or all"),
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    if period not in EARNINGS_PERIODS:
        raise ValidationError(f"Period must be one of: {', '.join(EARNINGS_PERIODS)}", field="period")
    return StatisticsReporter(db).earnings_summary(current_user["user_id"], period)


@router.get("/stats", response_model=DriverSummaryResponse)
@limiter.limit("30/minute")
async def driver_stats(
    request: Request,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    return StatisticsReporter(db).driver_summary(current_user["user_id"])


# ---- transitions ----

@router.post("/{order_id}/accept", response_model=TransitionResponse)
@limiter.limit("20/minute")
async def accept_order(
    request: Request,
    order_id: int,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    """Take an available order; the caller must have no active delivery"""
    result = OrderLifecycleEngine(db).accept_order(current_user["user_id"], order_id)
    return _respond(result, background_tasks)


@router.post("/{order_id}/decline", response_model=TransitionResponse)
@limiter.limit("20/minute")
async def decline_order(
    request: Request,
    order_id: int,
    decline: DeclineRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    result = OrderLifecycleEngine(db).decline_order(current_user["user_id"], order_id, decline.reason)
    return _respond(result, background_tasks)


@router.post("/{order_id}/pickup", response_model=TransitionResponse)
@limiter.limit("20/minute")
async def mark_picked_up(
    request: Request,
    order_id: int,
    background_tasks: BackgroundTasks,
    pickup: Optional[PickupRequest] = None,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    notes = pickup.notes if pickup else None
    result = OrderLifecycleEngine(db).mark_picked_up(current_user["user_id"], order_id, notes)
    return _respond(result, background_tasks)


@router.post("/{order_id}/in-transit", response_model=TransitionResponse)
@limiter.limit("20/minute")
async def mark_in_transit(
    request: Request,
    order_id: int,
    background_tasks: BackgroundTasks,
    transit: Optional[InTransitRequest] = None,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    transit = transit or InTransitRequest()
    result = OrderLifecycleEngine(db).mark_in_transit(
        current_user["user_id"],
        order_id,
        latitude=transit.latitude,
        longitude=transit.longitude,
        notes=transit.notes,
    )
    return _respond(result, background_tasks)


@router.post("/{order_id}/otp", response_model=TransitionResponse)
@limiter.limit("5/minute")
async def send_delivery_otp(
    request: Request,
    order_id: int,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    """Send a fresh delivery code to the recipient"""
    result = OrderLifecycleEngine(db).send_delivery_otp(current_user["user_id"], order_id)
    return _respond(result, background_tasks)


@router.post("/{order_id}/deliver", response_model=TransitionResponse)
@limiter.limit("10/minute")
async def mark_delivered(
    request: Request,
    order_id: int,
    proof: DeliverRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    """Complete the delivery with the recipient's code"""
    result = OrderLifecycleEngine(db).mark_delivered(
        current_user["user_id"],
        order_id,
        proof.otp,
        recipient_name=proof.recipient_name,
        notes=proof.notes,
        latitude=proof.latitude,
        longitude=proof.longitude,
    )
    return _respond(result, background_tasks)


@router.post("/{order_id}/issues", response_model=TransitionResponse)
@limiter.limit("10/minute")
async def report_issue(
    request: Request,
    order_id: int,
    issue: IssueReportRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    result = OrderLifecycleEngine(db).report_issue(
        current_user["user_id"],
        order_id,
        issue.issue_type,
        issue.description,
        latitude=issue.latitude,
        longitude=issue.longitude,
    )
    return _respond(result, background_tasks)


@router.post("/{order_id}/location", response_model=TransitionResponse)
@limiter.limit("120/minute")
async def update_location(
    request: Request,
    order_id: int,
    location: LocationUpdateRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    result = OrderLifecycleEngine(db).update_location(
        current_user["user_id"], order_id, location.latitude, location.longitude
    )
    return _respond(result, background_tasks)


# ---- maintenance ----

@router.delete("/otp/expired", response_model=OtpPurgeResponse)
@limiter.limit("5/minute")
async def purge_expired_otps(
    request: Request,
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    """Remove expired, unconsumed delivery codes"""
    with UnitOfWork(db):
        deleted = OtpVerifier(db).purge_expired()
    return OtpPurgeResponse(deleted=deleted)
