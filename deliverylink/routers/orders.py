"""
Order placement, lookup and cancellation endpoints
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy import or_
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address
from typing import Optional
import logging
import math

from deliverylink.config import settings
from deliverylink.database import get_db
from deliverylink.models.order import Order, OrderStatus
from deliverylink.schemas.order import (
    OrderCreate, OrderResponse, OrderListResponse, OrderDetailResponse, CancelOrderRequest
)
from deliverylink.services.notification_dispatcher import notification_dispatcher
from deliverylink.services.order_lifecycle import OrderLifecycleEngine
from deliverylink.services.tracking_ledger import TrackingLedger
from deliverylink.auth.auth_handler import (
    business_required, any_role_required, is_admin, ROLE_DRIVER
)
from deliverylink.utils.error_handler import NotFoundError, ValidationError

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

router = APIRouter()


def _can_view(order: Order, user: dict) -> bool:
    if is_admin(user):
        return True
    return user["user_id"] in (order.business_id, order.customer_id, order.driver_id)


def _order_detail(db: Session, order: Order) -> OrderDetailResponse:
    ledger = TrackingLedger(db)
    return OrderDetailResponse(
        order=order,
        status_history=ledger.status_history(order.id),
        tracking_events=ledger.tracking_events(order.id),
    )


@router.post("/", response_model=OrderResponse, status_code=201)
@limiter.limit("10/minute")
async def place_order(
    request: Request,
    order: OrderCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(business_required),
    db: Session = Depends(get_db)
):
    """Place a new delivery order; it is priced and confirmed immediately"""
    result = OrderLifecycleEngine(db).place_order(current_user["user_id"], order.dict())
    background_tasks.add_task(notification_dispatcher.dispatch, result.notification)
    return result.order


@router.get("/", response_model=OrderListResponse)
@limiter.limit("30/minute")
async def list_orders(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    status: Optional[str] = Query(None, description="Filter by status"),
    current_user: dict = Depends(any_role_required),
    db: Session = Depends(get_db)
):
    """Paginated list of the caller's orders"""
    if status and status not in OrderStatus.ALL:
        raise ValidationError(f"Unknown status '{status}'", field="status")

    query = db.query(Order).filter(Order.deleted_at.is_(None))

    user_id = current_user["user_id"]
    if current_user["role"] == ROLE_DRIVER:
        query = query.filter(Order.driver_id == user_id)
    elif not is_admin(current_user):
        query = query.filter(or_(Order.business_id == user_id, Order.customer_id == user_id))

    if status:
        query = query.filter(Order.status == status)

    total = query.count()
    offset = (page - 1) * page_size
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(page_size).all()

    return OrderListResponse(
        orders=orders,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size)
    )


@router.get("/track/{order_number}", response_model=OrderDetailResponse)
@limiter.limit("30/minute")
async def track_order(
    request: Request,
    order_number: str,
    current_user: dict = Depends(any_role_required),
    db: Session = Depends(get_db)
):
    """Look up an order and its tracking trail by order number"""
    order = db.query(Order).filter(
        Order.order_number == order_number,
        Order.deleted_at.is_(None)
    ).first()
    if not order:
        raise NotFoundError("Order not found", details={"order_number": order_number})

    return _order_detail(db, order)


@router.get("/{order_id}", response_model=OrderDetailResponse)
@limiter.limit("30/minute")
async def get_order(
    request: Request,
    order_id: int,
    current_user: dict = Depends(any_role_required),
    db: Session = Depends(get_db)
):
    """Order detail with status history and tracking events"""
    order = db.query(Order).filter(Order.id == order_id, Order.deleted_at.is_(None)).first()
    if not order or not _can_view(order, current_user):
        raise NotFoundError("Order not found", details={"order_id": order_id})

    return _order_detail(db, order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
@limiter.limit("10/minute")
async def cancel_order(
    request: Request,
    order_id: int,
    cancellation: CancelOrderRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(any_role_required),
    db: Session = Depends(get_db)
):
    """Cancel a pending, confirmed or assigned order"""
    result = OrderLifecycleEngine(db).cancel_order(
        current_user["user_id"],
        order_id,
        cancellation.reason,
        is_admin=is_admin(current_user),
    )
    background_tasks.add_task(notification_dispatcher.dispatch, result.notification)
    return result.order
