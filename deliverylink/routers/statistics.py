"""
Statistics and reporting endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address
from typing import List, Optional
from datetime import date, datetime
import logging

from deliverylink.config import settings
from deliverylink.database import get_db
from deliverylink.schemas.statistics import (
    DashboardSnapshotResponse, DailyStatisticsResponse, BusinessStatisticsResponse,
    DriverStatisticsResponse, DailyAggregateResponse, BusinessAggregateResponse,
    DriverAggregateResponse, TopBusinessResponse, TopDriverResponse,
    PriorityDistributionResponse, SizeDistributionResponse, RevenueBreakdownResponse
)
from deliverylink.services.statistics_reporter import StatisticsReporter
from deliverylink.auth.auth_handler import (
    admin_required, business_required, any_role_required, is_admin
)
from deliverylink.utils.error_handler import ValidationError

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

router = APIRouter()


def _check_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValidationError("start_date must not be after end_date", field="start_date")


def _resolve_subject(requested: Optional[str], current_user: dict) -> str:
    """Non-admins may only read their own figures"""
    if requested is None or requested == current_user["user_id"]:
        return current_user["user_id"]
    if not is_admin(current_user):
        raise HTTPException(status_code=403, detail="Operation not permitted")
    return requested


def _today() -> date:
    return datetime.utcnow().date()


@router.get("/dashboard", response_model=DashboardSnapshotResponse)
@limiter.limit("60/minute")
async def dashboard(
    request: Request,
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    """Live system-wide counters"""
    return StatisticsReporter(db).dashboard()


# ---- system daily ----

@router.get("/daily", response_model=List[DailyStatisticsResponse])
@limiter.limit("30/minute")
async def daily_statistics(
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    _check_range(start_date, end_date)
    return StatisticsReporter(db).daily(start_date, end_date)


@router.get("/daily/today", response_model=Optional[DailyStatisticsResponse])
@limiter.limit("60/minute")
async def today_statistics(
    request: Request,
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    return StatisticsReporter(db).daily_for(_today())


@router.get("/daily/aggregate", response_model=DailyAggregateResponse)
@limiter.limit("30/minute")
async def daily_aggregate(
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    """Totals, averages and rates across a date range"""
    _check_range(start_date, end_date)
    return StatisticsReporter(db).daily_aggregate(start_date, end_date)


# ---- per business ----

@router.get("/business", response_model=List[BusinessStatisticsResponse])
@limiter.limit("30/minute")
async def business_statistics(
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    business_id: Optional[str] = Query(None, description="Defaults to the caller"),
    current_user: dict = Depends(business_required),
    db: Session = Depends(get_db)
):
    _check_range(start_date, end_date)
    subject = _resolve_subject(business_id, current_user)
    return StatisticsReporter(db).business(subject, start_date, end_date)


@router.get("/business/today", response_model=Optional[BusinessStatisticsResponse])
@limiter.limit("60/minute")
async def business_today(
    request: Request,
    business_id: Optional[str] = Query(None, description="Defaults to the caller"),
    current_user: dict = Depends(business_required),
    db: Session = Depends(get_db)
):
    subject = _resolve_subject(business_id, current_user)
    return StatisticsReporter(db).business_for(subject, _today())


@router.get("/business/aggregate", response_model=BusinessAggregateResponse)
@limiter.limit("30/minute")
async def business_aggregate(
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    business_id: Optional[str] = Query(None, description="Defaults to the caller"),
    current_user: dict = Depends(business_required),
    db: Session = Depends(get_db)
):
    _check_range(start_date, end_date)
    subject = _resolve_subject(business_id, current_user)
    return StatisticsReporter(db).business_aggregate(subject, start_date, end_date)


# ---- per driver ----

@router.get("/drivers/{driver_id}", response_model=List[DriverStatisticsResponse])
@limiter.limit("30/minute")
async def driver_statistics(
    request: Request,
    driver_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    current_user: dict = Depends(any_role_required),
    db: Session = Depends(get_db)
):
    _check_range(start_date, end_date)
    subject = _resolve_subject(driver_id, current_user)
    return StatisticsReporter(db).driver(subject, start_date, end_date)


@router.get("/drivers/{driver_id}/aggregate", response_model=DriverAggregateResponse)
@limiter.limit("30/minute")
async def driver_aggregate(
    request: Request,
    driver_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    current_user: dict = Depends(any_role_required),
    db: Session = Depends(get_db)
):
    _check_range(start_date, end_date)
    subject = _resolve_subject(driver_id, current_user)
    return StatisticsReporter(db).driver_aggregate(subject, start_date, end_date)


# ---- rankings and breakdowns ----

@router.get("/top-businesses", response_model=List[TopBusinessResponse])
@limiter.limit("30/minute")
async def top_businesses(
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    _check_range(start_date, end_date)
    return StatisticsReporter(db).top_businesses(start_date, end_date, limit)


@router.get("/top-drivers", response_model=List[TopDriverResponse])
@limiter.limit("30/minute")
async def top_drivers(
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    _check_range(start_date, end_date)
    return StatisticsReporter(db).top_drivers(start_date, end_date, limit)


@router.get("/distribution/priority", response_model=PriorityDistributionResponse)
@limiter.limit("30/minute")
async def priority_distribution(
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    _check_range(start_date, end_date)
    return StatisticsReporter(db).priority_distribution(start_date, end_date)


@router.get("/distribution/size", response_model=SizeDistributionResponse)
@limiter.limit("30/minute")
async def size_distribution(
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    _check_range(start_date, end_date)
    return StatisticsReporter(db).size_distribution(start_date, end_date)


@router.get("/revenue-breakdown", response_model=RevenueBreakdownResponse)
@limiter.limit("30/minute")
async def revenue_breakdown(
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    _check_range(start_date, end_date)
    return StatisticsReporter(db).revenue_breakdown(start_date, end_date)
