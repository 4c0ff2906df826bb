"""
Pydantic schemas for driver delivery operations
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List
from decimal import Decimal
import re

from deliverylink.schemas.order import OrderResponse
from deliverylink.services.notification_dispatcher import ISSUE_PHRASES


class PickupRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=500)


class InTransitRequest(BaseModel):
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    notes: Optional[str] = Field(None, max_length=500)


class DeliverRequest(BaseModel):
    """Proof of delivery submitted by the driver"""
    otp: str = Field(..., description="6-digit code read out by the recipient")
    recipient_name: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @validator('otp')
    def validate_otp(cls, v):
        v = v.strip()
        if not re.match(r'^\d{6}$', v):
            raise ValueError('OTP must be exactly 6 digits')
        return v


class DeclineRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)

    @validator('reason')
    def validate_reason(cls, v):
        if not v.strip():
            raise ValueError('Reason cannot be blank')
        return v.strip()


class IssueReportRequest(BaseModel):
    issue_type: str = Field(..., description="Kind of problem encountered")
    description: str = Field(..., min_length=1, max_length=1000)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @validator('issue_type')
    def validate_issue_type(cls, v):
        if v not in ISSUE_PHRASES:
            raise ValueError(f'Issue type must be one of: {", ".join(ISSUE_PHRASES)}')
        return v


class LocationUpdateRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class TransitionResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    order: Optional[OrderResponse] = None


class AvailableOrdersResponse(BaseModel):
    has_active_delivery: bool
    active_delivery: Optional[OrderResponse]
    can_accept_orders: bool
    available_orders: List[OrderResponse]
    total: int


class DriverOrdersResponse(BaseModel):
    orders: List[OrderResponse]
    total: int


class DeliveryHistoryResponse(BaseModel):
    deliveries: List[OrderResponse]
    total: int
    total_earnings: Decimal


class EarningsSummaryResponse(BaseModel):
    period: str
    total_deliveries: int
    total_earnings: Decimal
    urgent_deliveries: int
    urgent_earnings: Decimal
    average_earnings_per_delivery: Decimal


class DriverSummaryResponse(BaseModel):
    total: int
    completed: int
    active: int
    total_earnings: Decimal
    today_deliveries: int
    today_earnings: Decimal
    completion_rate: Decimal


class OtpPurgeResponse(BaseModel):
    deleted: int
