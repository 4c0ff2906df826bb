"""
Pydantic schemas for Order operations
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
import re

from deliverylink.models.order import OrderPriority, PackageSize

PHONE_PATTERN = r'^\+?\d{9,15}$'


def clean_phone(v: str) -> str:
    cleaned = re.sub(r'[\s()\-]', '', v or '')
    if not re.match(PHONE_PATTERN, cleaned):
        raise ValueError('Phone number must contain 9 to 15 digits, optionally prefixed with +')
    return cleaned


class OrderCreate(BaseModel):
    """Schema for placing a new delivery order"""
    customer_id: Optional[str] = Field(None, max_length=64, description="Customer the order is for; defaults to the caller")
    priority: str = Field(OrderPriority.NORMAL, description="urgent, normal or scheduled")

    pickup_contact_name: str = Field(..., min_length=1, max_length=100)
    pickup_contact_phone: str = Field(..., description="Pickup contact phone number")
    pickup_address: str = Field(..., min_length=1, description="Pickup address")
    pickup_latitude: Optional[float] = Field(None, ge=-90, le=90)
    pickup_longitude: Optional[float] = Field(None, ge=-180, le=180)
    pickup_instructions: Optional[str] = None
    scheduled_pickup_time: Optional[datetime] = Field(None, description="Required for scheduled orders")

    dropoff_contact_name: str = Field(..., min_length=1, max_length=100)
    dropoff_contact_phone: str = Field(..., description="Recipient phone number")
    dropoff_address: str = Field(..., min_length=1, description="Dropoff address")
    dropoff_latitude: Optional[float] = Field(None, ge=-90, le=90)
    dropoff_longitude: Optional[float] = Field(None, ge=-180, le=180)
    dropoff_instructions: Optional[str] = None

    package_description: str = Field(..., min_length=1)
    package_weight: Optional[float] = Field(None, gt=0, description="Weight in kg")
    package_size: Optional[str] = Field(None, description="small, medium or large")
    package_quantity: int = Field(1, ge=1)
    package_value: Optional[Decimal] = Field(None, ge=0)
    is_fragile: bool = False

    estimated_distance_km: float = Field(..., gt=0, description="Trip distance from the routing service")
    estimated_duration_minutes: Optional[int] = Field(None, ge=0)

    @validator('pickup_contact_phone', 'dropoff_contact_phone')
    def validate_phone(cls, v):
        return clean_phone(v)

    @validator('priority')
    def validate_priority(cls, v):
        if v not in OrderPriority.ALL:
            raise ValueError(f'Priority must be one of: {", ".join(OrderPriority.ALL)}')
        return v

    @validator('package_size')
    def validate_package_size(cls, v):
        if v is None:
            return v
        if v not in PackageSize.ALL:
            raise ValueError(f'Package size must be one of: {", ".join(PackageSize.ALL)}')
        return v

    @validator('pickup_contact_name', 'dropoff_contact_name', 'pickup_address', 'dropoff_address', 'package_description')
    def validate_not_blank(cls, v):
        if not v.strip():
            raise ValueError('Field cannot be blank')
        return v.strip()


class CancelOrderRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500, description="Why the order is being cancelled")

    @validator('reason')
    def validate_reason(cls, v):
        if not v.strip():
            raise ValueError('Cancellation reason cannot be blank')
        return v.strip()


class OrderResponse(BaseModel):
    """Schema for order responses"""
    id: int
    order_number: str
    customer_id: str
    business_id: str
    driver_id: Optional[str]
    status: str
    priority: str

    pickup_contact_name: str
    pickup_contact_phone: str
    pickup_address: str
    pickup_latitude: Optional[float]
    pickup_longitude: Optional[float]
    pickup_instructions: Optional[str]
    scheduled_pickup_time: Optional[datetime]

    dropoff_contact_name: str
    dropoff_contact_phone: str
    dropoff_address: str
    dropoff_latitude: Optional[float]
    dropoff_longitude: Optional[float]
    dropoff_instructions: Optional[str]

    package_description: str
    package_weight: Optional[float]
    package_size: Optional[str]
    package_quantity: int
    package_value: Optional[Decimal]
    is_fragile: bool

    delivery_fee: Decimal
    platform_fee: Decimal
    total_cost: Decimal
    currency: str
    estimated_distance_km: Optional[float]
    estimated_duration_minutes: Optional[int]

    confirmed_at: Optional[datetime]
    assigned_at: Optional[datetime]
    picked_up_at: Optional[datetime]
    in_transit_at: Optional[datetime]
    delivered_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]

    delivery_proof_type: Optional[str]
    recipient_name: Optional[str]
    delivery_notes: Optional[str]

    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class StatusHistoryResponse(BaseModel):
    id: int
    status: str
    changed_by: str
    notes: Optional[str]
    location: Optional[Dict[str, float]]
    changed_at: datetime

    class Config:
        from_attributes = True


class TrackingEventResponse(BaseModel):
    id: int
    event_type: str
    event_data: Optional[Dict[str, Any]]
    latitude: Optional[float]
    longitude: Optional[float]
    timestamp: datetime

    class Config:
        from_attributes = True


class OrderDetailResponse(BaseModel):
    """Order with its full status history and tracking events"""
    order: OrderResponse
    status_history: List[StatusHistoryResponse]
    tracking_events: List[TrackingEventResponse]


class OrderListResponse(BaseModel):
    """Schema for paginated order list responses"""
    orders: List[OrderResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
