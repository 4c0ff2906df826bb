"""
Delivery fee calculation

Pure and deterministic; any audit that recomputes fees must call this
function rather than re-deriving the formula.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from deliverylink.models.order import OrderPriority
from deliverylink.utils.error_handler import ValidationError

BASE_FEE = Decimal("100")
PER_KM_RATE = Decimal("20")
URGENT_MULTIPLIER = Decimal("1.5")
PLATFORM_FEE_RATE = Decimal("0.15")

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class FeeBreakdown:
    delivery_fee: Decimal
    platform_fee: Decimal
    total_cost: Decimal


def calculate_fees(distance_km: Union[int, float, Decimal], priority: str) -> FeeBreakdown:
    """Compute delivery fee, platform fee and total cost for a trip"""
    if distance_km is None:
        raise ValidationError("Distance is required to price an order", field="distance_km")

    distance = Decimal(str(distance_km))
    if distance <= 0:
        raise ValidationError("Distance must be greater than zero", field="distance_km")
    if priority not in OrderPriority.ALL:
        raise ValidationError(f"Unknown priority '{priority}'", field="priority")

    raw_fee = BASE_FEE + distance * PER_KM_RATE
    if priority == OrderPriority.URGENT:
        raw_fee = raw_fee * URGENT_MULTIPLIER

    delivery_fee = raw_fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP).quantize(CENTS)
    platform_fee = (delivery_fee * PLATFORM_FEE_RATE).quantize(CENTS, rounding=ROUND_HALF_UP)
    total_cost = (delivery_fee + platform_fee).quantize(CENTS)

    return FeeBreakdown(
        delivery_fee=delivery_fee,
        platform_fee=platform_fee,
        total_cost=total_cost,
    )
