"""
Unit tests for delivery fee calculation
"""

import pytest
from decimal import Decimal

from deliverylink.services.fee_calculator import calculate_fees
from deliverylink.utils.error_handler import ValidationError


class TestFeeCalculator:
    """Test cases for the pricing formula"""

    def test_normal_priority_ten_km(self):
        fees = calculate_fees(10, "normal")
        assert fees.delivery_fee == Decimal("300.00")
        assert fees.platform_fee == Decimal("45.00")
        assert fees.total_cost == Decimal("345.00")

    def test_urgent_priority_ten_km(self):
        fees = calculate_fees(10, "urgent")
        assert fees.delivery_fee == Decimal("450.00")
        assert fees.platform_fee == Decimal("67.50")
        assert fees.total_cost == Decimal("517.50")

    def test_scheduled_is_priced_like_normal(self):
        assert calculate_fees(7, "scheduled") == calculate_fees(7, "normal")

    def test_delivery_fee_rounds_half_up_to_whole_units(self):
        # 100 + 2.525 * 20 = 150.5
        fees = calculate_fees(2.525, "normal")
        assert fees.delivery_fee == Decimal("151.00")
        assert fees.platform_fee == Decimal("22.65")
        assert fees.total_cost == Decimal("173.65")

    def test_urgent_multiplier_applies_before_rounding(self):
        # (100 + 0.3 * 20) * 1.5 = 159.0
        fees = calculate_fees(0.3, "urgent")
        assert fees.delivery_fee == Decimal("159.00")

    def test_is_deterministic(self):
        assert calculate_fees(12.4, "urgent") == calculate_fees(12.4, "urgent")

    @pytest.mark.parametrize("distance", [0, -1, -0.5])
    def test_rejects_non_positive_distance(self, distance):
        with pytest.raises(ValidationError) as exc_info:
            calculate_fees(distance, "normal")
        assert exc_info.value.details["field"] == "distance_km"

    def test_rejects_missing_distance(self):
        with pytest.raises(ValidationError):
            calculate_fees(None, "normal")

    def test_rejects_unknown_priority(self):
        with pytest.raises(ValidationError) as exc_info:
            calculate_fees(5, "express")
        assert exc_info.value.details["field"] == "priority"
