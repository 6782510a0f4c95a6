"""
Unit tests for tier selection and customer discounts.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.services.pricing import (
    PriceTier, calculate_item_price, find_applicable_tier, validate_customer_discount
)

TIERS = [
    PriceTier(10, Decimal("95"), 49),
    PriceTier(50, Decimal("90"), 99),
    PriceTier(100, Decimal("85")),
]


def _price(quantity, discount=None, tiers=TIERS):
    return calculate_item_price(Decimal("120"), Decimal("100"), 10, quantity, tiers=tiers, discount=discount)


def _discount(percent):
    return validate_customer_discount(Decimal(percent))


@pytest.mark.parametrize("quantity, tier_min, unit_price", [
    (30, 10, "95"),
    (49, 10, "95"),
    (50, 50, "90"),
    (75, 50, "90"),
    (100, 100, "85"),
    (150, 100, "85"),
])
def test_tier_selection(quantity, tier_min, unit_price):
    result = _price(quantity)
    assert result.meets_minimum
    assert result.tier.min_quantity == tier_min
    assert result.unit_price == Decimal(unit_price)
    assert result.total == Decimal(unit_price) * quantity


def test_below_moq_pays_base_price_without_discount():
    result = _price(5, discount=_discount("10"))
    assert not result.meets_minimum
    assert result.minimum_required == 10
    assert result.tier is None
    assert result.unit_price == Decimal("120.00")
    assert result.customer_discount_amount == 0
    assert result.total == Decimal("600.00")


def test_no_matching_tier_falls_back_to_wholesale_price():
    gapped = [PriceTier(10, Decimal("95"), 20), PriceTier(50, Decimal("90"))]
    result = _price(30, tiers=gapped)
    assert result.tier is None
    assert result.unit_price == Decimal("100.00")

    assert find_applicable_tier([], 30) is None


def test_customer_discount_comes_off_the_tier_subtotal():
    result = _price(30, discount=_discount("10"))
    assert result.subtotal == Decimal("2850.00")
    assert result.customer_discount_percent == Decimal("10")
    assert result.customer_discount_amount == Decimal("285.00")
    assert result.total == Decimal("2565.00")
    assert result.final_unit_price == Decimal("85.50")

    result = _price(100, discount=_discount("20"))
    assert result.total == Decimal("6800.00")
    assert result.final_unit_price == Decimal("68.00")


def test_savings_are_measured_against_the_wholesale_price():
    result = _price(50, discount=_discount("10"))
    assert result.total == Decimal("4050.00")
    assert result.total_savings == Decimal("950.00")
    assert result.total_savings_percent == Decimal("19.00")

    assert _price(20, tiers=[]).total_savings == 0


def test_invalid_discount_is_ignored():
    expired = validate_customer_discount(Decimal("10"), date.today() - timedelta(days=1))
    result = _price(30, discount=expired)
    assert result.customer_discount_percent == 0
    assert result.total == Decimal("2850.00")


def test_product_without_wholesale_price_uses_base_at_moq():
    result = calculate_item_price(Decimal("50"), None, 5, 10, discount=_discount("15"))
    assert result.unit_price == Decimal("50.00")
    assert result.total == Decimal("425.00")


def test_validate_customer_discount():
    today = date(2025, 6, 1)
    check = validate_customer_discount(Decimal("15"), today + timedelta(days=30), today=today)
    assert check.is_valid and check.applicable_percent == Decimal("15")

    check = validate_customer_discount(Decimal("15"), today - timedelta(days=1), today=today)
    assert (check.is_valid, check.applicable_percent, check.reason) == (False, 0, "Discount expired")

    assert validate_customer_discount(Decimal("15"), today, today=today).is_valid
    assert validate_customer_discount(Decimal("150")).reason == "Invalid discount percentage"
    assert validate_customer_discount(Decimal("-10")).reason == "Invalid discount percentage"
    assert validate_customer_discount(0).reason == "No discount set"
    assert validate_customer_discount(None).reason == "No discount set"
    assert validate_customer_discount(Decimal("10")).is_valid
