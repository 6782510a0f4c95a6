"""
Unit tests for stock status classification and adjustment validation.
"""
from datetime import datetime, timedelta

import pytest

from app.services.stock_calculations import (
    StockItem, StockStatus, calculate_stock_status, validate_stock_adjustment,
    calculate_reorder_point, calculate_eoq, calculate_average_daily_sales, generate_stock_alert,
)

NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.mark.parametrize("stock, expected", [
    (0, StockStatus.OUT_OF_STOCK),
    (1, StockStatus.REORDER_NEEDED),
    (20, StockStatus.REORDER_NEEDED),
    (21, StockStatus.LOW_STOCK),
    (30, StockStatus.LOW_STOCK),
    (31, StockStatus.IN_STOCK),
])
def test_status_thresholds(stock, expected):
    """Status bands around a reorder point of 20."""
    calc = calculate_stock_status(StockItem(current_stock=stock, reorder_point=20, reorder_quantity=50))
    assert calc.status == expected
    assert calc.is_reorder_needed == (expected in (StockStatus.OUT_OF_STOCK, StockStatus.REORDER_NEEDED))


def test_suggested_quantity_respects_moq():
    calc = calculate_stock_status(StockItem(current_stock=5, reorder_point=20, reorder_quantity=50, moq=120))
    assert calc.suggested_reorder_quantity == 120


def test_suggested_quantity_defaults_to_twice_reorder_point():
    calc = calculate_stock_status(StockItem(current_stock=5, reorder_point=20, reorder_quantity=0, moq=1))
    assert calc.suggested_reorder_quantity == 40


def test_stockout_date_only_with_sales_velocity():
    """No sales history means no stockout estimate."""
    idle = calculate_stock_status(StockItem(current_stock=50, reorder_point=10), now=NOW)
    assert idle.estimated_stockout_date is None
    assert idle.days_of_stock is None

    selling = calculate_stock_status(
        StockItem(current_stock=50, reorder_point=10, average_daily_sales=4), now=NOW
    )
    assert selling.days_of_stock == 12
    assert selling.estimated_stockout_date == NOW + timedelta(days=12)


def test_remove_more_than_available_is_rejected():
    """Over-removal is an error rather than a clamp to zero."""
    result = validate_stock_adjustment(100, 150, "remove", "damaged goods")
    assert result.is_valid is False
    assert result.errors
    assert result.new_stock is None


def test_add_is_valid():
    result = validate_stock_adjustment(100, 30, "add", "restock")
    assert result.is_valid is True
    assert result.errors == []
    assert result.new_stock == 130


def test_set_replaces_stock():
    result = validate_stock_adjustment(100, 42, "set", "annual count")
    assert result.is_valid
    assert result.new_stock == 42


def test_all_problems_reported_together():
    result = validate_stock_adjustment(10, -5, "shrink", "bad")
    assert not result.is_valid
    assert len(result.errors) == 3
    assert "Invalid adjustment type" in result.errors


def test_reorder_point_and_eoq():
    assert calculate_reorder_point(average_daily_sales=2, lead_time_days=5) == 24
    assert calculate_eoq(annual_demand=1000, ordering_cost=50, holding_cost_per_unit=4) == 159
    assert calculate_eoq(annual_demand=1000, ordering_cost=50, holding_cost_per_unit=0) == 0


def test_average_daily_sales_ignores_old_history():
    history = [
        (NOW - timedelta(days=1), 30),
        (NOW - timedelta(days=10), 30),
        (NOW - timedelta(days=45), 500),
    ]
    assert calculate_average_daily_sales(history, days=30, now=NOW) == 2


def test_alert_messages():
    out = calculate_stock_status(StockItem(current_stock=0, reorder_point=10, reorder_quantity=25))
    assert generate_stock_alert("Widget", out) == "Widget is out of stock. Reorder 25 units immediately."

    low = calculate_stock_status(StockItem(current_stock=12, reorder_point=10))
    assert "running low" in generate_stock_alert("Widget", low)
