"""
Unit tests for the pure money calculations: share allocation, lot costing and payroll.
"""
from decimal import Decimal

from app.core.money import money, percentage
from app.models import StockLot
from app.services.hr_service import calculate_salary
from app.services.order_service import allocate_lot_cost, CostingMethod
from app.services.partner_service import allocate_shares


def _lots():
    return [
        StockLot(lot_number="LOT-A", quantity_received=10, quantity_remaining=10, cost_per_unit=Decimal("5.00")),
        StockLot(lot_number="LOT-B", quantity_received=10, quantity_remaining=10, cost_per_unit=Decimal("7.00")),
    ]


def test_allocation_sums_to_net_profit_when_shares_total_100():
    """The rounding residue goes to the largest share."""
    amounts = allocate_shares(Decimal("10.00"), [(1, Decimal("33.33")), (2, Decimal("33.33")), (3, Decimal("33.34"))])
    assert amounts == {1: Decimal("3.33"), 2: Decimal("3.33"), 3: Decimal("3.34")}
    assert sum(amounts.values()) == Decimal("10.00")


def test_allocation_with_partial_shares_leaves_remainder():
    amounts = allocate_shares(Decimal("1000.00"), [(1, Decimal("50")), (2, Decimal("25"))])
    assert amounts == {1: Decimal("500.00"), 2: Decimal("250.00")}


def test_allocation_even_split():
    amounts = allocate_shares(Decimal("400.00"), [(1, Decimal("60")), (2, Decimal("40"))])
    assert amounts == {1: Decimal("240.00"), 2: Decimal("160.00")}


def test_fifo_consumes_oldest_lots_first():
    lots = _lots()
    cost, covered = allocate_lot_cost(lots, 15, CostingMethod.FIFO)
    assert covered == 15
    assert cost == Decimal("85.00")
    assert [lot.quantity_remaining for lot in lots] == [0, 5]


def test_wac_uses_average_of_stock_on_hand():
    lots = _lots()
    cost, covered = allocate_lot_cost(lots, 15, CostingMethod.WAC)
    assert covered == 15
    assert money(cost) == Decimal("90.00")
    assert [lot.quantity_remaining for lot in lots] == [0, 5]


def test_lot_shortfall_reports_covered_units():
    cost, covered = allocate_lot_cost(_lots(), 25, CostingMethod.FIFO)
    assert covered == 20
    assert cost == Decimal("120.00")

    cost, covered = allocate_lot_cost([], 5, CostingMethod.FIFO)
    assert (cost, covered) == (Decimal("0"), 0)


def test_salary_breakdown():
    figures = calculate_salary(
        base_salary=Decimal("30000"), allowances=2000, bonuses=1000, overtime=500,
        tax=1500, provident_fund=3000, other_deductions=0,
    )
    assert figures["gross_salary"] == Decimal("33500.00")
    assert figures["total_deductions"] == Decimal("4500.00")
    assert figures["net_salary"] == Decimal("29000.00")


def test_percentage_of_zero_is_zero():
    assert percentage(Decimal("50"), Decimal("0")) == Decimal("0.00")
    assert percentage(Decimal("400"), Decimal("1000")) == Decimal("40.00")
