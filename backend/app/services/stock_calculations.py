"""
Stock Calculations - status, reorder suggestions and adjustment validation

Pure functions. Nothing here touches the database.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from app.core.config import settings


class StockStatus:
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    REORDER_NEEDED = "reorder_needed"
    OUT_OF_STOCK = "out_of_stock"


class AdjustmentType:
    ADD = "add"
    REMOVE = "remove"
    SET = "set"

    ALL = (ADD, REMOVE, SET)


ALERT_PRIORITY = {
    StockStatus.OUT_OF_STOCK: "critical",
    StockStatus.REORDER_NEEDED: "high",
    StockStatus.LOW_STOCK: "medium",
    StockStatus.IN_STOCK: "low",
}


@dataclass
class StockItem:
    current_stock: int
    reorder_point: int
    reorder_quantity: int = 0
    moq: int = 1
    average_daily_sales: float = 0


@dataclass
class StockCalculation:
    current_stock: int
    reorder_point: int
    status: str
    is_reorder_needed: bool
    suggested_reorder_quantity: int
    days_of_stock: Optional[int] = None
    estimated_stockout_date: Optional[datetime] = None


@dataclass
class StockAdjustmentResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    # None whenever the adjustment is invalid
    new_stock: Optional[int] = None


def calculate_stock_status(item: StockItem, now: Optional[datetime] = None) -> StockCalculation:
    """
    Classify a product's stock level.

    out_of_stock at zero, reorder_needed at or below the reorder point,
    low_stock up to 1.5x the reorder point, in_stock above that.
    """
    stock = item.current_stock
    reorder_point = item.reorder_point
    low_threshold = Decimal(reorder_point) * settings.LOW_STOCK_MULTIPLIER

    if stock <= 0:
        status = StockStatus.OUT_OF_STOCK
    elif stock <= reorder_point:
        status = StockStatus.REORDER_NEEDED
    elif stock <= low_threshold:
        status = StockStatus.LOW_STOCK
    else:
        status = StockStatus.IN_STOCK

    base_quantity = item.reorder_quantity or reorder_point * 2
    suggested = max(base_quantity, item.moq or 0)

    days_of_stock = None
    stockout_date = None
    if item.average_daily_sales and item.average_daily_sales > 0:
        days_of_stock = math.floor(stock / item.average_daily_sales)
        if days_of_stock > 0:
            stockout_date = (now or datetime.utcnow()) + timedelta(days=days_of_stock)

    return StockCalculation(
        current_stock=stock,
        reorder_point=reorder_point,
        status=status,
        is_reorder_needed=status in (StockStatus.OUT_OF_STOCK, StockStatus.REORDER_NEEDED),
        suggested_reorder_quantity=suggested,
        days_of_stock=days_of_stock,
        estimated_stockout_date=stockout_date,
    )


def validate_stock_adjustment(
    current_stock: int,
    quantity: int,
    adjustment_type: str,
    reason: Optional[str],
) -> StockAdjustmentResult:
    errors = []

    if not reason or len(reason.strip()) < 5:
        errors.append("Reason is required and must be at least 5 characters")

    if quantity is None or quantity < 0:
        errors.append("Adjustment quantity must be a positive number")

    new_stock = None
    if adjustment_type == AdjustmentType.ADD:
        new_stock = current_stock + (quantity or 0)
    elif adjustment_type == AdjustmentType.REMOVE:
        new_stock = current_stock - (quantity or 0)
        if new_stock < 0:
            errors.append("Cannot remove more stock than available")
    elif adjustment_type == AdjustmentType.SET:
        new_stock = quantity
    else:
        errors.append("Invalid adjustment type")

    if errors:
        return StockAdjustmentResult(is_valid=False, errors=errors, new_stock=None)
    return StockAdjustmentResult(is_valid=True, errors=[], new_stock=new_stock)


def calculate_reorder_point(average_daily_sales: float, lead_time_days: int, safety_stock_days: int = 7) -> int:
    """Lead time demand plus safety stock, rounded up."""
    return math.ceil(average_daily_sales * lead_time_days + average_daily_sales * safety_stock_days)


def calculate_eoq(annual_demand: float, ordering_cost: float, holding_cost_per_unit: float) -> int:
    """Economic order quantity: sqrt(2DS/H)."""
    if holding_cost_per_unit <= 0:
        return 0
    return math.ceil(math.sqrt((2 * annual_demand * ordering_cost) / holding_cost_per_unit))


def calculate_average_daily_sales(
    sales_history: Iterable[Tuple[datetime, int]],
    days: int = 30,
    now: Optional[datetime] = None,
) -> float:
    """Units sold per day over the trailing window. History is (when, quantity) pairs."""
    if days <= 0:
        return 0.0
    cutoff = (now or datetime.utcnow()) - timedelta(days=days)
    total = sum(quantity for sold_at, quantity in sales_history if sold_at >= cutoff)
    return total / days


def generate_stock_alert(product_name: str, calc: StockCalculation) -> str:
    if calc.status == StockStatus.OUT_OF_STOCK:
        return f"{product_name} is out of stock. Reorder {calc.suggested_reorder_quantity} units immediately."
    if calc.status == StockStatus.REORDER_NEEDED:
        message = f"{product_name} is at or below its reorder point ({calc.current_stock} left)."
        if calc.days_of_stock is not None:
            message += f" About {calc.days_of_stock} days of stock remaining."
        return f"{message} Suggested reorder: {calc.suggested_reorder_quantity} units."
    if calc.status == StockStatus.LOW_STOCK:
        return f"{product_name} is running low ({calc.current_stock} left)."
    return f"{product_name} is in stock."
