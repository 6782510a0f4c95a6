"""
Profit Service - Period profit calculations and profit & loss reports
"""
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field, asdict
from sqlalchemy.orm import Session
from sqlalchemy import func, or_, and_, distinct
from decimal import Decimal
from datetime import date, timedelta
from dateutil.relativedelta import relativedelta
import calendar
import logging

from app.core.exceptions import ValidationError
from app.core.money import money, percentage, day_range, ZERO
from app.models import Order, OrderStatus, OperationalCost, Salary, SalaryStatus

logger = logging.getLogger(__name__)


class SummaryPeriod:
    TODAY = "TODAY"
    THIS_WEEK = "THIS_WEEK"
    THIS_MONTH = "THIS_MONTH"
    THIS_YEAR = "THIS_YEAR"

    ALL = (TODAY, THIS_WEEK, THIS_MONTH, THIS_YEAR)


class TrendGrouping:
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"

    ALL = (DAY, WEEK, MONTH)


MAX_TREND_BUCKETS = 366


@dataclass
class PeriodProfit:
    start_date: date
    end_date: date
    revenue: Decimal = ZERO
    cogs: Decimal = ZERO
    gross_profit: Decimal = ZERO
    gross_margin: Decimal = ZERO
    operating_costs: Decimal = ZERO
    salary_costs: Decimal = ZERO
    total_operating_expenses: Decimal = ZERO
    net_profit: Decimal = ZERO
    net_margin: Decimal = ZERO
    order_count: int = 0
    expenses_by_category: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def total_costs(self) -> Decimal:
        """Everything subtracted from revenue to reach net profit"""
        return self.cogs + self.total_operating_expenses

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["total_costs"] = self.total_costs
        return data


def first_of_month(year: int, month: int) -> date:
    return date(year, month, 1)


def last_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


class ProfitCalculator:
    """
    Profit for an inclusive date range, computed from delivered orders,
    approved operational costs and paid salaries.

    Monthly, trend and year-to-date reports are built by calling
    calculate_period again for each sub-range.
    """

    def __init__(self, db: Session):
        self.db = db

    def _delivered_orders(self, start: date, end: date):
        range_start, range_end = day_range(start, end)
        return self.db.query(Order).filter(
            Order.status == OrderStatus.DELIVERED,
            Order.created_at >= range_start,
            Order.created_at < range_end,
        )

    def _salary_costs(self, start: date, end: date) -> Decimal:
        """Paid salaries are attributed to their payroll month and counted when that month starts inside the range"""
        month_filters = []
        cursor = date(start.year, start.month, 1)
        if cursor < start:
            cursor += relativedelta(months=1)
        while cursor <= end:
            month_filters.append(and_(Salary.year == cursor.year, Salary.month == cursor.month))
            cursor += relativedelta(months=1)
        if not month_filters:
            return money(ZERO)

        total = self.db.query(func.coalesce(func.sum(Salary.net_salary), 0)).filter(
            Salary.status == SalaryStatus.PAID,
            or_(*month_filters),
        ).scalar()
        return money(total)

    def calculate_period(self, start: date, end: date) -> PeriodProfit:
        if start > end:
            raise ValidationError("startDate must not be after endDate")

        revenue, cogs, order_count = self._delivered_orders(start, end).with_entities(
            func.coalesce(func.sum(Order.total), 0),
            func.coalesce(func.sum(Order.total_cost), 0),
            func.count(Order.id),
        ).one()
        revenue = money(revenue)
        cogs = money(cogs)
        gross_profit = revenue - cogs

        cost_rows = self.db.query(
            OperationalCost.category, func.coalesce(func.sum(OperationalCost.amount), 0)
        ).filter(
            OperationalCost.is_approved == True,
            OperationalCost.date >= start,
            OperationalCost.date <= end,
        ).group_by(OperationalCost.category).all()
        expenses_by_category = {category: money(total) for category, total in cost_rows}
        operating_costs = money(sum(expenses_by_category.values(), ZERO))

        salary_costs = self._salary_costs(start, end)
        if salary_costs:
            expenses_by_category["SALARIES"] = expenses_by_category.get("SALARIES", money(ZERO)) + salary_costs

        total_operating = operating_costs + salary_costs
        net_profit = gross_profit - total_operating

        return PeriodProfit(
            start_date=start,
            end_date=end,
            revenue=revenue,
            cogs=cogs,
            gross_profit=gross_profit,
            gross_margin=percentage(gross_profit, revenue),
            operating_costs=operating_costs,
            salary_costs=salary_costs,
            total_operating_expenses=total_operating,
            net_profit=net_profit,
            net_margin=percentage(net_profit, revenue),
            order_count=order_count,
            expenses_by_category=expenses_by_category,
        )

    # ==================== REPORTS ====================

    def monthly_report(self, month: int, year: int) -> Dict[str, Any]:
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12")
        start, end = first_of_month(year, month), last_of_month(year, month)
        period = self.calculate_period(start, end)

        orders = self._delivered_orders(start, end)
        customer_count = orders.with_entities(
            func.count(distinct(func.coalesce(Order.user_id, Order.guest_mobile)))
        ).scalar() or 0

        top = sorted(period.expenses_by_category.items(), key=lambda kv: kv[1], reverse=True)[:5]

        return {
            "month": month,
            "year": year,
            **period.to_dict(),
            "customer_count": customer_count,
            "average_order_value": money(period.revenue / period.order_count) if period.order_count else money(ZERO),
            "top_expense_categories": [
                {"category": category, "amount": amount,
                 "percentage": percentage(amount, period.total_operating_expenses)}
                for category, amount in top
            ],
        }

    def trend(self, year: int, start_month: int = 1, end_month: int = 12) -> List[Dict[str, Any]]:
        if not (1 <= start_month <= 12 and 1 <= end_month <= 12) or start_month > end_month:
            raise ValidationError("startMonth and endMonth must be 1-12 with startMonth <= endMonth")
        return [self.monthly_report(month, year) for month in range(start_month, end_month + 1)]

    def year_to_date(self, year: int, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or date.today()
        if year > today.year:
            raise ValidationError("Cannot report on a future year")
        last_month = today.month if year == today.year else 12

        months = self.trend(year, 1, last_month)
        summed_keys = ("revenue", "cogs", "gross_profit", "operating_costs", "salary_costs",
                       "total_operating_expenses", "net_profit")
        totals = {key: money(sum((m[key] for m in months), ZERO)) for key in summed_keys}
        totals["order_count"] = sum(m["order_count"] for m in months)
        totals["gross_margin"] = percentage(totals["gross_profit"], totals["revenue"])
        totals["net_margin"] = percentage(totals["net_profit"], totals["revenue"])

        return {"year": year, "months_included": last_month, "totals": totals, "months": months}

    def summary(self, period: str, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or date.today()
        if period == SummaryPeriod.TODAY:
            start = today
        elif period == SummaryPeriod.THIS_WEEK:
            start = today - timedelta(days=today.weekday())
        elif period == SummaryPeriod.THIS_MONTH:
            start = today.replace(day=1)
        elif period == SummaryPeriod.THIS_YEAR:
            start = today.replace(month=1, day=1)
        else:
            raise ValidationError(f"period must be one of {', '.join(SummaryPeriod.ALL)}")
        return {"period": period, **self.calculate_period(start, today).to_dict()}

    def trends(self, start: date, end: date, group_by: str = TrendGrouping.DAY) -> List[Dict[str, Any]]:
        if start > end:
            raise ValidationError("startDate must not be after endDate")
        if group_by == TrendGrouping.DAY:
            step = relativedelta(days=1)
            cursor = start
        elif group_by == TrendGrouping.WEEK:
            step = relativedelta(weeks=1)
            cursor = start - timedelta(days=start.weekday())
        elif group_by == TrendGrouping.MONTH:
            step = relativedelta(months=1)
            cursor = start.replace(day=1)
        else:
            raise ValidationError(f"groupBy must be one of {', '.join(TrendGrouping.ALL)}")

        buckets = []
        while cursor <= end:
            bucket_end = cursor + step - timedelta(days=1)
            period = self.calculate_period(max(cursor, start), min(bucket_end, end))
            buckets.append({
                "period_start": period.start_date,
                "period_end": period.end_date,
                "revenue": period.revenue,
                "cogs": period.cogs,
                "gross_profit": period.gross_profit,
                "net_profit": period.net_profit,
                "order_count": period.order_count,
            })
            if len(buckets) > MAX_TREND_BUCKETS:
                raise ValidationError("Range too large for the requested grouping")
            cursor += step
        return buckets
