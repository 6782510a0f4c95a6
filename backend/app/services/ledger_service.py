"""
Ledger Service - Financial ledger entries and reconciliation
"""
from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import func, desc
from decimal import Decimal
from datetime import date, datetime
import logging

from app.core.config import settings
from app.core.exceptions import ValidationError, NotFoundError
from app.core.money import money, to_decimal, day_range, ZERO
from app.models import (
    FinancialLedger, LedgerSource, LedgerDirection, Order, OrderStatus,
    StockLot, Product, OperationalCost, Salary, ProfitDistribution
)

logger = logging.getLogger(__name__)


class LedgerService:
    """
    Writes and reads the append-only financial ledger.

    Every create_* helper only adds rows to the session; the caller's
    transaction decides whether they land.
    """

    def __init__(self, db: Session):
        self.db = db

    # ==================== WRITING ====================

    def create_entry(
        self,
        source_type: str,
        direction: str,
        amount,
        category: str,
        source_id: Any = None,
        source_name: Optional[str] = None,
        subcategory: Optional[str] = None,
        description: Optional[str] = None,
        party_type: Optional[str] = None,
        party_id: Any = None,
        party_name: Optional[str] = None,
        order_id: Optional[int] = None,
        transaction_date: Optional[datetime] = None,
        created_by: Optional[int] = None,
    ) -> FinancialLedger:
        when = transaction_date or datetime.utcnow()
        entry = FinancialLedger(
            source_type=source_type,
            source_id=str(source_id) if source_id is not None else None,
            source_name=source_name,
            amount=money(abs(to_decimal(amount))),
            direction=direction,
            category=category,
            subcategory=subcategory,
            description=description,
            party_type=party_type,
            party_id=str(party_id) if party_id is not None else None,
            party_name=party_name,
            order_id=order_id,
            fiscal_year=when.year,
            fiscal_month=when.month,
            transaction_date=when,
            created_by=created_by,
        )
        self.db.add(entry)
        return entry

    def record_order(self, order: Order, created_by: Optional[int] = None) -> Tuple[FinancialLedger, FinancialLedger]:
        """Revenue CREDIT and COGS DEBIT for a completed order"""
        customer = order.user.name if order.user else order.guest_name
        revenue = self.create_entry(
            source_type=LedgerSource.ORDER,
            direction=LedgerDirection.CREDIT,
            amount=order.total,
            category="REVENUE",
            subcategory="ORDER_REVENUE",
            source_id=order.id,
            source_name=order.order_number,
            description=f"Revenue from order {order.order_number}",
            party_type="CUSTOMER",
            party_id=order.user_id,
            party_name=customer,
            order_id=order.id,
            created_by=created_by,
        )
        cogs = self.create_entry(
            source_type=LedgerSource.ORDER,
            direction=LedgerDirection.DEBIT,
            amount=order.total_cost,
            category="COGS",
            subcategory="ORDER_COGS",
            source_id=order.id,
            source_name=order.order_number,
            description=f"Cost of goods sold for order {order.order_number}",
            order_id=order.id,
            created_by=created_by,
        )
        return revenue, cogs

    def record_purchase(self, lot: StockLot, product: Product, created_by: Optional[int] = None) -> FinancialLedger:
        return self.create_entry(
            source_type=LedgerSource.PURCHASE,
            direction=LedgerDirection.DEBIT,
            amount=lot.total_cost,
            category="INVENTORY",
            subcategory="STOCK_PURCHASE",
            source_id=lot.id,
            source_name=lot.lot_number,
            description=f"Stock purchase: {lot.quantity_received} x {product.name} @ {lot.cost_per_unit}",
            party_type="SUPPLIER" if lot.supplier_name else None,
            party_name=lot.supplier_name,
            created_by=created_by,
        )

    def record_expense(self, cost: OperationalCost, created_by: Optional[int] = None) -> FinancialLedger:
        return self.create_entry(
            source_type=LedgerSource.EXPENSE,
            direction=LedgerDirection.DEBIT,
            amount=cost.amount,
            category="OPERATING_EXPENSE",
            subcategory=cost.category,
            source_id=cost.id,
            source_name=cost.description[:255],
            description=f"{cost.category} expense: {cost.description}",
            party_type="VENDOR" if cost.vendor else None,
            party_name=cost.vendor,
            created_by=created_by,
        )

    def record_salary(self, salary: Salary, created_by: Optional[int] = None) -> FinancialLedger:
        employee = salary.employee
        return self.create_entry(
            source_type=LedgerSource.SALARY,
            direction=LedgerDirection.DEBIT,
            amount=salary.net_salary,
            category="SALARY",
            subcategory="PAYROLL",
            source_id=salary.id,
            source_name=f"{employee.full_name} {salary.month:02d}/{salary.year}",
            description=f"Salary for {employee.full_name}, {salary.month:02d}/{salary.year}",
            party_type="EMPLOYEE",
            party_id=employee.id,
            party_name=employee.full_name,
            created_by=created_by,
        )

    def record_commission(self, distribution: ProfitDistribution, created_by: Optional[int] = None) -> FinancialLedger:
        partner = distribution.partner
        return self.create_entry(
            source_type=LedgerSource.COMMISSION,
            direction=LedgerDirection.DEBIT,
            amount=distribution.distribution_amount,
            category="PARTNER_DISTRIBUTION",
            subcategory=distribution.period_type,
            source_id=distribution.id,
            source_name=partner.name,
            description=(
                f"Profit share paid to {partner.name} for "
                f"{distribution.start_date} to {distribution.end_date}"
            ),
            party_type="PARTNER",
            party_id=partner.id,
            party_name=partner.name,
            created_by=created_by,
        )

    def record_adjustment(
        self,
        amount,
        direction: str,
        reason: str,
        category: str = "ADJUSTMENT",
        original_entry_id: Optional[int] = None,
        created_by: Optional[int] = None,
    ) -> FinancialLedger:
        """Corrections never touch the original row; they are new rows pointing at it"""
        if original_entry_id is not None and not self.get_by_id(original_entry_id):
            raise NotFoundError("Ledger entry", original_entry_id)
        return self.create_entry(
            source_type=LedgerSource.ADJUSTMENT,
            direction=direction,
            amount=amount,
            category=category,
            source_id=original_entry_id,
            description=reason,
            created_by=created_by,
        )

    # ==================== READING ====================

    def get_by_id(self, entry_id: int) -> Optional[FinancialLedger]:
        return self.db.query(FinancialLedger).filter(FinancialLedger.id == entry_id).first()

    def _filtered(
        self,
        source_type: Optional[str] = None,
        direction: Optional[str] = None,
        is_reconciled: Optional[bool] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        category: Optional[str] = None,
    ):
        query = self.db.query(FinancialLedger)
        if source_type:
            query = query.filter(FinancialLedger.source_type == source_type)
        if direction:
            query = query.filter(FinancialLedger.direction == direction)
        if is_reconciled is not None:
            query = query.filter(FinancialLedger.is_reconciled == is_reconciled)
        if category:
            query = query.filter(FinancialLedger.category == category)
        if start_date:
            query = query.filter(FinancialLedger.transaction_date >= day_range(start_date, start_date)[0])
        if end_date:
            query = query.filter(FinancialLedger.transaction_date < day_range(end_date, end_date)[1])
        return query

    def get_entries(self, limit: int = 50, offset: int = 0, **filters) -> Dict[str, Any]:
        query = self._filtered(**filters)
        total = query.count()
        entries = query.order_by(desc(FinancialLedger.transaction_date), desc(FinancialLedger.id)) \
            .offset(offset).limit(limit).all()

        credits, debits = self._sum_by_direction(query)
        return {
            "entries": entries,
            "total": total,
            "totals": {
                "credits": credits,
                "debits": debits,
                "net_balance": credits - debits,
            },
        }

    def _sum_by_direction(self, query) -> Tuple[Decimal, Decimal]:
        rows = query.with_entities(
            FinancialLedger.direction, func.coalesce(func.sum(FinancialLedger.amount), 0)
        ).group_by(FinancialLedger.direction).all()
        sums = {direction: money(total) for direction, total in rows}
        return sums.get(LedgerDirection.CREDIT, money(ZERO)), sums.get(LedgerDirection.DEBIT, money(ZERO))

    def get_period_balance(self, start_date: date, end_date: date) -> Dict[str, Any]:
        query = self._filtered(start_date=start_date, end_date=end_date)
        credits, debits = self._sum_by_direction(query)

        by_category = {}
        rows = query.with_entities(
            FinancialLedger.category, FinancialLedger.direction,
            func.coalesce(func.sum(FinancialLedger.amount), 0)
        ).group_by(FinancialLedger.category, FinancialLedger.direction).all()
        for category, direction, total in rows:
            by_category.setdefault(category, {LedgerDirection.CREDIT: money(ZERO), LedgerDirection.DEBIT: money(ZERO)})
            by_category[category][direction] = money(total)

        return {
            "start_date": start_date,
            "end_date": end_date,
            "credits": credits,
            "debits": debits,
            "net_balance": credits - debits,
            "by_category": by_category,
        }

    # ==================== RECONCILIATION ====================

    def reconcile_entries(self, entry_ids: List[int], user_id: int) -> int:
        """Mark the given entries reconciled. Returns how many rows changed."""
        if not entry_ids:
            raise ValidationError("entryIds are required for reconcile")

        now = datetime.utcnow()
        count = self.db.query(FinancialLedger).filter(
            FinancialLedger.id.in_(entry_ids),
            FinancialLedger.is_reconciled == False
        ).update(
            {
                FinancialLedger.is_reconciled: True,
                FinancialLedger.reconciled_at: now,
                FinancialLedger.reconciled_by: user_id,
            },
            synchronize_session=False,
        )
        self.db.flush()
        logger.info(f"Reconciled {count} ledger entries by user {user_id}")
        return count

    def compare_with_orders(self, start_date: date, end_date: date) -> Dict[str, Any]:
        """
        Compare ORDER ledger totals against delivered orders in the same range.
        Differences within the configured tolerance count as a match.
        """
        if start_date > end_date:
            raise ValidationError("startDate must not be after endDate")

        start, end = day_range(start_date, end_date)
        tolerance = settings.RECONCILIATION_TOLERANCE

        ledger_rows = self.db.query(
            FinancialLedger.direction,
            func.coalesce(func.sum(FinancialLedger.amount), 0),
            func.count(FinancialLedger.id),
        ).filter(
            FinancialLedger.source_type == LedgerSource.ORDER,
            FinancialLedger.transaction_date >= start,
            FinancialLedger.transaction_date < end,
        ).group_by(FinancialLedger.direction).all()

        ledger_totals = {direction: (money(total), count) for direction, total, count in ledger_rows}
        ledger_revenue, revenue_entries = ledger_totals.get(LedgerDirection.CREDIT, (money(ZERO), 0))
        ledger_cogs, cogs_entries = ledger_totals.get(LedgerDirection.DEBIT, (money(ZERO), 0))

        order_revenue, order_cogs, order_count = self.db.query(
            func.coalesce(func.sum(Order.total), 0),
            func.coalesce(func.sum(Order.total_cost), 0),
            func.count(Order.id),
        ).filter(
            Order.status == OrderStatus.DELIVERED,
            Order.created_at >= start,
            Order.created_at < end,
        ).one()
        order_revenue = money(order_revenue)
        order_cogs = money(order_cogs)

        revenue_difference = abs(ledger_revenue - order_revenue)
        cogs_difference = abs(ledger_cogs - order_cogs)
        revenue_matches = revenue_difference < tolerance
        cogs_matches = cogs_difference < tolerance

        notices = []
        if not revenue_matches:
            notices.append(
                f"Revenue mismatch: ledger shows {ledger_revenue}, delivered orders total {order_revenue} "
                f"(difference {revenue_difference})"
            )
        if not cogs_matches:
            notices.append(
                f"COGS mismatch: ledger shows {ledger_cogs}, delivered orders cost {order_cogs} "
                f"(difference {cogs_difference})"
            )
        if revenue_entries != order_count:
            notices.append(
                f"{order_count} delivered orders but {revenue_entries} revenue ledger entries in range"
            )
        if not notices:
            notices.append("Ledger matches delivered orders for the period")

        result = {
            "start_date": start_date,
            "end_date": end_date,
            "ledger": {
                "revenue": ledger_revenue,
                "cogs": ledger_cogs,
                "revenue_entries": revenue_entries,
                "cogs_entries": cogs_entries,
            },
            "orders": {
                "revenue": order_revenue,
                "cogs": order_cogs,
                "count": order_count,
            },
            "revenue_difference": revenue_difference,
            "cogs_difference": cogs_difference,
            "revenue_matches": revenue_matches,
            "cogs_matches": cogs_matches,
            "overall_match": revenue_matches and cogs_matches,
            "notices": notices,
        }

        if result["overall_match"]:
            logger.info(f"Ledger reconciliation {start_date}..{end_date}: match")
        else:
            logger.warning(f"Ledger reconciliation {start_date}..{end_date}: {'; '.join(notices)}")
        return result
