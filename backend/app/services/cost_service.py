"""
Operational Cost Service - Expenses with an approval step
"""
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy import desc
from datetime import date, datetime
import logging

from app.core.exceptions import ConflictError, NotFoundError
from app.core.money import money, ZERO
from app.models import OperationalCost, PaymentStatus, User
from app.schemas import OperationalCostCreate, CostPaymentRequest
from app.services.audit_service import ActivityLogService, ActivityAction
from app.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


class OperationalCostService:
    """
    Costs are append-only. Once approved they count toward operating
    expenses and get a ledger row; there is no edit or delete.
    """

    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityLogService(db)

    def get_by_id(self, cost_id: int) -> Optional[OperationalCost]:
        return self.db.query(OperationalCost).filter(OperationalCost.id == cost_id).first()

    def _require(self, cost_id: int) -> OperationalCost:
        cost = self.get_by_id(cost_id)
        if not cost:
            raise NotFoundError("Operational cost", cost_id)
        return cost

    def get_costs(
        self,
        category: Optional[str] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
        payment_status: Optional[str] = None,
        is_approved: Optional[bool] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        query = self.db.query(OperationalCost)
        if category:
            query = query.filter(OperationalCost.category == category)
        if month:
            query = query.filter(OperationalCost.month == month)
        if year:
            query = query.filter(OperationalCost.year == year)
        if payment_status:
            query = query.filter(OperationalCost.payment_status == payment_status)
        if is_approved is not None:
            query = query.filter(OperationalCost.is_approved == is_approved)
        if start_date:
            query = query.filter(OperationalCost.date >= start_date)
        if end_date:
            query = query.filter(OperationalCost.date <= end_date)

        costs = query.order_by(desc(OperationalCost.date), desc(OperationalCost.id)).all()

        by_category: Dict[str, Any] = {}
        for cost in costs:
            by_category[cost.category] = by_category.get(cost.category, money(ZERO)) + money(cost.amount)

        return {
            "costs": costs,
            "summary": {
                "total_amount": money(sum((money(c.amount) for c in costs), ZERO)),
                "total_by_category": by_category,
                "count": len(costs),
            },
        }

    def create(self, data: OperationalCostCreate, actor: User) -> OperationalCost:
        cost = OperationalCost(
            category=data.category,
            sub_category=data.sub_category,
            description=data.description,
            amount=money(data.amount),
            date=data.date,
            month=data.date.month,
            year=data.date.year,
            vendor=data.vendor,
            payment_status=data.payment_status,
            payment_method=data.payment_method,
            payment_reference=data.payment_reference,
            paid_at=datetime.utcnow() if data.payment_status == PaymentStatus.PAID else None,
            notes=data.notes,
            created_by=actor.id,
        )
        self.db.add(cost)
        self.db.flush()

        self.activity.log(
            action=ActivityAction.CREATE,
            entity_type="OperationalCost",
            entity_id=cost.id,
            entity_name=cost.category,
            description=f"{cost.category} cost of {cost.amount} recorded",
            user=actor,
        )
        return cost

    def approve(self, cost_id: int, actor: User) -> OperationalCost:
        cost = self._require(cost_id)
        if cost.is_approved:
            raise ConflictError("Cost is already approved")

        cost.is_approved = True
        cost.approved_by = actor.id
        cost.approved_at = datetime.utcnow()
        self.db.flush()

        LedgerService(self.db).record_expense(cost, created_by=actor.id)
        self.db.flush()

        self.activity.log(
            action=ActivityAction.APPROVE,
            entity_type="OperationalCost",
            entity_id=cost.id,
            entity_name=cost.category,
            description=f"{cost.category} cost of {cost.amount} approved",
            user=actor,
        )
        logger.info(f"Operational cost {cost.id} approved by user {actor.id}")
        return cost

    def mark_paid(self, cost_id: int, data: CostPaymentRequest, actor: User) -> OperationalCost:
        cost = self._require(cost_id)
        if cost.payment_status == PaymentStatus.PAID:
            raise ConflictError("Cost is already paid")

        cost.payment_status = PaymentStatus.PAID
        cost.payment_method = data.payment_method
        cost.payment_reference = data.payment_reference
        cost.paid_at = datetime.utcnow()
        self.db.flush()

        self.activity.log(
            action=ActivityAction.PAY,
            entity_type="OperationalCost",
            entity_id=cost.id,
            entity_name=cost.category,
            description=f"{cost.category} cost of {cost.amount} paid via {data.payment_method}",
            user=actor,
        )
        return cost
