"""
Operational Cost API Routes
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from app.api.deps import success, serialize
from app.core.database import get_db
from app.core.roles import Permission
from app.core.security import PermissionChecker
from app.schemas import OperationalCostCreate, OperationalCostResponse, CostPaymentRequest
from app.services.cost_service import OperationalCostService

router = APIRouter(prefix="/admin/costs", tags=["Operational Costs"])


@router.get("")
async def list_costs(
    category: Optional[str] = None,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = None,
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    approved: Optional[bool] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.COSTS_VIEW]))
):
    """Costs for the filter, with totals by category"""
    result = OperationalCostService(db).get_costs(
        category=category,
        month=month,
        year=year,
        payment_status=payment_status,
        is_approved=approved,
        start_date=start_date,
        end_date=end_date,
    )
    return success(serialize(OperationalCostResponse, result["costs"]), summary=result["summary"])


@router.post("", status_code=201)
async def create_cost(
    data: OperationalCostCreate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.COSTS_MANAGE]))
):
    """Record a cost. It counts toward profit only once approved."""
    cost = OperationalCostService(db).create(data, current_user)
    db.commit()
    db.refresh(cost)
    return success(OperationalCostResponse.model_validate(cost), message="Cost recorded successfully")


@router.post("/{cost_id}/approve")
async def approve_cost(
    cost_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.COSTS_APPROVE]))
):
    cost = OperationalCostService(db).approve(cost_id, current_user)
    db.commit()
    db.refresh(cost)
    return success(OperationalCostResponse.model_validate(cost), message="Cost approved")


@router.post("/{cost_id}/pay")
async def pay_cost(
    cost_id: int,
    data: CostPaymentRequest,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.COSTS_MANAGE]))
):
    cost = OperationalCostService(db).mark_paid(cost_id, data, current_user)
    db.commit()
    db.refresh(cost)
    return success(OperationalCostResponse.model_validate(cost), message="Cost marked as paid")
