"""
Finance API Routes - Profit & loss, profit distribution runs and the financial ledger
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from app.api.deps import success, serialize, PageParams
from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.core.roles import Permission
from app.core.security import PermissionChecker
from app.schemas import (
    DistributeRequest, ProfitDistributionResponse, LedgerEntryResponse,
    LedgerAdjustmentCreate, ReconcileRequest
)
from app.services.audit_service import ActivityLogService, ActivityAction
from app.services.ledger_service import LedgerService
from app.services.partner_service import DistributionService
from app.services.profit_service import ProfitCalculator, TrendGrouping

router = APIRouter(prefix="/admin", tags=["Finance"])


# ==================== PROFIT & LOSS ====================

@router.get("/profit-loss")
async def profit_loss(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = None,
    type: str = Query("monthly", pattern="^(monthly|trend|ytd)$"),
    start_month: int = Query(1, alias="startMonth"),
    end_month: int = Query(12, alias="endMonth"),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PROFIT_VIEW]))
):
    """Monthly statement, month-by-month trend or year to date"""
    if year is None:
        raise ValidationError("year is required")

    calculator = ProfitCalculator(db)
    if type == "ytd":
        return success(calculator.year_to_date(year))
    if type == "trend":
        return success(calculator.trend(year, start_month, end_month))

    if month is None:
        raise ValidationError("month is required for a monthly report")
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    return success(calculator.monthly_report(month, year))


# ==================== PROFITS & DISTRIBUTION ====================

@router.get("/profits")
async def get_profits(
    action: Optional[str] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    period: Optional[str] = None,
    group_by: str = Query(TrendGrouping.DAY, alias="groupBy"),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PROFIT_VIEW]))
):
    """Profit for a date range, a named summary period, or a grouped trend"""
    calculator = ProfitCalculator(db)

    if action == "summary":
        if not period:
            raise ValidationError("period is required for a summary")
        return success(calculator.summary(period.upper()))

    if not start_date or not end_date:
        raise ValidationError("startDate and endDate are required")

    if action == "trends":
        return success(calculator.trends(start_date, end_date, group_by.upper()))
    if action:
        raise ValidationError("Invalid action")

    return success(calculator.calculate_period(start_date, end_date).to_dict())


@router.post("/profits", status_code=201)
async def distribute_profits(
    data: DistributeRequest,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PROFIT_DISTRIBUTION_MANAGE]))
):
    """Split a period's net profit between active partners as PENDING payouts"""
    if data.action != "distribute":
        raise ValidationError("Invalid action")

    result = DistributionService(db).distribute(data.period_type, data.start_date, data.end_date, current_user)
    db.commit()

    distributions = result["distributions"]
    return success(
        {
            "distributions": serialize(ProfitDistributionResponse, distributions),
            "period": result["period"].to_dict(),
            "total_distributed": result["total_distributed"],
        },
        message=f"Profit distributed to {len(distributions)} partners",
        warning=result["warning"],
    )


# ==================== LEDGER ====================

@router.get("/financial/ledger")
async def list_ledger(
    source_type: Optional[str] = Query(None, alias="sourceType"),
    direction: Optional[str] = None,
    reconciled: Optional[bool] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    pages: PageParams = Depends(),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.LEDGER_VIEW]))
):
    """Ledger entries with credit and debit totals for the filter"""
    result = LedgerService(db).get_entries(
        limit=pages.limit,
        offset=pages.offset,
        source_type=source_type,
        direction=direction,
        is_reconciled=reconciled,
        category=category,
        start_date=start_date,
        end_date=end_date,
    )
    return success(
        serialize(LedgerEntryResponse, result["entries"]),
        totals=result["totals"],
        pagination={"page": pages.page, "limit": pages.limit, "total": result["total"]},
    )


@router.get("/financial/ledger/balance")
async def ledger_balance(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.LEDGER_VIEW]))
):
    if start_date > end_date:
        raise ValidationError("startDate must not be after endDate")
    return success(LedgerService(db).get_period_balance(start_date, end_date))


@router.post("/financial/ledger", status_code=201)
async def create_ledger_adjustment(
    data: LedgerAdjustmentCreate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.LEDGER_MANAGE]))
):
    """Post a correcting entry. Existing entries are never edited."""
    entry = LedgerService(db).record_adjustment(
        amount=data.amount,
        direction=data.direction,
        reason=data.reason,
        category=data.category,
        original_entry_id=data.original_entry_id,
        created_by=current_user.id,
    )
    db.flush()
    ActivityLogService(db).log(
        action=ActivityAction.CREATE,
        entity_type="FinancialLedger",
        entity_id=entry.id,
        description=f"Adjustment {data.direction} {data.amount}: {data.reason}",
        metadata={"original_entry_id": data.original_entry_id},
        user=current_user,
    )
    db.commit()
    db.refresh(entry)
    return success(LedgerEntryResponse.model_validate(entry))


@router.post("/financial/ledger/reconcile")
async def reconcile_ledger(
    data: ReconcileRequest,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.LEDGER_RECONCILE]))
):
    """Compare the ledger with delivered orders, or mark entries reconciled"""
    service = LedgerService(db)

    if data.action == "compare":
        if not data.start_date or not data.end_date:
            raise ValidationError("startDate and endDate are required for compare")
        return success(service.compare_with_orders(data.start_date, data.end_date))

    if data.action == "reconcile":
        if not data.entry_ids:
            raise ValidationError("entryIds are required for reconcile")
        count = service.reconcile_entries(data.entry_ids, current_user.id)
        ActivityLogService(db).log(
            action=ActivityAction.RECONCILE,
            entity_type="FinancialLedger",
            description=f"Marked {count} ledger entries reconciled",
            metadata={"entry_ids": data.entry_ids},
            user=current_user,
        )
        db.commit()
        return success({"reconciled_count": count}, message=f"{count} entries reconciled")

    raise ValidationError("Invalid action")
