"""
Partner API Routes - Partners, their payouts, and a partner's own distributions
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from app.api.deps import success, serialize
from app.core.database import get_db
from app.core.exceptions import NotFoundError
from app.core.roles import Permission
from app.core.security import PermissionChecker
from app.schemas import (
    PartnerCreate, PartnerUpdate, PartnerResponse,
    PayoutUpdate, ProfitDistributionResponse
)
from app.services.partner_service import PartnerService, DistributionService

router = APIRouter(tags=["Partners"])


# ==================== PARTNERS ====================

@router.get("/admin/partners")
async def list_partners(
    include_inactive: bool = Query(True, alias="includeInactive"),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PARTNERS_VIEW]))
):
    """Partners with the current share allocation"""
    service = PartnerService(db)
    return success(
        serialize(PartnerResponse, service.get_all(include_inactive)),
        summary=service.summary(current_user),
    )


@router.post("/admin/partners", status_code=201)
async def create_partner(
    data: PartnerCreate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PARTNERS_MANAGE]))
):
    partner, warning = PartnerService(db).create(data, current_user)
    db.commit()
    db.refresh(partner)
    return success(PartnerResponse.model_validate(partner), message="Partner created successfully", warning=warning)


@router.get("/admin/partners/{partner_id}")
async def get_partner(
    partner_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PARTNERS_VIEW]))
):
    partner = PartnerService(db).get_by_id(partner_id)
    if not partner:
        raise NotFoundError("Partner", partner_id)
    distributions = DistributionService(db).get_all(partner_id=partner_id)
    return success({
        "partner": PartnerResponse.model_validate(partner),
        "distributions": serialize(ProfitDistributionResponse, distributions),
    })


@router.patch("/admin/partners/{partner_id}")
async def update_partner(
    partner_id: int,
    data: PartnerUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PARTNERS_MANAGE]))
):
    """Update a partner. Changing the share needs the percentage edit permission."""
    partner, warning = PartnerService(db).update(partner_id, data, current_user)
    db.commit()
    db.refresh(partner)
    return success(PartnerResponse.model_validate(partner), message="Partner updated successfully", warning=warning)


@router.delete("/admin/partners/{partner_id}")
async def delete_partner(
    partner_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PARTNERS_MANAGE]))
):
    deleted = PartnerService(db).delete(partner_id, current_user)
    db.commit()
    return success(
        {"deleted": deleted},
        message="Partner deleted successfully" if deleted else "Partner deactivated (has distribution history)",
    )


# ==================== PAYOUTS ====================

@router.get("/admin/payouts")
async def list_payouts(
    status: Optional[str] = None,
    partner_id: Optional[int] = Query(None, alias="partnerId"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PROFIT_DISTRIBUTION_VIEW]))
):
    """Distribution rows with amount totals per status"""
    service = DistributionService(db)
    distributions = service.get_all(status=status, partner_id=partner_id, start_date=start_date, end_date=end_date)
    return success(serialize(ProfitDistributionResponse, distributions), totals=service.totals(distributions))


@router.get("/admin/payouts/{distribution_id}")
async def get_payout(
    distribution_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PROFIT_DISTRIBUTION_VIEW]))
):
    distribution = DistributionService(db).get_by_id(distribution_id)
    if not distribution:
        raise NotFoundError("Payout", distribution_id)
    return success(ProfitDistributionResponse.model_validate(distribution))


@router.patch("/admin/payouts/{distribution_id}")
async def update_payout(
    distribution_id: int,
    data: PayoutUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PROFIT_DISTRIBUTION_MANAGE]))
):
    """Approve, pay or reject a payout, or add payment details and notes"""
    distribution = DistributionService(db).update(distribution_id, data, current_user)
    db.commit()
    db.refresh(distribution)
    return success(ProfitDistributionResponse.model_validate(distribution), message="Payout updated successfully")


@router.delete("/admin/payouts/{distribution_id}")
async def delete_payout(
    distribution_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PROFIT_DISTRIBUTION_MANAGE]))
):
    DistributionService(db).delete(distribution_id, current_user)
    db.commit()
    return success(message="Payout deleted successfully")


# ==================== PARTNER PORTAL ====================

@router.get("/partner/distributions")
async def my_distributions(
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.OWN_DISTRIBUTIONS_VIEW]))
):
    """The signed-in partner's own profile and payouts"""
    partner = PartnerService(db).get_for_user(current_user)
    service = DistributionService(db)
    distributions = service.get_all(partner_id=partner.id)
    return success(
        {
            "partner": PartnerResponse.model_validate(partner),
            "distributions": serialize(ProfitDistributionResponse, distributions),
        },
        totals=service.totals(distributions),
    )
