"""
Admin API Routes - User accounts, roles, customer discounts and the activity log
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from app.api.deps import success, paginated, PageParams
from app.core.database import get_db
from app.core.roles import Permission
from app.core.security import PermissionChecker
from app.schemas import (
    UserResponse, UserRoleUpdate, UserStatusUpdate, CustomerDiscountUpdate, CustomerDiscountResponse,
    ActivityLogResponse
)
from app.services.audit_service import ActivityLogService
from app.services.user_service import UserService

router = APIRouter(prefix="/admin", tags=["Admin"])


# ==================== USERS ====================

@router.get("/users")
async def list_users(
    role: Optional[str] = None,
    q: Optional[str] = None,
    pages: PageParams = Depends(),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.USERS_VIEW]))
):
    users, total = UserService(db).get_users(role=role, q=q, page=pages.page, limit=pages.limit)
    return paginated(UserResponse, users, total, pages.page, pages.limit)


@router.patch("/users/{user_id}/role")
async def change_user_role(
    user_id: int,
    data: UserRoleUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.USERS_ROLES_EDIT]))
):
    user = UserService(db).change_role(user_id, data.role, current_user)
    db.commit()
    db.refresh(user)
    return success(UserResponse.model_validate(user), message="Role updated successfully")


@router.patch("/users/{user_id}/status")
async def change_user_status(
    user_id: int,
    data: UserStatusUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.USERS_MANAGE]))
):
    user = UserService(db).set_active(user_id, data.is_active, current_user)
    db.commit()
    db.refresh(user)
    return success(UserResponse.model_validate(user))


@router.patch("/customers/{user_id}/discount")
async def set_customer_discount(
    user_id: int,
    data: CustomerDiscountUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.CUSTOMER_DISCOUNT_MANAGE]))
):
    """Negotiated percentage taken off the customer's wholesale order lines"""
    customer = UserService(db).set_discount(user_id, data, current_user)
    db.commit()
    db.refresh(customer)
    action = "updated" if customer.discount_percentage > 0 else "removed"
    return success(CustomerDiscountResponse.model_validate(customer), message=f"Customer discount {action} successfully")


# ==================== ACTIVITY LOG ====================

@router.get("/activity-logs")
async def list_activity_logs(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    user_id: Optional[int] = Query(None, alias="userId"),
    action: Optional[str] = None,
    entity_type: Optional[str] = Query(None, alias="entityType"),
    entity_id: Optional[str] = Query(None, alias="entityId"),
    pages: PageParams = Depends(),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.ACTIVITY_LOGS_VIEW]))
):
    """Who did what, newest first"""
    logs, total = ActivityLogService(db).get_logs(
        start_date=start_date,
        end_date=end_date,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        limit=pages.limit,
        offset=pages.offset,
    )
    return paginated(ActivityLogResponse, logs, total, pages.page, pages.limit)


@router.get("/activity-logs/stats")
async def activity_stats(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.ACTIVITY_LOGS_VIEW]))
):
    return success(ActivityLogService(db).get_stats(days))
