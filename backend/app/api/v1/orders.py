"""
Order API Routes - Checkout, customer order history and admin order handling
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.api.deps import success, paginated, PageParams
from app.core.database import get_db
from app.core.exceptions import PermissionDeniedError
from app.core.roles import Permission, has_permission
from app.core.security import get_current_user, get_optional_user, PermissionChecker
from app.schemas import (
    OrderCreate, OrderResponse, OrderCancelRequest, OrderStatusUpdate, OrderCompleteRequest
)
from app.services.order_service import OrderService

router = APIRouter(tags=["Orders"])


@router.post("/orders", status_code=201)
async def place_order(
    data: OrderCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_optional_user)
):
    """Place an order. Anonymous callers check out as guests."""
    if current_user is not None and not has_permission(current_user.role, Permission.ORDERS_PLACE):
        raise PermissionDeniedError("Your account cannot place orders")
    order = OrderService(db).place_order(data, current_user)
    db.commit()
    db.refresh(order)
    return success(OrderResponse.model_validate(order), message="Order placed successfully")


@router.get("/orders")
async def list_orders(
    status: Optional[str] = None,
    pages: PageParams = Depends(),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Own orders, or every order for staff who can see them"""
    orders, total = OrderService(db).list_orders(current_user, status=status, page=pages.page, limit=pages.limit)
    return paginated(OrderResponse, orders, total, pages.page, pages.limit)


@router.get("/orders/{order_id}")
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    return success(OrderResponse.model_validate(OrderService(db).get_for_user(order_id, current_user)))


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    data: Optional[OrderCancelRequest] = None,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Cancel an order and put its items back in stock"""
    order = OrderService(db).cancel(order_id, current_user, reason=data.reason if data else None)
    db.commit()
    db.refresh(order)
    return success(OrderResponse.model_validate(order), message="Order cancelled successfully")


# ==================== ADMIN ====================

@router.patch("/admin/orders/{order_id}/status")
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.ORDERS_MANAGE]))
):
    """Move an order forward, or cancel it. Delivering an order finalizes its cost."""
    order = OrderService(db).update_status(
        order_id, current_user, status=data.status, payment_status=data.payment_status
    )
    db.commit()
    db.refresh(order)
    return success(OrderResponse.model_validate(order))


@router.post("/admin/orders/{order_id}/complete")
async def complete_order(
    order_id: int,
    data: Optional[OrderCompleteRequest] = None,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.ORDERS_MANAGE, Permission.LEDGER_MANAGE]))
):
    """Finalize COGS from stock lots and post the order to the ledger"""
    costing_method = (data or OrderCompleteRequest()).costing_method
    order = OrderService(db).complete(order_id, current_user, costing_method=costing_method)
    db.commit()
    db.refresh(order)
    return success(OrderResponse.model_validate(order), message="Order completed successfully")
