"""
Inventory API Routes - Stock overview, adjustments, restocking and alerts
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.api.deps import success, serialize
from app.core.database import get_db
from app.core.roles import Permission
from app.core.security import PermissionChecker
from app.schemas import (
    StockAdjustmentRequest, RestockRequest, ProductResponse,
    InventoryLogResponse, StockLotResponse
)
from app.services.audit_service import ActivityLogService, ActivityAction
from app.services.inventory_service import StockService

router = APIRouter(prefix="/admin", tags=["Inventory"])


@router.get("/stock")
async def stock_overview(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.INVENTORY_VIEW]))
):
    """Stock status for every active product"""
    return success(StockService(db).get_overview(status=status))


@router.get("/stock/reorder-alerts")
async def reorder_alerts(
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.INVENTORY_VIEW]))
):
    """Products at or below their low stock threshold, most urgent first"""
    return success(StockService(db).get_reorder_alerts())


@router.post("/stock/adjust")
async def adjust_stock(
    data: StockAdjustmentRequest,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.INVENTORY_MANAGE]))
):
    """Add, remove or set stock with a reason"""
    result = StockService(db).adjust(
        product_id=data.product_id,
        adjustment_type=data.adjustment_type,
        quantity=data.quantity,
        reason=data.reason,
        notes=data.notes,
        performed_by=current_user.id,
    )
    product = result["product"]
    ActivityLogService(db).log(
        action=ActivityAction.STOCK_ADJUST,
        entity_type="Product",
        entity_id=product.id,
        entity_name=product.name,
        description=f"Stock {data.adjustment_type} {data.quantity}: {data.reason}",
        metadata={"previous_stock": result["previous_stock"], "new_stock": result["new_stock"]},
        user=current_user,
    )
    db.commit()
    db.refresh(product)

    return success(
        {
            "product": ProductResponse.model_validate(product),
            "previous_stock": result["previous_stock"],
            "new_stock": result["new_stock"],
            "log": InventoryLogResponse.model_validate(result["log"]),
        },
        message="Stock adjusted successfully",
    )


@router.post("/inventory/restock", status_code=201)
async def restock(
    data: RestockRequest,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.INVENTORY_MANAGE]))
):
    """Receive a stock lot at a unit cost"""
    result = StockService(db).restock(data, performed_by=current_user.id)
    product, lot = result["product"], result["lot"]
    ActivityLogService(db).log(
        action=ActivityAction.RESTOCK,
        entity_type="Product",
        entity_id=product.id,
        entity_name=product.name,
        description=f"Lot {lot.lot_number}: +{lot.quantity_received} @ {lot.cost_per_unit}",
        user=current_user,
    )
    db.commit()
    db.refresh(product)

    return success({
        "product": ProductResponse.model_validate(product),
        "lot": StockLotResponse.model_validate(lot),
    }, message="Stock received successfully")


@router.get("/stock/{product_id}/logs")
async def stock_logs(
    product_id: int,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.INVENTORY_VIEW]))
):
    """Stock movement history for a product"""
    return success(serialize(InventoryLogResponse, StockService(db).get_logs(product_id, limit)))


@router.get("/stock/{product_id}/lots")
async def stock_lots(
    product_id: int,
    include_empty: bool = Query(False, alias="includeEmpty"),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.INVENTORY_VIEW]))
):
    return success(serialize(StockLotResponse, StockService(db).get_lots(product_id, include_empty)))
