"""
Catalog API Routes - Categories and Products
"""
from dataclasses import asdict
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.api.deps import success, serialize, paginated, PageParams
from app.core.database import get_db
from app.core.exceptions import NotFoundError
from app.core.roles import Permission
from app.core.security import PermissionChecker, get_optional_user
from app.schemas import (
    CategoryCreate, CategoryUpdate, CategoryResponse,
    ProductCreate, ProductUpdate, ProductResponse
)
from app.services.audit_service import ActivityLogService, ActivityAction
from app.services.inventory_service import CategoryService, ProductService
from app.services.pricing import price_product

router = APIRouter(tags=["Catalog"])


# ==================== CATEGORIES ====================

@router.get("/categories")
async def list_categories(db: Session = Depends(get_db)):
    """List active categories"""
    return success(serialize(CategoryResponse, CategoryService(db).get_all()))


@router.post("/admin/categories", status_code=201)
async def create_category(
    category_data: CategoryCreate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.CATEGORIES_MANAGE]))
):
    """Create a new category"""
    category = CategoryService(db).create(category_data)
    ActivityLogService(db).log(
        action=ActivityAction.CREATE, entity_type="Category", entity_id=category.id,
        entity_name=category.name, user=current_user,
    )
    db.commit()
    return success(CategoryResponse.model_validate(category))


@router.put("/admin/categories/{category_id}")
async def update_category(
    category_id: int,
    category_data: CategoryUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.CATEGORIES_MANAGE]))
):
    """Update category"""
    category = CategoryService(db).update(category_id, category_data)
    ActivityLogService(db).log(
        action=ActivityAction.UPDATE, entity_type="Category", entity_id=category.id,
        entity_name=category.name, metadata=category_data.model_dump(exclude_unset=True), user=current_user,
    )
    db.commit()
    return success(CategoryResponse.model_validate(category))


@router.delete("/admin/categories/{category_id}")
async def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.CATEGORIES_MANAGE]))
):
    """Delete category"""
    CategoryService(db).delete(category_id)
    ActivityLogService(db).log(
        action=ActivityAction.DELETE, entity_type="Category", entity_id=category_id, user=current_user,
    )
    db.commit()
    return success(message="Category deleted successfully")


# ==================== PRODUCTS ====================

@router.get("/products")
async def list_products(
    q: Optional[str] = None,
    category_id: Optional[int] = Query(None, alias="categoryId"),
    pages: PageParams = Depends(),
    db: Session = Depends(get_db)
):
    """Browse active products"""
    products, total = ProductService(db).search(
        q=q, category_id=category_id, page=pages.page, limit=pages.limit
    )
    return paginated(ProductResponse, products, total, pages.page, pages.limit)


@router.get("/products/{product_id}")
async def get_product(product_id: int, db: Session = Depends(get_db)):
    product = ProductService(db).get_by_id(product_id, active_only=True)
    if not product:
        raise NotFoundError("Product", product_id)
    return success(ProductResponse.model_validate(product))


@router.get("/products/{product_id}/price")
async def quote_product_price(
    product_id: int,
    quantity: int = Query(..., ge=1),
    db: Session = Depends(get_db),
    current_user=Depends(get_optional_user)
):
    """Price preview for a quantity, with the caller's customer discount when signed in"""
    product = ProductService(db).get_by_id(product_id, active_only=True)
    if not product:
        raise NotFoundError("Product", product_id)
    price = price_product(product, quantity, current_user)
    return success({
        **asdict(price),
        "final_unit_price": price.final_unit_price,
        "product_id": product.id,
    })


@router.get("/admin/products")
async def admin_list_products(
    q: Optional[str] = None,
    category_id: Optional[int] = Query(None, alias="categoryId"),
    include_inactive: bool = Query(True, alias="includeInactive"),
    pages: PageParams = Depends(),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PRODUCTS_VIEW]))
):
    """List products including inactive ones"""
    products, total = ProductService(db).search(
        q=q, category_id=category_id, include_inactive=include_inactive,
        page=pages.page, limit=pages.limit,
    )
    return paginated(ProductResponse, products, total, pages.page, pages.limit)


@router.post("/admin/products", status_code=201)
async def create_product(
    product_data: ProductCreate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PRODUCTS_MANAGE]))
):
    """Create a new product"""
    product = ProductService(db).create(product_data)
    ActivityLogService(db).log(
        action=ActivityAction.CREATE, entity_type="Product", entity_id=product.id,
        entity_name=product.name, description=f"SKU {product.sku}", user=current_user,
    )
    db.commit()
    db.refresh(product)
    return success(ProductResponse.model_validate(product))


@router.put("/admin/products/{product_id}")
async def update_product(
    product_id: int,
    product_data: ProductUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PRODUCTS_MANAGE]))
):
    """Update product details and pricing"""
    product = ProductService(db).update(product_id, product_data)
    ActivityLogService(db).log(
        action=ActivityAction.UPDATE, entity_type="Product", entity_id=product.id,
        entity_name=product.name, metadata=product_data.model_dump(exclude_unset=True), user=current_user,
    )
    db.commit()
    db.refresh(product)
    return success(ProductResponse.model_validate(product))


@router.delete("/admin/products/{product_id}")
async def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PRODUCTS_DELETE]))
):
    """Delete a product, or deactivate it when it has stock or order history"""
    deleted = ProductService(db).delete(product_id)
    ActivityLogService(db).log(
        action=ActivityAction.DELETE if deleted else ActivityAction.STATUS_CHANGE,
        entity_type="Product", entity_id=product_id,
        description="Product deleted" if deleted else "Product deactivated (has history)",
        user=current_user,
    )
    db.commit()
    message = "Product deleted successfully" if deleted else "Product has history and was deactivated"
    return success({"deleted": deleted}, message=message)


@router.patch("/admin/products/{product_id}/toggle")
async def toggle_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.PRODUCTS_MANAGE]))
):
    """Show or hide a product in the public catalog"""
    product = ProductService(db).toggle_active(product_id)
    ActivityLogService(db).log(
        action=ActivityAction.STATUS_CHANGE, entity_type="Product", entity_id=product.id,
        entity_name=product.name, description="Activated" if product.is_active else "Deactivated",
        user=current_user,
    )
    db.commit()
    db.refresh(product)
    return success(ProductResponse.model_validate(product))
