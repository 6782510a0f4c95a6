"""
Inventory Service - Products, Categories, Stock Management
"""
from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import or_, func
from dataclasses import asdict
from datetime import datetime, timedelta
import logging
import uuid

from app.core.exceptions import ValidationError, ConflictError, NotFoundError
from app.core.money import money
from app.models import (
    Product, ProductPriceTier, Category, StockLot, InventoryLog, InventoryAction,
    Order, OrderItem, OrderStatus
)
from app.schemas import ProductCreate, ProductUpdate, CategoryCreate, CategoryUpdate, RestockRequest
from app.services.ledger_service import LedgerService
from app.services.stock_calculations import (
    StockItem, StockStatus, ALERT_PRIORITY, calculate_stock_status,
    validate_stock_adjustment, generate_stock_alert, calculate_average_daily_sales
)
from app.core.config import settings

logger = logging.getLogger(__name__)


class CategoryService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, category_id: int) -> Optional[Category]:
        return self.db.query(Category).filter(Category.id == category_id).first()

    def get_all(self, include_inactive: bool = False) -> List[Category]:
        query = self.db.query(Category)
        if not include_inactive:
            query = query.filter(Category.is_active == True)
        return query.order_by(Category.name).all()

    def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None):
        query = self.db.query(Category).filter(func.lower(Category.name) == name.lower())
        if exclude_id:
            query = query.filter(Category.id != exclude_id)
        if query.first():
            raise ConflictError(f"Category '{name}' already exists")

    def create(self, category_data: CategoryCreate) -> Category:
        self._ensure_unique_name(category_data.name)
        category = Category(name=category_data.name, description=category_data.description)
        self.db.add(category)
        self.db.flush()
        return category

    def update(self, category_id: int, category_data: CategoryUpdate) -> Category:
        category = self.get_by_id(category_id)
        if not category:
            raise NotFoundError("Category", category_id)

        update_data = category_data.model_dump(exclude_unset=True)
        if update_data.get("name"):
            self._ensure_unique_name(update_data["name"], exclude_id=category_id)
        for key, value in update_data.items():
            setattr(category, key, value)

        self.db.flush()
        return category

    def delete(self, category_id: int):
        category = self.get_by_id(category_id)
        if not category:
            raise NotFoundError("Category", category_id)

        has_products = self.db.query(Product).filter(Product.category_id == category_id).first()
        if has_products:
            raise ConflictError("Cannot delete category with products")

        self.db.delete(category)
        self.db.flush()


class ProductService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, product_id: int, active_only: bool = False) -> Optional[Product]:
        query = self.db.query(Product).options(joinedload(Product.category)).filter(Product.id == product_id)
        if active_only:
            query = query.filter(Product.is_active == True)
        return query.first()

    def is_sku_unique(self, sku: str, exclude_product_id: int = None) -> bool:
        query = self.db.query(Product).filter(Product.sku == sku)
        if exclude_product_id:
            query = query.filter(Product.id != exclude_product_id)
        return query.first() is None

    def search(
        self,
        q: Optional[str] = None,
        category_id: Optional[int] = None,
        include_inactive: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Product], int]:
        query = self.db.query(Product).options(joinedload(Product.category))
        if not include_inactive:
            query = query.filter(Product.is_active == True)
        if category_id:
            query = query.filter(Product.category_id == category_id)
        if q:
            pattern = f"%{q.strip()}%"
            query = query.filter(or_(
                Product.name.ilike(pattern),
                Product.sku.ilike(pattern),
                Product.description.ilike(pattern),
            ))

        total = query.count()
        products = query.order_by(Product.name).offset((page - 1) * limit).limit(limit).all()
        return products, total

    @staticmethod
    def _build_tiers(tiers) -> List[ProductPriceTier]:
        return [
            ProductPriceTier(min_quantity=t.min_quantity, max_quantity=t.max_quantity, unit_price=money(t.unit_price))
            for t in tiers or []
        ]

    def create(self, product_data: ProductCreate) -> Product:
        if not self.is_sku_unique(product_data.sku):
            raise ConflictError(f"Product with SKU '{product_data.sku}' already exists")
        if product_data.category_id and not CategoryService(self.db).get_by_id(product_data.category_id):
            raise NotFoundError("Category", product_data.category_id)

        product = Product(**product_data.model_dump(exclude={"price_tiers"}))
        product.price_tiers = self._build_tiers(product_data.price_tiers)
        self.db.add(product)
        self.db.flush()
        return product

    def update(self, product_id: int, product_data: ProductUpdate) -> Product:
        product = self.get_by_id(product_id)
        if not product:
            raise NotFoundError("Product", product_id)

        update_data = product_data.model_dump(exclude_unset=True)
        if update_data.get("sku") and not self.is_sku_unique(update_data["sku"], exclude_product_id=product_id):
            raise ConflictError(f"Product with SKU '{update_data['sku']}' already exists")
        if update_data.get("category_id") and not CategoryService(self.db).get_by_id(update_data["category_id"]):
            raise NotFoundError("Category", update_data["category_id"])

        tiers = update_data.pop("price_tiers", None)
        for key, value in update_data.items():
            setattr(product, key, value)
        if tiers is not None:
            # old rows go first so a reused min_quantity does not hit the unique constraint
            product.price_tiers.clear()
            self.db.flush()
            product.price_tiers = self._build_tiers(product_data.price_tiers)

        self.db.flush()
        return product

    def toggle_active(self, product_id: int) -> Product:
        product = self.get_by_id(product_id)
        if not product:
            raise NotFoundError("Product", product_id)
        product.is_active = not product.is_active
        self.db.flush()
        return product

    def delete(self, product_id: int) -> bool:
        """Hard delete a product without history, otherwise deactivate it. Returns True if deleted."""
        product = self.get_by_id(product_id)
        if not product:
            raise NotFoundError("Product", product_id)

        has_history = (
            self.db.query(InventoryLog.id).filter(InventoryLog.product_id == product_id).first()
            or self.db.query(OrderItem.id).filter(OrderItem.product_id == product_id).first()
            or self.db.query(StockLot.id).filter(StockLot.product_id == product_id).first()
        )
        if has_history:
            product.is_active = False
            self.db.flush()
            return False

        self.db.delete(product)
        self.db.flush()
        return True


class StockService:
    """Stock movements. Every change writes an InventoryLog row in the same transaction."""

    def __init__(self, db: Session):
        self.db = db

    def product_query(self, product_id: int, for_update: bool = False):
        query = self.db.query(Product).filter(Product.id == product_id)
        if for_update:
            # Row lock so concurrent movements on one product serialize
            query = query.with_for_update()
        return query

    def _get_product(self, product_id: int, for_update: bool = False) -> Product:
        product = self.product_query(product_id, for_update).first()
        if not product:
            raise NotFoundError("Product", product_id)
        return product

    def _log(self, product: Product, action: str, quantity: int, previous: int,
             reference: Optional[str] = None, notes: Optional[str] = None,
             performed_by: Optional[int] = None) -> InventoryLog:
        entry = InventoryLog(
            product_id=product.id,
            action=action,
            quantity=quantity,
            previous_stock=previous,
            new_stock=product.stock_quantity,
            reference=reference,
            notes=notes,
            performed_by=performed_by,
        )
        self.db.add(entry)
        return entry

    def change_stock(self, product: Product, delta: int, action: str,
                     reference: Optional[str] = None, notes: Optional[str] = None,
                     performed_by: Optional[int] = None) -> InventoryLog:
        """Apply a signed stock movement. Refuses to go below zero."""
        previous = product.stock_quantity
        if previous + delta < 0:
            raise ValidationError(
                f"Insufficient stock for {product.name}: {previous} available, {-delta} requested"
            )
        product.stock_quantity = previous + delta
        return self._log(product, action, delta, previous, reference, notes, performed_by)

    def adjust(self, product_id: int, adjustment_type: str, quantity: int, reason: str,
               notes: Optional[str] = None, performed_by: Optional[int] = None) -> Dict[str, Any]:
        product = self._get_product(product_id, for_update=True)
        result = validate_stock_adjustment(product.stock_quantity, quantity, adjustment_type, reason)
        if not result.is_valid:
            raise ValidationError("Invalid stock adjustment", details=result.errors)

        previous = product.stock_quantity
        product.stock_quantity = result.new_stock
        log_notes = reason.strip() if not notes else f"{reason.strip()} - {notes}"
        log = self._log(
            product, InventoryAction.ADJUSTMENT, result.new_stock - previous, previous,
            reference=adjustment_type, notes=log_notes, performed_by=performed_by,
        )
        self.db.flush()

        logger.info(f"Stock adjusted for product {product.id} ({adjustment_type}): {previous} -> {result.new_stock}")
        return {
            "product": product,
            "log": log,
            "previous_stock": previous,
            "new_stock": result.new_stock,
        }

    def restock(self, data: RestockRequest, performed_by: Optional[int] = None) -> Dict[str, Any]:
        """Receive a lot: new StockLot, stock increase, inventory log and a ledger DEBIT"""
        product = self._get_product(data.product_id, for_update=True)

        lot_number = data.lot_number or self.generate_lot_number()
        if self.db.query(StockLot.id).filter(StockLot.lot_number == lot_number).first():
            raise ConflictError(f"Lot number '{lot_number}' already exists")

        cost_per_unit = money(data.cost_per_unit)
        lot = StockLot(
            product_id=product.id,
            lot_number=lot_number,
            quantity_received=data.quantity,
            quantity_remaining=data.quantity,
            cost_per_unit=cost_per_unit,
            total_cost=money(cost_per_unit * data.quantity),
            supplier_name=data.supplier_name,
            notes=data.notes,
            created_by=performed_by,
        )
        self.db.add(lot)
        self.db.flush()

        log = self.change_stock(
            product, data.quantity, InventoryAction.PURCHASE,
            reference=lot_number, notes=data.notes, performed_by=performed_by,
        )
        LedgerService(self.db).record_purchase(lot, product, created_by=performed_by)
        self.db.flush()

        logger.info(f"Restocked product {product.id} with lot {lot_number}: +{data.quantity} @ {cost_per_unit}")
        return {"product": product, "lot": lot, "log": log}

    @staticmethod
    def generate_lot_number() -> str:
        return f"LOT-{datetime.utcnow():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"

    def get_logs(self, product_id: int, limit: int = 50) -> List[InventoryLog]:
        self._get_product(product_id)
        return self.db.query(InventoryLog).filter(InventoryLog.product_id == product_id) \
            .order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc()).limit(limit).all()

    def get_lots(self, product_id: int, include_empty: bool = False) -> List[StockLot]:
        query = self.db.query(StockLot).filter(StockLot.product_id == product_id)
        if not include_empty:
            query = query.filter(StockLot.quantity_remaining > 0)
        return query.order_by(StockLot.received_at, StockLot.id).all()

    # ==================== STOCK STATUS ====================

    def _sales_history(self, product_ids: List[int], days: int = 30) -> Dict[int, List[Tuple[datetime, int]]]:
        since = datetime.utcnow() - timedelta(days=days)
        rows = self.db.query(OrderItem.product_id, Order.created_at, OrderItem.quantity) \
            .join(Order, Order.id == OrderItem.order_id) \
            .filter(
                OrderItem.product_id.in_(product_ids),
                Order.status == OrderStatus.DELIVERED,
                Order.created_at >= since,
            ).all()
        history: Dict[int, List[Tuple[datetime, int]]] = {}
        for product_id, created_at, quantity in rows:
            history.setdefault(product_id, []).append((created_at, quantity))
        return history

    def _evaluate(self, products: List[Product], with_alerts: bool = False) -> List[Dict[str, Any]]:
        history = self._sales_history([p.id for p in products]) if products else {}
        results = []
        for product in products:
            avg = calculate_average_daily_sales(history.get(product.id, []))
            calc = calculate_stock_status(StockItem(
                current_stock=product.stock_quantity,
                reorder_point=product.reorder_level,
                reorder_quantity=product.reorder_quantity,
                moq=product.moq,
                average_daily_sales=avg,
            ))
            item = {
                "product_id": product.id,
                "name": product.name,
                "sku": product.sku,
                "category": product.category.name if product.category else None,
                "average_daily_sales": round(avg, 2),
                **asdict(calc),
            }
            if with_alerts:
                item["priority"] = ALERT_PRIORITY[calc.status]
                item["message"] = generate_stock_alert(product.name, calc)
            results.append(item)
        return results

    def get_overview(self, status: Optional[str] = None) -> Dict[str, Any]:
        products = self.db.query(Product).options(joinedload(Product.category)) \
            .filter(Product.is_active == True).order_by(Product.name).all()
        items = self._evaluate(products)

        summary = {s: 0 for s in (StockStatus.IN_STOCK, StockStatus.LOW_STOCK,
                                  StockStatus.REORDER_NEEDED, StockStatus.OUT_OF_STOCK)}
        for item in items:
            summary[item["status"]] += 1

        if status:
            items = [item for item in items if item["status"] == status]
        return {"items": items, "summary": {"total": len(products), **summary}}

    def get_reorder_alerts(self) -> Dict[str, Any]:
        """Active products at or below the low-stock threshold, most urgent first"""
        threshold = Product.reorder_level * float(settings.LOW_STOCK_MULTIPLIER)
        products = self.db.query(Product).options(joinedload(Product.category)).filter(
            Product.is_active == True,
            Product.stock_quantity <= threshold,
        ).all()

        alerts = [
            item for item in self._evaluate(products, with_alerts=True)
            if item["status"] != StockStatus.IN_STOCK
        ]

        order = {"critical": 0, "high": 1, "medium": 2}
        alerts.sort(key=lambda a: (order[a["priority"]], a["current_stock"]))

        grouped = {
            "critical": [a for a in alerts if a["priority"] == "critical"],
            "high": [a for a in alerts if a["priority"] == "high"],
            "medium": [a for a in alerts if a["priority"] == "medium"],
        }
        return {
            "alerts": alerts,
            "grouped": grouped,
            "summary": {
                "total": len(alerts),
                "critical": len(grouped["critical"]),
                "high": len(grouped["high"]),
                "medium": len(grouped["medium"]),
            },
        }
