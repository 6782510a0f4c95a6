"""
Order Service - Checkout, cancellation, status changes and COGS finalization
"""
from typing import Optional, List, Dict, Tuple
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import desc
from decimal import Decimal
from datetime import datetime
import logging
import uuid

from app.core.config import settings
from app.core.exceptions import ValidationError, ConflictError, NotFoundError, PermissionDeniedError
from app.core.money import money, percentage, ZERO
from app.core.roles import Permission, has_permission
from app.models import (
    Order, OrderItem, OrderStatus, Product, StockLot, InventoryAction, User
)
from app.schemas import OrderCreate
from app.services.audit_service import ActivityLogService, ActivityAction
from app.services.inventory_service import StockService
from app.services.ledger_service import LedgerService
from app.services.pricing import price_product

logger = logging.getLogger(__name__)


class CostingMethod:
    FIFO = "FIFO"
    WAC = "WAC"


def allocate_lot_cost(lots: List[StockLot], quantity: int, method: str) -> Tuple[Decimal, int]:
    """
    Consume `quantity` units from `lots` (oldest first) and price them.

    FIFO charges each lot's own unit cost; WAC charges the weighted
    average cost of everything on hand before consumption. Returns the
    cost of the covered units and how many units were covered.
    """
    on_hand = sum(lot.quantity_remaining for lot in lots)
    covered = min(on_hand, quantity)
    if covered == 0:
        return ZERO, 0

    if method == CostingMethod.WAC:
        pool_value = sum(Decimal(lot.quantity_remaining) * lot.cost_per_unit for lot in lots)
        cost = pool_value / on_hand * covered
    else:
        cost = ZERO

    remaining = covered
    for lot in lots:
        if remaining == 0:
            break
        take = min(lot.quantity_remaining, remaining)
        if take == 0:
            continue
        if method != CostingMethod.WAC:
            cost += Decimal(take) * lot.cost_per_unit
        lot.quantity_remaining -= take
        remaining -= take

    return cost, covered


class OrderService:
    def __init__(self, db: Session):
        self.db = db
        self.stock = StockService(db)
        self.activity = ActivityLogService(db)

    # ==================== QUERIES ====================

    def get_by_id(self, order_id: int) -> Optional[Order]:
        return self.db.query(Order).options(joinedload(Order.items)).filter(Order.id == order_id).first()

    def _require(self, order_id: int) -> Order:
        order = self.get_by_id(order_id)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    def get_for_user(self, order_id: int, user: User) -> Order:
        order = self._require(order_id)
        if order.user_id != user.id and not has_permission(user.role, Permission.ORDERS_VIEW_ALL):
            # Hide existence of other customers' orders
            raise NotFoundError("Order", order_id)
        return order

    def list_orders(
        self,
        user: User,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        query = self.db.query(Order).options(joinedload(Order.items))
        if not has_permission(user.role, Permission.ORDERS_VIEW_ALL):
            query = query.filter(Order.user_id == user.id)
        if status:
            query = query.filter(Order.status == status)
        total = query.count()
        orders = query.order_by(desc(Order.created_at), desc(Order.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return orders, total

    # ==================== PLACEMENT ====================

    @staticmethod
    def generate_order_number() -> str:
        return f"ORD-{datetime.utcnow():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"

    def place_order(self, data: OrderCreate, user: Optional[User] = None) -> Order:
        if user is None and (not data.guest_name or not data.guest_mobile):
            raise ValidationError("Guest orders require guestName and guestMobile")

        # Merge repeated lines for the same product
        quantities: Dict[int, int] = {}
        for item in data.items:
            quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

        products = {
            p.id: p for p in self.db.query(Product)
            .filter(Product.id.in_(list(quantities)))
            .with_for_update()
            .all()
        }

        order = Order(
            order_number=self.generate_order_number(),
            user_id=user.id if user else None,
            guest_name=data.guest_name if user is None else None,
            guest_mobile=data.guest_mobile if user is None else None,
            guest_email=data.guest_email if user is None else None,
            status=OrderStatus.PENDING,
            payment_method=data.payment_method,
            shipping_address=data.shipping_address,
            billing_address=data.billing_address or data.shipping_address,
            notes=data.notes,
        )

        subtotal = ZERO
        discount = ZERO
        for product_id, quantity in quantities.items():
            product = products.get(product_id)
            if product is None or not product.is_active:
                raise ValidationError(f"Product {product_id} is not available")
            if quantity > product.stock_quantity:
                raise ValidationError(
                    f"Insufficient stock for {product.name}: {product.stock_quantity} available, {quantity} requested"
                )

            price = price_product(product, quantity, user)
            subtotal += price.subtotal
            discount += price.customer_discount_amount
            order.items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                sku=product.sku,
                quantity=quantity,
                unit_price=price.unit_price,
                discount_amount=price.customer_discount_amount,
                total_price=price.total,
            ))

        order.subtotal = money(subtotal)
        order.discount = money(discount)
        taxable = order.subtotal - order.discount
        order.tax = money(taxable * settings.ORDER_TAX_RATE)
        order.shipping_fee = money(settings.ORDER_SHIPPING_FEE)
        order.total = money(taxable + order.tax + order.shipping_fee)

        self.db.add(order)
        self.db.flush()

        for item in order.items:
            self.stock.change_stock(
                products[item.product_id], -item.quantity, InventoryAction.SALE,
                reference=order.order_number, performed_by=user.id if user else None,
            )
        self.db.flush()

        logger.info(f"Order {order.order_number} placed: {len(order.items)} lines, total {order.total}")
        return order

    # ==================== CANCELLATION ====================

    def cancel(self, order_id: int, user: User, reason: Optional[str] = None) -> Order:
        order = self._require(order_id)
        if order.user_id != user.id and not has_permission(user.role, Permission.ORDERS_CANCEL):
            raise PermissionDeniedError("You can only cancel your own orders")
        self._cancel(order, user, reason)
        return order

    def _cancel(self, order: Order, user: User, reason: Optional[str]):
        if order.status == OrderStatus.CANCELLED:
            raise ConflictError("Order is already cancelled")
        if order.status == OrderStatus.DELIVERED:
            raise ConflictError("Delivered orders cannot be cancelled")

        previous_status = order.status
        for item in order.items:
            if item.product_id is None:
                continue
            product = self.stock.product_query(item.product_id, for_update=True).first()
            if product is None:
                continue
            self.stock.change_stock(
                product, item.quantity, InventoryAction.CANCELLATION,
                reference=order.order_number, notes=reason, performed_by=user.id,
            )

        order.status = OrderStatus.CANCELLED
        order.cancelled_at = datetime.utcnow()
        order.cancel_reason = reason
        self.db.flush()

        self.activity.log(
            action=ActivityAction.CANCEL,
            entity_type="Order",
            entity_id=order.id,
            entity_name=order.order_number,
            description=f"Order {order.order_number} cancelled (was {previous_status})",
            metadata={"reason": reason},
            user=user,
        )
        logger.info(f"Order {order.order_number} cancelled by user {user.id}")

    # ==================== STATUS ====================

    def update_status(self, order_id: int, user: User, status: Optional[str] = None,
                      payment_status: Optional[str] = None) -> Order:
        order = self._require(order_id)
        changes = {}

        if status and status != order.status:
            allowed = OrderStatus.TRANSITIONS.get(order.status, ())
            if status not in allowed:
                raise ConflictError(f"Cannot change order status from {order.status} to {status}")
            changes["status"] = (order.status, status)
            if status == OrderStatus.CANCELLED:
                self._cancel(order, user, reason="Cancelled by admin")
            elif status == OrderStatus.DELIVERED:
                self._finalize(order, settings.DEFAULT_COSTING_METHOD, user)
            else:
                order.status = status

        if payment_status and payment_status != order.payment_status:
            changes["payment_status"] = (order.payment_status, payment_status)
            order.payment_status = payment_status

        if changes:
            self.db.flush()
            self.activity.log(
                action=ActivityAction.STATUS_CHANGE,
                entity_type="Order",
                entity_id=order.id,
                entity_name=order.order_number,
                description=", ".join(f"{k}: {old} -> {new}" for k, (old, new) in changes.items()),
                user=user,
            )
        return order

    # ==================== COMPLETION ====================

    def complete(self, order_id: int, user: User, costing_method: str = CostingMethod.FIFO) -> Order:
        order = self._require(order_id)
        if order.completed_at is not None:
            raise ConflictError("Order already completed")
        if order.status not in (OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            raise ConflictError(f"Only shipped or delivered orders can be completed (status is {order.status})")
        self._finalize(order, costing_method, user)
        return order

    def _finalize(self, order: Order, costing_method: str, user: User):
        """
        Price every line from stock lots, mark the order delivered and write
        the revenue/COGS ledger pair. Runs inside the caller's transaction.
        """
        if order.completed_at is not None:
            raise ConflictError("Order already completed")

        total_cost = ZERO
        for item in order.items:
            product = None
            lots: List[StockLot] = []
            if item.product_id is not None:
                product = self.stock.product_query(item.product_id, for_update=True).first()
                lots = self.db.query(StockLot).filter(
                    StockLot.product_id == item.product_id,
                    StockLot.quantity_remaining > 0,
                ).order_by(StockLot.received_at, StockLot.id).with_for_update().all()

            cost, covered = allocate_lot_cost(lots, item.quantity, costing_method)
            shortfall = item.quantity - covered
            if shortfall:
                fallback = money(product.cost_price) if product else ZERO
                logger.warning(
                    f"Order {order.order_number}: {shortfall} of {item.quantity} units of "
                    f"{item.product_name} not covered by stock lots, costed at {fallback}"
                )
                cost += fallback * shortfall

            item.total_cost = money(cost)
            item.cost_per_unit = money(cost / item.quantity)
            item.profit = money(item.total_price) - item.total_cost
            total_cost += item.total_cost

        order.total_cost = money(total_cost)
        order.gross_profit = money(order.total) - order.total_cost
        order.profit_margin = percentage(order.gross_profit, order.total)
        order.costing_method = costing_method
        order.status = OrderStatus.DELIVERED
        order.completed_at = datetime.utcnow()
        self.db.flush()

        LedgerService(self.db).record_order(order, created_by=user.id)
        self.db.flush()

        self.activity.log(
            action=ActivityAction.ORDER_COMPLETE,
            entity_type="Order",
            entity_id=order.id,
            entity_name=order.order_number,
            description=f"Order completed with {costing_method} costing",
            metadata={
                "revenue": order.total,
                "cogs": order.total_cost,
                "gross_profit": order.gross_profit,
            },
            user=user,
        )
        logger.info(
            f"Order {order.order_number} completed: revenue {order.total}, "
            f"COGS {order.total_cost}, margin {order.profit_margin}%"
        )
