"""
SQLAlchemy Models for the Wholesale Backend
"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date, Numeric,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from app.core.database import Base


# ==================== STATUS CONSTANTS ====================

class OrderStatus:
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    TERMINAL = (DELIVERED, CANCELLED)
    # forward-only progression, cancellation allowed from any non-terminal state
    TRANSITIONS = {
        PENDING: (PROCESSING, SHIPPED, DELIVERED, CANCELLED),
        PROCESSING: (SHIPPED, DELIVERED, CANCELLED),
        SHIPPED: (DELIVERED, CANCELLED),
        DELIVERED: (),
        CANCELLED: (),
    }


class PaymentStatus:
    PENDING = "PENDING"
    PAID = "PAID"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class InventoryAction:
    ADJUSTMENT = "ADJUSTMENT"
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    CANCELLATION = "CANCELLATION"


class LedgerSource:
    ORDER = "ORDER"
    PURCHASE = "PURCHASE"
    EXPENSE = "EXPENSE"
    SALARY = "SALARY"
    COMMISSION = "COMMISSION"
    ADJUSTMENT = "ADJUSTMENT"


class LedgerDirection:
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class DistributionStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"

    TERMINAL = (PAID, REJECTED)
    TRANSITIONS = {
        PENDING: (APPROVED, PAID, REJECTED),
        APPROVED: (PAID, REJECTED),
        PAID: (),
        REJECTED: (),
    }


class SalaryStatus:
    PENDING = "PENDING"
    PAID = "PAID"


class ReviewStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    HIDDEN = "HIDDEN"
    REJECTED = "REJECTED"

    ALL = (PENDING, APPROVED, HIDDEN, REJECTED)


# ==================== USERS ====================

class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    mobile = Column(String(30), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="BUYER")
    business_name = Column(String(255), nullable=True)
    business_type = Column(String(100), nullable=True)
    # negotiated percentage off wholesale lines
    discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    discount_reason = Column(String(255), nullable=True)
    discount_valid_until = Column(Date, nullable=True)
    is_active = Column(Boolean, default=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    orders = relationship("Order", back_populates="user")
    partner_profile = relationship("Partner", back_populates="user", uselist=False)


# ==================== CATALOG ====================

class Category(Base):
    __tablename__ = 'categories'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    products = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = 'products'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    unit = Column(String(50), default="pcs")
    base_price = Column(Numeric(15, 2), nullable=False, default=0)
    wholesale_price = Column(Numeric(15, 2), nullable=True)
    cost_price = Column(Numeric(15, 2), nullable=False, default=0)
    moq = Column(Integer, nullable=False, default=1)
    stock_quantity = Column(Integer, nullable=False, default=0)
    reorder_level = Column(Integer, nullable=False, default=0)
    reorder_quantity = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    category_id = Column(Integer, ForeignKey('categories.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("Category", back_populates="products")
    lots = relationship("StockLot", back_populates="product", order_by="StockLot.received_at")
    inventory_logs = relationship("InventoryLog", back_populates="product")
    price_tiers = relationship(
        "ProductPriceTier", back_populates="product", order_by="ProductPriceTier.min_quantity",
        cascade="all, delete-orphan"
    )
    reviews = relationship("Review", back_populates="product", cascade="all, delete-orphan")


class ProductPriceTier(Base):
    """Unit price for a quantity range, open-ended when max_quantity is null"""
    __tablename__ = 'product_price_tiers'

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    min_quantity = Column(Integer, nullable=False)
    max_quantity = Column(Integer, nullable=True)
    unit_price = Column(Numeric(15, 2), nullable=False)

    product = relationship("Product", back_populates="price_tiers")

    __table_args__ = (
        UniqueConstraint('product_id', 'min_quantity', name='uq_price_tier_product_min'),
    )


# ==================== INVENTORY ====================

class StockLot(Base):
    """A received batch of stock with its own unit cost, consumed by COGS allocation"""
    __tablename__ = 'stock_lots'

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    lot_number = Column(String(50), unique=True, nullable=False)
    quantity_received = Column(Integer, nullable=False)
    quantity_remaining = Column(Integer, nullable=False)
    cost_per_unit = Column(Numeric(15, 2), nullable=False)
    total_cost = Column(Numeric(15, 2), nullable=False)
    supplier_name = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    received_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    product = relationship("Product", back_populates="lots")

    __table_args__ = (
        Index('ix_stock_lots_product_received', 'product_id', 'received_at'),
    )


class InventoryLog(Base):
    """Every stock movement, with the stock level before and after"""
    __tablename__ = 'inventory_logs'

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    action = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False)  # signed
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    performed_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    product = relationship("Product", back_populates="inventory_logs")

    __table_args__ = (
        Index('ix_inventory_logs_product_created', 'product_id', 'created_at'),
    )


# ==================== ORDERS ====================

class Order(Base):
    __tablename__ = 'orders'

    id = Column(Integer, primary_key=True)
    order_number = Column(String(50), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    guest_name = Column(String(255), nullable=True)
    guest_mobile = Column(String(30), nullable=True)
    guest_email = Column(String(255), nullable=True)

    status = Column(String(20), nullable=False, default=OrderStatus.PENDING)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING)
    payment_method = Column(String(50), nullable=True)
    shipping_address = Column(Text, nullable=False)
    billing_address = Column(Text, nullable=True)

    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    discount = Column(Numeric(15, 2), nullable=False, default=0)
    tax = Column(Numeric(15, 2), nullable=False, default=0)
    shipping_fee = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)

    # Filled in once the order is completed and its COGS finalized
    total_cost = Column(Numeric(15, 2), nullable=True)
    gross_profit = Column(Numeric(15, 2), nullable=True)
    profit_margin = Column(Numeric(7, 2), nullable=True)
    costing_method = Column(String(10), nullable=True)
    completed_at = Column(DateTime, nullable=True)

    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_orders_status_created', 'status', 'created_at'),
    )


class OrderItem(Base):
    __tablename__ = 'order_items'

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    product_id = Column(Integer, ForeignKey('products.id', ondelete='SET NULL'), nullable=True)
    product_name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total_price = Column(Numeric(15, 2), nullable=False)
    cost_per_unit = Column(Numeric(15, 2), nullable=True)
    total_cost = Column(Numeric(15, 2), nullable=True)
    profit = Column(Numeric(15, 2), nullable=True)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")


# ==================== REVIEWS ====================

class Review(Base):
    """One review per buyer per product, hidden until moderated"""
    __tablename__ = 'reviews'

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    order_id = Column(Integer, ForeignKey('orders.id', ondelete='SET NULL'), nullable=True)
    rating = Column(Integer, nullable=False)
    title = Column(String(255), nullable=True)
    comment = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=ReviewStatus.PENDING)
    moderated_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    moderated_at = Column(DateTime, nullable=True)
    moderation_note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product", back_populates="reviews")
    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        UniqueConstraint('user_id', 'product_id', name='uq_review_user_product'),
        Index('ix_reviews_product_status', 'product_id', 'status'),
    )


# ==================== FINANCE ====================

class FinancialLedger(Base):
    """
    Append-only record of money movements.
    Amounts are always positive; direction says which way the money went.
    """
    __tablename__ = 'financial_ledger'

    id = Column(Integer, primary_key=True)
    source_type = Column(String(20), nullable=False)
    source_id = Column(String(50), nullable=True)
    source_name = Column(String(255), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    direction = Column(String(10), nullable=False)
    category = Column(String(50), nullable=False)
    subcategory = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    party_type = Column(String(50), nullable=True)
    party_id = Column(String(50), nullable=True)
    party_name = Column(String(255), nullable=True)
    order_id = Column(Integer, ForeignKey('orders.id', ondelete='SET NULL'), nullable=True)
    fiscal_year = Column(Integer, nullable=False)
    fiscal_month = Column(Integer, nullable=False)
    transaction_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    is_reconciled = Column(Boolean, default=False, nullable=False)
    reconciled_at = Column(DateTime, nullable=True)
    reconciled_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    order = relationship("Order")

    __table_args__ = (
        Index('ix_ledger_source', 'source_type', 'direction'),
        Index('ix_ledger_transaction_date', 'transaction_date'),
        Index('ix_ledger_fiscal', 'fiscal_year', 'fiscal_month'),
    )


class OperationalCost(Base):
    __tablename__ = 'operational_costs'

    id = Column(Integer, primary_key=True)
    category = Column(String(30), nullable=False)
    sub_category = Column(String(100), nullable=True)
    description = Column(Text, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    date = Column(Date, nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    vendor = Column(String(255), nullable=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING)
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(100), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    is_approved = Column(Boolean, default=False, nullable=False)
    approved_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('ix_operational_costs_date', 'date'),
    )


# ==================== PARTNERS ====================

class Partner(Base):
    __tablename__ = 'partners'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True, unique=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    phone = Column(String(30), nullable=True)
    partner_type = Column(String(50), default="INVESTOR")
    profit_share_percentage = Column(Numeric(5, 2), nullable=False)
    initial_investment = Column(Numeric(15, 2), default=0)
    total_profit_received = Column(Numeric(15, 2), default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    joined_at = Column(Date, nullable=True)
    exit_date = Column(Date, nullable=True)
    address = Column(Text, nullable=True)
    tax_id = Column(String(50), nullable=True)
    bank_account = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="partner_profile")
    distributions = relationship("ProfitDistribution", back_populates="partner")


class ProfitDistribution(Base):
    """One partner's share of one period's net profit"""
    __tablename__ = 'profit_distributions'

    id = Column(Integer, primary_key=True)
    partner_id = Column(Integer, ForeignKey('partners.id', ondelete='RESTRICT'), nullable=False)
    period_type = Column(String(20), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    # Snapshot of the period figures at distribution time
    total_revenue = Column(Numeric(15, 2), nullable=False)
    total_costs = Column(Numeric(15, 2), nullable=False)
    net_profit = Column(Numeric(15, 2), nullable=False)
    partner_share = Column(Numeric(5, 2), nullable=False)
    distribution_amount = Column(Numeric(15, 2), nullable=False)

    status = Column(String(20), nullable=False, default=DistributionStatus.PENDING)
    approved_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    partner = relationship("Partner", back_populates="distributions")
    __table_args__ = (
        UniqueConstraint('partner_id', 'period_type', 'start_date', 'end_date', name='uq_distribution_partner_period'),
        Index('ix_distributions_status', 'status'),
    )


# ==================== HR ====================

class Employee(Base):
    __tablename__ = 'employees'

    id = Column(Integer, primary_key=True)
    employee_code = Column(String(50), unique=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    department = Column(String(100), nullable=True)
    designation = Column(String(100), nullable=True)
    base_salary = Column(Numeric(15, 2), nullable=False, default=0)
    join_date = Column(Date, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    salaries = relationship("Salary", back_populates="employee")


class Salary(Base):
    __tablename__ = 'salaries'

    id = Column(Integer, primary_key=True)
    employee_id = Column(Integer, ForeignKey('employees.id', ondelete='RESTRICT'), nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)

    base_salary = Column(Numeric(15, 2), nullable=False)
    allowances = Column(Numeric(15, 2), default=0)
    bonuses = Column(Numeric(15, 2), default=0)
    overtime = Column(Numeric(15, 2), default=0)
    gross_salary = Column(Numeric(15, 2), nullable=False)

    tax = Column(Numeric(15, 2), default=0)
    provident_fund = Column(Numeric(15, 2), default=0)
    other_deductions = Column(Numeric(15, 2), default=0)
    total_deductions = Column(Numeric(15, 2), nullable=False)
    net_salary = Column(Numeric(15, 2), nullable=False)

    status = Column(String(20), nullable=False, default=SalaryStatus.PENDING)
    paid_at = Column(DateTime, nullable=True)
    payment_method = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    employee = relationship("Employee", back_populates="salaries")

    __table_args__ = (
        UniqueConstraint('employee_id', 'month', 'year', name='uq_salary_employee_period'),
    )


# ==================== ACTIVITY LOG ====================

class ActivityLog(Base):
    """Trail of admin mutations"""
    __tablename__ = 'activity_logs'

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    user_name = Column(String(255), nullable=True)  # kept in case the user is deleted
    ip_address = Column(String(50), nullable=True)
    user_agent = Column(String(500), nullable=True)

    action = Column(String(30), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(50), nullable=True)
    entity_name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    extra_data = Column(Text, nullable=True)  # JSON

    status = Column(String(20), default='success')

    user = relationship("User")

    __table_args__ = (
        Index('ix_activity_logs_timestamp', 'timestamp'),
        Index('ix_activity_logs_entity', 'entity_type', 'entity_id'),
        Index('ix_activity_logs_action', 'action'),
    )
