"""
Pydantic Schemas for API Validation

Request bodies accept camelCase or snake_case keys. Responses are camelCase.
"""
from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


class RequestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, use_enum_values=True, validate_default=True
    )


class ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ==================== ENUMS ====================

class UserRoleEnum(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    PARTNER = "PARTNER"
    MANAGER = "MANAGER"
    SELLER = "SELLER"
    BUYER = "BUYER"
    GUEST = "GUEST"


class OrderStatusEnum(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatusEnum(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class CostingMethodEnum(str, Enum):
    FIFO = "FIFO"
    WAC = "WAC"


class LedgerDirectionEnum(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class CostCategoryEnum(str, Enum):
    RENT = "RENT"
    UTILITIES = "UTILITIES"
    MARKETING = "MARKETING"
    SHIPPING = "SHIPPING"
    PACKAGING = "PACKAGING"
    SALARIES = "SALARIES"
    INVENTORY = "INVENTORY"
    SOFTWARE = "SOFTWARE"
    TAXES = "TAXES"
    MAINTENANCE = "MAINTENANCE"
    OTHER = "OTHER"


class PeriodTypeEnum(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class DistributionStatusEnum(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"


class ReviewStatusEnum(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    HIDDEN = "HIDDEN"
    REJECTED = "REJECTED"


# ==================== AUTH SCHEMAS ====================

class LoginRequest(RequestModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterRequest(RequestModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6)
    mobile: Optional[str] = Field(None, max_length=30)
    business_name: Optional[str] = Field(None, max_length=255)
    business_type: Optional[str] = Field(None, max_length=100)


# ==================== USER SCHEMAS ====================

class UserResponse(ResponseModel):
    id: int
    email: str
    name: str
    mobile: Optional[str] = None
    role: str
    business_name: Optional[str] = None
    business_type: Optional[str] = None
    is_active: bool
    discount_percentage: float = 0
    discount_valid_until: Optional[date] = None
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class Token(ResponseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class UserRoleUpdate(RequestModel):
    role: UserRoleEnum

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


class UserStatusUpdate(RequestModel):
    is_active: bool


class CustomerDiscountUpdate(RequestModel):
    discount_percentage: Decimal = Field(..., ge=0, le=100)
    discount_reason: Optional[str] = Field(None, max_length=255)
    discount_valid_until: Optional[date] = None


class CustomerDiscountResponse(ResponseModel):
    id: int
    name: str
    email: str
    discount_percentage: float
    discount_reason: Optional[str] = None
    discount_valid_until: Optional[date] = None


# ==================== CATALOG SCHEMAS ====================

class CategoryCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class CategoryUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class CategoryResponse(ResponseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None


class PriceTierInput(RequestModel):
    min_quantity: int = Field(..., ge=1)
    max_quantity: Optional[int] = Field(None, ge=1)
    unit_price: Decimal = Field(..., ge=0)

    @model_validator(mode="after")
    def check_range(self):
        if self.max_quantity is not None and self.max_quantity < self.min_quantity:
            raise ValueError("maxQuantity cannot be below minQuantity")
        return self


def check_tier_overlap(tiers: Optional[List[PriceTierInput]]) -> Optional[List[PriceTierInput]]:
    """Tier ranges may leave gaps but never overlap"""
    if not tiers:
        return tiers
    ordered = sorted(tiers, key=lambda t: t.min_quantity)
    for lower, upper in zip(ordered, ordered[1:]):
        if lower.max_quantity is None or lower.max_quantity >= upper.min_quantity:
            raise ValueError(f"Price tier starting at {upper.min_quantity} overlaps the tier before it")
    return ordered


class PriceTierResponse(ResponseModel):
    min_quantity: int
    max_quantity: Optional[int] = None
    unit_price: float


class ProductCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=255)
    sku: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    unit: str = "pcs"
    base_price: Decimal = Field(..., ge=0)
    wholesale_price: Optional[Decimal] = Field(None, ge=0)
    cost_price: Decimal = Field(Decimal("0"), ge=0)
    moq: int = Field(1, ge=1)
    stock_quantity: int = Field(0, ge=0)
    reorder_level: int = Field(0, ge=0)
    reorder_quantity: int = Field(0, ge=0)
    category_id: Optional[int] = None
    is_active: bool = True
    price_tiers: List[PriceTierInput] = []

    @field_validator("price_tiers")
    @classmethod
    def check_tiers(cls, value):
        return check_tier_overlap(value)


class ProductUpdate(RequestModel):
    """Stock levels change only through adjustments, restocks and orders."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    sku: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    unit: Optional[str] = None
    base_price: Optional[Decimal] = Field(None, ge=0)
    wholesale_price: Optional[Decimal] = Field(None, ge=0)
    cost_price: Optional[Decimal] = Field(None, ge=0)
    moq: Optional[int] = Field(None, ge=1)
    reorder_level: Optional[int] = Field(None, ge=0)
    reorder_quantity: Optional[int] = Field(None, ge=0)
    category_id: Optional[int] = None
    is_active: Optional[bool] = None
    # replaces every tier when present
    price_tiers: Optional[List[PriceTierInput]] = None

    @field_validator("price_tiers")
    @classmethod
    def check_tiers(cls, value):
        return check_tier_overlap(value)


class ProductResponse(ResponseModel):
    id: int
    name: str
    sku: str
    description: Optional[str] = None
    unit: Optional[str] = None
    base_price: float
    wholesale_price: Optional[float] = None
    cost_price: float
    moq: int
    stock_quantity: int
    reorder_level: int
    reorder_quantity: int
    is_active: bool
    category_id: Optional[int] = None
    category: Optional[CategoryResponse] = None
    price_tiers: List[PriceTierResponse] = []
    created_at: Optional[datetime] = None


# ==================== INVENTORY SCHEMAS ====================

class StockAdjustmentRequest(RequestModel):
    # type, quantity and reason are checked by the adjustment validator so
    # every problem is reported together
    product_id: int
    adjustment_type: str
    quantity: int
    reason: str = ""
    notes: Optional[str] = None


class RestockRequest(RequestModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    cost_per_unit: Decimal = Field(..., ge=0)
    lot_number: Optional[str] = Field(None, max_length=50)
    supplier_name: Optional[str] = None
    notes: Optional[str] = None


class StockLotResponse(ResponseModel):
    id: int
    product_id: int
    lot_number: str
    quantity_received: int
    quantity_remaining: int
    cost_per_unit: float
    total_cost: float
    supplier_name: Optional[str] = None
    received_at: datetime


class InventoryLogResponse(ResponseModel):
    id: int
    product_id: int
    action: str
    quantity: int
    previous_stock: int
    new_stock: int
    reference: Optional[str] = None
    notes: Optional[str] = None
    performed_by: Optional[int] = None
    created_at: datetime


# ==================== ORDER SCHEMAS ====================

class OrderItemInput(RequestModel):
    product_id: int
    quantity: int = Field(..., gt=0)


class OrderCreate(RequestModel):
    items: List[OrderItemInput] = Field(..., min_length=1)
    shipping_address: str = Field(..., min_length=5)
    billing_address: Optional[str] = None
    payment_method: str = Field(..., min_length=1)
    guest_name: Optional[str] = None
    guest_mobile: Optional[str] = None
    guest_email: Optional[EmailStr] = None
    notes: Optional[str] = None


class OrderCancelRequest(RequestModel):
    reason: Optional[str] = None


class OrderStatusUpdate(RequestModel):
    status: Optional[OrderStatusEnum] = None
    payment_status: Optional[PaymentStatusEnum] = None

    @model_validator(mode="after")
    def check_any(self):
        if self.status is None and self.payment_status is None:
            raise ValueError("Provide status or paymentStatus")
        return self


class OrderCompleteRequest(RequestModel):
    costing_method: CostingMethodEnum = CostingMethodEnum.FIFO


class OrderItemResponse(ResponseModel):
    id: int
    product_id: Optional[int] = None
    product_name: str
    sku: Optional[str] = None
    quantity: int
    unit_price: float
    discount_amount: float = 0
    total_price: float
    cost_per_unit: Optional[float] = None
    total_cost: Optional[float] = None
    profit: Optional[float] = None


class OrderResponse(ResponseModel):
    id: int
    order_number: str
    user_id: Optional[int] = None
    guest_name: Optional[str] = None
    guest_mobile: Optional[str] = None
    status: str
    payment_status: str
    payment_method: Optional[str] = None
    shipping_address: str
    billing_address: Optional[str] = None
    subtotal: float
    discount: float = 0
    tax: float
    shipping_fee: float
    total: float
    total_cost: Optional[float] = None
    gross_profit: Optional[float] = None
    profit_margin: Optional[float] = None
    costing_method: Optional[str] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: datetime
    items: List[OrderItemResponse] = []


# ==================== REVIEW SCHEMAS ====================

class ReviewCreate(RequestModel):
    product_id: int
    # any delivered order of the reviewer containing the product when omitted
    order_id: Optional[int] = None
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=255)
    comment: str = Field(..., min_length=1)


class ReviewUpdate(RequestModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    title: Optional[str] = Field(None, max_length=255)
    comment: Optional[str] = Field(None, min_length=1)


class ReviewModerate(RequestModel):
    status: ReviewStatusEnum
    moderation_note: Optional[str] = None


class ReviewResponse(ResponseModel):
    id: int
    product_id: int
    user_id: int
    user_name: Optional[str] = None
    order_id: Optional[int] = None
    rating: int
    title: Optional[str] = None
    comment: str
    status: str
    moderated_at: Optional[datetime] = None
    moderation_note: Optional[str] = None
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def attach_user_name(cls, data):
        user = getattr(data, "user", None)
        if user is not None and not isinstance(data, dict):
            values = {k: getattr(data, k, None) for k in cls.model_fields if k != "user_name"}
            values["user_name"] = user.name
            return values
        return data


# ==================== LEDGER SCHEMAS ====================

class LedgerEntryResponse(ResponseModel):
    id: int
    source_type: str
    source_id: Optional[str] = None
    source_name: Optional[str] = None
    amount: float
    direction: str
    category: str
    subcategory: Optional[str] = None
    description: Optional[str] = None
    party_type: Optional[str] = None
    party_id: Optional[str] = None
    party_name: Optional[str] = None
    order_id: Optional[int] = None
    fiscal_year: int
    fiscal_month: int
    transaction_date: datetime
    created_by: Optional[int] = None
    is_reconciled: bool
    reconciled_at: Optional[datetime] = None
    reconciled_by: Optional[int] = None


class LedgerAdjustmentCreate(RequestModel):
    original_entry_id: Optional[int] = None
    amount: Decimal = Field(..., gt=0)
    direction: LedgerDirectionEnum
    category: str = Field("ADJUSTMENT", min_length=1, max_length=50)
    reason: str = Field(..., min_length=5)


class ReconcileRequest(RequestModel):
    action: str
    entry_ids: Optional[List[int]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


# ==================== OPERATIONAL COST SCHEMAS ====================

class OperationalCostCreate(RequestModel):
    category: CostCategoryEnum
    sub_category: Optional[str] = Field(None, max_length=100)
    description: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    date: date
    vendor: Optional[str] = None
    payment_status: PaymentStatusEnum = PaymentStatusEnum.PENDING
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None


class CostPaymentRequest(RequestModel):
    payment_method: str = Field(..., min_length=1)
    payment_reference: Optional[str] = None


class OperationalCostResponse(ResponseModel):
    id: int
    category: str
    sub_category: Optional[str] = None
    description: str
    amount: float
    date: date
    month: int
    year: int
    vendor: Optional[str] = None
    payment_status: str
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    is_approved: bool
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime


# ==================== PARTNER SCHEMAS ====================

class PartnerCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    partner_type: str = "INVESTOR"
    profit_share_percentage: Decimal = Field(..., ge=0, le=100)
    initial_investment: Decimal = Field(Decimal("0"), ge=0)
    is_active: bool = True
    joined_at: Optional[date] = None
    address: Optional[str] = None
    tax_id: Optional[str] = None
    bank_account: Optional[str] = None
    notes: Optional[str] = None
    user_id: Optional[int] = None


class PartnerUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    partner_type: Optional[str] = None
    profit_share_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    initial_investment: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None
    exit_date: Optional[date] = None
    address: Optional[str] = None
    tax_id: Optional[str] = None
    bank_account: Optional[str] = None
    notes: Optional[str] = None
    user_id: Optional[int] = None


class PartnerResponse(ResponseModel):
    id: int
    user_id: Optional[int] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    partner_type: Optional[str] = None
    profit_share_percentage: float
    initial_investment: Optional[float] = None
    total_profit_received: float
    is_active: bool
    joined_at: Optional[date] = None
    exit_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


# ==================== PROFIT DISTRIBUTION SCHEMAS ====================

class DistributeRequest(RequestModel):
    action: str = "distribute"
    period_type: PeriodTypeEnum
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        return self


class PayoutUpdate(RequestModel):
    status: Optional[DistributionStatusEnum] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None


class ProfitDistributionResponse(ResponseModel):
    id: int
    partner_id: int
    partner_name: Optional[str] = None
    period_type: str
    start_date: date
    end_date: date
    total_revenue: float
    total_costs: float
    net_profit: float
    partner_share: float
    distribution_amount: float
    status: str
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def attach_partner_name(cls, data):
        partner = getattr(data, "partner", None)
        if partner is not None and not isinstance(data, dict):
            values = {k: getattr(data, k, None) for k in cls.model_fields if k != "partner_name"}
            values["partner_name"] = partner.name
            return values
        return data


# ==================== HR SCHEMAS ====================

class EmployeeCreate(RequestModel):
    employee_code: str = Field(..., min_length=1, max_length=50)
    full_name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    base_salary: Decimal = Field(..., ge=0)
    join_date: Optional[date] = None


class EmployeeUpdate(RequestModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    base_salary: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None


class EmployeeResponse(ResponseModel):
    id: int
    employee_code: str
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    base_salary: float
    join_date: Optional[date] = None
    is_active: bool


class SalaryCreate(RequestModel):
    employee_id: int
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    base_salary: Optional[Decimal] = Field(None, ge=0)
    allowances: Decimal = Field(Decimal("0"), ge=0)
    bonuses: Decimal = Field(Decimal("0"), ge=0)
    overtime: Decimal = Field(Decimal("0"), ge=0)
    tax: Decimal = Field(Decimal("0"), ge=0)
    provident_fund: Decimal = Field(Decimal("0"), ge=0)
    other_deductions: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None


class SalaryPayRequest(RequestModel):
    payment_method: str = "BANK_TRANSFER"


class SalaryResponse(ResponseModel):
    id: int
    employee_id: int
    month: int
    year: int
    base_salary: float
    allowances: float
    bonuses: float
    overtime: float
    gross_salary: float
    tax: float
    provident_fund: float
    other_deductions: float
    total_deductions: float
    net_salary: float
    status: str
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None


# ==================== ACTIVITY LOG SCHEMAS ====================

class ActivityLogResponse(ResponseModel):
    id: int
    timestamp: datetime
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    ip_address: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    description: Optional[str] = None
    extra_data: Optional[str] = None
    status: Optional[str] = None
