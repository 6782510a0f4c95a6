"""
Pricing - wholesale quantity tiers and customer discounts

Pure functions. Checkout prices every line through calculate_item_price,
the catalog price preview uses the same function.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from app.core.money import money, percentage, to_decimal, ZERO, HUNDRED


@dataclass
class PriceTier:
    min_quantity: int
    unit_price: Decimal
    max_quantity: Optional[int] = None

    def covers(self, quantity: int) -> bool:
        return quantity >= self.min_quantity and (self.max_quantity is None or quantity <= self.max_quantity)


@dataclass
class DiscountCheck:
    is_valid: bool
    applicable_percent: Decimal = ZERO
    reason: Optional[str] = None


@dataclass
class ItemPrice:
    quantity: int
    meets_minimum: bool
    minimum_required: int
    list_price: Decimal
    unit_price: Decimal
    tier: Optional[PriceTier]
    subtotal: Decimal
    customer_discount_percent: Decimal
    customer_discount_amount: Decimal
    total: Decimal
    total_savings: Decimal
    total_savings_percent: Decimal

    @property
    def final_unit_price(self) -> Decimal:
        return money(self.total / self.quantity) if self.quantity else ZERO


def find_applicable_tier(tiers: Iterable[PriceTier], quantity: int) -> Optional[PriceTier]:
    """The tier with the highest minimum that still covers the quantity"""
    for tier in sorted(tiers, key=lambda t: t.min_quantity, reverse=True):
        if tier.covers(quantity):
            return tier
    return None


def validate_customer_discount(percent, valid_until: Optional[date] = None,
                               today: Optional[date] = None) -> DiscountCheck:
    percent = to_decimal(percent)
    if percent < 0 or percent > HUNDRED:
        return DiscountCheck(False, reason="Invalid discount percentage")
    if percent == 0:
        return DiscountCheck(False, reason="No discount set")
    if valid_until is not None and valid_until < (today or date.today()):
        return DiscountCheck(False, reason="Discount expired")
    return DiscountCheck(True, percent)


def calculate_item_price(
    base_price,
    wholesale_price,
    moq: int,
    quantity: int,
    tiers: Iterable[PriceTier] = (),
    discount: Optional[DiscountCheck] = None,
) -> ItemPrice:
    """
    Price one order line.

    Below the MOQ the line pays the base price with no tier and no customer
    discount. From the MOQ up the list price is the wholesale price (base when
    the product has none), a matching quantity tier replaces it, and a valid
    customer discount comes off the line subtotal.
    """
    moq = moq or 1
    base_price = money(base_price)
    meets_minimum = quantity >= moq

    if not meets_minimum:
        subtotal = money(base_price * quantity)
        return ItemPrice(
            quantity=quantity,
            meets_minimum=False,
            minimum_required=moq,
            list_price=base_price,
            unit_price=base_price,
            tier=None,
            subtotal=subtotal,
            customer_discount_percent=ZERO,
            customer_discount_amount=ZERO,
            total=subtotal,
            total_savings=ZERO,
            total_savings_percent=ZERO,
        )

    list_price = money(wholesale_price) if wholesale_price is not None else base_price
    tier = find_applicable_tier(tiers, quantity)
    unit_price = money(tier.unit_price) if tier else list_price
    subtotal = money(unit_price * quantity)

    discount_percent = discount.applicable_percent if discount and discount.is_valid else ZERO
    discount_amount = money(subtotal * discount_percent / HUNDRED)
    total = subtotal - discount_amount

    list_total = money(list_price * quantity)
    savings = list_total - total
    return ItemPrice(
        quantity=quantity,
        meets_minimum=True,
        minimum_required=moq,
        list_price=list_price,
        unit_price=unit_price,
        tier=tier,
        subtotal=subtotal,
        customer_discount_percent=discount_percent,
        customer_discount_amount=discount_amount,
        total=total,
        total_savings=savings,
        total_savings_percent=percentage(savings, list_total),
    )


def tiers_of(product) -> List[PriceTier]:
    return [PriceTier(t.min_quantity, t.unit_price, t.max_quantity) for t in product.price_tiers]


def customer_discount_of(user) -> Optional[DiscountCheck]:
    if user is None:
        return None
    return validate_customer_discount(user.discount_percentage, user.discount_valid_until)


def price_product(product, quantity: int, user=None) -> ItemPrice:
    """Price a catalog product for a buyer; guests get no customer discount"""
    return calculate_item_price(
        product.base_price, product.wholesale_price, product.moq, quantity,
        tiers=tiers_of(product), discount=customer_discount_of(user),
    )
