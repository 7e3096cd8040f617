# Order pricing calculator
# Pure functions: same order shape + pricing config + fulfillment mode -> same totals

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Convert a number/string to Decimal without passing through binary float"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal) -> int:
    return int(quantize_money(value) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


class PricingConfig(BaseModel):
    """Unit prices in effect when an order is priced"""
    completa_price: Decimal = Field(..., ge=0)
    extra_entree_price: Decimal = Field(..., ge=0)
    extra_side_price: Decimal = Field(..., ge=0)
    delivery_fee_per_meal: Decimal = Field(..., ge=0)

    @classmethod
    def from_row(cls, row: Dict[str, int]) -> "PricingConfig":
        """Build from a pricing_config row stored in cents"""
        return cls(
            completa_price=from_cents(row["completa_price_cents"]),
            extra_entree_price=from_cents(row["extra_entree_price_cents"]),
            extra_side_price=from_cents(row["extra_side_price_cents"]),
            delivery_fee_per_meal=from_cents(row["delivery_fee_per_meal_cents"]),
        )


def count_meals(order_days: List[Dict[str, Any]]) -> int:
    """Completas plus extra entrees; extra sides are not meals"""
    meal_count = 0
    for day in order_days:
        meal_count += len(day.get("completas") or [])
        meal_count += sum(extra["quantity"] for extra in day.get("extra_entrees") or [])
    return meal_count


def calculate_order_totals(order_days: List[Dict[str, Any]], pricing: PricingConfig,
                           is_pickup: bool, discount: Optional[Decimal] = None) -> Dict[str, Any]:
    """
    Calculate order totals

    Args:
        order_days: validated day selections (completas, extra_entrees, extra_sides)
        pricing: unit prices to apply
        is_pickup: pickup orders carry no delivery fee
        discount: promotional discount already capped at the subtotal

    Returns:
        dict with meal_count and Decimal subtotal, delivery_fee, discount, total_amount
    """
    subtotal = Decimal("0")
    meal_count = count_meals(order_days)

    for day in order_days:
        subtotal += len(day.get("completas") or []) * pricing.completa_price

        for extra in day.get("extra_entrees") or []:
            subtotal += extra["quantity"] * pricing.extra_entree_price

        for extra in day.get("extra_sides") or []:
            subtotal += extra["quantity"] * pricing.extra_side_price

    delivery_fee = Decimal("0") if is_pickup else meal_count * pricing.delivery_fee_per_meal
    discount = to_money(discount) if discount else Decimal("0")
    total_amount = subtotal + delivery_fee - discount

    return {
        "meal_count": meal_count,
        "subtotal": quantize_money(subtotal),
        "delivery_fee": quantize_money(delivery_fee),
        "discount": quantize_money(discount),
        "total_amount": quantize_money(total_amount),
    }


def calculate_discount(subtotal: Decimal, percent_off: Optional[Decimal] = None,
                       amount_off: Optional[Decimal] = None) -> Decimal:
    """
    Promotional discount on the subtotal (delivery fee is never discounted)

    A percentage wins over a fixed amount; the result never exceeds the subtotal.
    """
    subtotal = to_money(subtotal)
    if percent_off:
        discount = subtotal * to_money(percent_off) / 100
    elif amount_off:
        discount = to_money(amount_off)
    else:
        discount = Decimal("0")

    discount = quantize_money(discount)
    return min(discount, subtotal)
