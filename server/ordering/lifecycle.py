# Order lifecycle: status machines, ledger-derived payment status and refund bounds

import secrets
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from .errors import OrderStateError, RefundError
from .pricing import from_cents, to_cents, to_money

ORDER_NUMBER_PREFIX = "LL"
ORDER_NUMBER_ATTEMPTS = 5

# refunds tolerate one cent of rounding drift
REFUND_TOLERANCE_CENTS = 1


class OrderStatus:
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus:
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CREDIT_ACCOUNT = "CREDIT_ACCOUNT"


class LedgerStatus:
    """Status of a single payments row"""
    COMPLETED = "COMPLETED"
    REFUNDED = "REFUNDED"


ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

PAYMENT_STATUS_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CREDIT_ACCOUNT},
    PaymentStatus.FAILED: {PaymentStatus.PAID, PaymentStatus.PENDING},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.CREDIT_ACCOUNT: {PaymentStatus.PAID},
    PaymentStatus.REFUNDED: set(),
}

TERMINAL_ORDER_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

# statuses an administrator may set by hand; PAID and REFUNDED only come from the ledger
MANUAL_PAYMENT_STATUSES = {PaymentStatus.PENDING, PaymentStatus.FAILED, PaymentStatus.CREDIT_ACCOUNT}


def assert_status_transition(current: str, target: str):
    if target not in ORDER_STATUS_TRANSITIONS:
        raise OrderStateError(f"Unknown order status: {target}")
    if target == current:
        return
    if target not in ORDER_STATUS_TRANSITIONS.get(current, set()):
        raise OrderStateError(f"Cannot change order status from {current} to {target}")


def assert_payment_transition(current: str, target: str):
    if target not in PAYMENT_STATUS_TRANSITIONS:
        raise OrderStateError(f"Unknown payment status: {target}")
    if target == current:
        return
    if target not in PAYMENT_STATUS_TRANSITIONS.get(current, set()):
        raise OrderStateError(f"Cannot change payment status from {current} to {target}")


def assert_editable(status: str):
    """Delivered and cancelled orders are frozen"""
    if status in TERMINAL_ORDER_STATUSES:
        raise OrderStateError(f"Cannot edit an order with status {status}")


def summarize_ledger(payments: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """
    Sum a payments ledger

    Returns:
        dict with paid_cents (successful charges), refunded_cents (absolute refunds),
        net_cents and charge_count
    """
    paid_cents = 0
    refunded_cents = 0
    charge_count = 0
    for payment in payments:
        if payment["status"] == LedgerStatus.COMPLETED and payment["amount_cents"] >= 0:
            paid_cents += payment["amount_cents"]
            charge_count += 1
        elif payment["status"] == LedgerStatus.REFUNDED:
            refunded_cents += abs(payment["amount_cents"])
    return {
        "paid_cents": paid_cents,
        "refunded_cents": refunded_cents,
        "net_cents": paid_cents - refunded_cents,
        "charge_count": charge_count,
    }


def derive_payment_status(current: str, total_cents: int, payments: Iterable[Dict[str, Any]]) -> str:
    """
    Recompute an order's payment status from its ledger

    Fully refunded -> REFUNDED; charges covering the total -> PAID (partial refunds
    keep PAID); otherwise the non-monetary status already on the order stands.
    """
    summary = summarize_ledger(payments)
    if summary["charge_count"] == 0:
        return current

    if summary["refunded_cents"] > 0 and summary["refunded_cents"] >= total_cents - REFUND_TOLERANCE_CENTS:
        return PaymentStatus.REFUNDED
    if summary["paid_cents"] >= total_cents - REFUND_TOLERANCE_CENTS:
        return PaymentStatus.PAID
    return current


def compute_refund(total_cents: int, payment_status: str, payments: Iterable[Dict[str, Any]],
                   amount: Any) -> Dict[str, Any]:
    """
    Bound-check a refund request against the ledger

    Args:
        total_cents: order total
        payment_status: current cached payment status
        payments: existing ledger rows
        amount: requested refund in currency units

    Returns:
        dict with amount_cents (clamped to the refundable balance),
        refunded_before_cents, max_refundable_cents, remaining_cents, fully_refunded

    Raises:
        RefundError: not PAID, non-positive amount, or amount above the balance
    """
    if payment_status != PaymentStatus.PAID:
        raise RefundError("Can only refund orders with PAID status")

    requested_cents = to_cents(to_money(amount))
    if requested_cents <= 0:
        raise RefundError("Refund amount must be greater than zero")

    refunded_before = summarize_ledger(payments)["refunded_cents"]
    max_refundable = total_cents - refunded_before
    if max_refundable <= 0 or requested_cents > max_refundable + REFUND_TOLERANCE_CENTS:
        raise RefundError(
            f"Refund amount exceeds refundable balance. Maximum: ${from_cents(max(max_refundable, 0))}"
        )

    amount_cents = min(requested_cents, max_refundable)
    refunded_after = refunded_before + amount_cents
    return {
        "amount_cents": amount_cents,
        "refunded_before_cents": refunded_before,
        "max_refundable_cents": max_refundable,
        "remaining_cents": total_cents - refunded_after,
        "fully_refunded": refunded_after >= total_cents - REFUND_TOLERANCE_CENTS,
    }


def generate_order_number(year: Optional[int] = None) -> str:
    """LL-<year>-<6 digits>; random, so callers retry on a uniqueness violation"""
    year = year or datetime.now().year
    return f"{ORDER_NUMBER_PREFIX}-{year:04d}-{secrets.randbelow(1_000_000):06d}"
