# Core order operations: creation, edits, status changes, payments and refunds
# Every monetary change appends to the payments ledger and re-derives payment_status from it

import sqlite3
import logging
from typing import List, Optional, Dict, Any

from ordering.composition import collect_menu_item_ids, validate_fulfillment, validate_order_composition
from ordering.errors import (
    ConfigurationError, NotFoundError, OrderStateError, OrderValidationError,
    PaymentDeclinedError, ReconciliationError
)
from ordering.grouping import assign_order_items
from ordering.lifecycle import (
    MANUAL_PAYMENT_STATUSES, ORDER_NUMBER_ATTEMPTS, ORDER_STATUS_TRANSITIONS,
    LedgerStatus, OrderStatus, PaymentStatus,
    assert_editable, assert_payment_transition, assert_status_transition,
    compute_refund, derive_payment_status, generate_order_number
)
from ordering.pricing import calculate_discount, calculate_order_totals, from_cents, to_cents, to_money
from utils.validators import validate_promo_code
from .manager import DatabaseManager, order_lock
from .query_operations import QueryOperations
from .supporting_operations import SupportingOperations

logger = logging.getLogger(__name__)

MANUAL_PAYMENT_METHODS = ("CASH", "CHECK", "CARD", "OTHER")
CHARGEABLE_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.FAILED)


class CoreOperations:
    """
    Order lifecycle operations

    Args:
        db_manager: connected DatabaseManager
        processor: payment processor client (charge / refund / lookup_promo_code)
        currency: ISO currency sent to the processor
    """
    def __init__(self, db_manager: DatabaseManager, processor=None, currency: str = "usd"):
        self.db = db_manager
        self.processor = processor
        self.currency = currency
        self.support = SupportingOperations(db_manager)
        self.query = QueryOperations(db_manager)

    # shared checks

    def _verify_order_access(self, order: Dict[str, Any], user_id: Optional[int],
                             checkout_session_id: Optional[str]):
        """Owner, administrator, or the checkout session that created the order"""
        if user_id is not None:
            user = self.support.get_user_by_id(user_id)
            if user and (user["is_admin"] or user["customer_id"] == order["customer_id"]):
                return
        if checkout_session_id and order["checkout_session_id"] == checkout_session_id:
            return
        raise NotFoundError("Order not found")

    def _verify_before_payment(self, order: Dict[str, Any], action: str):
        if order["status"] != OrderStatus.PENDING or order["payment_status"] not in CHARGEABLE_PAYMENT_STATUSES:
            raise OrderStateError(f"{action} only before the order is paid")

    def _require_processor(self):
        if self.processor is None:
            logger.error("Payment processor is not configured")
            raise ConfigurationError("Payment processor is not configured")

    # write helpers, called inside a transaction

    def _insert_order(self, values: Dict[str, Any]) -> Dict[str, Any]:
        columns = ', '.join(values)
        placeholders = ', '.join('?' for _ in values)

        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            order_number = generate_order_number()
            try:
                cursor = self.db.conn.execute(
                    f"INSERT INTO orders (order_number, {columns}) VALUES (?, {placeholders})",
                    [order_number] + list(values.values())
                )
            except sqlite3.IntegrityError as e:
                if "order_number" not in str(e):
                    raise
                logger.warning(f"Order number collision on {order_number}, attempt {attempt}")
                continue
            return {"order_id": cursor.lastrowid, "order_number": order_number}

        raise RuntimeError(f"Could not allocate a unique order number after {ORDER_NUMBER_ATTEMPTS} attempts")

    def _insert_order_days(self, order_id: int, assigned_days: List[Dict[str, Any]]):
        for day in assigned_days:
            cursor = self.db.conn.execute(
                "INSERT INTO order_days (order_id, day_of_week) VALUES (?, ?)",
                [order_id, day["day_of_week"]]
            )
            order_day_id = cursor.lastrowid
            for item in day["items"]:
                self.db.conn.execute("""
                    INSERT INTO order_items (order_day_id, menu_item_id, quantity, unit_price_cents,
                                             is_completa, completa_group_id)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, [order_day_id, item["menu_item_id"], item["quantity"], to_cents(item["unit_price"]),
                      int(item["is_completa"]), item["completa_group_id"]])

    def _count_meals(self, order_id: int) -> int:
        """Completas plus extra entree units of a stored order"""
        row = self.db.fetch_one("""
            SELECT
                COUNT(DISTINCT oi.completa_group_id) AS completas,
                COALESCE(SUM(CASE WHEN oi.completa_group_id IS NULL AND mi.kind = 'ENTREE'
                                  THEN oi.quantity ELSE 0 END), 0) AS extra_entrees
            FROM order_days od
            JOIN order_items oi ON oi.order_day_id = od.order_day_id
            JOIN menu_items mi ON mi.menu_item_id = oi.menu_item_id
            WHERE od.order_id = ?
        """, [order_id])
        return row["completas"] + row["extra_entrees"]

    def _append_payment(self, order_id: int, amount_cents: int, method: str, status: str,
                        reference: str = None, notes: str = None, recorded_by: int = None) -> int:
        cursor = self.db.conn.execute("""
            INSERT INTO payments (order_id, amount_cents, method, status, reference, notes, recorded_by)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, [order_id, amount_cents, method, status, reference, notes, recorded_by])
        return cursor.lastrowid

    def _refresh_payment_status(self, order_id: int) -> str:
        """Recompute payment_status from the ledger and store it when it moved"""
        order = self.query.get_order_row(order_id)
        payments = self.db.fetch_all("SELECT amount_cents, status FROM payments WHERE order_id = ?", [order_id])
        derived = derive_payment_status(order["payment_status"], order["total_amount_cents"], payments)

        if derived != order["payment_status"]:
            assert_payment_transition(order["payment_status"], derived)
            self.db.conn.execute(
                "UPDATE orders SET payment_status = ?, updated_at = CURRENT_TIMESTAMP WHERE order_id = ?",
                [derived, order_id]
            )
            logger.info(f"Order {order_id} payment status {order['payment_status']} -> {derived}")
        return derived

    def _record_charge(self, order: Dict[str, Any], amount_cents: int, method: str,
                       reference: str = None, notes: str = None, recorded_by: int = None,
                       via_processor: bool = False) -> int:
        payment_id = self._append_payment(
            order["order_id"], amount_cents, method, LedgerStatus.COMPLETED, reference, notes, recorded_by
        )
        self.db.conn.execute("""
            UPDATE orders
            SET payment_method = ?, processor_payment_id = COALESCE(?, processor_payment_id),
                updated_at = CURRENT_TIMESTAMP
            WHERE order_id = ?
        """, [method, reference if via_processor else None, order["order_id"]])

        payment_status = self._refresh_payment_status(order["order_id"])
        if payment_status == PaymentStatus.PAID and order["status"] == OrderStatus.PENDING:
            self.db.conn.execute(
                "UPDATE orders SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE order_id = ?",
                [OrderStatus.CONFIRMED, order["order_id"]]
            )
        return payment_id

    def _apply_payment_failure(self, order: Dict[str, Any], reason: str):
        if order["payment_status"] == PaymentStatus.PENDING:
            assert_payment_transition(order["payment_status"], PaymentStatus.FAILED)
            self.db.conn.execute("""
                UPDATE orders SET payment_status = ?, updated_at = CURRENT_TIMESTAMP WHERE order_id = ?
            """, [PaymentStatus.FAILED, order["order_id"]])
        elif order["payment_status"] == PaymentStatus.FAILED:
            self.db.conn.execute(
                "UPDATE orders SET updated_at = CURRENT_TIMESTAMP WHERE order_id = ?", [order["order_id"]]
            )
        else:
            logger.warning(
                f"Ignoring payment failure for order {order['order_id']} "
                f"with payment status {order['payment_status']}: {reason}"
            )
            return
        logger.warning(f"Payment failed for order {order['order_id']}: {reason}")

    # order creation and checkout edits

    def create_order(self, weekly_menu_id: int, order_days: List[Dict[str, Any]], is_pickup: bool,
                     user_id: Optional[int] = None, guest_info: Optional[Dict[str, Any]] = None,
                     address_id: Optional[int] = None, guest_address: Optional[Dict[str, Any]] = None,
                     checkout_session_id: Optional[str] = None, notes: Optional[str] = None) -> Dict[str, Any]:
        """
        Create an order and its day/item subtree in one transaction

        Args:
            weekly_menu_id: published weekly menu the order draws from
            order_days: [{day_of_week, completas, extra_entrees, extra_sides}]
            is_pickup: fulfillment mode
            user_id: authenticated user, None for guest checkout
            guest_info: {email, first_name, last_name, phone} for guest checkout
            address_id: existing delivery address
            guest_address: new delivery address to save for the customer
            checkout_session_id: replaying the same session returns the same order

        Returns:
            {"order": order detail, "guest_token": str or None, "replayed": bool}
        """
        def create_order_operation():
            identity = self.support.resolve_checkout_identity(user_id, guest_info)
            customer_id = identity["customer_id"]

            if checkout_session_id:
                existing = self.db.fetch_one("""
                    SELECT order_id, guest_token FROM orders
                    WHERE customer_id = ? AND weekly_menu_id = ? AND checkout_session_id = ?
                """, [customer_id, weekly_menu_id, checkout_session_id])
                if existing:
                    logger.info(f"Checkout session {checkout_session_id} replayed, order {existing['order_id']}")
                    return {
                        "order_id": existing["order_id"],
                        "guest_token": existing["guest_token"],
                        "replayed": True,
                    }

            menu = self.support.get_menu_snapshot(weekly_menu_id, collect_menu_item_ids(order_days))
            pricing = self.support.get_pricing_config()

            delivery_address_id = None if is_pickup else address_id
            if not is_pickup and delivery_address_id is None and guest_address:
                delivery_address_id = self.support.create_address(customer_id, **guest_address)["address_id"]

            validate_order_composition(
                order_days, menu, is_pickup,
                address_id=delivery_address_id,
                address_owner_id=self.support.get_address_owner(delivery_address_id),
                customer_id=customer_id,
            )

            assigned_days = assign_order_items(order_days, pricing)
            totals = calculate_order_totals(order_days, pricing, is_pickup)

            if identity["is_credit_account"]:
                payment_status, payment_method = PaymentStatus.CREDIT_ACCOUNT, "CREDIT_ACCOUNT"
            else:
                payment_status, payment_method = PaymentStatus.PENDING, None

            created = self._insert_order({
                "customer_id": customer_id,
                "weekly_menu_id": weekly_menu_id,
                "is_pickup": int(is_pickup),
                "address_id": delivery_address_id,
                "subtotal_cents": to_cents(totals["subtotal"]),
                "delivery_fee_cents": to_cents(totals["delivery_fee"]),
                "discount_cents": 0,
                "total_amount_cents": to_cents(totals["total_amount"]),
                "status": OrderStatus.PENDING,
                "payment_status": payment_status,
                "payment_method": payment_method,
                "notes": notes,
                "guest_token": identity["guest_token"],
                "checkout_session_id": checkout_session_id,
            })
            self._insert_order_days(created["order_id"], assigned_days)

            logger.info(
                f"Order {created['order_number']} created for customer {customer_id}: "
                f"{totals['meal_count']} meals, total {totals['total_amount']}"
            )
            return {"order_id": created["order_id"], "guest_token": identity["guest_token"], "replayed": False}

        result = self.db.execute_transaction([create_order_operation], immediate=True)[0]
        return {
            "order": self.query.get_order_detail(result["order_id"]),
            "guest_token": result["guest_token"],
            "replayed": result["replayed"],
        }

    def update_checkout_delivery(self, order_id: int, is_pickup: bool, address_id: Optional[int] = None,
                                 guest_address: Optional[Dict[str, Any]] = None, user_id: Optional[int] = None,
                                 checkout_session_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Switch pickup/delivery or the delivery address on the same order during checkout
        """
        def update_delivery_operation():
            order = self.query.get_order_row(order_id)
            self._verify_order_access(order, user_id, checkout_session_id)
            self._verify_before_payment(order, "Delivery options can be changed")

            delivery_address_id = None if is_pickup else address_id
            if not is_pickup and delivery_address_id is None and guest_address:
                delivery_address_id = self.support.create_address(order["customer_id"], **guest_address)["address_id"]
            validate_fulfillment(
                is_pickup, delivery_address_id,
                self.support.get_address_owner(delivery_address_id), order["customer_id"]
            )

            pricing = self.support.get_pricing_config()
            delivery_fee_cents = 0 if is_pickup else to_cents(self._count_meals(order_id) * pricing.delivery_fee_per_meal)
            total_cents = order["subtotal_cents"] + delivery_fee_cents - order["discount_cents"]

            self.db.conn.execute("""
                UPDATE orders
                SET is_pickup = ?, address_id = ?, delivery_fee_cents = ?, total_amount_cents = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE order_id = ?
            """, [int(is_pickup), delivery_address_id, delivery_fee_cents, total_cents, order_id])

            logger.info(f"Order {order_id} delivery updated: pickup={is_pickup}, address={delivery_address_id}")

        self.db.execute_transaction([update_delivery_operation], immediate=True)
        return self.query.get_order_detail(order_id)

    def admin_edit_order(self, admin_user_id: int, order_id: int, order_days: List[Dict[str, Any]],
                         is_pickup: Optional[bool] = None, address_id: Optional[int] = None,
                         notes: Optional[str] = None) -> Dict[str, Any]:
        """
        Replace an unfulfilled order's day/item subtree and re-price it

        Raises:
            OrderStateError: the order is DELIVERED or CANCELLED
            OrderValidationError: the new composition breaks a rule
        """
        self.support._verify_admin_permission(admin_user_id)

        def edit_order_operation():
            order = self.query.get_order_row(order_id)
            assert_editable(order["status"])

            pickup = bool(order["is_pickup"]) if is_pickup is None else is_pickup
            delivery_address_id = None if pickup else (address_id or order["address_id"])

            menu = self.support.get_menu_snapshot(
                order["weekly_menu_id"], collect_menu_item_ids(order_days), require_published=False
            )
            pricing = self.support.get_pricing_config()
            validate_order_composition(
                order_days, menu, pickup,
                address_id=delivery_address_id,
                address_owner_id=self.support.get_address_owner(delivery_address_id),
                customer_id=order["customer_id"],
            )

            totals = calculate_order_totals(order_days, pricing, pickup)
            discount_cents = min(order["discount_cents"], to_cents(totals["subtotal"]))
            total_cents = to_cents(totals["total_amount"]) - discount_cents

            self.db.conn.execute("DELETE FROM order_days WHERE order_id = ?", [order_id])
            self._insert_order_days(order_id, assign_order_items(order_days, pricing))
            self.db.conn.execute("""
                UPDATE orders
                SET is_pickup = ?, address_id = ?, subtotal_cents = ?, delivery_fee_cents = ?,
                    discount_cents = ?, total_amount_cents = ?, notes = COALESCE(?, notes),
                    updated_at = CURRENT_TIMESTAMP
                WHERE order_id = ?
            """, [int(pickup), delivery_address_id, to_cents(totals["subtotal"]), to_cents(totals["delivery_fee"]),
                  discount_cents, total_cents, notes, order_id])

            logger.info(
                f"Order {order_id} edited by admin {admin_user_id}: "
                f"total {from_cents(order['total_amount_cents'])} -> {from_cents(total_cents)}"
            )
            return order["total_amount_cents"]

        previous_total_cents = self.db.execute_transaction([edit_order_operation], immediate=True)[0]
        detail = self.query.get_order_detail(order_id)
        detail["previous_total"] = float(from_cents(previous_total_cents))
        return detail

    # status machine

    def update_order_status(self, admin_user_id: int, order_id: int, status: str) -> Dict[str, Any]:
        self.support._verify_admin_permission(admin_user_id)

        def update_status_operation():
            order = self.query.get_order_row(order_id)
            assert_status_transition(order["status"], status)
            self.db.conn.execute(
                "UPDATE orders SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE order_id = ?",
                [status, order_id]
            )
            logger.info(f"Order {order_id} status {order['status']} -> {status} by admin {admin_user_id}")

        self.db.execute_transaction([update_status_operation], immediate=True)
        return self.query.get_order_detail(order_id)

    def admin_bulk_update_status(self, admin_user_id: int, order_ids: List[int], status: str) -> Dict[str, Any]:
        """
        Move many orders to one status; illegal transitions are reported per order

        Returns:
            {"status", "updated": [order_id], "failed": [{"order_id", "error"}]}
        """
        self.support._verify_admin_permission(admin_user_id)
        if status not in ORDER_STATUS_TRANSITIONS:
            raise OrderStateError(f"Unknown order status: {status}")

        def bulk_update_operation():
            updated, failed = [], []
            for order_id in dict.fromkeys(order_ids):
                row = self.db.fetch_one("SELECT status FROM orders WHERE order_id = ?", [order_id])
                if not row:
                    failed.append({"order_id": order_id, "error": "Order not found"})
                    continue
                try:
                    assert_status_transition(row["status"], status)
                except OrderStateError as e:
                    failed.append({"order_id": order_id, "error": e.reason})
                    continue
                self.db.conn.execute(
                    "UPDATE orders SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE order_id = ?",
                    [status, order_id]
                )
                updated.append(order_id)
            return {"status": status, "updated": updated, "failed": failed}

        result = self.db.execute_transaction([bulk_update_operation], immediate=True)[0]
        logger.info(f"Bulk status {status} by admin {admin_user_id}: "
                    f"{len(result['updated'])} updated, {len(result['failed'])} failed")
        return result

    def set_payment_status(self, admin_user_id: int, order_id: int, payment_status: str) -> Dict[str, Any]:
        """
        Non-monetary payment status changes (retry, failure, house account)

        PAID and REFUNDED only follow from the payments ledger.
        """
        self.support._verify_admin_permission(admin_user_id)
        if payment_status not in MANUAL_PAYMENT_STATUSES:
            raise OrderStateError(f"{payment_status} is set from recorded payments, not by hand")

        def set_payment_status_operation():
            order = self.query.get_order_row(order_id)
            assert_payment_transition(order["payment_status"], payment_status)
            self.db.conn.execute("""
                UPDATE orders
                SET payment_status = ?,
                    payment_method = CASE WHEN ? = 'CREDIT_ACCOUNT' THEN 'CREDIT_ACCOUNT' ELSE payment_method END,
                    updated_at = CURRENT_TIMESTAMP
                WHERE order_id = ?
            """, [payment_status, payment_status, order_id])
            logger.info(f"Order {order_id} payment status {order['payment_status']} -> {payment_status} "
                        f"by admin {admin_user_id}")

        self.db.execute_transaction([set_payment_status_operation], immediate=True)
        return self.query.get_order_detail(order_id)

    def cancel_order(self, order_id: int, user_id: Optional[int] = None,
                     checkout_session_id: Optional[str] = None, reason: Optional[str] = None) -> Dict[str, Any]:
        """Customer cancellation of an unpaid order"""
        def cancel_operation():
            order = self.query.get_order_row(order_id)
            self._verify_order_access(order, user_id, checkout_session_id)
            if order["payment_status"] == PaymentStatus.PAID:
                raise OrderStateError("Paid orders can only be cancelled by an administrator")
            assert_status_transition(order["status"], OrderStatus.CANCELLED)

            note = f"Cancelled by customer: {reason}" if reason else None
            self.db.conn.execute("""
                UPDATE orders
                SET status = ?, notes = CASE WHEN ? IS NULL THEN notes
                                             ELSE COALESCE(notes || char(10), '') || ? END,
                    updated_at = CURRENT_TIMESTAMP
                WHERE order_id = ?
            """, [OrderStatus.CANCELLED, note, note, order_id])
            logger.info(f"Order {order_id} cancelled by customer")

        self.db.execute_transaction([cancel_operation], immediate=True)
        return self.query.get_order_detail(order_id)

    def update_order_notes(self, admin_user_id: int, order_id: int, notes: Optional[str]) -> Dict[str, Any]:
        self.support._verify_admin_permission(admin_user_id)

        def update_notes_operation():
            self.query.get_order_row(order_id)
            self.db.conn.execute(
                "UPDATE orders SET notes = ?, updated_at = CURRENT_TIMESTAMP WHERE order_id = ?",
                [notes, order_id]
            )

        self.db.execute_transaction([update_notes_operation])
        return self.query.get_order_detail(order_id)

    # promotions

    def apply_promo_code(self, order_id: int, promo_code: Optional[str], user_id: Optional[int] = None,
                         checkout_session_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Apply or (with an empty code) remove a promotional discount before payment

        The discount applies to the subtotal only, never to the delivery fee.
        """
        code = (promo_code or "").strip().upper()
        if code and not validate_promo_code(code):
            raise OrderValidationError("Invalid promo code")

        def apply_promo_operation():
            order = self.query.get_order_row(order_id)
            self._verify_order_access(order, user_id, checkout_session_id)
            self._verify_before_payment(order, "Promo codes can be applied")

            discount_cents = 0
            if code:
                self._require_processor()
                promotion = self.processor.lookup_promo_code(code)
                if not promotion:
                    raise OrderValidationError("Invalid or expired promo code")
                discount_cents = to_cents(calculate_discount(
                    from_cents(order["subtotal_cents"]),
                    percent_off=promotion.get("percent_off"),
                    amount_off=promotion.get("amount_off"),
                ))

            total_cents = order["subtotal_cents"] + order["delivery_fee_cents"] - discount_cents
            self.db.conn.execute("""
                UPDATE orders
                SET promo_code = ?, discount_cents = ?, total_amount_cents = ?, updated_at = CURRENT_TIMESTAMP
                WHERE order_id = ?
            """, [code or None, discount_cents, total_cents, order_id])
            logger.info(f"Order {order_id} promo {code or '(removed)'}: discount {from_cents(discount_cents)}")

        self.db.execute_transaction([apply_promo_operation], immediate=True)
        return self.query.get_order_detail(order_id)

    # payments ledger

    def charge_order(self, order_id: int, user_id: Optional[int] = None,
                     checkout_session_id: Optional[str] = None,
                     payment_token: Optional[str] = None) -> Dict[str, Any]:
        """
        Charge the order total through the payment processor

        A decline marks the order FAILED (retry allowed) and raises PaymentDeclinedError.

        Raises:
            PaymentDeclinedError: the processor refused the charge
            ProcessorError: the processor could not be reached
            ReconciliationError: charged, but the ledger write failed
        """
        self._require_processor()
        charged = {}

        def charge_operation():
            order = self.query.get_order_row(order_id)
            self._verify_order_access(order, user_id, checkout_session_id)
            if order["status"] == OrderStatus.CANCELLED:
                raise OrderStateError("Cannot pay for a cancelled order")
            if order["payment_status"] == PaymentStatus.PAID:
                raise OrderStateError("Order is already paid")
            if order["payment_status"] not in CHARGEABLE_PAYMENT_STATUSES:
                raise OrderStateError(f"Cannot charge an order with payment status {order['payment_status']}")

            amount_cents = order["total_amount_cents"]
            if amount_cents == 0:
                self._record_charge(order, 0, "PROMO", notes="Fully discounted")
                return None

            # a transport failure rolls the counter back, so a retry replays the same key
            attempt = order["charge_attempts"] + 1
            result = self.processor.charge(
                amount_cents=amount_cents,
                currency=self.currency,
                order_id=order_id,
                order_number=order["order_number"],
                idempotency_key=f"charge-{order['order_number']}-{amount_cents}-{attempt}",
                payment_token=payment_token,
            )
            self.db.conn.execute("UPDATE orders SET charge_attempts = ? WHERE order_id = ?", [attempt, order_id])
            if not result["success"]:
                reason = result.get("reason") or "Payment was declined"
                self._apply_payment_failure(order, reason)
                return reason

            charged["reference"] = result["processor_reference"]
            self._record_charge(order, amount_cents, "CARD", result["processor_reference"], via_processor=True)
            logger.info(f"Order {order_id} charged {from_cents(amount_cents)} ({result['processor_reference']})")
            return None

        with order_lock(order_id):
            try:
                declined_reason = self.db.execute_transaction([charge_operation], immediate=True)[0]
            except sqlite3.Error as e:
                if charged:
                    logger.critical(
                        f"RECONCILIATION REQUIRED: order {order_id} charged by processor "
                        f"({charged['reference']}) but the ledger write failed: {e}"
                    )
                    raise ReconciliationError(
                        "Charge succeeded but could not be recorded", order_id, charged["reference"]
                    ) from e
                raise

        if declined_reason:
            raise PaymentDeclinedError(declined_reason)
        return self.query.get_order_detail(order_id)

    def record_processor_payment(self, order_id: int, amount_cents: int, processor_reference: str) -> Dict[str, Any]:
        """
        Record a processor-confirmed charge (webhook); the same reference is recorded once

        Returns:
            {"order": order detail, "duplicate": bool}
        """
        if amount_cents <= 0:
            raise OrderValidationError("Payment amount must be greater than zero")

        def record_payment_operation():
            order = self.query.get_order_row(order_id)
            existing = self.db.fetch_one("""
                SELECT payment_id FROM payments
                WHERE order_id = ? AND reference = ? AND status = ?
            """, [order_id, processor_reference, LedgerStatus.COMPLETED])
            if existing:
                return True

            if order["status"] == OrderStatus.CANCELLED:
                logger.warning(f"Payment {processor_reference} received for cancelled order {order_id}")
            self._record_charge(order, amount_cents, "CARD", processor_reference, via_processor=True)
            return False

        with order_lock(order_id):
            try:
                duplicate = self.db.execute_transaction([record_payment_operation], immediate=True)[0]
            except sqlite3.Error as e:
                logger.critical(
                    f"RECONCILIATION REQUIRED: processor payment {processor_reference} for order {order_id} "
                    f"could not be recorded: {e}"
                )
                raise ReconciliationError(
                    "Payment confirmation could not be recorded", order_id, processor_reference
                ) from e

        if duplicate:
            logger.info(f"Duplicate payment confirmation {processor_reference} for order {order_id} ignored")
        return {"order": self.query.get_order_detail(order_id), "duplicate": duplicate}

    def record_payment_failure(self, order_id: int, reason: str) -> Dict[str, Any]:
        def record_failure_operation():
            self._apply_payment_failure(self.query.get_order_row(order_id), reason)

        self.db.execute_transaction([record_failure_operation], immediate=True)
        return self.query.get_order_detail(order_id)

    def admin_record_payment(self, admin_user_id: int, order_id: int, amount, method: str,
                             reference: Optional[str] = None, notes: Optional[str] = None) -> Dict[str, Any]:
        """
        Record a payment taken outside the processor (cash, check, house account settlement)
        """
        self.support._verify_admin_permission(admin_user_id)
        method = (method or "").upper()
        if method not in MANUAL_PAYMENT_METHODS:
            raise OrderValidationError(f"Payment method must be one of {', '.join(MANUAL_PAYMENT_METHODS)}")
        amount_cents = to_cents(to_money(amount))
        if amount_cents <= 0:
            raise OrderValidationError("Payment amount must be greater than zero")

        def manual_payment_operation():
            order = self.query.get_order_row(order_id)
            if order["payment_status"] == PaymentStatus.REFUNDED:
                raise OrderStateError("Cannot record a payment on a refunded order")
            self._record_charge(order, amount_cents, method, reference, notes, recorded_by=admin_user_id)
            logger.info(f"Manual {method} payment {from_cents(amount_cents)} on order {order_id} "
                        f"by admin {admin_user_id}")

        with order_lock(order_id):
            self.db.execute_transaction([manual_payment_operation], immediate=True)
        return self.query.get_order_detail(order_id)

    def refund_order(self, admin_user_id: int, order_id: int, amount, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Refund part or all of a paid order

        Serialized per order: the balance check, the processor refund and the ledger
        append run under one lock and one write transaction.

        Returns:
            {"order": order detail, "refund": {payment_id, amount, max_refundable, remaining, payment_status}}

        Raises:
            RefundError: order not PAID or amount out of bounds
            PaymentDeclinedError: the processor refused the refund
            ReconciliationError: refunded by the processor, but the ledger write failed
        """
        self.support._verify_admin_permission(admin_user_id)
        refunded = {}

        def refund_operation():
            order = self.query.get_order_row(order_id)
            payments = self.db.fetch_all("SELECT amount_cents, status FROM payments WHERE order_id = ?", [order_id])
            refund = compute_refund(order["total_amount_cents"], order["payment_status"], payments, amount)

            reference = None
            if order["processor_payment_id"]:
                self._require_processor()
                result = self.processor.refund(
                    processor_reference=order["processor_payment_id"],
                    amount_cents=refund["amount_cents"],
                    currency=self.currency,
                    order_id=order_id,
                    idempotency_key=f"refund-{order['order_number']}-{refund['refunded_before_cents']}-"
                                    f"{refund['amount_cents']}",
                )
                if not result["success"]:
                    raise PaymentDeclinedError(result.get("reason") or "Refund was declined")
                reference = result["processor_reference"]
                refunded["reference"] = reference

            payment_id = self._append_payment(
                order_id, -refund["amount_cents"], order["payment_method"] or "OTHER",
                LedgerStatus.REFUNDED, reference, reason, admin_user_id
            )
            payment_status = self._refresh_payment_status(order_id)
            return {
                "payment_id": payment_id,
                "amount": float(from_cents(refund["amount_cents"])),
                "max_refundable": float(from_cents(refund["max_refundable_cents"])),
                "remaining": float(from_cents(refund["remaining_cents"])),
                "payment_status": payment_status,
            }

        with order_lock(order_id):
            try:
                refund_result = self.db.execute_transaction([refund_operation], immediate=True)[0]
            except sqlite3.Error as e:
                if refunded:
                    logger.critical(
                        f"RECONCILIATION REQUIRED: order {order_id} refunded by processor "
                        f"({refunded['reference']}) but the ledger write failed: {e}"
                    )
                    raise ReconciliationError(
                        "Refund succeeded but could not be recorded", order_id, refunded["reference"]
                    ) from e
                raise

        logger.info(f"Order {order_id} refunded {refund_result['amount']} by admin {admin_user_id}, "
                    f"remaining {refund_result['remaining']}")
        return {"order": self.query.get_order_detail(order_id), "refund": refund_result}
