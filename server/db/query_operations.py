# Read-side operations: order detail, order lists, guest lookup, ledger

import logging
from typing import List, Optional, Dict, Any

from ordering.errors import NotFoundError, OrderValidationError
from ordering.lifecycle import summarize_ledger
from .manager import DatabaseManager

logger = logging.getLogger(__name__)

ORDER_COLUMNS = """
    o.order_id, o.order_number, o.customer_id, o.weekly_menu_id, o.is_pickup, o.address_id,
    o.subtotal_cents, o.delivery_fee_cents, o.discount_cents, o.promo_code, o.total_amount_cents,
    o.status, o.payment_status, o.payment_method, o.notes, o.checkout_session_id,
    o.processor_payment_id, o.created_at, o.updated_at,
    wm.week_start_date, u.user_id, u.email, u.first_name, u.last_name, u.phone,
    CASE WHEN u.password_hash IS NULL THEN 1 ELSE 0 END AS is_guest
"""

ORDER_FROM = """
    FROM orders o
    JOIN weekly_menus wm ON wm.weekly_menu_id = o.weekly_menu_id
    JOIN customers c ON c.customer_id = o.customer_id
    JOIN users u ON u.user_id = c.user_id
"""

MONEY_FIELDS = ("subtotal", "delivery_fee", "discount", "total_amount")


def cents_to_amount(cents: int) -> float:
    return round(cents / 100.0, 2)


class QueryOperations:
    """
    Read-only queries over orders and the payments ledger
    """
    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def _validate_pagination(self, offset: int, limit: int, max_limit: int = 200):
        if offset < 0:
            raise OrderValidationError("Offset cannot be negative")
        if limit <= 0 or limit > max_limit:
            raise OrderValidationError(f"Limit must be between 1 and {max_limit}")

    @staticmethod
    def _serialize_order(row: Dict[str, Any]) -> Dict[str, Any]:
        order = dict(row)
        order["is_pickup"] = bool(order["is_pickup"])
        order["is_guest"] = bool(order["is_guest"])
        for field in MONEY_FIELDS:
            order[field] = cents_to_amount(order[f"{field}_cents"])
        return order

    def get_order_row(self, order_id: int) -> Dict[str, Any]:
        """
        Raw orders row

        Raises:
            NotFoundError: no such order
        """
        row = self.db.fetch_one("SELECT * FROM orders WHERE order_id = ?", [order_id])
        if not row:
            raise NotFoundError("Order not found")
        return row

    def get_order_payments(self, order_id: int) -> List[Dict[str, Any]]:
        payments = self.db.fetch_all("""
            SELECT payment_id, order_id, amount_cents, method, status, reference, notes,
                   recorded_by, created_at
            FROM payments WHERE order_id = ?
            ORDER BY payment_id
        """, [order_id])
        for payment in payments:
            payment["amount"] = cents_to_amount(payment["amount_cents"])
        return payments

    def get_order_days(self, order_id: int) -> List[Dict[str, Any]]:
        """
        Days of an order with items regrouped into completas and extras
        """
        rows = self.db.fetch_all("""
            SELECT od.order_day_id, od.day_of_week, oi.order_item_id, oi.menu_item_id, oi.quantity,
                   oi.unit_price_cents, oi.is_completa, oi.completa_group_id,
                   mi.name, mi.kind, mi.is_dessert, mi.is_soup
            FROM order_days od
            LEFT JOIN order_items oi ON oi.order_day_id = od.order_day_id
            LEFT JOIN menu_items mi ON mi.menu_item_id = oi.menu_item_id
            WHERE od.order_id = ?
            ORDER BY od.day_of_week, oi.order_item_id
        """, [order_id])

        days: Dict[int, Dict[str, Any]] = {}
        for row in rows:
            day = days.setdefault(row["day_of_week"], {
                "order_day_id": row["order_day_id"],
                "day_of_week": row["day_of_week"],
                "completas": [],
                "extra_entrees": [],
                "extra_sides": [],
            })
            if row["order_item_id"] is None:
                continue

            item = {
                "order_item_id": row["order_item_id"],
                "menu_item_id": row["menu_item_id"],
                "name": row["name"],
                "kind": row["kind"],
                "quantity": row["quantity"],
                "unit_price_cents": row["unit_price_cents"],
                "unit_price": cents_to_amount(row["unit_price_cents"]),
                "is_completa": bool(row["is_completa"]),
                "completa_group_id": row["completa_group_id"],
                "is_dessert": bool(row["is_dessert"]),
                "is_soup": bool(row["is_soup"]),
            }

            if item["completa_group_id"]:
                completa = next(
                    (c for c in day["completas"] if c["completa_group_id"] == item["completa_group_id"]),
                    None
                )
                if completa is None:
                    completa = {"completa_group_id": item["completa_group_id"], "entree": None, "sides": []}
                    day["completas"].append(completa)
                if item["kind"] == "ENTREE" and completa["entree"] is None:
                    completa["entree"] = item
                else:
                    completa["sides"].append(item)
            elif item["kind"] == "ENTREE":
                day["extra_entrees"].append(item)
            else:
                day["extra_sides"].append(item)

        return list(days.values())

    def get_order_detail(self, order_id: int) -> Dict[str, Any]:
        """
        Full order: header, customer, address, days and ledger summary

        Raises:
            NotFoundError: no such order
        """
        row = self.db.fetch_one(f"SELECT {ORDER_COLUMNS} {ORDER_FROM} WHERE o.order_id = ?", [order_id])
        if not row:
            raise NotFoundError("Order not found")

        order = self._serialize_order(row)
        order["address"] = None
        if order["address_id"] is not None:
            order["address"] = self.db.fetch_one("SELECT * FROM addresses WHERE address_id = ?", [order["address_id"]])
        order["days"] = self.get_order_days(order_id)

        payments = self.get_order_payments(order_id)
        ledger = summarize_ledger(payments)
        order["payments"] = payments
        order["paid_cents"] = ledger["paid_cents"]
        order["refunded_cents"] = ledger["refunded_cents"]
        order["refunded"] = cents_to_amount(ledger["refunded_cents"])
        order["max_refundable"] = cents_to_amount(max(order["total_amount_cents"] - ledger["refunded_cents"], 0))
        return order

    def get_customer_orders(self, customer_id: int, offset: int = 0, limit: int = 50) -> List[Dict[str, Any]]:
        self._validate_pagination(offset, limit)
        rows = self.db.fetch_all(f"""
            SELECT {ORDER_COLUMNS} {ORDER_FROM}
            WHERE o.customer_id = ?
            ORDER BY o.created_at DESC, o.order_id DESC
            LIMIT ? OFFSET ?
        """, [customer_id, limit, offset])
        return [self._serialize_order(row) for row in rows]

    def lookup_guest_order(self, guest_token: str) -> Dict[str, Any]:
        """
        Redeem a guest token: returns the order once, then the token is spent

        Raises:
            NotFoundError: unknown or already used token
        """
        def redeem_operation():
            row = self.db.fetch_one(
                "SELECT order_id, guest_token_used_at FROM orders WHERE guest_token = ?", [guest_token]
            )
            if not row or row["guest_token_used_at"] is not None:
                raise NotFoundError("Order not found")

            cursor = self.db.conn.execute("""
                UPDATE orders SET guest_token_used_at = CURRENT_TIMESTAMP
                WHERE order_id = ? AND guest_token_used_at IS NULL
            """, [row["order_id"]])
            if cursor.rowcount != 1:
                raise NotFoundError("Order not found")
            return self.get_order_detail(row["order_id"])

        return self.db.execute_transaction([redeem_operation], immediate=True)[0]

    def list_orders(self, status: str = None, payment_status: str = None, weekly_menu_id: int = None,
                    search: str = None, offset: int = 0, limit: int = 50) -> Dict[str, Any]:
        """
        Admin order list

        Args:
            search: matches order number, customer email or name
        """
        self._validate_pagination(offset, limit)

        conditions = []
        params: List[Any] = []
        if status:
            conditions.append("o.status = ?")
            params.append(status)
        if payment_status:
            conditions.append("o.payment_status = ?")
            params.append(payment_status)
        if weekly_menu_id:
            conditions.append("o.weekly_menu_id = ?")
            params.append(weekly_menu_id)
        if search:
            like = f"%{search.strip().lower()}%"
            conditions.append(
                "(LOWER(o.order_number) LIKE ? OR u.email LIKE ? "
                "OR LOWER(u.first_name || ' ' || u.last_name) LIKE ?)"
            )
            params.extend([like, like, like])

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        total_count = self.db.fetch_one(f"SELECT COUNT(*) AS total {ORDER_FROM} {where}", params)["total"]
        rows = self.db.fetch_all(f"""
            SELECT {ORDER_COLUMNS} {ORDER_FROM} {where}
            ORDER BY o.created_at DESC, o.order_id DESC
            LIMIT ? OFFSET ?
        """, params + [limit, offset])

        return {
            "orders": [self._serialize_order(row) for row in rows],
            "total_count": total_count,
            "offset": offset,
            "limit": limit,
        }
