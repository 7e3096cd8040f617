# Supporting operations: identities, addresses, pricing config and weekly menus

import secrets
import logging
from typing import List, Optional, Dict, Any

from ordering.errors import (
    AuthenticationRequiredError, ConfigurationError, IdentityConflictError,
    NotFoundError, OrderValidationError, PermissionDeniedError
)
from ordering.composition import ENTREE, SIDE
from ordering.pricing import PricingConfig, to_cents, to_money
from utils.security import hash_password, verify_password
from utils.validators import normalize_email, validate_phone, validate_week_start, validate_zip_code
from .manager import DatabaseManager

logger = logging.getLogger(__name__)

GUEST_REQUIRED_FIELDS = ("email", "first_name", "last_name", "phone")

ROLE_CUSTOMER = "CUSTOMER"
ROLE_ADMIN = "ADMIN"


class SupportingOperations:
    """
    Identity, address, pricing and menu operations around the order engine
    """
    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    # ---- users / customers ----

    def _user_row(self, where: str, params: List) -> Optional[Dict[str, Any]]:
        return self.db.fetch_one(f"""
            SELECT u.user_id, u.email, u.password_hash, u.first_name, u.last_name, u.phone,
                   u.role, u.status, u.created_at, c.customer_id, c.is_credit_account
            FROM users u
            LEFT JOIN customers c ON c.user_id = u.user_id
            WHERE {where}
        """, params)

    @staticmethod
    def _public_user(row: Dict[str, Any]) -> Dict[str, Any]:
        user = {k: v for k, v in row.items() if k != "password_hash"}
        user["is_shadow"] = row["password_hash"] is None
        user["is_admin"] = row["role"] == ROLE_ADMIN
        user["is_credit_account"] = bool(row.get("is_credit_account"))
        return user

    def _verify_admin_permission(self, admin_user_id: int):
        admin = self._user_row("u.user_id = ? AND u.status = 'active'", [admin_user_id])
        if not admin or admin["role"] != ROLE_ADMIN:
            raise PermissionDeniedError("Administrator access required")

    def _ensure_customer(self, user_id: int) -> int:
        row = self.db.fetch_one("SELECT customer_id FROM customers WHERE user_id = ?", [user_id])
        if row:
            return row["customer_id"]
        cursor = self.db.conn.execute("INSERT INTO customers (user_id) VALUES (?)", [user_id])
        return cursor.lastrowid

    def _insert_user(self, email: str, password_hash: Optional[str], first_name: str,
                     last_name: str, phone: Optional[str], role: str = ROLE_CUSTOMER) -> int:
        cursor = self.db.conn.execute("""
            INSERT INTO users (email, password_hash, first_name, last_name, phone, role)
            VALUES (?, ?, ?, ?, ?, ?)
        """, [email, password_hash, first_name, last_name, phone, role])
        return cursor.lastrowid

    def get_user_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        row = self._user_row("u.user_id = ?", [user_id])
        return self._public_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        row = self._user_row("u.email = ?", [normalize_email(email)])
        return self._public_user(row) if row else None

    def register_user(self, email: str, password: str, first_name: str, last_name: str,
                      phone: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a real (password-bearing) account

        A shadow identity left by earlier guest checkouts is upgraded in place, so
        its orders stay with the new account.

        Raises:
            IdentityConflictError: a real account already uses the email
        """
        email = normalize_email(email)

        def register_operation():
            existing = self._user_row("u.email = ?", [email])
            if existing and existing["password_hash"] is not None:
                raise IdentityConflictError("An account with this email already exists")

            if existing:
                self.db.conn.execute("""
                    UPDATE users
                    SET password_hash = ?, first_name = ?, last_name = ?,
                        phone = COALESCE(?, phone), updated_at = CURRENT_TIMESTAMP
                    WHERE user_id = ?
                """, [hash_password(password), first_name, last_name, phone, existing["user_id"]])
                user_id = existing["user_id"]
                logger.info(f"Shadow identity upgraded to account: user {user_id}")
            else:
                user_id = self._insert_user(email, hash_password(password), first_name, last_name, phone)
                logger.info(f"Account registered: user {user_id}")

            self._ensure_customer(user_id)
            return self._public_user(self._user_row("u.user_id = ?", [user_id]))

        return self.db.execute_transaction([register_operation], immediate=True)[0]

    def authenticate_user(self, email: str, password: str) -> Dict[str, Any]:
        """
        Raises:
            AuthenticationRequiredError: unknown email, shadow identity, wrong password or suspended
        """
        row = self._user_row("u.email = ?", [normalize_email(email)])
        if not row or not verify_password(password, row["password_hash"]):
            raise AuthenticationRequiredError("Invalid email or password")
        if row["status"] != "active":
            raise AuthenticationRequiredError("Account is suspended")
        return self._public_user(row)

    def ensure_admin(self, email: str, password: str, first_name: str = "Admin",
                     last_name: str = "User") -> Dict[str, Any]:
        """Create the bootstrap administrator, or promote an existing account"""
        email = normalize_email(email)

        def ensure_admin_operation():
            existing = self._user_row("u.email = ?", [email])
            if existing:
                self.db.conn.execute(
                    "UPDATE users SET role = ?, updated_at = CURRENT_TIMESTAMP WHERE user_id = ?",
                    [ROLE_ADMIN, existing["user_id"]]
                )
                user_id = existing["user_id"]
            else:
                user_id = self._insert_user(email, hash_password(password), first_name, last_name, None, ROLE_ADMIN)
            return self._public_user(self._user_row("u.user_id = ?", [user_id]))

        return self.db.execute_transaction([ensure_admin_operation])[0]

    def set_credit_account(self, admin_user_id: int, customer_id: int, is_credit_account: bool) -> Dict[str, Any]:
        self._verify_admin_permission(admin_user_id)
        cursor = self.db.execute_single(
            "UPDATE customers SET is_credit_account = ? WHERE customer_id = ?",
            [int(is_credit_account), customer_id]
        )
        if cursor.rowcount == 0:
            raise NotFoundError("Customer not found")
        return {"customer_id": customer_id, "is_credit_account": is_credit_account}

    def resolve_checkout_identity(self, user_id: Optional[int] = None,
                                  guest_info: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Map a checkout to a durable customer

        Args:
            user_id: authenticated user, if any
            guest_info: {email, first_name, last_name, phone} for guest checkout

        Returns:
            dict with customer_id, user_id, is_guest, guest_token, is_credit_account

        Raises:
            OrderValidationError: guest details missing
            IdentityConflictError: the email belongs to a real account
        """
        def resolve_operation():
            if user_id is not None:
                user = self._user_row("u.user_id = ? AND u.status = 'active'", [user_id])
                if not user:
                    raise AuthenticationRequiredError("Please sign in again")
                return {
                    "customer_id": self._ensure_customer(user_id),
                    "user_id": user_id,
                    "is_guest": False,
                    "guest_token": None,
                    "is_credit_account": bool(user["is_credit_account"]),
                }

            info = guest_info or {}
            missing = [field for field in GUEST_REQUIRED_FIELDS if not str(info.get(field) or "").strip()]
            if missing:
                raise OrderValidationError(
                    f"Guest checkout requires {', '.join(GUEST_REQUIRED_FIELDS).replace('_', ' ')}"
                )
            if not validate_phone(info["phone"]):
                raise OrderValidationError("Invalid phone number")

            email = normalize_email(info["email"])
            first_name = info["first_name"].strip()
            last_name = info["last_name"].strip()
            phone = info["phone"].strip()

            existing = self._user_row("u.email = ?", [email])
            if existing and existing["password_hash"] is not None:
                raise IdentityConflictError(
                    "An account already exists for this email. Please sign in to place your order"
                )

            if existing:
                # shadow identities keep the latest contact details given at checkout
                self.db.conn.execute("""
                    UPDATE users SET first_name = ?, last_name = ?, phone = ?, updated_at = CURRENT_TIMESTAMP
                    WHERE user_id = ?
                """, [first_name, last_name, phone, existing["user_id"]])
                shadow_user_id = existing["user_id"]
            else:
                shadow_user_id = self._insert_user(email, None, first_name, last_name, phone)
                logger.info(f"Shadow identity created for guest checkout: user {shadow_user_id}")

            customer_id = self._ensure_customer(shadow_user_id)
            credit = self.db.fetch_one(
                "SELECT is_credit_account FROM customers WHERE customer_id = ?", [customer_id]
            )
            return {
                "customer_id": customer_id,
                "user_id": shadow_user_id,
                "is_guest": True,
                "guest_token": secrets.token_urlsafe(32),
                "is_credit_account": bool(credit["is_credit_account"]),
            }

        return self.db.execute_transaction([resolve_operation], immediate=True)[0]

    # ---- addresses ----

    def create_address(self, customer_id: int, street: str, city: str, state: str, zip_code: str,
                       unit: str = None, delivery_notes: str = None, is_default: bool = False) -> Dict[str, Any]:
        if not (street or "").strip() or not (city or "").strip() or not (state or "").strip():
            raise OrderValidationError("Street, city and state are required")
        if not validate_zip_code(zip_code):
            raise OrderValidationError("Invalid zip code")

        def create_address_operation():
            has_address = self.db.fetch_one(
                "SELECT 1 AS found FROM addresses WHERE customer_id = ? LIMIT 1", [customer_id]
            )
            make_default = is_default or not has_address
            if make_default:
                self.db.conn.execute("UPDATE addresses SET is_default = 0 WHERE customer_id = ?", [customer_id])
            cursor = self.db.conn.execute("""
                INSERT INTO addresses (customer_id, street, unit, city, state, zip_code, delivery_notes, is_default)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, [customer_id, street.strip(), unit, city.strip(), state.strip(), zip_code.strip(),
                  delivery_notes, int(make_default)])
            return self.get_address(cursor.lastrowid)

        return self.db.execute_transaction([create_address_operation])[0]

    def get_address(self, address_id: int) -> Optional[Dict[str, Any]]:
        address = self.db.fetch_one("SELECT * FROM addresses WHERE address_id = ?", [address_id])
        if address:
            address["is_default"] = bool(address["is_default"])
        return address

    def get_address_owner(self, address_id: Optional[int]) -> Optional[int]:
        """Customer owning an address, None when the address does not exist"""
        if address_id is None:
            return None
        row = self.db.fetch_one("SELECT customer_id FROM addresses WHERE address_id = ?", [address_id])
        return row["customer_id"] if row else None

    def list_addresses(self, customer_id: int) -> List[Dict[str, Any]]:
        addresses = self.db.fetch_all("""
            SELECT * FROM addresses WHERE customer_id = ?
            ORDER BY is_default DESC, address_id
        """, [customer_id])
        for address in addresses:
            address["is_default"] = bool(address["is_default"])
        return addresses

    # ---- pricing config ----

    def get_pricing_row(self) -> Dict[str, Any]:
        row = self.db.fetch_one("SELECT * FROM pricing_config WHERE pricing_config_id = 1")
        if not row:
            logger.error("Pricing config is missing; run scripts/init_db.py or set prices in the admin")
            raise ConfigurationError("Pricing config is not set up")
        return row

    def get_pricing_config(self) -> PricingConfig:
        """
        Raises:
            ConfigurationError: no pricing config row exists
        """
        return PricingConfig.from_row(self.get_pricing_row())

    def update_pricing_config(self, admin_user_id: Optional[int], completa_price, extra_entree_price,
                              extra_side_price, delivery_fee_per_meal) -> PricingConfig:
        """
        Replace the singleton pricing config; existing orders keep their snapshots

        Args:
            admin_user_id: administrator making the change, None for bootstrap seeding
        """
        if admin_user_id is not None:
            self._verify_admin_permission(admin_user_id)

        pricing = PricingConfig(
            completa_price=to_money(completa_price),
            extra_entree_price=to_money(extra_entree_price),
            extra_side_price=to_money(extra_side_price),
            delivery_fee_per_meal=to_money(delivery_fee_per_meal),
        )

        def update_pricing_operation():
            self.db.conn.execute("""
                INSERT INTO pricing_config (pricing_config_id, completa_price_cents, extra_entree_price_cents,
                                            extra_side_price_cents, delivery_fee_per_meal_cents, updated_by)
                VALUES (1, ?, ?, ?, ?, ?)
                ON CONFLICT(pricing_config_id) DO UPDATE SET
                    completa_price_cents = excluded.completa_price_cents,
                    extra_entree_price_cents = excluded.extra_entree_price_cents,
                    extra_side_price_cents = excluded.extra_side_price_cents,
                    delivery_fee_per_meal_cents = excluded.delivery_fee_per_meal_cents,
                    updated_by = excluded.updated_by,
                    updated_at = CURRENT_TIMESTAMP
            """, [to_cents(pricing.completa_price), to_cents(pricing.extra_entree_price),
                  to_cents(pricing.extra_side_price), to_cents(pricing.delivery_fee_per_meal), admin_user_id])
            return pricing

        result = self.db.execute_transaction([update_pricing_operation])[0]
        logger.info(f"Pricing config updated by {admin_user_id}: {pricing.model_dump()}")
        return result

    # ---- menus ----

    def create_menu_item(self, admin_user_id: int, name: str, kind: str, is_dessert: bool = False,
                         is_soup: bool = False, is_staple: bool = False, description: str = None) -> Dict[str, Any]:
        self._verify_admin_permission(admin_user_id)
        if kind not in (ENTREE, SIDE):
            raise OrderValidationError("Menu item kind must be ENTREE or SIDE")
        if kind == ENTREE and (is_dessert or is_soup):
            raise OrderValidationError("Only sides can be desserts or soups")

        cursor = self.db.execute_single("""
            INSERT INTO menu_items (name, description, kind, is_dessert, is_soup, is_staple)
            VALUES (?, ?, ?, ?, ?, ?)
        """, [name.strip(), description, kind, int(is_dessert), int(is_soup), int(is_staple)])
        return self.get_menu_item(cursor.lastrowid)

    def set_menu_item_status(self, admin_user_id: int, menu_item_id: int, status: str) -> Dict[str, Any]:
        self._verify_admin_permission(admin_user_id)
        if status not in ("active", "inactive"):
            raise OrderValidationError("Menu item status must be active or inactive")
        cursor = self.db.execute_single(
            "UPDATE menu_items SET status = ? WHERE menu_item_id = ?", [status, menu_item_id]
        )
        if cursor.rowcount == 0:
            raise NotFoundError("Menu item not found")
        return self.get_menu_item(menu_item_id)

    @staticmethod
    def _menu_item(row: Dict[str, Any]) -> Dict[str, Any]:
        for flag in ("is_dessert", "is_soup", "is_staple"):
            row[flag] = bool(row[flag])
        return row

    def get_menu_item(self, menu_item_id: int) -> Optional[Dict[str, Any]]:
        row = self.db.fetch_one("SELECT * FROM menu_items WHERE menu_item_id = ?", [menu_item_id])
        return self._menu_item(row) if row else None

    def create_weekly_menu(self, admin_user_id: int, week_start_date: str) -> Dict[str, Any]:
        self._verify_admin_permission(admin_user_id)
        if not validate_week_start(week_start_date):
            raise OrderValidationError("Week start date must be a Monday (YYYY-MM-DD)")
        if self.db.fetch_one("SELECT 1 AS found FROM weekly_menus WHERE week_start_date = ?", [week_start_date]):
            raise OrderValidationError(f"A menu for the week of {week_start_date} already exists")

        cursor = self.db.execute_single(
            "INSERT INTO weekly_menus (week_start_date) VALUES (?)", [week_start_date]
        )
        return self.get_weekly_menu(cursor.lastrowid, require_published=False)

    def add_weekly_menu_item(self, admin_user_id: int, weekly_menu_id: int, menu_item_id: int,
                             day_of_week: int) -> Dict[str, Any]:
        """
        Offer an item on a weekly menu

        Args:
            day_of_week: 1..5 for a single weekday, 0 for every day of the week
        """
        self._verify_admin_permission(admin_user_id)
        if day_of_week not in range(0, 6):
            raise OrderValidationError("Day of week must be 0 (every day) or 1..5")
        if not self.db.fetch_one("SELECT 1 AS found FROM weekly_menus WHERE weekly_menu_id = ?", [weekly_menu_id]):
            raise NotFoundError("Weekly menu not found")
        if not self.get_menu_item(menu_item_id):
            raise NotFoundError("Menu item not found")

        self.db.execute_single("""
            INSERT OR IGNORE INTO weekly_menu_items (weekly_menu_id, menu_item_id, day_of_week)
            VALUES (?, ?, ?)
        """, [weekly_menu_id, menu_item_id, day_of_week])
        return self.get_weekly_menu(weekly_menu_id, require_published=False)

    def publish_weekly_menu(self, admin_user_id: int, weekly_menu_id: int, is_published: bool = True) -> Dict[str, Any]:
        self._verify_admin_permission(admin_user_id)
        cursor = self.db.execute_single("""
            UPDATE weekly_menus
            SET is_published = ?, published_at = CASE WHEN ? THEN CURRENT_TIMESTAMP ELSE published_at END
            WHERE weekly_menu_id = ?
        """, [int(is_published), int(is_published), weekly_menu_id])
        if cursor.rowcount == 0:
            raise NotFoundError("Weekly menu not found")
        logger.info(f"Weekly menu {weekly_menu_id} published={is_published} by {admin_user_id}")
        return self.get_weekly_menu(weekly_menu_id, require_published=False)

    def list_weekly_menus(self, published_only: bool = True) -> List[Dict[str, Any]]:
        query = "SELECT * FROM weekly_menus"
        if published_only:
            query += " WHERE is_published = 1"
        menus = self.db.fetch_all(query + " ORDER BY week_start_date DESC")
        for menu in menus:
            menu["is_published"] = bool(menu["is_published"])
        return menus

    def find_weekly_menu(self, weekly_menu_id: int, require_published: bool = True) -> Dict[str, Any]:
        """Like get_weekly_menu, but a missing or hidden menu is a NotFoundError"""
        menu = self.db.fetch_one(
            "SELECT is_published FROM weekly_menus WHERE weekly_menu_id = ?", [weekly_menu_id]
        )
        if not menu or (require_published and not menu["is_published"]):
            raise NotFoundError("Weekly menu not found")
        return self.get_weekly_menu(weekly_menu_id, require_published)

    def _load_weekly_menu(self, weekly_menu_id: int, require_published: bool) -> Dict[str, Any]:
        menu = self.db.fetch_one("SELECT * FROM weekly_menus WHERE weekly_menu_id = ?", [weekly_menu_id])
        if not menu:
            logger.error(f"Weekly menu {weekly_menu_id} does not exist")
            raise ConfigurationError(f"Weekly menu {weekly_menu_id} not found")
        if require_published and not menu["is_published"]:
            logger.error(f"Weekly menu {weekly_menu_id} is not published")
            raise ConfigurationError(f"Weekly menu {weekly_menu_id} is not published")
        menu["is_published"] = bool(menu["is_published"])
        return menu

    def get_weekly_menu(self, weekly_menu_id: int, require_published: bool = True) -> Dict[str, Any]:
        """
        Weekly menu for display: items per day (0 = every day) plus staples
        """
        menu = self._load_weekly_menu(weekly_menu_id, require_published)
        rows = self.db.fetch_all("""
            SELECT wmi.day_of_week, mi.*
            FROM weekly_menu_items wmi
            JOIN menu_items mi ON mi.menu_item_id = wmi.menu_item_id
            WHERE wmi.weekly_menu_id = ? AND mi.status = 'active'
            ORDER BY wmi.day_of_week, mi.kind, mi.name
        """, [weekly_menu_id])

        days: Dict[int, List[Dict[str, Any]]] = {day: [] for day in range(0, 6)}
        for row in rows:
            day_of_week = row.pop("day_of_week")
            days[day_of_week].append(self._menu_item(row))

        staples = [
            self._menu_item(row) for row in self.db.fetch_all(
                "SELECT * FROM menu_items WHERE is_staple = 1 AND status = 'active' ORDER BY kind, name"
            )
        ]
        menu["days"] = days
        menu["staples"] = staples
        return menu

    def get_menu_snapshot(self, weekly_menu_id: int, menu_item_ids: List[int] = None,
                          require_published: bool = True) -> Dict[str, Any]:
        """
        Read-only view of what an order may reference

        Returns:
            {weekly_menu_id, week_start_date, is_published,
             items: {menu_item_id: item}, offerings: {menu_item_id: set(days)}}

        Raises:
            ConfigurationError: the menu does not exist or is not published
        """
        menu = self._load_weekly_menu(weekly_menu_id, require_published)

        offerings: Dict[int, set] = {}
        for row in self.db.fetch_all(
            "SELECT menu_item_id, day_of_week FROM weekly_menu_items WHERE weekly_menu_id = ?",
            [weekly_menu_id]
        ):
            offerings.setdefault(row["menu_item_id"], set()).add(row["day_of_week"])

        wanted = set(offerings) | set(menu_item_ids or [])
        params = sorted(wanted)
        placeholders = ','.join('?' for _ in params)
        query = "SELECT * FROM menu_items WHERE is_staple = 1"
        if params:
            query += f" OR menu_item_id IN ({placeholders})"
        items = {row["menu_item_id"]: self._menu_item(row) for row in self.db.fetch_all(query, params)}

        return {
            "weekly_menu_id": menu["weekly_menu_id"],
            "week_start_date": menu["week_start_date"],
            "is_published": menu["is_published"],
            "items": items,
            "offerings": offerings,
        }
