# Database schema
# Money columns are integer cents

import logging

logger = logging.getLogger(__name__)

TABLES = {
    "pricing_config": """
        CREATE TABLE IF NOT EXISTS pricing_config (
            pricing_config_id INTEGER PRIMARY KEY CHECK (pricing_config_id = 1),
            completa_price_cents INTEGER NOT NULL CHECK (completa_price_cents >= 0),
            extra_entree_price_cents INTEGER NOT NULL CHECK (extra_entree_price_cents >= 0),
            extra_side_price_cents INTEGER NOT NULL CHECK (extra_side_price_cents >= 0),
            delivery_fee_per_meal_cents INTEGER NOT NULL CHECK (delivery_fee_per_meal_cents >= 0),
            updated_by INTEGER,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "menu_items": """
        CREATE TABLE IF NOT EXISTS menu_items (
            menu_item_id INTEGER PRIMARY KEY AUTOINCREMENT,
            name VARCHAR(120) NOT NULL,
            description TEXT,
            kind VARCHAR(10) NOT NULL CHECK (kind IN ('ENTREE', 'SIDE')),
            is_dessert BOOLEAN NOT NULL DEFAULT 0,
            is_soup BOOLEAN NOT NULL DEFAULT 0,
            is_staple BOOLEAN NOT NULL DEFAULT 0,
            status VARCHAR(20) NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'inactive')),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "weekly_menus": """
        CREATE TABLE IF NOT EXISTS weekly_menus (
            weekly_menu_id INTEGER PRIMARY KEY AUTOINCREMENT,
            week_start_date DATE NOT NULL UNIQUE,
            is_published BOOLEAN NOT NULL DEFAULT 0,
            published_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "weekly_menu_items": """
        CREATE TABLE IF NOT EXISTS weekly_menu_items (
            weekly_menu_item_id INTEGER PRIMARY KEY AUTOINCREMENT,
            weekly_menu_id INTEGER NOT NULL REFERENCES weekly_menus(weekly_menu_id) ON DELETE CASCADE,
            menu_item_id INTEGER NOT NULL REFERENCES menu_items(menu_item_id),
            day_of_week INTEGER NOT NULL CHECK (day_of_week BETWEEN 0 AND 5),
            UNIQUE(weekly_menu_id, menu_item_id, day_of_week)
        )
    """,
    "users": """
        CREATE TABLE IF NOT EXISTS users (
            user_id INTEGER PRIMARY KEY AUTOINCREMENT,
            email VARCHAR(255) NOT NULL UNIQUE,
            password_hash VARCHAR(255),
            first_name VARCHAR(80),
            last_name VARCHAR(80),
            phone VARCHAR(40),
            role VARCHAR(20) NOT NULL DEFAULT 'CUSTOMER' CHECK (role IN ('CUSTOMER', 'ADMIN')),
            status VARCHAR(20) NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'suspended')),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "customers": """
        CREATE TABLE IF NOT EXISTS customers (
            customer_id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL UNIQUE REFERENCES users(user_id),
            is_credit_account BOOLEAN NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "addresses": """
        CREATE TABLE IF NOT EXISTS addresses (
            address_id INTEGER PRIMARY KEY AUTOINCREMENT,
            customer_id INTEGER NOT NULL REFERENCES customers(customer_id),
            street VARCHAR(255) NOT NULL,
            unit VARCHAR(40),
            city VARCHAR(120) NOT NULL,
            state VARCHAR(40) NOT NULL,
            zip_code VARCHAR(12) NOT NULL,
            delivery_notes TEXT,
            is_default BOOLEAN NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "orders": """
        CREATE TABLE IF NOT EXISTS orders (
            order_id INTEGER PRIMARY KEY AUTOINCREMENT,
            order_number VARCHAR(20) NOT NULL UNIQUE,
            customer_id INTEGER NOT NULL REFERENCES customers(customer_id),
            weekly_menu_id INTEGER NOT NULL REFERENCES weekly_menus(weekly_menu_id),
            is_pickup BOOLEAN NOT NULL DEFAULT 0,
            address_id INTEGER REFERENCES addresses(address_id),
            subtotal_cents INTEGER NOT NULL,
            delivery_fee_cents INTEGER NOT NULL DEFAULT 0,
            discount_cents INTEGER NOT NULL DEFAULT 0,
            promo_code VARCHAR(32),
            total_amount_cents INTEGER NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'PENDING'
                CHECK (status IN ('PENDING', 'CONFIRMED', 'DELIVERED', 'CANCELLED')),
            payment_status VARCHAR(20) NOT NULL DEFAULT 'PENDING'
                CHECK (payment_status IN ('PENDING', 'PAID', 'FAILED', 'REFUNDED', 'CREDIT_ACCOUNT')),
            payment_method VARCHAR(20),
            notes TEXT,
            guest_token VARCHAR(64) UNIQUE,
            guest_token_used_at TIMESTAMP,
            checkout_session_id VARCHAR(64),
            processor_payment_id VARCHAR(64),
            charge_attempts INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            CHECK ((is_pickup = 1 AND address_id IS NULL) OR (is_pickup = 0 AND address_id IS NOT NULL)),
            UNIQUE(customer_id, weekly_menu_id, checkout_session_id)
        )
    """,
    "order_days": """
        CREATE TABLE IF NOT EXISTS order_days (
            order_day_id INTEGER PRIMARY KEY AUTOINCREMENT,
            order_id INTEGER NOT NULL REFERENCES orders(order_id) ON DELETE CASCADE,
            day_of_week INTEGER NOT NULL CHECK (day_of_week BETWEEN 1 AND 5),
            UNIQUE(order_id, day_of_week)
        )
    """,
    "order_items": """
        CREATE TABLE IF NOT EXISTS order_items (
            order_item_id INTEGER PRIMARY KEY AUTOINCREMENT,
            order_day_id INTEGER NOT NULL REFERENCES order_days(order_day_id) ON DELETE CASCADE,
            menu_item_id INTEGER NOT NULL REFERENCES menu_items(menu_item_id),
            quantity INTEGER NOT NULL CHECK (quantity > 0),
            unit_price_cents INTEGER NOT NULL CHECK (unit_price_cents >= 0),
            is_completa BOOLEAN NOT NULL DEFAULT 0,
            completa_group_id VARCHAR(40)
        )
    """,
    "payments": """
        CREATE TABLE IF NOT EXISTS payments (
            payment_id INTEGER PRIMARY KEY AUTOINCREMENT,
            order_id INTEGER NOT NULL REFERENCES orders(order_id),
            amount_cents INTEGER NOT NULL,
            method VARCHAR(20) NOT NULL,
            status VARCHAR(20) NOT NULL CHECK (status IN ('COMPLETED', 'REFUNDED')),
            reference VARCHAR(64),
            notes TEXT,
            recorded_by INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
}

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_weekly_menu_items_menu ON weekly_menu_items(weekly_menu_id, day_of_week)",
    "CREATE INDEX IF NOT EXISTS idx_addresses_customer ON addresses(customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_orders_customer ON orders(customer_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status, payment_status)",
    "CREATE INDEX IF NOT EXISTS idx_orders_processor_payment ON orders(processor_payment_id)",
    "CREATE INDEX IF NOT EXISTS idx_order_items_day ON order_items(order_day_id)",
    "CREATE INDEX IF NOT EXISTS idx_payments_order ON payments(order_id)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_payments_reference ON payments(order_id, reference, status) "
    "WHERE reference IS NOT NULL",
]

# the ledger is append-only
TRIGGERS = [
    """
    CREATE TRIGGER IF NOT EXISTS payments_no_update
    BEFORE UPDATE ON payments
    BEGIN
        SELECT RAISE(ABORT, 'payments ledger rows are immutable');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS payments_no_delete
    BEFORE DELETE ON payments
    BEGIN
        SELECT RAISE(ABORT, 'payments ledger rows are immutable');
    END
    """,
]


def create_tables(conn):
    """
    Create every table, index and trigger on an open sqlite3 connection

    Args:
        conn: sqlite3 connection
    """
    for table_name, ddl in TABLES.items():
        conn.execute(ddl)
        logger.debug(f"Table ready: {table_name}")

    for ddl in INDEXES + TRIGGERS:
        conn.execute(ddl)

    conn.commit()
    logger.info(f"Schema ready: {len(TABLES)} tables")
