# Test configuration and fixtures

import pytest
import os
import sys
from pathlib import Path
from fastapi.testclient import TestClient

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

os.environ['CONFIG_ENV'] = 'testing'

from api.main import app
from api.auth.routes import get_database
from db.manager import DatabaseManager
from db.schema import create_tables
from db.core_operations import CoreOperations
from db.query_operations import QueryOperations
from db.supporting_operations import SupportingOperations

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-password"

ENTREES_BY_DAY = {
    1: "Pollo Guisado",
    2: "Carne Molida",
    3: "Pescado Frito",
    4: "Cerdo Asado",
    5: "Pollo al Horno",
}


class FakeProcessor:
    """Payment processor double that records every call"""

    def __init__(self):
        self.charges = []
        self.refunds = []
        self.decline_reason = None
        self.promotions = {"WELCOME10": {"percent_off": 10}, "LUNCH5": {"amount_off": 5}}

    def charge(self, amount_cents, currency, order_id, order_number, idempotency_key, payment_token=None):
        self.charges.append({"amount_cents": amount_cents, "order_id": order_id, "key": idempotency_key})
        if self.decline_reason:
            return {"success": False, "reason": self.decline_reason}
        return {"success": True, "processor_reference": f"ch_{len(self.charges)}"}

    def refund(self, processor_reference, amount_cents, currency, order_id, idempotency_key):
        self.refunds.append({"amount_cents": amount_cents, "order_id": order_id, "charge": processor_reference})
        if self.decline_reason:
            return {"success": False, "reason": self.decline_reason}
        return {"success": True, "processor_reference": f"re_{len(self.refunds)}"}

    def lookup_promo_code(self, code):
        return self.promotions.get(code)


@pytest.fixture
def db_path(tmp_path):
    """Fresh sqlite file with the schema applied"""
    path = str(tmp_path / "lunch_orders_test.db")
    db = DatabaseManager(path, auto_connect=True)
    create_tables(db.conn)
    db.close()
    return path


@pytest.fixture
def test_db(db_path):
    db = DatabaseManager(db_path, auto_connect=True)
    yield db
    db.close()


@pytest.fixture
def fake_processor():
    return FakeProcessor()


@pytest.fixture
def support_ops(test_db):
    return SupportingOperations(test_db)


@pytest.fixture
def query_ops(test_db):
    return QueryOperations(test_db)


@pytest.fixture
def core_ops(test_db, fake_processor):
    return CoreOperations(test_db, processor=fake_processor)


@pytest.fixture
def admin_user(support_ops):
    """Bootstrap administrator, returns user_id"""
    return support_ops.ensure_admin(ADMIN_EMAIL, ADMIN_PASSWORD)["user_id"]


@pytest.fixture
def pricing(support_ops):
    return support_ops.update_pricing_config(
        None, completa_price="12.00", extra_entree_price="7.00",
        extra_side_price="4.00", delivery_fee_per_meal="2.00"
    )


@pytest.fixture
def menu(support_ops, admin_user, pricing):
    """
    Published week with one entree per weekday, three regular sides, desserts,
    soups, a staple side and a side that is not on this week's menu
    """
    weekly_menu_id = support_ops.create_weekly_menu(admin_user, "2025-06-02")["weekly_menu_id"]

    def add(name, kind, day_of_week=None, **flags):
        item_id = support_ops.create_menu_item(admin_user, name, kind, **flags)["menu_item_id"]
        if day_of_week is not None:
            support_ops.add_weekly_menu_item(admin_user, weekly_menu_id, item_id, day_of_week)
        return item_id

    ids = {"weekly_menu_id": weekly_menu_id, "entrees": {}}
    for day_of_week, name in ENTREES_BY_DAY.items():
        ids["entrees"][day_of_week] = add(name, "ENTREE", day_of_week)
    ids["rice"] = add("Arroz Blanco", "SIDE", 0)
    ids["beans"] = add("Habichuelas", "SIDE", 0)
    ids["salad"] = add("Ensalada Verde", "SIDE", 0)
    ids["flan"] = add("Flan", "SIDE", 0, is_dessert=True)
    ids["rice_pudding"] = add("Arroz con Leche", "SIDE", 0, is_dessert=True)
    ids["sancocho"] = add("Sancocho", "SIDE", 0, is_soup=True)
    ids["tostones"] = add("Tostones", "SIDE", is_staple=True)
    ids["yuca"] = add("Yuca Frita", "SIDE")

    support_ops.publish_weekly_menu(admin_user, weekly_menu_id)
    return ids


@pytest.fixture
def build_days(menu):
    """
    Builder for order_days: one completa per day with the day's entree and
    rice/beans/salad unless sides are given
    """
    def build(days=(1, 2, 3), sides=None, completas_per_day=1, extra_entrees=None, extra_sides=None):
        side_list = sides or [
            {"menu_item_id": menu["rice"], "quantity": 1},
            {"menu_item_id": menu["beans"], "quantity": 1},
            {"menu_item_id": menu["salad"], "quantity": 1},
        ]
        order_days = []
        for day_of_week in days:
            order_days.append({
                "day_of_week": day_of_week,
                "completas": [
                    {"entree_id": menu["entrees"][day_of_week], "sides": [dict(s) for s in side_list]}
                    for _ in range(completas_per_day)
                ],
                "extra_entrees": list((extra_entrees or {}).get(day_of_week, [])),
                "extra_sides": list((extra_sides or {}).get(day_of_week, [])),
            })
        return order_days

    return build


@pytest.fixture
def customer(support_ops):
    """Registered customer account"""
    return support_ops.register_user("maria@example.com", "password123", "Maria", "Lopez", "555-123-4567")


@pytest.fixture
def customer_address(support_ops, customer):
    return support_ops.create_address(customer["customer_id"], "12 Calle Sol", "Miami", "FL", "33101")


@pytest.fixture
def guest_info():
    return {"email": "Guest@Example.com ", "first_name": "Ana", "last_name": "Diaz", "phone": "555-987-6543"}


@pytest.fixture
def client(db_path):
    """FastAPI test client bound to the per-test database"""
    def override_get_database():
        db = DatabaseManager(db_path, auto_connect=True)
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_database] = override_get_database
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
