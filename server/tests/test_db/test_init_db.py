# Database initialisation script tests

from decimal import Decimal

from scripts.init_db import init_database, seed_pricing_config

PRICING_DEFAULTS = {
    "completa_price": "12.00",
    "extra_entree_price": "7.00",
    "extra_side_price": "4.00",
    "delivery_fee_per_meal": "2.00",
}


class StubConfig:
    def __init__(self, db_path, values):
        self.db_path = db_path
        self.values = values

    def get(self, key, default=None):
        value = self.values
        for part in key.split('.'):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    def get_database_config(self):
        return {"path": self.db_path}


class TestSeedPricing:
    def test_seeds_when_missing(self, support_ops):
        seed_pricing_config(support_ops, PRICING_DEFAULTS)
        assert support_ops.get_pricing_config().completa_price == Decimal("12.00")

    def test_existing_pricing_kept(self, support_ops, pricing):
        seed_pricing_config(support_ops, dict(PRICING_DEFAULTS, completa_price="15.00"))
        assert support_ops.get_pricing_config().completa_price == Decimal("12.00")

    def test_no_defaults_leaves_table_empty(self, support_ops, test_db):
        seed_pricing_config(support_ops, {})
        assert test_db.fetch_one("SELECT 1 AS found FROM pricing_config") is None


class TestInitDatabase:
    def test_seeds_pricing_and_admin(self, db_path):
        config = StubConfig(db_path, {
            "pricing_defaults": PRICING_DEFAULTS,
            "admin": {"email": "Owner@Example.com", "password": "owner-password"},
        })
        db_manager = init_database(config)
        try:
            admin = db_manager.fetch_one("SELECT email, role FROM users")
            assert admin == {"email": "owner@example.com", "role": "ADMIN"}
            assert db_manager.fetch_one("SELECT completa_price_cents FROM pricing_config")["completa_price_cents"] == 1200
        finally:
            db_manager.close()

    def test_runs_twice(self, db_path):
        config = StubConfig(db_path, {
            "pricing_defaults": PRICING_DEFAULTS,
            "admin": {"email": "owner@example.com", "password": "owner-password"},
        })
        init_database(config).close()
        db_manager = init_database(config)
        try:
            assert db_manager.fetch_one("SELECT COUNT(*) AS total FROM users")["total"] == 1
        finally:
            db_manager.close()
