#!/usr/bin/env python3
# Database initialisation: schema, default pricing config and the bootstrap administrator

import sys
import logging
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from db.manager import DatabaseManager
from db.schema import TABLES, create_tables
from db.supporting_operations import SupportingOperations
from utils.config import Config


def seed_pricing_config(support: SupportingOperations, pricing_defaults: dict):
    """Seed pricing from config only when no pricing row exists"""
    if support.db.fetch_one("SELECT 1 AS found FROM pricing_config"):
        logging.info("Pricing config already present")
        return

    if not pricing_defaults:
        logging.warning("No pricing_defaults in config; set prices from the admin before taking orders")
        return

    pricing = support.update_pricing_config(
        None,
        completa_price=pricing_defaults["completa_price"],
        extra_entree_price=pricing_defaults["extra_entree_price"],
        extra_side_price=pricing_defaults["extra_side_price"],
        delivery_fee_per_meal=pricing_defaults["delivery_fee_per_meal"]
    )
    logging.info(f"Pricing config seeded: {pricing.model_dump()}")


def init_database(config: Config) -> DatabaseManager:
    """
    Create the schema and seed data for the configured environment

    Returns:
        connected DatabaseManager
    """
    db_path = config.get_database_config()["path"]

    db_manager = DatabaseManager(db_path, auto_connect=True)
    create_tables(db_manager.conn)

    support = SupportingOperations(db_manager)
    seed_pricing_config(support, config.get("pricing_defaults", {}))

    admin_email = config.get("admin.email")
    admin_password = config.get("admin.password")
    if admin_email and admin_password:
        admin = support.ensure_admin(admin_email, admin_password)
        logging.info(f"Administrator ready: {admin['email']}")
    else:
        logging.warning("No admin credentials in config; no administrator created")

    return db_manager


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    config = Config()
    logging.info(f"Initialising database for environment: {config.env}")

    try:
        db_manager = init_database(config)
    except Exception as e:
        logging.error(f"Database initialisation failed: {e}")
        sys.exit(1)

    try:
        for table_name in TABLES:
            info = db_manager.get_table_info(table_name)
            logging.info(f"  - {table_name}: {info['record_count']} rows")
    finally:
        db_manager.close()

    logging.info("Database initialisation complete")


if __name__ == "__main__":
    main()
