# Completa grouping: turns validated day selections into priced order item rows

import secrets
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .pricing import PricingConfig


def new_group_id(day_of_week: int, index: int) -> str:
    """Group id unique within one order"""
    return f"{day_of_week}-{index}-{secrets.token_hex(4)}"


def _item_row(menu_item_id: int, quantity: int, unit_price: Decimal,
              is_completa: bool, group_id: Optional[str]) -> Dict[str, Any]:
    return {
        "menu_item_id": menu_item_id,
        "quantity": quantity,
        "unit_price": unit_price,
        "is_completa": is_completa,
        "completa_group_id": group_id,
    }


def _merge_sides(sides: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # one row per distinct side, first-seen order
    merged: Dict[int, int] = {}
    for side in sides:
        merged[side["menu_item_id"]] = merged.get(side["menu_item_id"], 0) + side["quantity"]
    return [{"menu_item_id": item_id, "quantity": qty} for item_id, qty in merged.items()]


def assign_day_items(day: Dict[str, Any], pricing: PricingConfig) -> List[Dict[str, Any]]:
    """
    Build the order item rows for one day

    The entree row carries the whole completa price; side rows are priced at zero
    so changing a completa's side mix never changes what it costs.
    """
    items = []
    day_of_week = day["day_of_week"]

    for index, completa in enumerate(day.get("completas") or []):
        group_id = new_group_id(day_of_week, index)
        items.append(_item_row(completa["entree_id"], 1, pricing.completa_price, True, group_id))
        for side in _merge_sides(completa.get("sides") or []):
            items.append(_item_row(side["menu_item_id"], side["quantity"], Decimal("0"), True, group_id))

    for extra in day.get("extra_entrees") or []:
        items.append(_item_row(extra["menu_item_id"], extra["quantity"], pricing.extra_entree_price, False, None))

    for extra in day.get("extra_sides") or []:
        items.append(_item_row(extra["menu_item_id"], extra["quantity"], pricing.extra_side_price, False, None))

    return items


def assign_order_items(order_days: List[Dict[str, Any]], pricing: PricingConfig) -> List[Dict[str, Any]]:
    """
    Partition every day into priced line items

    Returns:
        [{"day_of_week": int, "items": [item rows]}] in the input day order
    """
    return [
        {"day_of_week": day["day_of_week"], "items": assign_day_items(day, pricing)}
        for day in order_days
    ]


def group_totals(items: List[Dict[str, Any]]) -> Dict[str, Decimal]:
    """Sum unit_price x quantity per completa group"""
    totals: Dict[str, Decimal] = {}
    for item in items:
        group_id = item.get("completa_group_id")
        if group_id is None:
            continue
        totals[group_id] = totals.get(group_id, Decimal("0")) + Decimal(item["unit_price"]) * item["quantity"]
    return totals
