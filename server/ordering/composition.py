# Order composition validator
# Checks a proposed multi-day order against the fixed completa rules and the published menu

from typing import Any, Dict, List, Optional

from .errors import OrderValidationError

MIN_DAYS_PER_ORDER = 3
SIDES_PER_COMPLETA = 3
MAX_DESSERTS_PER_COMPLETA = 1
MAX_SOUPS_PER_COMPLETA = 1

EVERY_DAY = 0
FIRST_ORDER_DAY = 1
LAST_ORDER_DAY = 5

DAY_NAMES = {
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
}

ENTREE = "ENTREE"
SIDE = "SIDE"


def collect_menu_item_ids(order_days: List[Dict[str, Any]]) -> List[int]:
    """Every distinct menu item id an order references, in first-seen order"""
    seen = {}
    for day in order_days:
        for completa in day.get("completas") or []:
            if completa.get("entree_id") is not None:
                seen.setdefault(completa["entree_id"], None)
            for side in completa.get("sides") or []:
                seen.setdefault(side["menu_item_id"], None)
        for extra in (day.get("extra_entrees") or []) + (day.get("extra_sides") or []):
            seen.setdefault(extra["menu_item_id"], None)
    return list(seen)


def _check_days(order_days: List[Dict[str, Any]]):
    days = [day.get("day_of_week") for day in order_days]
    if len(set(days)) < MIN_DAYS_PER_ORDER:
        raise OrderValidationError(f"Minimum {MIN_DAYS_PER_ORDER} days per order required")

    for day_of_week in days:
        if not isinstance(day_of_week, int) or not FIRST_ORDER_DAY <= day_of_week <= LAST_ORDER_DAY:
            raise OrderValidationError("Day of week must be between 1 (Monday) and 5 (Friday)")
    if len(set(days)) != len(days):
        raise OrderValidationError("Each day can only appear once per order")


def _check_completa_shape(completa: Dict[str, Any]):
    if completa.get("entree_id") is None:
        raise OrderValidationError("Each completa needs exactly one entree")

    sides = completa.get("sides") or []
    if any(side["quantity"] < 1 for side in sides):
        raise OrderValidationError("Side quantities must be at least 1")
    if sum(side["quantity"] for side in sides) != SIDES_PER_COMPLETA:
        raise OrderValidationError(f"Each completa needs exactly {SIDES_PER_COMPLETA} sides")


def _check_side_caps(completa: Dict[str, Any], menu_items: Dict[int, Dict[str, Any]]):
    desserts = 0
    soups = 0
    for side in completa.get("sides") or []:
        item = menu_items.get(side["menu_item_id"])
        if not item:
            # unknown ids are reported by the availability check
            continue
        if item["is_dessert"]:
            desserts += side["quantity"]
        if item["is_soup"]:
            soups += side["quantity"]

    if desserts > MAX_DESSERTS_PER_COMPLETA:
        raise OrderValidationError(f"Only {MAX_DESSERTS_PER_COMPLETA} dessert allowed per completa")
    if soups > MAX_SOUPS_PER_COMPLETA:
        raise OrderValidationError(f"Only {MAX_SOUPS_PER_COMPLETA} soup allowed per completa")


def is_entree_available(menu: Dict[str, Any], menu_item_id: int, day_of_week: int) -> bool:
    item = menu["items"].get(menu_item_id)
    if not item:
        return False
    if item["is_staple"]:
        return True
    offered_days = menu["offerings"].get(menu_item_id, set())
    return day_of_week in offered_days or EVERY_DAY in offered_days


def is_side_available(menu: Dict[str, Any], menu_item_id: int) -> bool:
    item = menu["items"].get(menu_item_id)
    if not item:
        return False
    return item["is_staple"] or EVERY_DAY in menu["offerings"].get(menu_item_id, set())


def _check_entree(menu: Dict[str, Any], menu_item_id: int, day_of_week: int):
    item = menu["items"][menu_item_id]
    if item["kind"] != ENTREE:
        raise OrderValidationError(f"{item['name']} is not an entree")
    if not is_entree_available(menu, menu_item_id, day_of_week):
        raise OrderValidationError(f"{item['name']} is not available on {DAY_NAMES[day_of_week]}")


def _check_side(menu: Dict[str, Any], menu_item_id: int):
    item = menu["items"][menu_item_id]
    if item["kind"] != SIDE:
        raise OrderValidationError(f"{item['name']} is not a side")
    if not is_side_available(menu, menu_item_id):
        raise OrderValidationError(f"{item['name']} is not available this week")


def _check_availability(order_days: List[Dict[str, Any]], menu: Dict[str, Any]):
    for menu_item_id in collect_menu_item_ids(order_days):
        item = menu["items"].get(menu_item_id)
        if not item or item.get("status", "active") != "active":
            raise OrderValidationError("One or more menu items not found")

    for day in order_days:
        day_of_week = day["day_of_week"]
        for completa in day.get("completas") or []:
            _check_entree(menu, completa["entree_id"], day_of_week)
            for side in completa.get("sides") or []:
                _check_side(menu, side["menu_item_id"])
        for extra in day.get("extra_entrees") or []:
            _check_entree(menu, extra["menu_item_id"], day_of_week)
        for extra in day.get("extra_sides") or []:
            _check_side(menu, extra["menu_item_id"])


def validate_fulfillment(is_pickup: bool, address_id: Optional[int],
                       address_owner_id: Optional[int], customer_id: Optional[int]):
    if is_pickup:
        return
    if not address_id:
        raise OrderValidationError("Delivery address is required")
    if address_owner_id is None or address_owner_id != customer_id:
        raise OrderValidationError("Invalid delivery address")


def validate_order_composition(order_days: List[Dict[str, Any]], menu: Dict[str, Any],
                               is_pickup: bool, address_id: Optional[int] = None,
                               address_owner_id: Optional[int] = None,
                               customer_id: Optional[int] = None):
    """
    Validate a candidate order, failing fast on the first broken rule

    Args:
        order_days: day selections (day_of_week, completas, extra_entrees, extra_sides)
        menu: read-only snapshot from SupportingOperations.get_menu_snapshot
        is_pickup: fulfillment mode
        address_id: delivery address id, ignored for pickup
        address_owner_id: customer id owning address_id, None when it does not exist
        customer_id: the resolved customer placing the order

    Raises:
        OrderValidationError: with a user-facing reason
    """
    if not order_days:
        raise OrderValidationError(f"Minimum {MIN_DAYS_PER_ORDER} days per order required")

    # 1. day minimum
    _check_days(order_days)

    # 2. every day carries at least one completa
    for day in order_days:
        if not day.get("completas"):
            raise OrderValidationError("Each day must have at least 1 completa")

    # 3. completa shape
    for day in order_days:
        for completa in day["completas"]:
            _check_completa_shape(completa)
        for extra in (day.get("extra_entrees") or []) + (day.get("extra_sides") or []):
            if extra["quantity"] < 1:
                raise OrderValidationError("Extra item quantities must be at least 1")

    # 4. dessert / soup caps
    for day in order_days:
        for completa in day["completas"]:
            _check_side_caps(completa, menu["items"])

    # 5. menu availability
    _check_availability(order_days, menu)

    # 6. delivery address
    validate_fulfillment(is_pickup, address_id, address_owner_id, customer_id)
