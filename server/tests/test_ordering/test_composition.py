# Order composition validator tests

import pytest

from ordering.composition import validate_order_composition, collect_menu_item_ids, validate_fulfillment
from ordering.errors import OrderValidationError

ENTREE_MON, ENTREE_TUE, ENTREE_WED, ENTREE_THU, ENTREE_FRI = 1, 2, 3, 4, 5
RICE, BEANS, SALAD, FLAN, PUDDING, SOUP, TOSTONES, YUCA = 10, 11, 12, 13, 14, 15, 16, 17
STAPLE_ENTREE = 20


def _item(item_id, name, kind, is_dessert=False, is_soup=False, is_staple=False):
    return {"menu_item_id": item_id, "name": name, "kind": kind, "is_dessert": is_dessert,
            "is_soup": is_soup, "is_staple": is_staple, "status": "active"}


@pytest.fixture
def menu():
    items = [
        _item(ENTREE_MON, "Pollo Guisado", "ENTREE"),
        _item(ENTREE_TUE, "Carne Molida", "ENTREE"),
        _item(ENTREE_WED, "Pescado Frito", "ENTREE"),
        _item(ENTREE_THU, "Cerdo Asado", "ENTREE"),
        _item(ENTREE_FRI, "Pollo al Horno", "ENTREE"),
        _item(RICE, "Arroz Blanco", "SIDE"),
        _item(BEANS, "Habichuelas", "SIDE"),
        _item(SALAD, "Ensalada Verde", "SIDE"),
        _item(FLAN, "Flan", "SIDE", is_dessert=True),
        _item(PUDDING, "Arroz con Leche", "SIDE", is_dessert=True),
        _item(SOUP, "Sancocho", "SIDE", is_soup=True),
        _item(TOSTONES, "Tostones", "SIDE", is_staple=True),
        _item(YUCA, "Yuca Frita", "SIDE"),
        _item(STAPLE_ENTREE, "Chicken Tenders", "ENTREE", is_staple=True),
    ]
    offerings = {day: {day} for day in range(1, 6)}
    offerings.update({RICE: {0}, BEANS: {0}, SALAD: {0}, FLAN: {0}, PUDDING: {0}, SOUP: {0}})
    return {"items": {item["menu_item_id"]: item for item in items}, "offerings": offerings}


def _sides(*pairs):
    return [{"menu_item_id": item_id, "quantity": quantity} for item_id, quantity in pairs]


def _day(day_of_week, entree_id=None, sides=None, extra_entrees=None, extra_sides=None, completas=None):
    if completas is None:
        completas = [{
            "entree_id": entree_id if entree_id is not None else day_of_week,
            "sides": sides if sides is not None else _sides((RICE, 1), (BEANS, 1), (SALAD, 1)),
        }]
    return {
        "day_of_week": day_of_week,
        "completas": completas,
        "extra_entrees": extra_entrees or [],
        "extra_sides": extra_sides or [],
    }


def _reason(order_days, menu, is_pickup=True, **kwargs):
    with pytest.raises(OrderValidationError) as exc_info:
        validate_order_composition(order_days, menu, is_pickup, **kwargs)
    return exc_info.value.reason


class TestDayRules:
    """Day minimum and day range"""

    def test_three_days_accepted(self, menu):
        """Three distinct days with one completa each"""
        validate_order_composition([_day(1), _day(2), _day(3)], menu, True)

    def test_two_days_rejected_regardless_of_completas(self, menu):
        """Two days fail the minimum even with many completas"""
        completas = [{"entree_id": 1, "sides": _sides((RICE, 1), (BEANS, 1), (SALAD, 1))}] * 4
        days = [_day(1, completas=completas), _day(2)]
        assert _reason(days, menu) == "Minimum 3 days per order required"

    def test_empty_order_rejected(self, menu):
        assert _reason([], menu) == "Minimum 3 days per order required"

    def test_repeated_day_does_not_count_twice(self, menu):
        """The same weekday listed twice is still one distinct day"""
        assert _reason([_day(1), _day(1), _day(2)], menu) == "Minimum 3 days per order required"

    def test_duplicate_day_rejected(self, menu):
        days = [_day(1), _day(2), _day(3), _day(3)]
        assert _reason(days, menu) == "Each day can only appear once per order"

    def test_weekend_day_rejected(self, menu):
        days = [_day(1), _day(2), _day(6, entree_id=STAPLE_ENTREE)]
        assert _reason(days, menu) == "Day of week must be between 1 (Monday) and 5 (Friday)"

    def test_day_with_only_extras_rejected(self, menu):
        extras_only = _day(3, completas=[], extra_entrees=[{"menu_item_id": ENTREE_WED, "quantity": 1}])
        assert _reason([_day(1), _day(2), extras_only], menu) == "Each day must have at least 1 completa"


class TestCompletaShape:
    """Entree and side count of each completa"""

    def test_missing_entree(self, menu):
        days = [_day(1), _day(2), _day(3, completas=[{"entree_id": None, "sides": _sides((RICE, 3))}])]
        assert _reason(days, menu) == "Each completa needs exactly one entree"

    @pytest.mark.parametrize("sides", [
        _sides((RICE, 1), (BEANS, 1)),
        _sides((RICE, 2), (BEANS, 1), (SALAD, 1)),
    ])
    def test_two_or_four_sides_rejected(self, menu, sides):
        days = [_day(1), _day(2), _day(3, sides=sides)]
        assert _reason(days, menu) == "Each completa needs exactly 3 sides"

    def test_same_side_three_times_accepted(self, menu):
        validate_order_composition([_day(1), _day(2), _day(3, sides=_sides((RICE, 3)))], menu, True)

    def test_zero_quantity_side_rejected(self, menu):
        days = [_day(1), _day(2), _day(3, sides=_sides((RICE, 3), (BEANS, 0)))]
        assert _reason(days, menu) == "Side quantities must be at least 1"

    def test_zero_quantity_extra_rejected(self, menu):
        days = [_day(1), _day(2), _day(3, extra_sides=[{"menu_item_id": RICE, "quantity": 0}])]
        assert _reason(days, menu) == "Extra item quantities must be at least 1"


class TestDessertAndSoupCaps:
    """At most one dessert unit and one soup unit per completa"""

    def test_one_dessert_accepted(self, menu):
        days = [_day(1), _day(2), _day(3, sides=_sides((RICE, 1), (BEANS, 1), (FLAN, 1)))]
        validate_order_composition(days, menu, True)

    def test_dessert_quantity_two_rejected(self, menu):
        days = [_day(1), _day(2), _day(3, sides=_sides((RICE, 1), (FLAN, 2)))]
        assert _reason(days, menu) == "Only 1 dessert allowed per completa"

    def test_two_different_desserts_rejected(self, menu):
        days = [_day(1), _day(2), _day(3, sides=_sides((RICE, 1), (FLAN, 1), (PUDDING, 1)))]
        assert _reason(days, menu) == "Only 1 dessert allowed per completa"

    def test_soup_and_dessert_together_accepted(self, menu):
        days = [_day(1), _day(2), _day(3, sides=_sides((SOUP, 1), (FLAN, 1), (RICE, 1)))]
        validate_order_composition(days, menu, True)

    def test_two_soups_rejected(self, menu):
        days = [_day(1), _day(2), _day(3, sides=_sides((SOUP, 2), (RICE, 1)))]
        assert _reason(days, menu) == "Only 1 soup allowed per completa"

    def test_caps_are_per_completa(self, menu):
        """Two completas on one day may each carry a dessert"""
        completa = {"entree_id": ENTREE_WED, "sides": _sides((RICE, 1), (BEANS, 1), (FLAN, 1))}
        validate_order_composition([_day(1), _day(2), _day(3, completas=[completa, completa])], menu, True)


class TestMenuAvailability:
    """Items must exist and be offered for the day"""

    def test_unknown_item_rejected(self, menu):
        days = [_day(1), _day(2), _day(3, sides=_sides((RICE, 2), (999, 1)))]
        assert _reason(days, menu) == "One or more menu items not found"

    def test_inactive_item_rejected(self, menu):
        menu["items"][SALAD]["status"] = "inactive"
        assert _reason([_day(1), _day(2), _day(3)], menu) == "One or more menu items not found"

    def test_entree_on_wrong_day_rejected(self, menu):
        days = [_day(1), _day(2), _day(3, entree_id=ENTREE_MON)]
        assert _reason(days, menu) == "Pollo Guisado is not available on Wednesday"

    def test_side_used_as_entree_rejected(self, menu):
        days = [_day(1), _day(2), _day(3, entree_id=RICE)]
        assert _reason(days, menu) == "Arroz Blanco is not an entree"

    def test_entree_used_as_side_rejected(self, menu):
        days = [_day(1), _day(2), _day(3, sides=_sides((RICE, 2), (ENTREE_WED, 1)))]
        assert _reason(days, menu) == "Pescado Frito is not a side"

    def test_side_not_on_weekly_menu_rejected(self, menu):
        days = [_day(1), _day(2), _day(3, sides=_sides((RICE, 2), (YUCA, 1)))]
        assert _reason(days, menu) == "Yuca Frita is not available this week"

    def test_staples_always_available(self, menu):
        days = [_day(1), _day(2), _day(3, entree_id=STAPLE_ENTREE, sides=_sides((TOSTONES, 3)))]
        validate_order_composition(days, menu, True)

    def test_extra_entree_must_be_offered_that_day(self, menu):
        days = [_day(1), _day(2), _day(3, extra_entrees=[{"menu_item_id": ENTREE_FRI, "quantity": 1}])]
        assert _reason(days, menu) == "Pollo al Horno is not available on Wednesday"

    def test_every_day_entree_available_on_any_day(self, menu):
        menu["offerings"][ENTREE_MON] = {0}
        validate_order_composition([_day(1), _day(2), _day(3, entree_id=ENTREE_MON)], menu, True)

    def test_shape_checked_before_availability(self, menu):
        """Rules fail in order: a bad side count wins over an unknown item"""
        days = [_day(1), _day(2), _day(3, sides=_sides((999, 2)))]
        assert _reason(days, menu) == "Each completa needs exactly 3 sides"


class TestFulfillment:
    """Delivery address rules"""

    def test_pickup_needs_no_address(self, menu):
        validate_order_composition([_day(1), _day(2), _day(3)], menu, True, address_id=None)

    def test_delivery_without_address_rejected(self, menu):
        assert _reason([_day(1), _day(2), _day(3)], menu, is_pickup=False) == "Delivery address is required"

    def test_delivery_to_someone_elses_address_rejected(self, menu):
        reason = _reason([_day(1), _day(2), _day(3)], menu, is_pickup=False,
                         address_id=7, address_owner_id=2, customer_id=1)
        assert reason == "Invalid delivery address"

    def test_delivery_to_own_address_accepted(self):
        validate_fulfillment(False, 7, 1, 1)


class TestCollectMenuItemIds:
    def test_ids_in_first_seen_order(self):
        days = [_day(1, extra_sides=[{"menu_item_id": TOSTONES, "quantity": 1}]), _day(2)]
        assert collect_menu_item_ids(days) == [ENTREE_MON, RICE, BEANS, SALAD, TOSTONES, ENTREE_TUE]
