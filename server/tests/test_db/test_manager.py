# Order lock tests

import pytest

from db import manager
from db.manager import ORDER_LOCK_STRIPES, order_lock
from ordering.errors import OrderStateError


class TestOrderLock:
    """Per-order locks from a fixed stripe set"""

    def test_busy_order_times_out(self):
        with order_lock(7):
            with pytest.raises(OrderStateError) as exc_info:
                with order_lock(7, timeout=0.05):
                    pass
        assert exc_info.value.reason == "Order is being updated, please try again"

    def test_released_after_error(self):
        with pytest.raises(ValueError):
            with order_lock(7):
                raise ValueError("boom")
        with order_lock(7, timeout=0.05):
            pass

    def test_lock_set_does_not_grow(self):
        for order_id in range(1, 5 * ORDER_LOCK_STRIPES):
            with order_lock(order_id):
                pass
        assert len(manager._order_locks) == ORDER_LOCK_STRIPES
