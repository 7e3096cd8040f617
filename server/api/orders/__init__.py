# Orders module

from .routes import router as orders_router
from .models import CreateOrderRequest, UpdateDeliveryRequest, OrderDaySelection

__all__ = [
    "orders_router",
    "CreateOrderRequest",
    "UpdateDeliveryRequest",
    "OrderDaySelection"
]
