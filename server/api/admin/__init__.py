# Admin module

from .routes import router as admin_router
from .models import PricingRequest, RefundRequest, EditOrderRequest

__all__ = [
    "admin_router",
    "PricingRequest",
    "RefundRequest",
    "EditOrderRequest"
]
