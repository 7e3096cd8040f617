# Payments module

from .routes import router as payments_router, get_core_operations, get_payment_processor
from .processor_service import PaymentProcessorService

__all__ = [
    "payments_router",
    "get_core_operations",
    "get_payment_processor",
    "PaymentProcessorService"
]
