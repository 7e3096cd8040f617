# Customer address module

from .routes import router as addresses_router
from .models import AddressInput

__all__ = [
    "addresses_router",
    "AddressInput"
]
