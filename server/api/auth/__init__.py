# Authentication module

from .routes import router as auth_router
from .models import RegisterRequest, LoginRequest, LoginResponse, TokenData

__all__ = [
    "auth_router",
    "RegisterRequest",
    "LoginRequest",
    "LoginResponse",
    "TokenData"
]
