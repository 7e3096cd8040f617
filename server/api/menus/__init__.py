# Menus module

from .routes import router as menus_router

__all__ = ["menus_router"]
