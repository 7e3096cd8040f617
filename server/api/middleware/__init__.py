# HTTP middleware

from fastapi import FastAPI
from typing import Dict, Any

from .cors import setup_cors_middleware
from .logging import setup_logging_middleware
from .security import setup_security_middleware


def setup_middleware(app: FastAPI, config: Dict[str, Any]):
    """
    Register all middlewares

    Args:
        app: FastAPI application
        config: configuration dict
    """
    # order matters: the last one added runs first
    setup_security_middleware(app, config)
    setup_logging_middleware(app, config)
    setup_cors_middleware(app, config)


__all__ = [
    "setup_middleware",
    "setup_cors_middleware",
    "setup_logging_middleware",
    "setup_security_middleware"
]
