# CORS middleware

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing import Dict, Any

DEV_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def setup_cors_middleware(app: FastAPI, config: Dict[str, Any]):
    """
    Register CORS from the 'cors' config section; debug builds fall back to localhost origins
    """
    cors_config = config.get('cors', {})
    default_origins = DEV_ORIGINS if config.get('app', {}).get('debug', False) else []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_config.get('allowed_origins', default_origins),
        allow_credentials=cors_config.get('allow_credentials', True),
        allow_methods=cors_config.get('allowed_methods', ["*"]),
        allow_headers=cors_config.get('allowed_headers', ["*"]),
    )
