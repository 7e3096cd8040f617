# FastAPI application

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from utils.config import Config
from utils.logger import setup_logging
from utils.response import create_error_response
from api.middleware import setup_middleware
from ordering.errors import (
    GENERIC_ERROR_MESSAGE, ConfigurationError, OrderingError, ProcessorError,
    ReconciliationError, public_message
)

from api.auth import auth_router
from api.menus import menus_router
from api.orders import orders_router
from api.addresses import addresses_router
from api.payments import payments_router
from api.admin import admin_router

config = Config()

setup_logging(config.config)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Lunch Orders API starting")
    logger.info(f"Environment: {config.env}")
    logger.info(f"Debug: {config.config['app']['debug']}")

    yield

    logger.info("Lunch Orders API shutting down")


app = FastAPI(
    title=config.config['app']['name'],
    version=config.config['app']['version'],
    description=config.config['app']['description'],
    debug=config.config['app']['debug'],
    lifespan=lifespan
)

setup_middleware(app, config.config)

app.include_router(auth_router)
app.include_router(menus_router)
app.include_router(orders_router)
app.include_router(addresses_router)
app.include_router(payments_router)
app.include_router(admin_router)


@app.exception_handler(OrderingError)
async def ordering_exception_handler(request: Request, exc: OrderingError):
    """Order engine errors carry their own status; operational ones are logged and hidden"""
    if isinstance(exc, ReconciliationError):
        logger.critical(
            f"Reconciliation required for order {exc.order_id} "
            f"(processor reference {exc.processor_reference}): {exc.reason}"
        )
    elif isinstance(exc, (ConfigurationError, ProcessorError)):
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.reason}")

    return JSONResponse(status_code=exc.status_code, content=create_error_response(public_message(exc)))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.detail),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in error["loc"] if part != "body"), "message": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=422, content=create_error_response("Invalid request", data=errors))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(status_code=500, content=create_error_response(GENERIC_ERROR_MESSAGE))


@app.get("/")
async def root():
    return {
        "message": "Lunch Orders API is running",
        "version": config.config['app']['version'],
        "status": "healthy"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "version": config.config['app']['version'],
        "environment": config.env
    }


@app.get("/api/info")
async def api_info():
    return {
        "name": config.config['app']['name'],
        "version": config.config['app']['version'],
        "description": config.config['app']['description'],
        "environment": config.env,
        "endpoints": {
            "auth": "/api/auth",
            "menus": "/api/menus",
            "pricing": "/api/pricing",
            "orders": "/api/orders",
            "addresses": "/api/addresses",
            "payments": "/api/payments",
            "admin": "/api/admin"
        }
    }


if __name__ == "__main__":
    import uvicorn

    server_config = config.config['server']

    uvicorn.run(
        "api.main:app",
        host=server_config.get('host', '127.0.0.1'),
        port=server_config.get('port', 8000),
        reload=server_config.get('reload', False),
        workers=1 if server_config.get('reload', False) else server_config.get('workers', 1),
        log_level="debug" if config.config['app']['debug'] else "info"
    )
