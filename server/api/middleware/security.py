# Security middleware: response headers, request size limit, per-IP rate limit
# Processor webhooks bypass the rate limit

import time
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from typing import Dict, Any

from utils.response import create_error_response

logger = logging.getLogger(__name__)


def setup_security_middleware(app: FastAPI, config: Dict[str, Any]):
    """
    Register the security middlewares

    Args:
        app: FastAPI application
        config: configuration dict
    """
    security_config = config.get('security', {})

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response

    max_request_size = security_config.get('max_request_size', 1024 * 1024)

    @app.middleware("http")
    async def limit_request_size(request: Request, call_next):
        content_length = request.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > max_request_size:
            logger.warning(f"Request size {content_length} exceeds limit {max_request_size}")
            return JSONResponse(status_code=413, content=create_error_response("Request entity too large"))

        return await call_next(request)

    if not security_config.get('rate_limit_enabled', True):
        return

    # in-memory per-minute counters, one process only
    request_counts: Dict[str, int] = {}
    rate_limit = security_config.get('rate_limit', 100)

    exempt_paths = set(security_config.get('rate_limit_exempt_paths', ["/api/payments/webhook"]))

    @app.middleware("http")
    async def rate_limiting(request: Request, call_next):
        if request.url.path in exempt_paths:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        current_minute = int(time.time() / 60)
        key = f"{client_ip}|{current_minute}"

        request_counts[key] = request_counts.get(key, 0) + 1

        for old_key in [k for k in request_counts if int(k.rsplit('|', 1)[1]) < current_minute - 1]:
            del request_counts[old_key]

        if request_counts[key] > rate_limit:
            logger.warning(f"Rate limit exceeded for IP {client_ip}")
            return JSONResponse(status_code=429, content=create_error_response("Too many requests"))

        return await call_next(request)
