# Request logging middleware

import re
import time
import uuid
import logging
from fastapi import FastAPI, Request
from typing import Dict, Any

logger = logging.getLogger(__name__)

# guest order tokens open an order; they never reach the logs
GUEST_TOKEN_PATH = re.compile(r'(/api/orders/guest/)[^/]+')


def loggable_path(path: str) -> str:
    return GUEST_TOKEN_PATH.sub(r'\1***', path)


def setup_logging_middleware(app: FastAPI, config: Dict[str, Any]):
    """
    Log every request with a short request id, echoed back as X-Request-ID
    """
    slow_request_seconds = config.get('logging', {}).get('slow_request_seconds', 2.0)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()
        client = request.client.host if request.client else 'unknown'
        path = loggable_path(request.url.path)

        logger.info(f"[{request_id}] {request.method} {path} - Client: {client}")

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"[{request_id}] {request.method} {path} failed after "
                         f"{time.time() - start_time:.3f}s: {str(e)}")
            raise

        elapsed = time.time() - start_time
        if elapsed > slow_request_seconds:
            logger.warning(f"[{request_id}] slow request {request.method} {path}: {elapsed:.3f}s")
        logger.info(f"[{request_id}] {response.status_code} - Time: {elapsed:.3f}s")
        response.headers["X-Request-ID"] = request_id
        return response
