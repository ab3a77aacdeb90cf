"""
Request logging middleware and the request id context variable.
"""

import contextvars
import logging
import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar('request_id', default='no-request-id')

QUIET_PATHS = {"/", "/health", "/docs", "/redoc", "/openapi.json"}
SLOW_REQUEST_SECONDS = 2.0


class LoggingMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id and log its outcome and duration."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        start_time = time.perf_counter()
        path = request.url.path
        log = logger.debug if path in QUIET_PATHS else logger.info
        log(f"{request.method} {path}", extra={"client_ip": self._get_client_ip(request)})

        try:
            response = await call_next(request)
        except Exception:
            logger.error(f"Request {request.method} {path} raised", exc_info=True)
            raise
        finally:
            request_id_var.reset(token)

        process_time = time.perf_counter() - start_time
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{process_time:.4f}"

        if response.status_code >= 500:
            logger.error(f"Server error: {response.status_code} ({process_time:.4f}s)", extra={"request_id": request_id})
        elif response.status_code >= 400:
            logger.warning(f"Client error: {response.status_code} ({process_time:.4f}s)", extra={"request_id": request_id})
        else:
            log(f"Response: {response.status_code} ({process_time:.4f}s)", extra={"request_id": request_id})

        if process_time > SLOW_REQUEST_SECONDS:
            logger.warning(f"Slow request: {request.method} {path} took {process_time:.4f}s")

        return response

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        return request.client.host if request.client else "unknown"
