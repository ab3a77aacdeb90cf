"""
Error handling middleware mapping engine exceptions to JSON responses.
"""

import logging
import traceback
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as SQLTimeoutError

from ..utils.exceptions import (
    BookingEngineError,
    BusinessLogicError,
    ErrorCode,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_MAP = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.INSUFFICIENT_INVENTORY: status.HTTP_409_CONFLICT,
    ErrorCode.STALE_CART_ITEM: status.HTTP_409_CONFLICT,
    ErrorCode.CATEGORY_UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_BOOKING_STATE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_PAYMENT_STATE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CONCURRENCY_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.PAYMENT_ALREADY_COMPLETED: status.HTTP_409_CONFLICT,
    ErrorCode.EXTERNAL_SERVICE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.PAYMENT_GATEWAY_ERROR: status.HTTP_502_BAD_GATEWAY,
}


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware turning exceptions into the standard error body."""

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        error_id = str(uuid4())

        try:
            return await call_next(request)
        except Exception as exc:
            return self._handle_exception(request, exc, error_id)

    def _handle_exception(self, request: Request, exc: Exception, error_id: str) -> JSONResponse:
        self._log_error(request, exc, error_id)

        headers = {}
        if isinstance(exc, BookingEngineError):
            error = exc
            status_code = STATUS_MAP.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
            if exc.retry_after:
                headers["Retry-After"] = str(exc.retry_after)
        elif isinstance(exc, IntegrityError):
            # Concurrent duplicate insert, e.g. the same cart line added twice
            error = BusinessLogicError(
                "The request conflicts with a concurrent change, please retry",
                error_code=ErrorCode.CONCURRENCY_CONFLICT,
                details={"constraint_type": "integrity"},
            )
            status_code = status.HTTP_409_CONFLICT
        elif isinstance(exc, (OperationalError, SQLTimeoutError)):
            error = ExternalServiceError(
                "database",
                "Database service temporarily unavailable",
            )
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            headers["Retry-After"] = "30"
        else:
            error = BookingEngineError(
                "An unexpected error occurred",
                error_code=ErrorCode.INTERNAL_ERROR,
                details={"error_type": type(exc).__name__} if self.debug else None
            )
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

        content = {
            "error": error.to_dict(),
            "error_id": error_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if self.debug and status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
            content["debug"] = {
                "exception": str(exc),
                "traceback": traceback.format_exc()
            }

        return JSONResponse(status_code=status_code, content=content, headers=headers)

    def _log_error(self, request: Request, exc: Exception, error_id: str) -> None:
        context = {
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
        }

        if isinstance(exc, (ValidationError, NotFoundError)):
            logger.warning(f"Client error [{error_id}]: {exc.message}", extra=context)
        elif isinstance(exc, BusinessLogicError):
            logger.info(f"Business rule rejected request [{error_id}]: {exc.message}", extra=context)
        elif isinstance(exc, BookingEngineError):
            logger.error(f"Service error [{error_id}]: {exc.message}", extra=context)
        else:
            logger.error(
                f"Unexpected error [{error_id}]: {exc}",
                extra={**context, "error_type": type(exc).__name__},
                exc_info=exc,
            )
