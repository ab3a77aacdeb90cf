"""
Custom exceptions for the procession seat booking engine.
"""

from typing import Any, Dict, Optional, List
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for the booking engine."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Reservation conflicts
    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"
    STALE_CART_ITEM = "STALE_CART_ITEM"
    CATEGORY_UNAVAILABLE = "CATEGORY_UNAVAILABLE"
    INVALID_BOOKING_STATE = "INVALID_BOOKING_STATE"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"

    # Payment errors
    INVALID_PAYMENT_STATE = "INVALID_PAYMENT_STATE"
    PAYMENT_ALREADY_COMPLETED = "PAYMENT_ALREADY_COMPLETED"

    # External service errors
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    PAYMENT_GATEWAY_ERROR = "PAYMENT_GATEWAY_ERROR"


class BookingEngineError(Exception):
    """Base exception class for the booking engine."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        retry_after: Optional[int] = None
    ):
        """Initialize the exception with comprehensive error information."""
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []
        self.retry_after = retry_after
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        if self.suggestions:
            result["suggestions"] = self.suggestions

        if self.retry_after:
            result["retry_after"] = self.retry_after

        return result


class ValidationError(BookingEngineError):
    """Exception raised for validation errors."""

    def __init__(self, message: str, field_errors: Optional[Dict[str, List[str]]] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details={"field_errors": field_errors} if field_errors else None,
            **kwargs
        )
        self.field_errors = field_errors or {}


class NotFoundError(BookingEngineError):
    """Base exception for resource not found errors."""

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id} if resource_type else None,
            **kwargs
        )


class BookingNotFoundError(NotFoundError):
    """Exception raised when a booking is not found."""

    def __init__(self, booking_id: str, **kwargs):
        super().__init__(
            f"Booking {booking_id} not found",
            resource_type="booking",
            resource_id=booking_id,
            suggestions=["Check the booking ID", "View your bookings"],
            **kwargs
        )


class PaymentNotFoundError(NotFoundError):
    """Exception raised when no payment matches an order or booking."""

    def __init__(self, reference: str, **kwargs):
        super().__init__(
            f"Payment {reference} not found",
            resource_type="payment",
            resource_id=reference,
            **kwargs
        )


class CartItemNotFoundError(NotFoundError):
    """Exception raised when a cart item is not found."""

    def __init__(self, cart_item_id: str, **kwargs):
        super().__init__(
            f"Cart item {cart_item_id} not found",
            resource_type="cart_item",
            resource_id=cart_item_id,
            **kwargs
        )


class AvailabilityNotFoundError(NotFoundError):
    """Exception raised when a seat type is not on sale for a day."""

    def __init__(self, seat_type_id: str, day_id: str, **kwargs):
        super().__init__(
            f"Seat type {seat_type_id} has no availability on day {day_id}",
            resource_type="seat_type_availability",
            resource_id=f"{seat_type_id}:{day_id}",
            **kwargs
        )


class AuthenticationError(BookingEngineError):
    """Exception raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.UNAUTHORIZED,
            suggestions=["Sign in again"],
            **kwargs
        )


class AuthorizationError(BookingEngineError):
    """Exception raised for authorization failures."""

    def __init__(self, message: str = "Access denied", required_permission: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.FORBIDDEN,
            details={"required_permission": required_permission} if required_permission else None,
            suggestions=["Contact an administrator for access"],
            **kwargs
        )


class BusinessLogicError(BookingEngineError):
    """Base exception for business logic violations."""
    pass


class InsufficientInventoryError(BusinessLogicError):
    """Exception raised when fewer seats remain than were requested."""

    def __init__(self, requested: int, remaining: int, availability_id: Optional[str] = None, **kwargs):
        super().__init__(
            f"Insufficient seats: requested {requested}, remaining {remaining}",
            error_code=ErrorCode.INSUFFICIENT_INVENTORY,
            details={"requested": requested, "remaining": remaining, "availability_id": availability_id},
            suggestions=["Try booking fewer seats", "Choose another seat type or day"],
            **kwargs
        )
        self.requested = requested
        self.remaining = remaining


class StaleCartItemError(BusinessLogicError):
    """Exception raised when a cart item passed its staging expiry."""

    def __init__(self, cart_item_id: str, **kwargs):
        super().__init__(
            f"Cart item {cart_item_id} has expired",
            error_code=ErrorCode.STALE_CART_ITEM,
            details={"cart_item_id": cart_item_id},
            suggestions=["Add the seats to your cart again"],
            **kwargs
        )


class CategoryUnavailableError(BusinessLogicError):
    """Exception raised when a seat type is disabled or missing for a day."""

    def __init__(self, seat_type_id: str, day_id: str, **kwargs):
        super().__init__(
            f"Seat type {seat_type_id} is not available on day {day_id}",
            error_code=ErrorCode.CATEGORY_UNAVAILABLE,
            details={"seat_type_id": seat_type_id, "day_id": day_id},
            suggestions=["Choose another seat type or day"],
            **kwargs
        )


class InvalidBookingStateError(BusinessLogicError):
    """Exception raised when booking is in invalid state for operation."""

    def __init__(self, booking_id: str, current_state: str, required_state: str, **kwargs):
        super().__init__(
            f"Booking {booking_id} is in {current_state} state, required {required_state}",
            error_code=ErrorCode.INVALID_BOOKING_STATE,
            details={"booking_id": booking_id, "current_state": current_state, "required_state": required_state},
            **kwargs
        )


class InvalidPaymentStateError(BusinessLogicError):
    """Exception raised when a payment cannot move to the requested state."""

    def __init__(self, payment_id: str, current_state: str, required_state: str, **kwargs):
        super().__init__(
            f"Payment {payment_id} is in {current_state} state, required {required_state}",
            error_code=ErrorCode.INVALID_PAYMENT_STATE,
            details={"payment_id": payment_id, "current_state": current_state, "required_state": required_state},
            suggestions=["Start a new booking to pay again"],
            **kwargs
        )


class PaymentAlreadyCompletedError(BusinessLogicError):
    """Exception raised when checkout is requested for an already paid booking."""

    def __init__(self, booking_id: str, **kwargs):
        super().__init__(
            f"Payment for booking {booking_id} has already been completed",
            error_code=ErrorCode.PAYMENT_ALREADY_COMPLETED,
            details={"booking_id": booking_id},
            **kwargs
        )


class ExternalServiceError(BookingEngineError):
    """Exception raised for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        status_code: Optional[int] = None,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        **kwargs
    ):
        super().__init__(
            f"{service_name} service error: {message}",
            error_code=error_code,
            details={"service_name": service_name, "status_code": status_code},
            suggestions=["Try again later", "Contact support if problem persists"],
            **kwargs
        )


class PaymentGatewayError(ExternalServiceError):
    """Exception raised when a gateway request cannot be built or sent."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            "payhere",
            message,
            error_code=ErrorCode.PAYMENT_GATEWAY_ERROR,
            **kwargs
        )
