"""
Business logic services for the booking engine.
"""

from .booking_service import BookingService
from .cart_service import CartService
from .inventory_service import InventoryService
from .notification_service import NotificationService
from .payment_service import PaymentService
from .reconciliation_service import ReconciliationService

__all__ = [
    "BookingService",
    "CartService",
    "InventoryService",
    "NotificationService",
    "PaymentService",
    "ReconciliationService",
]
