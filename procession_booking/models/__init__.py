"""
Database models for the procession seat booking engine.
"""

from .base import Base
from .shop import Shop, SeatType
from .procession_day import ProcessionDay
from .seat_availability import SeatTypeAvailability
from .cart_item import CartItem
from .booking import Booking, BookingStatus
from .payment import Payment, PaymentStatus
from .payment_notification import PaymentNotification, NotificationProcessingStatus
from .booking_history import BookingHistory, BookingAction
from .seat_restoration import SeatRestoration

__all__ = [
    "Base",
    "Shop",
    "SeatType",
    "ProcessionDay",
    "SeatTypeAvailability",
    "CartItem",
    "Booking",
    "BookingStatus",
    "Payment",
    "PaymentStatus",
    "PaymentNotification",
    "NotificationProcessingStatus",
    "BookingHistory",
    "BookingAction",
    "SeatRestoration",
]
