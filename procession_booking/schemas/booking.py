"""
Pydantic schemas for booking-related API requests and responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus
from ..models.payment import PaymentStatus


class BookingCreateRequest(BaseModel):
    """Schema for checking out the cart."""

    cart_item_ids: Optional[List[UUID]] = Field(
        None,
        description="Cart items to check out, in order; the whole cart when omitted"
    )


class BookingCancelRequest(BaseModel):
    """Schema for cancelling a booking."""

    reason: Optional[str] = Field(None, max_length=500, description="Optional cancellation reason")


class BookingStatusUpdateRequest(BaseModel):
    """Schema for the admin status override."""

    status: BookingStatus
    reason: Optional[str] = Field(None, max_length=500)


class BookingResponse(BaseModel):
    """Schema for booking responses."""

    id: UUID
    customer_id: str
    shop_id: UUID
    seat_type_id: UUID
    day_id: UUID
    quantity: int
    total_price: Decimal
    status: BookingStatus
    created_at: datetime
    expires_at: Optional[datetime]

    # Related data
    shop_name: Optional[str] = None
    seat_type_name: Optional[str] = None
    event_date: Optional[date] = None
    payment_status: Optional[PaymentStatus] = None

    @classmethod
    def from_booking(cls, booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            customer_id=booking.customer_id,
            shop_id=booking.shop_id,
            seat_type_id=booking.seat_type_id,
            day_id=booking.day_id,
            quantity=booking.quantity,
            total_price=booking.total_price,
            status=booking.status,
            created_at=booking.created_at,
            expires_at=booking.expires_at,
            shop_name=booking.shop.name if booking.shop else None,
            seat_type_name=booking.seat_type.name if booking.seat_type else None,
            event_date=booking.day.date if booking.day else None,
            payment_status=booking.payment.status if booking.payment else None,
        )


class BookingListResponse(BaseModel):
    bookings: List[BookingResponse]
    total: int
