"""
Pydantic schemas for the cart.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CartItemCreateRequest(BaseModel):
    """Schema for staging seats in the cart."""

    seat_type_id: UUID
    day_id: UUID
    quantity: int = Field(..., ge=1, description="Number of seats")


class CartItemResponse(BaseModel):
    id: UUID
    seat_type_id: UUID
    day_id: UUID
    quantity: int
    price_per_seat: Decimal
    total_price: Decimal
    expires_at: Optional[datetime]

    shop_name: Optional[str] = None
    seat_type_name: Optional[str] = None
    event_date: Optional[date] = None

    @classmethod
    def from_cart_item(cls, item) -> "CartItemResponse":
        availability = item.availability
        seat_type = availability.seat_type
        return cls(
            id=item.id,
            seat_type_id=availability.seat_type_id,
            day_id=availability.day_id,
            quantity=item.quantity,
            price_per_seat=item.price_per_seat,
            total_price=item.total_price,
            expires_at=item.expires_at,
            shop_name=seat_type.shop.name if seat_type and seat_type.shop else None,
            seat_type_name=seat_type.name if seat_type else None,
            event_date=availability.day.date if availability.day else None,
        )


class CartResponse(BaseModel):
    items: List[CartItemResponse]
    total_price: Decimal
