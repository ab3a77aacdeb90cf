"""
Pydantic schemas for checkout and payments.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.payment import PaymentStatus


class PaymentOrderCreateRequest(BaseModel):
    """Schema for opening payments for one or more bookings."""

    booking_ids: List[UUID] = Field(..., min_length=1)
    payment_method: str = Field("payhere", max_length=50)


class PaymentResponse(BaseModel):
    id: UUID
    booking_id: UUID
    amount: Decimal
    status: PaymentStatus
    payment_method: Optional[str]
    gateway_order_id: Optional[str]
    expires_at: Optional[datetime]

    model_config = {"from_attributes": True}


class PaymentOrderResponse(BaseModel):
    order_id: str
    total_amount: Decimal
    payments: List[PaymentResponse]


class CheckoutPayloadResponse(BaseModel):
    """Fields to post to the PayHere checkout page."""

    checkout_url: str
    sandbox: bool
    merchant_id: str
    order_id: str
    items: str
    currency: str
    amount: str
    hash: str
    notify_url: Optional[str] = None
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None


class NotificationAck(BaseModel):
    status: str = "received"
    notification_id: UUID
