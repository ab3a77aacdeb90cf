"""
PaymentNotification model: append-only audit trail of gateway webhooks.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from ..utils.timeutils import utcnow


class NotificationProcessingStatus(enum.Enum):
    """Enumeration for notification processing status."""
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


class PaymentNotification(Base):
    """Every inbound gateway notification, kept whether or not it could be applied."""

    __tablename__ = "payment_notifications"

    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    gateway_order_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    merchant_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    status_code: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    signature: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    signature_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    raw_payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    processing_status: Mapped[NotificationProcessingStatus] = mapped_column(
        Enum(NotificationProcessingStatus),
        default=NotificationProcessingStatus.PENDING,
        nullable=False,
        index=True
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<PaymentNotification(id={self.id}, order={self.gateway_order_id}, "
            f"status_code={self.status_code}, processing={self.processing_status.value})>"
        )
