"""
Booking model for managing seat holds and confirmed purchases.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from ..utils.timeutils import ensure_utc, utcnow

if TYPE_CHECKING:
    from .shop import Shop, SeatType
    from .procession_day import ProcessionDay
    from .seat_availability import SeatTypeAvailability
    from .payment import Payment
    from .booking_history import BookingHistory


class BookingStatus(enum.Enum):
    """Enumeration for booking status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Booking(Base):
    """One customer's hold or confirmed purchase of N seats of one seat type on one day."""

    __tablename__ = "bookings"

    customer_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    shop_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("shops.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    seat_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("seat_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    day_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("procession_days.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    availability_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("seat_type_availability.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Booking details
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal('0.00')
    )

    # Booking status and timing
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True
    )

    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True
    )

    # Relationships
    shop: Mapped["Shop"] = relationship("Shop")
    seat_type: Mapped["SeatType"] = relationship("SeatType")
    day: Mapped["ProcessionDay"] = relationship("ProcessionDay")
    availability: Mapped["SeatTypeAvailability"] = relationship("SeatTypeAvailability")

    payment: Mapped[Optional["Payment"]] = relationship(
        "Payment",
        back_populates="booking",
        uselist=False,
        cascade="all, delete-orphan"
    )

    booking_history: Mapped[List["BookingHistory"]] = relationship(
        "BookingHistory",
        back_populates="booking",
        cascade="all, delete-orphan"
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_bookings_quantity_positive"),
        CheckConstraint("total_price >= 0", name="ck_bookings_total_price_non_negative"),
    )

    @property
    def is_active(self) -> bool:
        """Check if the booking still holds seats (confirmed or pending)."""
        return self.status in [BookingStatus.CONFIRMED, BookingStatus.PENDING]

    @property
    def is_expired(self) -> bool:
        """Check if the hold deadline has passed."""
        if self.expires_at is None:
            return False
        return utcnow() >= ensure_utc(self.expires_at)

    def __repr__(self) -> str:
        """String representation of the booking."""
        return (
            f"<Booking(id={self.id}, customer_id={self.customer_id}, "
            f"availability_id={self.availability_id}, quantity={self.quantity}, status={self.status.value})>"
        )
