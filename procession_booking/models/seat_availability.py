"""
Seat type availability model: the inventory counter for one seat type on one
procession day.
"""

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Numeric, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .shop import SeatType
    from .procession_day import ProcessionDay


class SeatTypeAvailability(Base):
    """
    Remaining bookable quantity for a seat type on a procession day.

    ``remaining_quantity`` is the live counter: it is decremented when a hold
    is created and incremented when a hold is released. ``total_quantity`` is
    the configured capacity and is never touched by the booking flow.
    """

    __tablename__ = "seat_type_availability"

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

    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal('0.00')
    )

    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    remaining_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    seat_type: Mapped["SeatType"] = relationship("SeatType", back_populates="availabilities")
    day: Mapped["ProcessionDay"] = relationship("ProcessionDay")

    __table_args__ = (
        UniqueConstraint("seat_type_id", "day_id", name="uq_seat_type_day"),
        CheckConstraint("remaining_quantity >= 0", name="ck_availability_remaining_non_negative"),
        CheckConstraint("total_quantity >= 0", name="ck_availability_total_non_negative"),
        CheckConstraint("price >= 0", name="ck_availability_price_non_negative"),
    )

    @property
    def is_sold_out(self) -> bool:
        """Check if nothing is left to book."""
        return self.remaining_quantity == 0

    def __repr__(self) -> str:
        return (
            f"<SeatTypeAvailability(id={self.id}, seat_type_id={self.seat_type_id}, "
            f"day_id={self.day_id}, remaining={self.remaining_quantity}/{self.total_quantity})>"
        )
