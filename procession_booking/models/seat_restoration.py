"""
SeatRestoration model: one row per booking whose held seats went back to
inventory.
"""

import uuid

from sqlalchemy import ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class SeatRestoration(Base):
    """
    Restoration ledger keyed by booking.

    The unique ``booking_id`` is what makes restoration exactly-once: the row
    is inserted in the same transaction as the counter increment, so a second
    attempt fails on the constraint and rolls the increment back with it.
    """

    __tablename__ = "seat_restorations"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True
    )

    availability_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("seat_type_availability.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<SeatRestoration(booking_id={self.booking_id}, quantity={self.quantity}, "
            f"reason='{self.reason}')>"
        )
