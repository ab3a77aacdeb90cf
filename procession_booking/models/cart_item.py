"""
Cart item model: transient staging rows that do not commit inventory.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from ..utils.timeutils import ensure_utc, utcnow

if TYPE_CHECKING:
    from .seat_availability import SeatTypeAvailability


class CartItem(Base):
    """A customer's staged selection of seats for one seat type and day."""

    __tablename__ = "cart_items"

    customer_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    availability_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("seat_type_availability.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price_per_seat: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True
    )

    availability: Mapped["SeatTypeAvailability"] = relationship("SeatTypeAvailability")

    __table_args__ = (
        UniqueConstraint("customer_id", "availability_id", name="uq_cart_customer_availability"),
        CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
    )

    @property
    def total_price(self) -> Decimal:
        return self.price_per_seat * self.quantity

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """A staging row past its own expiration can no longer be checked out."""
        if self.expires_at is None:
            return False
        return ensure_utc(self.expires_at) <= (now or utcnow())

    def __repr__(self) -> str:
        return (
            f"<CartItem(id={self.id}, customer_id={self.customer_id}, "
            f"availability_id={self.availability_id}, quantity={self.quantity})>"
        )
