"""
Shop and seat type models.

A shop is a seller-owned stand along the procession route; each shop offers
one or more seat types (categories).
"""

import uuid
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .seat_availability import SeatTypeAvailability


class Shop(Base):
    """Shop offering seats for the procession."""

    __tablename__ = "shops"

    seller_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    street: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    seat_types: Mapped[List["SeatType"]] = relationship(
        "SeatType",
        back_populates="shop",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Shop(id={self.id}, name='{self.name}')>"


class SeatType(Base):
    """Seat category defined by a seller for a shop."""

    __tablename__ = "seat_types"

    shop_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("shops.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    shop: Mapped["Shop"] = relationship("Shop", back_populates="seat_types")
    availabilities: Mapped[List["SeatTypeAvailability"]] = relationship(
        "SeatTypeAvailability",
        back_populates="seat_type",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<SeatType(id={self.id}, shop_id={self.shop_id}, name='{self.name}')>"
