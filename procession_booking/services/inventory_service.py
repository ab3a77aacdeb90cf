"""
Seat inventory accounting.

``SeatTypeAvailability.remaining_quantity`` is a live counter. It only moves
through the two statements below, both single conditional UPDATEs, so
concurrent requests never read-modify-write the row.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.booking import Booking
from ..models.seat_availability import SeatTypeAvailability
from ..models.seat_restoration import SeatRestoration
from ..utils.exceptions import InsufficientInventoryError
from ..utils.logging_config import log_business_event

logger = logging.getLogger(__name__)


class InventoryService:
    """Decrement and restore seat counters inside the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def reserve(self, availability_id: UUID, quantity: int) -> None:
        """
        Take ``quantity`` seats off the counter.

        Raises:
            InsufficientInventoryError: When fewer than ``quantity`` seats
                remain; the error carries the actual remaining count.
        """
        result = await self.session.execute(
            update(SeatTypeAvailability)
            .where(
                and_(
                    SeatTypeAvailability.id == availability_id,
                    SeatTypeAvailability.remaining_quantity >= quantity
                )
            )
            .values(remaining_quantity=SeatTypeAvailability.remaining_quantity - quantity)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            remaining = await self.get_remaining(availability_id)
            logger.info(
                f"Reservation of {quantity} seats on availability {availability_id} "
                f"refused, {remaining} remaining"
            )
            raise InsufficientInventoryError(
                requested=quantity,
                remaining=remaining or 0,
                availability_id=str(availability_id),
            )

        logger.debug(f"Reserved {quantity} seats on availability {availability_id}")

    async def get_remaining(self, availability_id: UUID) -> Optional[int]:
        result = await self.session.execute(
            select(SeatTypeAvailability.remaining_quantity)
            .where(SeatTypeAvailability.id == availability_id)
        )
        return result.scalar_one_or_none()

    async def is_restored(self, booking_id: UUID) -> bool:
        result = await self.session.execute(
            select(SeatRestoration.id).where(SeatRestoration.booking_id == booking_id)
        )
        return result.scalar_one_or_none() is not None

    async def restore_for_booking(self, booking: Booking, reason: str) -> bool:
        """
        Give a released booking's seats back, at most once per booking.

        The restoration row and the counter increment are flushed in the
        caller's transaction. If another process restored the same booking
        first, the unique booking id fails the flush with IntegrityError and
        the caller's rollback discards the increment with it.

        Returns:
            True if seats were restored, False if this booking was already
            restored.
        """
        if await self.is_restored(booking.id):
            logger.debug(f"Seats for booking {booking.id} already restored")
            return False

        self.session.add(
            SeatRestoration(
                booking_id=booking.id,
                availability_id=booking.availability_id,
                quantity=booking.quantity,
                reason=reason,
            )
        )
        await self.session.flush()

        await self.session.execute(
            update(SeatTypeAvailability)
            .where(SeatTypeAvailability.id == booking.availability_id)
            .values(remaining_quantity=SeatTypeAvailability.remaining_quantity + booking.quantity)
            .execution_options(synchronize_session=False)
        )

        logger.info(f"Restored {booking.quantity} seats from booking {booking.id} ({reason})")
        log_business_event(
            "seats_restored",
            {
                "booking_id": str(booking.id),
                "availability_id": str(booking.availability_id),
                "quantity": booking.quantity,
                "reason": reason,
            },
            customer_id=booking.customer_id,
        )
        return True
