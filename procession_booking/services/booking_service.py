"""
Reservation engine: turns cart selections into time-bounded seat holds and
moves bookings through their lifecycle.
"""

import logging
from datetime import timedelta
from typing import Any, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update, and_, desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from ..config import get_settings
from ..models.booking import Booking, BookingStatus
from ..models.booking_history import BookingHistory, BookingAction
from ..models.cart_item import CartItem
from ..models.payment import Payment, PaymentStatus
from ..models.seat_availability import SeatTypeAvailability
from ..utils.exceptions import (
    BookingNotFoundError,
    CartItemNotFoundError,
    CategoryUnavailableError,
    InvalidBookingStateError,
    PaymentAlreadyCompletedError,
    StaleCartItemError,
    ValidationError,
)
from ..utils.logging_config import log_business_event
from ..utils.timeutils import utcnow
from .inventory_service import InventoryService
from .state_machine import BookingStateMachine, PaymentStateMachine

logger = logging.getLogger(__name__)


def booking_display_options():
    """Loader options for rendering a booking with shop, seat type and day."""
    return (
        selectinload(Booking.shop),
        selectinload(Booking.seat_type),
        selectinload(Booking.day),
        selectinload(Booking.payment),
    )


class BookingService:
    """Service for creating bookings and changing their status."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.settings = get_settings()
        self.inventory = InventoryService(session)

    async def create_bookings(
        self,
        customer_id: str,
        cart_item_ids: Optional[Sequence[UUID]] = None
    ) -> List[Booking]:
        """
        Check out a customer's cart into pending bookings.

        Cart items are processed in the order they were added. For each one:
        the seat type must be on sale that day, the cart item must not have
        expired, and the seats must be taken off the inventory counter. Any
        failure rolls back the whole batch.

        Args:
            customer_id: Subject of the verified caller
            cart_item_ids: Restrict checkout to these cart items; the whole
                cart when omitted

        Returns:
            Created bookings with shop, seat type and day loaded

        Raises:
            ValidationError: Empty cart or quantity above the per-booking limit
            CartItemNotFoundError: A requested cart item is not in the cart
            CategoryUnavailableError: Seat type disabled or no longer sold
            StaleCartItemError: Cart item past its staging expiry
            InsufficientInventoryError: Not enough seats left
        """
        logger.info(f"Creating bookings for customer {customer_id}")

        try:
            items = await self._get_cart_items(customer_id, cart_item_ids)
            if not items:
                raise ValidationError("Cart is empty")

            now = utcnow()
            hold_until = now + timedelta(minutes=self.settings.booking_hold_timeout_minutes)
            created: List[Booking] = []

            for item in items:
                availability = item.availability

                if availability is None or not availability.is_enabled:
                    raise CategoryUnavailableError(
                        str(availability.seat_type_id) if availability else "unknown",
                        str(availability.day_id) if availability else "unknown",
                    )

                if item.is_stale(now):
                    raise StaleCartItemError(str(item.id))

                self._validate_quantity(item.quantity)

                await self.inventory.reserve(availability.id, item.quantity)

                booking = Booking(
                    customer_id=customer_id,
                    shop_id=availability.seat_type.shop_id,
                    seat_type_id=availability.seat_type_id,
                    day_id=availability.day_id,
                    availability_id=availability.id,
                    quantity=item.quantity,
                    total_price=item.price_per_seat * item.quantity,
                    status=BookingStatus.PENDING,
                    expires_at=hold_until,
                )
                self.session.add(booking)
                await self.session.delete(item)
                await self.session.flush()

                await self.record_history(
                    booking.id,
                    BookingAction.CREATED,
                    f"Hold on {booking.quantity} seats until {hold_until.isoformat()}",
                    performed_by=customer_id,
                )
                created.append(booking)

            await self.session.commit()

        except Exception as e:
            await self.session.rollback()
            logger.warning(f"Booking creation for customer {customer_id} rolled back: {e}")
            raise

        booking_ids = [booking.id for booking in created]
        for booking in created:
            log_business_event(
                "booking_created",
                {
                    "booking_id": str(booking.id),
                    "availability_id": str(booking.availability_id),
                    "quantity": booking.quantity,
                },
                customer_id=customer_id,
            )
        logger.info(f"Created {len(booking_ids)} bookings for customer {customer_id}")

        return await self.get_bookings(booking_ids)

    async def get_booking(self, booking_id: UUID, customer_id: Optional[str] = None) -> Booking:
        """
        Get a booking with display data.

        Raises:
            BookingNotFoundError: When missing or owned by another customer
        """
        result = await self.session.execute(
            select(Booking)
            .options(*booking_display_options())
            .where(Booking.id == booking_id)
        )
        booking = result.scalar_one_or_none()

        if booking is None or (customer_id is not None and booking.customer_id != customer_id):
            raise BookingNotFoundError(str(booking_id))

        return booking

    async def get_bookings(self, booking_ids: Sequence[UUID]) -> List[Booking]:
        if not booking_ids:
            return []
        result = await self.session.execute(
            select(Booking)
            .options(*booking_display_options())
            .where(Booking.id.in_(list(booking_ids)))
            .order_by(Booking.created_at, Booking.id)
        )
        bookings = {booking.id: booking for booking in result.scalars().all()}
        return [bookings[booking_id] for booking_id in booking_ids if booking_id in bookings]

    async def list_customer_bookings(
        self,
        customer_id: str,
        status: Optional[BookingStatus] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Booking]:
        """List a customer's bookings, newest first."""
        query = (
            select(Booking)
            .options(*booking_display_options())
            .where(Booking.customer_id == customer_id)
        )
        if status is not None:
            query = query.where(Booking.status == status)

        result = await self.session.execute(
            query.order_by(desc(Booking.created_at)).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    async def get_booking_history(self, booking_id: UUID) -> List[BookingHistory]:
        result = await self.session.execute(
            select(BookingHistory)
            .where(BookingHistory.booking_id == booking_id)
            .order_by(BookingHistory.created_at)
        )
        return list(result.scalars().all())

    async def cancel_booking(
        self,
        booking_id: UUID,
        customer_id: str,
        reason: Optional[str] = None
    ) -> Booking:
        """
        Cancel a customer's own pending booking and give its seats back.

        Raises:
            BookingNotFoundError: When missing or owned by another customer
            InvalidBookingStateError: When the booking is no longer pending
            PaymentAlreadyCompletedError: When the booking has been paid
        """
        logger.info(f"Cancelling booking {booking_id} for customer {customer_id}")

        try:
            booking = await self.get_booking(booking_id, customer_id)

            if booking.status != BookingStatus.PENDING:
                raise InvalidBookingStateError(str(booking_id), booking.status.value, BookingStatus.PENDING.value)

            payment = booking.payment
            if payment is not None and payment.status in (PaymentStatus.SUCCESS, PaymentStatus.REFUNDED):
                raise PaymentAlreadyCompletedError(str(booking_id))

            await self._release(
                booking,
                BookingStatus.CANCELLED,
                BookingAction.CANCELLED,
                "Cancelled by customer" + (f" - Reason: {reason}" if reason else ""),
                performed_by=customer_id,
            )
            await self.session.commit()

        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error cancelling booking {booking_id}: {e}")
            raise

        log_business_event("booking_cancelled", {"booking_id": str(booking_id)}, customer_id=customer_id)
        return await self.get_booking(booking_id)

    async def update_booking_status(
        self,
        booking_id: UUID,
        new_status: BookingStatus,
        performed_by: str,
        reason: Optional[str] = None
    ) -> Booking:
        """
        Administrative status override.

        Follows the same transition table as every other path. Moving a
        booking to cancelled or expired gives its seats back.

        Raises:
            BookingNotFoundError: When the booking does not exist
            InvalidBookingStateError: When the transition is not allowed
        """
        logger.info(f"Admin {performed_by} setting booking {booking_id} to {new_status.value}")

        try:
            booking = await self.get_booking(booking_id)
            previous = booking.status
            BookingStateMachine.validate_transition(str(booking_id), previous, new_status)

            details = f"Status changed from {previous.value} to {new_status.value} by admin"
            if reason:
                details += f" - Reason: {reason}"

            if new_status in BookingStateMachine.RELEASING_STATES:
                await self._release(
                    booking,
                    new_status,
                    BookingAction.STATUS_OVERRIDDEN,
                    details,
                    performed_by=performed_by,
                )
            else:
                if not await self.apply_transition(booking, new_status):
                    raise InvalidBookingStateError(str(booking_id), "changed concurrently", previous.value)
                await self.record_history(
                    booking.id, BookingAction.STATUS_OVERRIDDEN, details, performed_by=performed_by
                )

            await self.session.commit()

        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error overriding status of booking {booking_id}: {e}")
            raise

        return await self.get_booking(booking_id)

    async def apply_transition(
        self,
        booking: Booking,
        to_status: BookingStatus,
        **values: Any
    ) -> bool:
        """
        Move a booking forward with a status-guarded UPDATE.

        The row only changes if it is still in the status it was loaded with,
        so a concurrent handler or scheduler pass that got there first turns
        this into a no-op.

        Returns:
            True if this call changed the row
        """
        from_status = booking.status
        BookingStateMachine.validate_transition(str(booking.id), from_status, to_status)
        values.setdefault("updated_at", utcnow())

        result = await self.session.execute(
            update(Booking)
            .where(
                and_(
                    Booking.id == booking.id,
                    Booking.status == from_status
                )
            )
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(f"Booking {booking.id} left {from_status.value} concurrently, skipping")
            return False

        set_committed_value(booking, "status", to_status)
        for key, value in values.items():
            set_committed_value(booking, key, value)
        return True

    async def record_history(
        self,
        booking_id: UUID,
        action: BookingAction,
        details: str,
        performed_by: Optional[str] = "system"
    ) -> None:
        """Create a booking history entry."""
        self.session.add(
            BookingHistory(
                booking_id=booking_id,
                action=action,
                details=details,
                performed_by=performed_by,
            )
        )

    async def _release(
        self,
        booking: Booking,
        to_status: BookingStatus,
        action: BookingAction,
        details: str,
        performed_by: str,
    ) -> None:
        """Transition to a releasing state, fail a pending payment and restore seats."""
        if not await self.apply_transition(booking, to_status):
            raise InvalidBookingStateError(str(booking.id), "changed concurrently", BookingStatus.PENDING.value)

        payment = booking.payment
        if payment is not None and payment.status == PaymentStatus.PENDING:
            PaymentStateMachine.validate_transition(str(payment.id), payment.status, PaymentStatus.FAILED)
            await self.session.execute(
                update(Payment)
                .where(
                    and_(
                        Payment.id == payment.id,
                        Payment.status == PaymentStatus.PENDING
                    )
                )
                .values(status=PaymentStatus.FAILED, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            set_committed_value(payment, "status", PaymentStatus.FAILED)

        await self.record_history(booking.id, action, details, performed_by=performed_by)

        if await self.inventory.restore_for_booking(booking, reason=to_status.value):
            await self.record_history(
                booking.id,
                BookingAction.SEATS_RESTORED,
                f"Returned {booking.quantity} seats to inventory",
                performed_by=performed_by,
            )

    async def _get_cart_items(
        self,
        customer_id: str,
        cart_item_ids: Optional[Sequence[UUID]]
    ) -> List[CartItem]:
        query = (
            select(CartItem)
            .options(selectinload(CartItem.availability).selectinload(SeatTypeAvailability.seat_type))
            .where(CartItem.customer_id == customer_id)
            .order_by(CartItem.created_at, CartItem.id)
        )
        if cart_item_ids is not None:
            query = query.where(CartItem.id.in_(list(cart_item_ids)))

        items = list((await self.session.execute(query)).scalars().all())

        if cart_item_ids is not None:
            found = {item.id for item in items}
            missing = [item_id for item_id in cart_item_ids if item_id not in found]
            if missing:
                raise CartItemNotFoundError(str(missing[0]))

            # Submitted order wins over insertion order
            position = {item_id: index for index, item_id in enumerate(cart_item_ids)}
            items.sort(key=lambda item: position[item.id])

        return items

    def _validate_quantity(self, quantity: int) -> None:
        if quantity <= 0 or quantity > self.settings.max_booking_quantity:
            raise ValidationError(
                f"Quantity must be between 1 and {self.settings.max_booking_quantity}",
                field_errors={"quantity": [f"got {quantity}"]}
            )

