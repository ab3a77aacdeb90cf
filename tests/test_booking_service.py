"""Reservation engine: checkout, cancellation and admin overrides."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from procession_booking.models import (
    Booking,
    BookingAction,
    BookingStatus,
    CartItem,
    Payment,
    PaymentStatus,
    SeatType,
    SeatTypeAvailability,
)
from procession_booking.services.booking_service import BookingService
from procession_booking.services.cart_service import CartService
from procession_booking.services.inventory_service import InventoryService
from procession_booking.utils.exceptions import (
    BookingNotFoundError,
    CategoryUnavailableError,
    InsufficientInventoryError,
    InvalidBookingStateError,
    PaymentAlreadyCompletedError,
    StaleCartItemError,
)
from procession_booking.utils.timeutils import ensure_utc, utcnow

from .conftest import stage


async def count_bookings(session) -> int:
    return await session.scalar(select(func.count()).select_from(Booking))


async def remaining(session, catalog) -> int:
    return await InventoryService(session).get_remaining(catalog.availability_id)


class TestCreateBookings:

    @pytest.mark.asyncio
    async def test_checkout_creates_pending_hold(self, db_session, catalog, customer_id):
        await stage(db_session, customer_id, catalog, 2)

        bookings = await BookingService(db_session).create_bookings(customer_id)

        assert len(bookings) == 1
        booking = bookings[0]
        assert booking.status == BookingStatus.PENDING
        assert booking.quantity == 2
        assert booking.total_price == Decimal("5000.00")
        assert booking.shop_id == catalog.shop_id
        assert ensure_utc(booking.expires_at) > utcnow() + timedelta(minutes=14)
        assert await remaining(db_session, catalog) == 3
        assert await CartService(db_session).get_cart(customer_id) == []

        history = await BookingService(db_session).get_booking_history(booking.id)
        assert [entry.action for entry in history] == [BookingAction.CREATED]

    @pytest.mark.asyncio
    async def test_concurrent_checkouts_never_oversell(self, session_factory, catalog):
        async with session_factory() as session:
            await stage(session, "customer-a", catalog, 3)
            await stage(session, "customer-b", catalog, 3)

        async def checkout(customer_id):
            async with session_factory() as session:
                return await BookingService(session).create_bookings(customer_id)

        results = await asyncio.gather(checkout("customer-a"), checkout("customer-b"), return_exceptions=True)

        failures = [result for result in results if isinstance(result, Exception)]
        successes = [result for result in results if not isinstance(result, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientInventoryError)
        assert failures[0].requested == 3
        assert failures[0].remaining == 2

        async with session_factory() as session:
            left = await remaining(session, catalog)
            booked = await session.scalar(select(func.coalesce(func.sum(Booking.quantity), 0)))
        assert left == 2
        assert left >= 0
        assert left + booked == 5

    @pytest.mark.asyncio
    async def test_no_oversell_between_customers(self, db_session, catalog):
        await stage(db_session, "customer-a", catalog, 3)
        await stage(db_session, "customer-b", catalog, 3)
        service = BookingService(db_session)

        await service.create_bookings("customer-a")
        with pytest.raises(InsufficientInventoryError) as exc_info:
            await service.create_bookings("customer-b")

        assert exc_info.value.requested == 3
        assert exc_info.value.remaining == 2
        assert await remaining(db_session, catalog) == 2
        assert await count_bookings(db_session) == 1
        # The failed customer keeps their cart
        assert len(await CartService(db_session).get_cart("customer-b")) == 1

    @pytest.mark.asyncio
    async def test_stale_cart_item_is_refused(self, db_session, catalog, customer_id):
        item = await stage(db_session, customer_id, catalog, 1)
        await db_session.execute(
            update(CartItem).where(CartItem.id == item.id).values(expires_at=utcnow() - timedelta(minutes=1))
        )
        await db_session.commit()

        with pytest.raises(StaleCartItemError):
            await BookingService(db_session).create_bookings(customer_id)

        assert await remaining(db_session, catalog) == 5
        assert await count_bookings(db_session) == 0

    @pytest.mark.asyncio
    async def test_disabled_category_is_refused(self, db_session, catalog, customer_id):
        await stage(db_session, customer_id, catalog, 1)
        await db_session.execute(
            update(SeatTypeAvailability)
            .where(SeatTypeAvailability.id == catalog.availability_id)
            .values(is_enabled=False)
        )
        await db_session.commit()

        with pytest.raises(CategoryUnavailableError):
            await BookingService(db_session).create_bookings(customer_id)

        assert await remaining(db_session, catalog) == 5

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self, db_session, catalog, customer_id):
        balcony = SeatType(shop_id=catalog.shop_id, name="Balcony")
        db_session.add(balcony)
        await db_session.flush()
        scarce = SeatTypeAvailability(
            seat_type_id=balcony.id,
            day_id=catalog.day_id,
            price=Decimal("4000.00"),
            total_quantity=1,
            remaining_quantity=1,
        )
        db_session.add(scarce)
        await db_session.commit()

        await stage(db_session, customer_id, catalog, 2)
        await CartService(db_session).add_to_cart(customer_id, balcony.id, catalog.day_id, 1)
        # Someone else takes the last balcony seat
        await InventoryService(db_session).reserve(scarce.id, 1)
        await db_session.commit()

        with pytest.raises(InsufficientInventoryError):
            await BookingService(db_session).create_bookings(customer_id)

        assert await remaining(db_session, catalog) == 5
        assert await count_bookings(db_session) == 0
        assert len(await CartService(db_session).get_cart(customer_id)) == 2

    @pytest.mark.asyncio
    async def test_checkout_of_selected_items(self, db_session, catalog, customer_id):
        item = await stage(db_session, customer_id, catalog, 1)

        bookings = await BookingService(db_session).create_bookings(customer_id, [item.id])

        assert [booking.quantity for booking in bookings] == [1]


class TestCancelBooking:

    @pytest.mark.asyncio
    async def test_cancel_restores_seats(self, db_session, catalog, customer_id):
        await stage(db_session, customer_id, catalog, 2)
        service = BookingService(db_session)
        [booking] = await service.create_bookings(customer_id)

        cancelled = await service.cancel_booking(booking.id, customer_id, reason="changed plans")

        assert cancelled.status == BookingStatus.CANCELLED
        assert await remaining(db_session, catalog) == 5
        actions = [entry.action for entry in await service.get_booking_history(booking.id)]
        assert BookingAction.CANCELLED in actions
        assert BookingAction.SEATS_RESTORED in actions

    @pytest.mark.asyncio
    async def test_cancel_twice_is_refused(self, db_session, catalog, customer_id):
        await stage(db_session, customer_id, catalog, 2)
        service = BookingService(db_session)
        [booking] = await service.create_bookings(customer_id)
        await service.cancel_booking(booking.id, customer_id)

        with pytest.raises(InvalidBookingStateError):
            await service.cancel_booking(booking.id, customer_id)

        assert await remaining(db_session, catalog) == 5

    @pytest.mark.asyncio
    async def test_other_customer_cannot_cancel(self, db_session, catalog, customer_id):
        await stage(db_session, customer_id, catalog, 1)
        service = BookingService(db_session)
        [booking] = await service.create_bookings(customer_id)

        with pytest.raises(BookingNotFoundError):
            await service.cancel_booking(booking.id, "someone-else")

    @pytest.mark.asyncio
    async def test_paid_booking_cannot_be_cancelled(self, db_session, catalog, customer_id):
        await stage(db_session, customer_id, catalog, 1)
        service = BookingService(db_session)
        [booking] = await service.create_bookings(customer_id)
        booking_id = booking.id
        db_session.add(
            Payment(booking_id=booking_id, amount=booking.total_price, status=PaymentStatus.SUCCESS)
        )
        await db_session.commit()
        db_session.expire_all()

        with pytest.raises(PaymentAlreadyCompletedError):
            await service.cancel_booking(booking_id, customer_id)


class TestStatusOverride:

    @pytest.mark.asyncio
    async def test_admin_expire_restores_seats(self, db_session, catalog, customer_id):
        await stage(db_session, customer_id, catalog, 3)
        service = BookingService(db_session)
        [booking] = await service.create_bookings(customer_id)

        updated = await service.update_booking_status(booking.id, BookingStatus.EXPIRED, "admin-1", "manual")

        assert updated.status == BookingStatus.EXPIRED
        assert await remaining(db_session, catalog) == 5
        history = await service.get_booking_history(booking.id)
        assert any(
            entry.action == BookingAction.STATUS_OVERRIDDEN and entry.performed_by == "admin-1"
            for entry in history
        )

    @pytest.mark.asyncio
    async def test_admin_confirm_keeps_seats_held(self, db_session, catalog, customer_id):
        await stage(db_session, customer_id, catalog, 3)
        service = BookingService(db_session)
        [booking] = await service.create_bookings(customer_id)

        updated = await service.update_booking_status(booking.id, BookingStatus.CONFIRMED, "admin-1")

        assert updated.status == BookingStatus.CONFIRMED
        assert await remaining(db_session, catalog) == 2

    @pytest.mark.asyncio
    async def test_terminal_booking_cannot_be_overridden(self, db_session, catalog, customer_id):
        await stage(db_session, customer_id, catalog, 1)
        service = BookingService(db_session)
        [booking] = await service.create_bookings(customer_id)
        await service.update_booking_status(booking.id, BookingStatus.CONFIRMED, "admin-1")

        with pytest.raises(InvalidBookingStateError):
            await service.update_booking_status(booking.id, BookingStatus.CANCELLED, "admin-1")

        assert await remaining(db_session, catalog) == 4
