"""Seat counter: conditional decrement and once-only restoration."""

import pytest
from sqlalchemy import func, select

from procession_booking.models import Booking, BookingStatus, SeatRestoration, SeatTypeAvailability
from procession_booking.services.inventory_service import InventoryService
from procession_booking.utils.exceptions import InsufficientInventoryError


async def make_booking(session, catalog, quantity, status=BookingStatus.CANCELLED):
    booking = Booking(
        customer_id="customer-x",
        shop_id=catalog.shop_id,
        seat_type_id=catalog.seat_type_id,
        day_id=catalog.day_id,
        availability_id=catalog.availability_id,
        quantity=quantity,
        total_price=catalog.price * quantity,
        status=status,
    )
    session.add(booking)
    await session.commit()
    return booking


@pytest.mark.asyncio
async def test_reserve_decrements(db_session, catalog):
    inventory = InventoryService(db_session)

    await inventory.reserve(catalog.availability_id, 3)
    await db_session.commit()

    assert await inventory.get_remaining(catalog.availability_id) == 2


@pytest.mark.asyncio
async def test_reserve_reports_actual_remaining(db_session, catalog):
    inventory = InventoryService(db_session)
    await inventory.reserve(catalog.availability_id, 4)
    await db_session.commit()

    with pytest.raises(InsufficientInventoryError) as exc_info:
        await inventory.reserve(catalog.availability_id, 2)

    assert exc_info.value.requested == 2
    assert exc_info.value.remaining == 1
    assert await inventory.get_remaining(catalog.availability_id) == 1


@pytest.mark.asyncio
async def test_reserve_ignores_stale_in_memory_count(session_factory, catalog):
    """A session holding an old view of the counter still cannot oversell."""
    async with session_factory() as first, session_factory() as second:
        stale = await first.get(SeatTypeAvailability, catalog.availability_id)
        assert stale.remaining_quantity == 5
        await first.commit()

        await InventoryService(second).reserve(catalog.availability_id, 3)
        await second.commit()

        with pytest.raises(InsufficientInventoryError) as exc_info:
            await InventoryService(first).reserve(catalog.availability_id, 3)
        await first.rollback()

    assert exc_info.value.remaining == 2


@pytest.mark.asyncio
async def test_restore_happens_once(db_session, catalog):
    inventory = InventoryService(db_session)
    await inventory.reserve(catalog.availability_id, 2)
    await db_session.commit()
    booking = await make_booking(db_session, catalog, 2)

    assert await inventory.restore_for_booking(booking, reason="cancelled")
    await db_session.commit()
    assert not await inventory.restore_for_booking(booking, reason="safety_net_cancelled")
    await db_session.commit()

    assert await inventory.get_remaining(catalog.availability_id) == 5
    assert await inventory.is_restored(booking.id)
    count = await db_session.scalar(
        select(func.count()).select_from(SeatRestoration).where(SeatRestoration.booking_id == booking.id)
    )
    assert count == 1


@pytest.mark.asyncio
async def test_rolled_back_restore_leaves_counter_untouched(db_session, catalog):
    inventory = InventoryService(db_session)
    await inventory.reserve(catalog.availability_id, 2)
    await db_session.commit()
    booking = await make_booking(db_session, catalog, 2)
    booking_id = booking.id

    await inventory.restore_for_booking(booking, reason="expired")
    await db_session.rollback()

    assert await inventory.get_remaining(catalog.availability_id) == 3
    assert not await inventory.is_restored(booking_id)
