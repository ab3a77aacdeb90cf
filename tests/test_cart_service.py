"""Cart staging."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import update

from procession_booking.models import SeatTypeAvailability
from procession_booking.services.cart_service import CartService
from procession_booking.services.inventory_service import InventoryService
from procession_booking.utils.exceptions import (
    AvailabilityNotFoundError,
    CartItemNotFoundError,
    CategoryUnavailableError,
    InsufficientInventoryError,
    ValidationError,
)
from procession_booking.utils.timeutils import ensure_utc, utcnow


@pytest.mark.asyncio
async def test_add_to_cart_stamps_price_and_expiry(db_session, catalog, customer_id):
    item = await CartService(db_session).add_to_cart(customer_id, catalog.seat_type_id, catalog.day_id, 2)

    assert item.quantity == 2
    assert item.price_per_seat == catalog.price
    assert item.total_price == catalog.price * 2
    assert ensure_utc(item.expires_at) > utcnow() + timedelta(minutes=25)
    assert item.availability.seat_type.shop.name == "Dalada Veediya Stand"


@pytest.mark.asyncio
async def test_adding_again_merges(db_session, catalog, customer_id):
    service = CartService(db_session)
    first = await service.add_to_cart(customer_id, catalog.seat_type_id, catalog.day_id, 1)
    second = await service.add_to_cart(customer_id, catalog.seat_type_id, catalog.day_id, 2)

    assert second.id == first.id
    assert second.quantity == 3
    assert len(await service.get_cart(customer_id)) == 1


@pytest.mark.asyncio
async def test_adding_does_not_hold_seats(db_session, catalog, customer_id):
    await CartService(db_session).add_to_cart(customer_id, catalog.seat_type_id, catalog.day_id, 4)

    assert await InventoryService(db_session).get_remaining(catalog.availability_id) == 5


@pytest.mark.asyncio
async def test_more_than_remaining_is_refused(db_session, catalog, customer_id):
    with pytest.raises(InsufficientInventoryError) as exc_info:
        await CartService(db_session).add_to_cart(customer_id, catalog.seat_type_id, catalog.day_id, 6)

    assert exc_info.value.remaining == 5


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -1, 11])
async def test_quantity_bounds(db_session, catalog, customer_id, quantity):
    with pytest.raises(ValidationError):
        await CartService(db_session).add_to_cart(customer_id, catalog.seat_type_id, catalog.day_id, quantity)


@pytest.mark.asyncio
async def test_disabled_category_is_refused(db_session, catalog, customer_id):
    await db_session.execute(
        update(SeatTypeAvailability)
        .where(SeatTypeAvailability.id == catalog.availability_id)
        .values(is_enabled=False)
    )
    await db_session.commit()

    with pytest.raises(CategoryUnavailableError):
        await CartService(db_session).add_to_cart(customer_id, catalog.seat_type_id, catalog.day_id, 1)


@pytest.mark.asyncio
async def test_unknown_day_is_not_found(db_session, catalog, customer_id):
    with pytest.raises(AvailabilityNotFoundError):
        await CartService(db_session).add_to_cart(customer_id, catalog.seat_type_id, uuid4(), 1)


@pytest.mark.asyncio
async def test_carts_are_private(db_session, catalog, customer_id):
    service = CartService(db_session)
    item = await service.add_to_cart(customer_id, catalog.seat_type_id, catalog.day_id, 1)
    item_id = item.id

    assert await service.get_cart("someone-else") == []
    with pytest.raises(CartItemNotFoundError):
        await service.remove_cart_item("someone-else", item_id)

    await service.remove_cart_item(customer_id, item_id)
    assert await service.get_cart(customer_id) == []
