"""
Cart staging: time-limited seat selections that do not touch inventory.
"""

import logging
from datetime import timedelta
from typing import List
from uuid import UUID

from sqlalchemy import select, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..config import get_settings
from ..models.cart_item import CartItem
from ..models.seat_availability import SeatTypeAvailability
from ..models.shop import SeatType
from ..utils.exceptions import (
    AvailabilityNotFoundError,
    CartItemNotFoundError,
    CategoryUnavailableError,
    InsufficientInventoryError,
    ValidationError,
)
from ..utils.timeutils import utcnow

logger = logging.getLogger(__name__)


def cart_item_display_options():
    """Loader options that make a cart item renderable without lazy loads."""
    return (
        selectinload(CartItem.availability).selectinload(SeatTypeAvailability.seat_type).selectinload(SeatType.shop),
        selectinload(CartItem.availability).selectinload(SeatTypeAvailability.day),
    )


class CartService:
    """Service for a customer's cart."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.settings = get_settings()

    async def add_to_cart(
        self,
        customer_id: str,
        seat_type_id: UUID,
        day_id: UUID,
        quantity: int
    ) -> CartItem:
        """
        Stage seats for checkout.

        Adding the same seat type and day again merges into the existing row
        and renews its expiry. The remaining-seat check here is advisory only;
        seats are committed when the cart is checked out.

        Raises:
            ValidationError: For a quantity outside 1..max_booking_quantity
            AvailabilityNotFoundError: When the seat type is not sold that day
            CategoryUnavailableError: When sales are disabled
            InsufficientInventoryError: When fewer seats remain than requested
        """
        logger.info(f"Adding {quantity} x seat type {seat_type_id} on day {day_id} to cart of {customer_id}")

        try:
            availability = await self._get_availability(seat_type_id, day_id)

            existing = (await self.session.execute(
                select(CartItem).where(
                    and_(
                        CartItem.customer_id == customer_id,
                        CartItem.availability_id == availability.id
                    )
                )
            )).scalar_one_or_none()

            new_quantity = quantity + (existing.quantity if existing else 0)
            self._validate_quantity(new_quantity)

            if availability.remaining_quantity < new_quantity:
                raise InsufficientInventoryError(
                    requested=new_quantity,
                    remaining=availability.remaining_quantity,
                    availability_id=str(availability.id),
                )

            expires_at = utcnow() + timedelta(minutes=self.settings.cart_item_ttl_minutes)

            if existing:
                existing.quantity = new_quantity
                existing.price_per_seat = availability.price
                existing.expires_at = expires_at
                item = existing
            else:
                item = CartItem(
                    customer_id=customer_id,
                    availability_id=availability.id,
                    quantity=new_quantity,
                    price_per_seat=availability.price,
                    expires_at=expires_at,
                )
                self.session.add(item)

            await self.session.commit()

        except Exception:
            await self.session.rollback()
            raise

        return await self.get_cart_item(customer_id, item.id)

    async def get_cart(self, customer_id: str) -> List[CartItem]:
        """Return the customer's cart items in the order they were added."""
        result = await self.session.execute(
            select(CartItem)
            .options(*cart_item_display_options())
            .where(CartItem.customer_id == customer_id)
            .order_by(CartItem.created_at, CartItem.id)
        )
        return list(result.scalars().all())

    async def get_cart_item(self, customer_id: str, cart_item_id: UUID) -> CartItem:
        result = await self.session.execute(
            select(CartItem)
            .options(*cart_item_display_options())
            .where(
                and_(
                    CartItem.id == cart_item_id,
                    CartItem.customer_id == customer_id
                )
            )
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise CartItemNotFoundError(str(cart_item_id))
        return item

    async def remove_cart_item(self, customer_id: str, cart_item_id: UUID) -> None:
        """
        Remove one item from the customer's cart.

        Raises:
            CartItemNotFoundError: When the item does not exist or belongs to
                someone else
        """
        try:
            result = await self.session.execute(
                delete(CartItem).where(
                    and_(
                        CartItem.id == cart_item_id,
                        CartItem.customer_id == customer_id
                    )
                )
            )
            if result.rowcount == 0:
                raise CartItemNotFoundError(str(cart_item_id))
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Removed cart item {cart_item_id} for {customer_id}")

    async def _get_availability(self, seat_type_id: UUID, day_id: UUID) -> SeatTypeAvailability:
        result = await self.session.execute(
            select(SeatTypeAvailability).where(
                and_(
                    SeatTypeAvailability.seat_type_id == seat_type_id,
                    SeatTypeAvailability.day_id == day_id
                )
            )
        )
        availability = result.scalar_one_or_none()

        if availability is None:
            raise AvailabilityNotFoundError(str(seat_type_id), str(day_id))
        if not availability.is_enabled:
            raise CategoryUnavailableError(str(seat_type_id), str(day_id))

        return availability

    def _validate_quantity(self, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError(
                "Quantity must be positive",
                field_errors={"quantity": ["must be greater than 0"]}
            )
        if quantity > self.settings.max_booking_quantity:
            raise ValidationError(
                f"Cannot stage more than {self.settings.max_booking_quantity} seats per seat type and day",
                field_errors={"quantity": [f"must be at most {self.settings.max_booking_quantity}"]}
            )
