"""
FastAPI routes for the customer's cart.
"""

import logging
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.cart import CartItemCreateRequest, CartItemResponse, CartResponse
from ..services.cart_service import CartService
from ..utils.auth import TokenData
from ..utils.dependencies import require_permission
from ..utils.permissions import Action, Resource

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/cart", tags=["cart"])


@router.post("/items", response_model=CartItemResponse, status_code=status.HTTP_201_CREATED)
async def add_cart_item(
    request: CartItemCreateRequest,
    current_user: TokenData = Depends(require_permission(Resource.CART, Action.CREATE)),
    db: AsyncSession = Depends(get_db)
):
    """Stage seats in the cart. Adding the same seat type and day again merges the quantities."""
    item = await CartService(db).add_to_cart(
        customer_id=current_user.subject,
        seat_type_id=request.seat_type_id,
        day_id=request.day_id,
        quantity=request.quantity,
    )
    return CartItemResponse.from_cart_item(item)


@router.get("", response_model=CartResponse)
async def get_cart(
    current_user: TokenData = Depends(require_permission(Resource.CART, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    items = await CartService(db).get_cart(current_user.subject)
    return CartResponse(
        items=[CartItemResponse.from_cart_item(item) for item in items],
        total_price=sum((item.total_price for item in items), Decimal("0.00")),
    )


@router.delete("/items/{cart_item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_cart_item(
    cart_item_id: UUID,
    current_user: TokenData = Depends(require_permission(Resource.CART, Action.CANCEL)),
    db: AsyncSession = Depends(get_db)
):
    await CartService(db).remove_cart_item(current_user.subject, cart_item_id)
