"""
FastAPI routes for bookings.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.booking import BookingStatus
from ..schemas.booking import (
    BookingCancelRequest,
    BookingCreateRequest,
    BookingListResponse,
    BookingResponse,
)
from ..schemas.common import ERROR_RESPONSES
from ..services.booking_service import BookingService
from ..utils.auth import TokenData
from ..utils.dependencies import require_permission
from ..utils.permissions import Action, Resource

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    response_model=List[BookingResponse],
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_bookings(
    request: BookingCreateRequest,
    current_user: TokenData = Depends(require_permission(Resource.BOOKING, Action.CREATE)),
    db: AsyncSession = Depends(get_db)
):
    """
    Check out the cart into pending bookings.

    Seats are held for the configured hold window; an unpaid hold is expired
    by the maintenance pass. The whole checkout fails if any item fails.
    """
    bookings = await BookingService(db).create_bookings(current_user.subject, request.cart_item_ids)
    return [BookingResponse.from_booking(booking) for booking in bookings]


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: TokenData = Depends(require_permission(Resource.BOOKING, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    bookings = await BookingService(db).list_customer_bookings(
        current_user.subject, status=status_filter, limit=limit, offset=offset
    )
    return BookingListResponse(
        bookings=[BookingResponse.from_booking(booking) for booking in bookings],
        total=len(bookings),
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: TokenData = Depends(require_permission(Resource.BOOKING, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    booking = await BookingService(db).get_booking(booking_id, current_user.subject)
    return BookingResponse.from_booking(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse, responses=ERROR_RESPONSES)
async def cancel_booking(
    booking_id: UUID,
    request: Optional[BookingCancelRequest] = None,
    current_user: TokenData = Depends(require_permission(Resource.BOOKING, Action.CANCEL)),
    db: AsyncSession = Depends(get_db)
):
    """Cancel an unpaid pending booking and return its seats."""
    booking = await BookingService(db).cancel_booking(
        booking_id,
        current_user.subject,
        reason=request.reason if request else None,
    )
    return BookingResponse.from_booking(booking)
