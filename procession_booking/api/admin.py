"""
Administrative routes: booking status override and manual maintenance.
"""

import logging
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.booking import BookingResponse, BookingStatusUpdateRequest
from ..services.booking_service import BookingService
from ..services.reconciliation_service import ReconciliationService
from ..utils.auth import TokenData
from ..utils.dependencies import require_permission
from ..utils.permissions import Action, Resource

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


@router.patch("/bookings/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: UUID,
    request: BookingStatusUpdateRequest,
    current_user: TokenData = Depends(require_permission(Resource.BOOKING, Action.OVERRIDE_STATUS)),
    db: AsyncSession = Depends(get_db)
):
    """Move a booking along the normal transition table; releasing states return the seats."""
    booking = await BookingService(db).update_booking_status(
        booking_id,
        request.status,
        performed_by=current_user.subject,
        reason=request.reason,
    )
    return BookingResponse.from_booking(booking)


@router.post("/maintenance/run")
async def run_maintenance(
    current_user: TokenData = Depends(require_permission(Resource.MAINTENANCE, Action.RUN)),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """Run one reconciliation pass now and report what it changed."""
    logger.info(f"Manual maintenance pass requested by {current_user.subject}")
    return await ReconciliationService(db).run_maintenance()
