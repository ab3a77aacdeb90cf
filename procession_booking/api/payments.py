"""
FastAPI routes for checkout and the PayHere notification webhook.
"""

import json
import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.common import ERROR_RESPONSES
from ..schemas.payment import (
    CheckoutPayloadResponse,
    NotificationAck,
    PaymentOrderCreateRequest,
    PaymentOrderResponse,
    PaymentResponse,
)
from ..services.notification_service import NotificationService
from ..services.payment_service import PaymentService
from ..utils.auth import TokenData
from ..utils.dependencies import require_permission
from ..utils.permissions import Action, Resource

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])

# The gateway posts to a fixed path outside the versioned API
webhook_router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("/orders", response_model=PaymentOrderResponse, responses=ERROR_RESPONSES)
async def create_payment_order(
    request: PaymentOrderCreateRequest,
    current_user: TokenData = Depends(require_permission(Resource.PAYMENT, Action.CREATE)),
    db: AsyncSession = Depends(get_db)
):
    """Open one payment per booking under a single gateway order."""
    order_id, payments = await PaymentService(db).create_payments_for_order(
        current_user.subject,
        request.booking_ids,
        payment_method=request.payment_method,
    )
    return PaymentOrderResponse(
        order_id=order_id,
        total_amount=sum((payment.amount for payment in payments), Decimal("0.00")),
        payments=[PaymentResponse.model_validate(payment) for payment in payments],
    )


@router.get("/orders/{order_id}/checkout", response_model=CheckoutPayloadResponse)
async def get_checkout_payload(
    order_id: str,
    current_user: TokenData = Depends(require_permission(Resource.PAYMENT, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    payload = await PaymentService(db).build_checkout_payload(order_id, current_user.subject)
    return CheckoutPayloadResponse(**payload)


@webhook_router.post("/payhere/notify", response_model=NotificationAck)
async def payhere_notify(request: Request, db: AsyncSession = Depends(get_db)):
    """
    PayHere server-to-server notification.

    Answers 200 as soon as the notification is stored, whatever the outcome
    of applying it; a 500 means it could not be stored and the gateway
    should retry.
    """
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        body = (await request.body()).decode("utf-8", errors="replace")
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            logger.warning("PayHere notification with an unreadable JSON body")
            payload = {"raw_body": body}
    else:
        form = await request.form()
        # Uploaded files are never part of a gateway notification
        payload = {key: value for key, value in form.items() if isinstance(value, str)}

    notification = await NotificationService(db).handle_notification(payload)
    return NotificationAck(notification_id=notification.id)
