"""
Payment confirmation handler for PayHere server-to-server notifications.

Every notification is stored before anything else happens. From then on the
handler never raises: spoofed, unmatched or failing notifications are kept
with a failed processing status, and the gateway always gets its
acknowledgement so it stops retrying.
"""

import logging
from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..config import get_settings
from ..gateway.payhere import (
    GatewayOutcome,
    PayHereNotification,
    map_status_code,
    verify_notification_signature,
)
from ..models.booking import BookingStatus
from ..models.booking_history import BookingAction
from ..models.payment import Payment, PaymentStatus
from ..models.payment_notification import PaymentNotification, NotificationProcessingStatus
from ..utils.logging_config import log_business_event, log_security_event
from ..utils.timeutils import utcnow
from .booking_service import BookingService
from .payment_service import PaymentService

logger = logging.getLogger(__name__)


def _clip(value: Optional[str], length: int) -> Optional[str]:
    return value[:length] if value else value


class NotificationService:
    """Service applying gateway notifications to payments and bookings."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.settings = get_settings()
        self.booking_service = BookingService(session)
        self.payment_service = PaymentService(session)

    async def handle_notification(
        self,
        payload: Mapping[str, Any],
        signature: Optional[str] = None
    ) -> PaymentNotification:
        """
        Record and apply one gateway notification.

        Args:
            payload: Fields posted by the gateway
            signature: Signature, when not carried in ``payload['md5sig']``

        Returns:
            The stored notification with its final processing status

        Raises:
            Exception: Only when the notification itself could not be stored
        """
        notification = PayHereNotification.from_payload(payload)
        if signature:
            notification.md5sig = signature.strip()

        record = await self._record(notification)
        record_id = record.id

        try:
            await self._process(record, notification)
        except Exception as e:
            await self.session.rollback()
            logger.exception(f"Error applying payment notification {record_id}: {e}")
            await self._mark_failed(record_id, f"processing error: {e}")

        return await self.session.get(PaymentNotification, record_id, populate_existing=True)

    async def _record(self, notification: PayHereNotification) -> PaymentNotification:
        record = PaymentNotification(
            gateway_payment_id=_clip(notification.payment_id, 255),
            gateway_order_id=_clip(notification.order_id, 255),
            merchant_id=_clip(notification.merchant_id, 50),
            amount=notification.amount_decimal,
            currency=_clip(notification.currency, 3),
            status_code=notification.status_code_int,
            status_message=notification.status_message,
            payment_method=_clip(notification.method, 50),
            signature=_clip(notification.md5sig, 64),
            signature_verified=False,
            raw_payload={key: str(value) for key, value in notification.raw.items()},
            processing_status=NotificationProcessingStatus.PENDING,
            received_at=utcnow(),
        )
        try:
            self.session.add(record)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            f"Stored payment notification {record.id} for order {notification.order_id} "
            f"with status code {notification.status_code}"
        )
        return record

    async def _process(self, record: PaymentNotification, notification: PayHereNotification) -> None:
        if not verify_notification_signature(notification):
            log_security_event(
                "payment_notification_signature_rejected",
                {
                    "notification_id": str(record.id),
                    "order_id": notification.order_id,
                    "merchant_id": notification.merchant_id,
                    "status_code": notification.status_code,
                },
            )
            self._finish(record, NotificationProcessingStatus.FAILED, "invalid signature")
            await self.session.commit()
            return

        record.signature_verified = True

        outcome = map_status_code(notification.status_code_int)
        if outcome == GatewayOutcome.UNKNOWN:
            self._finish(record, NotificationProcessingStatus.FAILED, f"unknown status code {notification.status_code}")
            await self.session.commit()
            return

        payments = await self._resolve_payments(notification)
        if not payments:
            logger.warning(
                f"Notification {record.id} matches no payment "
                f"(order {notification.order_id}, payment {notification.payment_id})"
            )
            self._finish(record, NotificationProcessingStatus.FAILED, "unmatched payment")
            await self.session.commit()
            return

        if outcome == GatewayOutcome.PENDING:
            self._finish(record, NotificationProcessingStatus.PROCESSED, "gateway reports payment pending")
            await self.session.commit()
            return

        if outcome == GatewayOutcome.SUCCESS:
            mismatch = self._check_amount(payments, notification)
            if mismatch:
                log_security_event(
                    "payment_notification_amount_mismatch",
                    {"notification_id": str(record.id), "order_id": notification.order_id, "reason": mismatch},
                )
                self._finish(record, NotificationProcessingStatus.FAILED, mismatch)
                await self.session.commit()
                return

            notes, refund_required = await self._apply_success(payments, notification)
        else:
            notes, refund_required = await self._apply_failure(payments, notification), []

        if refund_required:
            notes.append("refund required for bookings " + ", ".join(refund_required))
            self._finish(record, NotificationProcessingStatus.FAILED, "; ".join(notes))
        else:
            self._finish(record, NotificationProcessingStatus.PROCESSED, "; ".join(notes) or None)

        await self.session.commit()
        logger.info(f"Notification {record.id} {record.processing_status.value} for order {notification.order_id}")

    async def _resolve_payments(self, notification: PayHereNotification) -> List[Payment]:
        query = select(Payment).options(selectinload(Payment.booking)).order_by(Payment.created_at, Payment.id)

        if notification.order_id:
            result = await self.session.execute(query.where(Payment.gateway_order_id == notification.order_id))
            payments = list(result.scalars().all())
            if payments:
                return payments

        if notification.payment_id:
            result = await self.session.execute(query.where(Payment.gateway_payment_id == notification.payment_id))
            return list(result.scalars().all())

        return []

    def _check_amount(self, payments: List[Payment], notification: PayHereNotification) -> Optional[str]:
        """Return a reason when the paid amount does not match the order."""
        if not self.settings.payhere_verify_amount:
            return None

        expected_currency = self.settings.payhere_currency
        if notification.currency != expected_currency:
            return f"currency mismatch: expected {expected_currency}, got {notification.currency}"

        # Whole order total, failed payments included
        expected = sum((payment.amount for payment in payments), Decimal("0.00"))
        paid = notification.amount_decimal
        if paid is None or paid.quantize(Decimal("0.01")) != expected.quantize(Decimal("0.01")):
            return f"amount mismatch: expected {expected:.2f}, got {notification.amount}"

        return None

    async def _apply_success(self, payments: List[Payment], notification: PayHereNotification):
        notes: List[str] = []
        refund_required: List[str] = []

        for payment in payments:
            if payment.status == PaymentStatus.SUCCESS:
                continue
            if payment.status != PaymentStatus.PENDING:
                notes.append(f"payment {payment.id} already {payment.status.value}, success ignored")
                refund_required.append(str(payment.booking_id))
                continue

            changed = await self.payment_service.apply_transition(
                payment,
                PaymentStatus.SUCCESS,
                gateway_payment_id=notification.payment_id or payment.gateway_payment_id,
                payment_method=notification.method or payment.payment_method,
            )
            if not changed:
                continue

            booking = payment.booking
            if booking.status == BookingStatus.PENDING and await self.booking_service.apply_transition(
                booking, BookingStatus.CONFIRMED
            ):
                await self.booking_service.record_history(
                    booking.id,
                    BookingAction.CONFIRMED,
                    f"Payment {notification.payment_id} confirmed by gateway",
                )
                log_business_event(
                    "booking_confirmed",
                    {"booking_id": str(booking.id), "order_id": notification.order_id},
                    customer_id=booking.customer_id,
                )
            elif booking.status != BookingStatus.CONFIRMED:
                logger.warning(
                    f"Payment {payment.id} succeeded but booking {booking.id} is {booking.status.value}"
                )
                refund_required.append(str(booking.id))

        return notes, refund_required

    async def _apply_failure(self, payments: List[Payment], notification: PayHereNotification) -> List[str]:
        notes: List[str] = []

        for payment in payments:
            if payment.status == PaymentStatus.FAILED:
                continue
            if payment.status != PaymentStatus.PENDING:
                notes.append(f"payment {payment.id} already {payment.status.value}, failure ignored")
                continue

            if await self.payment_service.apply_transition(
                payment,
                PaymentStatus.FAILED,
                gateway_payment_id=notification.payment_id or payment.gateway_payment_id,
            ):
                await self.booking_service.record_history(
                    payment.booking_id,
                    BookingAction.PAYMENT_FAILED,
                    f"Gateway reported status {notification.status_code}: {notification.status_message or ''}".strip(),
                )

        return notes

    def _finish(
        self,
        record: PaymentNotification,
        status: NotificationProcessingStatus,
        error_message: Optional[str]
    ) -> None:
        record.processing_status = status
        record.error_message = error_message
        record.processed_at = utcnow()

    async def _mark_failed(self, record_id: UUID, error_message: str) -> None:
        try:
            await self.session.execute(
                update(PaymentNotification)
                .where(PaymentNotification.id == record_id)
                .values(
                    processing_status=NotificationProcessingStatus.FAILED,
                    error_message=error_message[:2000],
                    processed_at=utcnow(),
                )
            )
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Could not mark notification {record_id} as failed: {e}")
