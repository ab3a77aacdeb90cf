"""
Checkout initiation: one payment row per booking, grouped under a gateway
order id, plus the signed form fields the gateway checkout page expects.
"""

import logging
import secrets
import string
import time
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from ..config import get_settings
from ..gateway import payhere
from ..models.booking import Booking, BookingStatus
from ..models.booking_history import BookingHistory, BookingAction
from ..models.payment import Payment, PaymentStatus
from ..utils.exceptions import (
    BookingNotFoundError,
    InvalidBookingStateError,
    InvalidPaymentStateError,
    PaymentAlreadyCompletedError,
    PaymentGatewayError,
    PaymentNotFoundError,
    ValidationError,
)
from ..utils.timeutils import ensure_utc, utcnow
from .state_machine import PaymentStateMachine

logger = logging.getLogger(__name__)

_ORDER_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def generate_order_id() -> str:
    """Order ids look like ``PG_<epoch millis>_<9 random chars>``."""
    suffix = "".join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(9))
    return f"PG_{int(time.time() * 1000)}_{suffix}"


class PaymentService:
    """Service for payment rows and gateway checkout."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.settings = get_settings()

    async def create_payments_for_order(
        self,
        customer_id: str,
        booking_ids: Sequence[UUID],
        payment_method: str = "payhere",
        order_id: Optional[str] = None
    ) -> Tuple[str, List[Payment]]:
        """
        Open (or reopen) payments for a set of pending bookings.

        A still-pending payment is refreshed and moved to the new order; a
        booking whose payment already succeeded or failed is refused, since a
        failed payment never turns into a success.

        Returns:
            The gateway order id and one payment per booking

        Raises:
            ValidationError: No booking ids given
            BookingNotFoundError: Missing booking or owned by someone else
            InvalidBookingStateError: Booking not pending or its hold passed
            PaymentAlreadyCompletedError: Booking already paid
            InvalidPaymentStateError: Booking's payment already failed
        """
        if not booking_ids:
            raise ValidationError("At least one booking is required")

        order_id = order_id or generate_order_id()
        logger.info(f"Creating payments for order {order_id} covering {len(booking_ids)} bookings")

        try:
            result = await self.session.execute(
                select(Booking)
                .options(selectinload(Booking.payment))
                .where(Booking.id.in_(list(booking_ids)))
                .execution_options(populate_existing=True)
            )
            bookings = {booking.id: booking for booking in result.scalars().all()}

            now = utcnow()
            payments: List[Payment] = []

            for booking_id in booking_ids:
                booking = bookings.get(booking_id)
                if booking is None or booking.customer_id != customer_id:
                    raise BookingNotFoundError(str(booking_id))

                if booking.status != BookingStatus.PENDING:
                    raise InvalidBookingStateError(str(booking_id), booking.status.value, BookingStatus.PENDING.value)
                if booking.expires_at is not None and ensure_utc(booking.expires_at) <= now:
                    raise InvalidBookingStateError(str(booking_id), "hold expired", BookingStatus.PENDING.value)

                expires_at = self._payment_deadline(booking)
                payment = booking.payment

                if payment is None:
                    payment = Payment(
                        booking_id=booking.id,
                        amount=booking.total_price,
                        payment_method=payment_method,
                        status=PaymentStatus.PENDING,
                        gateway_order_id=order_id,
                        expires_at=expires_at,
                    )
                    self.session.add(payment)
                    detail = f"Payment opened under order {order_id}"
                elif payment.status == PaymentStatus.PENDING:
                    payment.amount = booking.total_price
                    payment.payment_method = payment_method
                    payment.gateway_order_id = order_id
                    payment.expires_at = expires_at
                    detail = f"Pending payment moved to order {order_id}"
                elif payment.status in (PaymentStatus.SUCCESS, PaymentStatus.REFUNDED):
                    raise PaymentAlreadyCompletedError(str(booking_id))
                else:
                    raise InvalidPaymentStateError(
                        str(payment.id), payment.status.value, PaymentStatus.PENDING.value
                    )

                self.session.add(
                    BookingHistory(
                        booking_id=booking.id,
                        action=BookingAction.PAYMENT_CREATED,
                        details=detail,
                        performed_by=customer_id,
                    )
                )
                payments.append(payment)

            await self.session.commit()

        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error creating payments for order {order_id}: {e}")
            raise

        return order_id, payments

    async def get_order_payments(self, order_id: str, customer_id: Optional[str] = None) -> List[Payment]:
        """
        Payments grouped under a gateway order id.

        Raises:
            PaymentNotFoundError: When nothing matches (or none is owned by
                ``customer_id``)
        """
        query = (
            select(Payment)
            .join(Booking, Payment.booking_id == Booking.id)
            .options(selectinload(Payment.booking))
            .where(Payment.gateway_order_id == order_id)
            .order_by(Payment.created_at, Payment.id)
        )
        if customer_id is not None:
            query = query.where(Booking.customer_id == customer_id)

        payments = list((await self.session.execute(query)).scalars().all())
        if not payments:
            raise PaymentNotFoundError(order_id)
        return payments

    async def build_checkout_payload(self, order_id: str, customer_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Form fields for the PayHere checkout page.

        Raises:
            PaymentNotFoundError: No payments for the order
            InvalidPaymentStateError: No payment of the order is still pending
            PaymentGatewayError: Merchant secret not configured
        """
        payments = await self.get_order_payments(order_id, customer_id)
        pending = [payment for payment in payments if payment.status == PaymentStatus.PENDING]
        if not pending:
            raise InvalidPaymentStateError(order_id, payments[0].status.value, PaymentStatus.PENDING.value)

        if not self.settings.payhere_merchant_secret:
            raise PaymentGatewayError("merchant secret is not configured")

        total = sum((payment.amount for payment in pending), Decimal("0.00"))
        amount = payhere.format_amount(total)
        currency = self.settings.payhere_currency

        payload: Dict[str, Any] = {
            "checkout_url": payhere.checkout_url(),
            "sandbox": self.settings.payhere_sandbox,
            "merchant_id": self.settings.payhere_merchant_id,
            "order_id": order_id,
            "items": f"{len(pending)} seat items",
            "currency": currency,
            "amount": amount,
            "notify_url": self.settings.payhere_notify_url,
            "return_url": self.settings.payhere_return_url,
            "cancel_url": self.settings.payhere_cancel_url,
            "hash": payhere.generate_checkout_hash(
                self.settings.payhere_merchant_id,
                order_id,
                amount,
                currency,
                self.settings.payhere_merchant_secret,
            ),
        }
        return payload

    async def apply_transition(self, payment: Payment, to_status: PaymentStatus, **values: Any) -> bool:
        """
        Move a payment forward with a status-guarded UPDATE.

        Returns:
            True if this call changed the row, False if it had already moved
        """
        from_status = payment.status
        PaymentStateMachine.validate_transition(str(payment.id), from_status, to_status)
        values.setdefault("updated_at", utcnow())

        result = await self.session.execute(
            update(Payment)
            .where(
                and_(
                    Payment.id == payment.id,
                    Payment.status == from_status
                )
            )
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(f"Payment {payment.id} left {from_status.value} concurrently, skipping")
            return False

        set_committed_value(payment, "status", to_status)
        for key, value in values.items():
            set_committed_value(payment, key, value)
        return True

    def _payment_deadline(self, booking: Booking):
        """Payments never outlive the booking hold."""
        if booking.expires_at is not None:
            return ensure_utc(booking.expires_at)
        return utcnow() + timedelta(minutes=self.settings.payment_expiry_minutes)
