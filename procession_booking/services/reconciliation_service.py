"""
Reconciliation: the periodic pass that keeps bookings, payments and seat
counters consistent when a hold lapses, a payment fails or a previous step
died halfway.

Every row is handled in its own transaction with status-guarded updates, so
the pass can overlap with itself or with the notification handler.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..config import get_settings
from ..models.booking import Booking, BookingStatus
from ..models.booking_history import BookingAction
from ..models.payment import Payment, PaymentStatus
from ..models.seat_restoration import SeatRestoration
from ..utils.logging_config import log_business_event
from ..utils.timeutils import ensure_utc, utcnow
from .booking_service import BookingService
from .inventory_service import InventoryService
from .payment_service import PaymentService
from .state_machine import BookingStateMachine

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Service running the maintenance steps."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.settings = get_settings()
        self.booking_service = BookingService(session)
        self.payment_service = PaymentService(session)
        self.inventory = InventoryService(session)

    async def run_maintenance(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run one full pass.

        Steps run in a fixed order and independently of each other: a step
        that fails is logged and the next one still runs.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            Rows changed per step and the names of steps that failed
        """
        now = ensure_utc(now) if now is not None else utcnow()
        logger.info(f"Starting booking maintenance pass at {now.isoformat()}")

        steps = [
            ("payments_synced", self.sync_payment_expiry),
            ("holds_expired", self.expire_unpaid_holds),
            ("failed_payment_bookings_cancelled", self.cancel_failed_payment_bookings),
            ("payments_expired", self.fail_overdue_payments),
            ("seats_restored_by_safety_net", self.restore_missed_releases),
        ]

        results: Dict[str, Any] = {"errors": []}
        for name, step in steps:
            try:
                results[name] = await step(now)
            except Exception as e:
                await self.session.rollback()
                logger.exception(f"Maintenance step {name} failed: {e}")
                results[name] = 0
                results["errors"].append(name)

        logger.info(f"Booking maintenance pass finished: {results}")
        return results

    async def sync_payment_expiry(self, now: datetime) -> int:
        """
        Align pending payment deadlines with their booking hold.

        A pending payment follows its pending booking's deadline. Without one
        it gets ``updated_at`` plus the payment window.
        """
        payment_ids = await self._ids(
            select(Payment.id).where(Payment.status == PaymentStatus.PENDING)
        )

        async def sync(payment_id: UUID) -> bool:
            payment = await self._load_payment(payment_id)
            if payment is None or payment.status != PaymentStatus.PENDING:
                return False

            booking = payment.booking
            current = ensure_utc(payment.expires_at) if payment.expires_at else None

            if booking.status == BookingStatus.PENDING and booking.expires_at is not None:
                target = ensure_utc(booking.expires_at)
                if current is not None and current <= target:
                    return False
            elif current is None:
                target = ensure_utc(payment.updated_at) + timedelta(minutes=self.settings.payment_expiry_minutes)
            else:
                return False

            payment.expires_at = target
            return True

        return await self._for_each(payment_ids, sync, "sync payment expiry")

    async def expire_unpaid_holds(self, now: datetime) -> int:
        """Expire pending bookings past their deadline that never got a payment."""
        booking_ids = await self._ids(
            select(Booking.id)
            .outerjoin(Payment, Payment.booking_id == Booking.id)
            .where(
                and_(
                    Booking.status == BookingStatus.PENDING,
                    Booking.expires_at <= now,
                    Payment.id.is_(None)
                )
            )
        )

        async def expire(booking_id: UUID) -> bool:
            booking = await self._load_booking(booking_id)
            if (
                booking is None
                or booking.status != BookingStatus.PENDING
                or booking.payment is not None
                or booking.expires_at is None
                or ensure_utc(booking.expires_at) > now
            ):
                return False
            return await self._release(booking, BookingStatus.EXPIRED, BookingAction.EXPIRED, "Hold expired without payment")

        return await self._for_each(booking_ids, expire, "expire hold")

    async def cancel_failed_payment_bookings(self, now: datetime) -> int:
        """Cancel bookings whose payment failed and give their seats back."""
        booking_ids = await self._ids(
            select(Booking.id)
            .join(Payment, Payment.booking_id == Booking.id)
            .where(
                and_(
                    Payment.status == PaymentStatus.FAILED,
                    Booking.status.notin_([BookingStatus.CANCELLED, BookingStatus.EXPIRED])
                )
            )
        )

        async def cancel(booking_id: UUID) -> bool:
            booking = await self._load_booking(booking_id)
            if booking is None or booking.payment is None or booking.payment.status != PaymentStatus.FAILED:
                return False
            if not BookingStateMachine.can_transition(booking.status, BookingStatus.CANCELLED):
                logger.warning(
                    f"Booking {booking.id} is {booking.status.value} with a failed payment, leaving it unchanged"
                )
                return False
            return await self._release(
                booking, BookingStatus.CANCELLED, BookingAction.CANCELLED, "Cancelled after payment failure"
            )

        return await self._for_each(booking_ids, cancel, "cancel failed-payment booking")

    async def fail_overdue_payments(self, now: datetime) -> int:
        """
        Fail pending payments past their deadline.

        The owning booking is cancelled by the next pass.
        """
        payment_ids = await self._ids(
            select(Payment.id).where(
                and_(
                    Payment.status == PaymentStatus.PENDING,
                    Payment.expires_at <= now
                )
            )
        )

        async def fail(payment_id: UUID) -> bool:
            payment = await self._load_payment(payment_id)
            if (
                payment is None
                or payment.status != PaymentStatus.PENDING
                or payment.expires_at is None
                or ensure_utc(payment.expires_at) > now
            ):
                return False
            if not await self.payment_service.apply_transition(payment, PaymentStatus.FAILED):
                return False
            await self.booking_service.record_history(
                payment.booking_id, BookingAction.PAYMENT_EXPIRED, "Payment window closed without confirmation"
            )
            return True

        return await self._for_each(payment_ids, fail, "expire payment")

    async def restore_missed_releases(self, now: datetime) -> int:
        """Restore seats for cancelled or expired bookings that never got them back."""
        booking_ids = await self._ids(
            select(Booking.id)
            .outerjoin(SeatRestoration, SeatRestoration.booking_id == Booking.id)
            .where(
                and_(
                    Booking.status.in_(list(BookingStateMachine.RELEASING_STATES)),
                    SeatRestoration.id.is_(None)
                )
            )
        )

        async def restore(booking_id: UUID) -> bool:
            booking = await self._load_booking(booking_id)
            if booking is None or booking.status not in BookingStateMachine.RELEASING_STATES:
                return False
            if not await self.inventory.restore_for_booking(booking, reason=f"safety_net_{booking.status.value}"):
                return False
            logger.warning(f"Safety net restored {booking.quantity} seats for booking {booking.id}")
            await self.booking_service.record_history(
                booking.id,
                BookingAction.SEATS_RESTORED,
                f"Returned {booking.quantity} seats missed by an earlier release",
            )
            return True

        return await self._for_each(booking_ids, restore, "safety-net restore")

    async def _release(
        self,
        booking: Booking,
        to_status: BookingStatus,
        action: BookingAction,
        details: str
    ) -> bool:
        if not await self.booking_service.apply_transition(booking, to_status):
            return False

        await self.booking_service.record_history(booking.id, action, details)
        if await self.inventory.restore_for_booking(booking, reason=to_status.value):
            await self.booking_service.record_history(
                booking.id,
                BookingAction.SEATS_RESTORED,
                f"Returned {booking.quantity} seats to inventory",
            )

        log_business_event(
            f"booking_{to_status.value}",
            {"booking_id": str(booking.id), "quantity": booking.quantity},
            customer_id=booking.customer_id,
        )
        return True

    async def _ids(self, query) -> List[UUID]:
        result = await self.session.execute(query.limit(self.settings.maintenance_batch_size))
        ids = list(result.scalars().all())
        # Release the read transaction before the per-row ones
        await self.session.commit()
        return ids

    async def _for_each(
        self,
        ids: List[UUID],
        handler: Callable[[UUID], Awaitable[bool]],
        label: str
    ) -> int:
        """Run ``handler`` per id, one transaction each; a failing row is skipped."""
        changed = 0
        for row_id in ids:
            try:
                if await handler(row_id):
                    await self.session.commit()
                    changed += 1
                else:
                    await self.session.rollback()
            except Exception as e:
                await self.session.rollback()
                logger.error(f"Failed to {label} for {row_id}: {e}")
        return changed

    async def _load_booking(self, booking_id: UUID) -> Optional[Booking]:
        result = await self.session.execute(
            select(Booking)
            .options(selectinload(Booking.payment))
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _load_payment(self, payment_id: UUID) -> Optional[Payment]:
        result = await self.session.execute(
            select(Payment)
            .options(selectinload(Payment.booking))
            .where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
