"""Reconciliation scheduler passes."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from procession_booking.models import (
    Booking,
    BookingStatus,
    Payment,
    PaymentStatus,
    SeatRestoration,
    SeatTypeAvailability,
)
from procession_booking.services.booking_service import BookingService
from procession_booking.services.notification_service import NotificationService
from procession_booking.services.payment_service import PaymentService
from procession_booking.services.reconciliation_service import ReconciliationService
from procession_booking.tasks.maintenance_tasks import run_maintenance_once
from procession_booking.utils.timeutils import ensure_utc, utcnow

from .conftest import signed_notification, stage

PAST_HOLD = timedelta(minutes=16)


async def hold(session_factory, catalog, customer_id, quantity, pay=False):
    async with session_factory() as session:
        await stage(session, customer_id, catalog, quantity)
        [booking] = await BookingService(session).create_bookings(customer_id)
        order_id = None
        if pay:
            order_id, _ = await PaymentService(session).create_payments_for_order(customer_id, [booking.id])
        return booking.id, order_id


async def run_pass(session_factory, now=None):
    async with session_factory() as session:
        return await ReconciliationService(session).run_maintenance(now)


async def seat_totals(session_factory, catalog):
    """Remaining seats and seats held by pending or confirmed bookings."""
    async with session_factory() as session:
        remaining = await session.scalar(
            select(SeatTypeAvailability.remaining_quantity)
            .where(SeatTypeAvailability.id == catalog.availability_id)
        )
        held = await session.scalar(
            select(func.coalesce(func.sum(Booking.quantity), 0)).where(
                Booking.availability_id == catalog.availability_id,
                Booking.status.in_([BookingStatus.PENDING, BookingStatus.CONFIRMED]),
            )
        )
    return remaining, held


async def booking_status(session_factory, booking_id):
    async with session_factory() as session:
        return (await session.get(Booking, booking_id)).status


@pytest.mark.asyncio
async def test_lapsed_hold_is_expired_once(session_factory, catalog, customer_id):
    booking_id, _ = await hold(session_factory, catalog, customer_id, 3)
    later = utcnow() + PAST_HOLD

    first = await run_pass(session_factory, later)
    second = await run_pass(session_factory, later)

    assert first["holds_expired"] == 1
    assert first["errors"] == []
    assert second["holds_expired"] == 0
    assert second["seats_restored_by_safety_net"] == 0
    assert await booking_status(session_factory, booking_id) == BookingStatus.EXPIRED
    assert await seat_totals(session_factory, catalog) == (5, 0)


@pytest.mark.asyncio
async def test_live_hold_is_left_alone(session_factory, catalog, customer_id):
    booking_id, _ = await hold(session_factory, catalog, customer_id, 3)

    results = await run_pass(session_factory)

    assert results["holds_expired"] == 0
    assert await booking_status(session_factory, booking_id) == BookingStatus.PENDING
    assert await seat_totals(session_factory, catalog) == (2, 3)


@pytest.mark.asyncio
async def test_failed_payment_releases_booking(session_factory, catalog, customer_id):
    booking_id, order_id = await hold(session_factory, catalog, customer_id, 2, pay=True)
    async with session_factory() as session:
        await NotificationService(session).handle_notification(
            signed_notification(order_id, "5000.00", status_code=-2)
        )

    results = await run_pass(session_factory)

    assert results["failed_payment_bookings_cancelled"] == 1
    assert await booking_status(session_factory, booking_id) == BookingStatus.CANCELLED
    assert await seat_totals(session_factory, catalog) == (5, 0)


@pytest.mark.asyncio
async def test_overdue_payment_fails_then_booking_is_cancelled(session_factory, catalog, customer_id):
    booking_id, _ = await hold(session_factory, catalog, customer_id, 3, pay=True)
    later = utcnow() + PAST_HOLD

    first = await run_pass(session_factory, later)

    assert first["payments_expired"] == 1
    # A booking with a payment is not expired as an unpaid hold
    assert first["holds_expired"] == 0
    assert await booking_status(session_factory, booking_id) == BookingStatus.PENDING
    assert await seat_totals(session_factory, catalog) == (2, 3)

    second = await run_pass(session_factory, later)

    assert second["failed_payment_bookings_cancelled"] == 1
    assert await booking_status(session_factory, booking_id) == BookingStatus.CANCELLED
    assert await seat_totals(session_factory, catalog) == (5, 0)


@pytest.mark.asyncio
async def test_confirmed_booking_with_failed_payment_is_kept(session_factory, catalog, customer_id):
    booking_id, _ = await hold(session_factory, catalog, customer_id, 2, pay=True)
    async with session_factory() as session:
        await session.execute(
            update(Booking).where(Booking.id == booking_id).values(status=BookingStatus.CONFIRMED)
        )
        await session.execute(
            update(Payment).where(Payment.booking_id == booking_id).values(status=PaymentStatus.FAILED)
        )
        await session.commit()

    results = await run_pass(session_factory)

    assert results["failed_payment_bookings_cancelled"] == 0
    assert await booking_status(session_factory, booking_id) == BookingStatus.CONFIRMED
    assert await seat_totals(session_factory, catalog) == (3, 2)


@pytest.mark.asyncio
async def test_safety_net_restores_missed_release(session_factory, catalog, customer_id):
    booking_id, _ = await hold(session_factory, catalog, customer_id, 4)
    async with session_factory() as session:
        await session.execute(
            update(Booking).where(Booking.id == booking_id).values(status=BookingStatus.CANCELLED)
        )
        await session.commit()
    assert await seat_totals(session_factory, catalog) == (1, 0)

    first = await run_pass(session_factory)
    second = await run_pass(session_factory)

    assert first["seats_restored_by_safety_net"] == 1
    assert second["seats_restored_by_safety_net"] == 0
    assert await seat_totals(session_factory, catalog) == (5, 0)
    async with session_factory() as session:
        restoration = await session.scalar(select(SeatRestoration).where(SeatRestoration.booking_id == booking_id))
    assert restoration.reason == "safety_net_cancelled"


@pytest.mark.asyncio
async def test_payment_deadline_follows_booking(session_factory, catalog, customer_id):
    booking_id, _ = await hold(session_factory, catalog, customer_id, 1, pay=True)
    async with session_factory() as session:
        await session.execute(
            update(Payment)
            .where(Payment.booking_id == booking_id)
            .values(expires_at=utcnow() + timedelta(hours=2))
        )
        await session.commit()

    results = await run_pass(session_factory)

    assert results["payments_synced"] == 1
    async with session_factory() as session:
        booking = await session.get(Booking, booking_id)
        payment = await session.scalar(select(Payment).where(Payment.booking_id == booking_id))
    assert ensure_utc(payment.expires_at) == ensure_utc(booking.expires_at)


@pytest.mark.asyncio
async def test_failing_step_does_not_stop_the_pass(session_factory, catalog, customer_id, monkeypatch):
    await hold(session_factory, catalog, customer_id, 3)

    async def broken(self, now):
        raise RuntimeError("boom")

    monkeypatch.setattr(ReconciliationService, "sync_payment_expiry", broken)

    results = await run_pass(session_factory, utcnow() + PAST_HOLD)

    assert results["errors"] == ["payments_synced"]
    assert results["holds_expired"] == 1


@pytest.mark.asyncio
async def test_run_maintenance_once_uses_its_own_engine(engine, session_factory, catalog, customer_id):
    await hold(session_factory, catalog, customer_id, 2)

    results = await run_maintenance_once(engine.url.render_as_string(hide_password=False))

    assert results["errors"] == []
    assert results["holds_expired"] == 0
