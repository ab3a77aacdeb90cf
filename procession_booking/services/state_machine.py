"""
Legal status transitions for bookings and payments.
"""

from typing import Dict, Set

from ..models.booking import BookingStatus
from ..models.payment import PaymentStatus
from ..utils.exceptions import InvalidBookingStateError, InvalidPaymentStateError


class BookingStateMachine:
    """
    Booking lifecycle.

    Every state other than pending is terminal; refunds of confirmed bookings
    happen outside the engine.
    """

    _ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
        BookingStatus.PENDING: {
            BookingStatus.CONFIRMED,
            BookingStatus.CANCELLED,
            BookingStatus.EXPIRED,
        },
        BookingStatus.CONFIRMED: set(),
        BookingStatus.CANCELLED: set(),
        BookingStatus.EXPIRED: set(),
    }

    # States whose held seats must have gone back to inventory
    RELEASING_STATES = frozenset({BookingStatus.CANCELLED, BookingStatus.EXPIRED})

    @classmethod
    def can_transition(cls, from_status: BookingStatus, to_status: BookingStatus) -> bool:
        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(
        cls,
        booking_id: str,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> None:
        """Raise InvalidBookingStateError if the transition is illegal."""
        if not cls.can_transition(from_status, to_status):
            allowed = cls.allowed_from(to_status)
            raise InvalidBookingStateError(
                booking_id,
                from_status.value,
                " or ".join(sorted(s.value for s in allowed)) or "none",
            )

    @classmethod
    def allowed_from(cls, to_status: BookingStatus) -> Set[BookingStatus]:
        """States from which ``to_status`` can be reached."""
        return {
            source for source, targets in cls._ALLOWED_TRANSITIONS.items()
            if to_status in targets
        }

    @classmethod
    def is_terminal(cls, status: BookingStatus) -> bool:
        return not cls._ALLOWED_TRANSITIONS.get(status)


class PaymentStateMachine:
    """
    Payment lifecycle.

    A failed payment is final: paying again needs a fresh booking.
    """

    _ALLOWED_TRANSITIONS: Dict[PaymentStatus, Set[PaymentStatus]] = {
        PaymentStatus.PENDING: {
            PaymentStatus.SUCCESS,
            PaymentStatus.FAILED,
        },
        PaymentStatus.SUCCESS: {
            PaymentStatus.REFUNDED,
        },
        PaymentStatus.FAILED: set(),
        PaymentStatus.REFUNDED: set(),
    }

    @classmethod
    def can_transition(cls, from_status: PaymentStatus, to_status: PaymentStatus) -> bool:
        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(
        cls,
        payment_id: str,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
    ) -> None:
        """Raise InvalidPaymentStateError if the transition is illegal."""
        if not cls.can_transition(from_status, to_status):
            sources = [
                source.value for source, targets in cls._ALLOWED_TRANSITIONS.items()
                if to_status in targets
            ]
            raise InvalidPaymentStateError(
                payment_id,
                from_status.value,
                " or ".join(sorted(sources)) or "none",
            )

    @classmethod
    def is_terminal(cls, status: PaymentStatus) -> bool:
        return not cls._ALLOWED_TRANSITIONS.get(status)
