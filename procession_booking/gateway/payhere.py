"""
PayHere checkout hashing and notification verification.

PayHere signs its server-to-server notifications with ``md5sig``::

    upper(md5(merchant_id + order_id + payhere_amount + payhere_currency
              + status_code + upper(md5(merchant_secret))))

and expects the same construction (with the amount formatted to two decimal
places and no status code) as the ``hash`` field of a checkout form.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ..config import get_settings

logger = logging.getLogger(__name__)

SANDBOX_CHECKOUT_URL = "https://sandbox.payhere.lk/pay/checkout"
LIVE_CHECKOUT_URL = "https://www.payhere.lk/pay/checkout"


class GatewayOutcome(str, Enum):
    """What a notification status code means for the payment."""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"
    UNKNOWN = "unknown"


STATUS_CODE_OUTCOMES = {
    2: GatewayOutcome.SUCCESS,
    0: GatewayOutcome.PENDING,
    -1: GatewayOutcome.FAILED,  # cancelled by customer
    -2: GatewayOutcome.FAILED,  # declined
    -3: GatewayOutcome.FAILED,  # charged back
}


@dataclass
class PayHereNotification:
    """Fields of a notification as posted by PayHere."""

    merchant_id: Optional[str]
    order_id: Optional[str]
    payment_id: Optional[str]
    amount: Optional[str]
    currency: Optional[str]
    status_code: Optional[str]
    status_message: Optional[str] = None
    method: Optional[str] = None
    md5sig: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PayHereNotification":
        def text(key: str) -> Optional[str]:
            value = payload.get(key)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        return cls(
            merchant_id=text("merchant_id"),
            order_id=text("order_id"),
            payment_id=text("payment_id"),
            amount=text("payhere_amount") or text("amount"),
            currency=text("payhere_currency") or text("currency"),
            status_code=text("status_code"),
            status_message=text("status_message"),
            method=text("method"),
            md5sig=text("md5sig"),
            raw=dict(payload),
        )

    @property
    def status_code_int(self) -> Optional[int]:
        try:
            return int(self.status_code) if self.status_code is not None else None
        except ValueError:
            return None

    @property
    def amount_decimal(self) -> Optional[Decimal]:
        try:
            return Decimal(self.amount) if self.amount is not None else None
        except InvalidOperation:
            return None


def _md5_upper(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest().upper()


def format_amount(amount: Any) -> str:
    """Format an amount with two decimal places and no thousands separator."""
    return str(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def generate_checkout_hash(
    merchant_id: str,
    order_id: str,
    amount: Any,
    currency: str,
    merchant_secret: str,
) -> str:
    """Compute the ``hash`` field of a PayHere checkout form."""
    hashed_secret = _md5_upper(merchant_secret)
    return _md5_upper(f"{merchant_id}{order_id}{format_amount(amount)}{currency}{hashed_secret}")


def compute_notification_signature(notification: PayHereNotification, merchant_secret: str) -> str:
    """Compute the expected ``md5sig`` for a notification."""
    hashed_secret = _md5_upper(merchant_secret)
    return _md5_upper(
        f"{notification.merchant_id or ''}{notification.order_id or ''}"
        f"{notification.amount or ''}{notification.currency or ''}"
        f"{notification.status_code or ''}{hashed_secret}"
    )


def verify_notification_signature(
    notification: PayHereNotification,
    merchant_secret: Optional[str] = None,
    merchant_id: Optional[str] = None,
) -> bool:
    """
    Check a notification's ``md5sig`` against the shared secret.

    A missing signature, a missing secret or a notification addressed to a
    different merchant never verifies.
    """
    settings = get_settings()
    secret = merchant_secret if merchant_secret is not None else settings.payhere_merchant_secret
    expected_merchant = merchant_id if merchant_id is not None else settings.payhere_merchant_id

    if not notification.md5sig or not secret:
        return False
    if notification.merchant_id != expected_merchant:
        logger.warning(
            f"Notification for merchant {notification.merchant_id} does not match {expected_merchant}"
        )
        return False

    expected = compute_notification_signature(notification, secret)
    return hmac.compare_digest(expected, notification.md5sig.upper())


def map_status_code(status_code: Optional[int]) -> GatewayOutcome:
    """Translate a PayHere status code into an outcome."""
    if status_code is None:
        return GatewayOutcome.UNKNOWN
    return STATUS_CODE_OUTCOMES.get(status_code, GatewayOutcome.UNKNOWN)


def checkout_url(sandbox: Optional[bool] = None) -> str:
    if sandbox is None:
        sandbox = get_settings().payhere_sandbox
    return SANDBOX_CHECKOUT_URL if sandbox else LIVE_CHECKOUT_URL
