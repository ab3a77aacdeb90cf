"""PayHere signature checks and status code mapping."""

import hashlib
from decimal import Decimal

import pytest

from procession_booking.gateway.payhere import (
    GatewayOutcome,
    PayHereNotification,
    compute_notification_signature,
    format_amount,
    generate_checkout_hash,
    map_status_code,
    verify_notification_signature,
)

from .conftest import MERCHANT_ID, MERCHANT_SECRET, signed_notification


def md5_upper(value: str) -> str:
    return hashlib.md5(value.encode()).hexdigest().upper()


class TestSignature:

    def test_signature_follows_documented_formula(self):
        notification = PayHereNotification.from_payload(
            {
                "merchant_id": MERCHANT_ID,
                "order_id": "PG_1",
                "payhere_amount": "2500.00",
                "payhere_currency": "LKR",
                "status_code": "2",
            }
        )

        expected = md5_upper(f"{MERCHANT_ID}PG_12500.00LKR2{md5_upper(MERCHANT_SECRET)}")
        assert compute_notification_signature(notification, MERCHANT_SECRET) == expected

    def test_valid_signature_verifies(self):
        notification = PayHereNotification.from_payload(signed_notification("PG_1", "2500.00"))

        assert verify_notification_signature(notification)

    def test_lowercase_signature_verifies(self):
        payload = signed_notification("PG_1", "2500.00")
        payload["md5sig"] = payload["md5sig"].lower()

        assert verify_notification_signature(PayHereNotification.from_payload(payload))

    def test_tampered_amount_fails(self):
        payload = signed_notification("PG_1", "2500.00")
        payload["payhere_amount"] = "25.00"

        assert not verify_notification_signature(PayHereNotification.from_payload(payload))

    def test_wrong_secret_fails(self):
        payload = signed_notification("PG_1", "2500.00", secret="someone-else")

        assert not verify_notification_signature(PayHereNotification.from_payload(payload))

    def test_missing_signature_fails(self):
        payload = signed_notification("PG_1", "2500.00")
        del payload["md5sig"]

        assert not verify_notification_signature(PayHereNotification.from_payload(payload))

    def test_other_merchant_fails(self):
        payload = signed_notification("PG_1", "2500.00", merchant_id="9999999")

        assert not verify_notification_signature(PayHereNotification.from_payload(payload))

    def test_unconfigured_secret_never_verifies(self):
        notification = PayHereNotification.from_payload(signed_notification("PG_1", "2500.00", secret=""))

        assert not verify_notification_signature(notification, merchant_secret="")


class TestCheckoutHash:

    def test_amount_is_formatted_to_two_places(self):
        assert format_amount(Decimal("1000")) == "1000.00"
        assert format_amount("12.345") == "12.35"

    def test_hash_uses_formatted_amount(self):
        expected = md5_upper(f"{MERCHANT_ID}PG_11000.00LKR{md5_upper(MERCHANT_SECRET)}")

        assert generate_checkout_hash(MERCHANT_ID, "PG_1", 1000, "LKR", MERCHANT_SECRET) == expected


class TestStatusCodes:

    @pytest.mark.parametrize(
        "code, outcome",
        [
            (2, GatewayOutcome.SUCCESS),
            (0, GatewayOutcome.PENDING),
            (-1, GatewayOutcome.FAILED),
            (-2, GatewayOutcome.FAILED),
            (-3, GatewayOutcome.FAILED),
            (5, GatewayOutcome.UNKNOWN),
            (None, GatewayOutcome.UNKNOWN),
        ],
    )
    def test_mapping(self, code, outcome):
        assert map_status_code(code) == outcome

    def test_non_numeric_code_is_unknown(self):
        notification = PayHereNotification.from_payload({"status_code": "ok"})

        assert notification.status_code_int is None
        assert map_status_code(notification.status_code_int) == GatewayOutcome.UNKNOWN

    def test_legacy_amount_field_is_accepted(self):
        notification = PayHereNotification.from_payload({"amount": "10.00", "currency": "LKR"})

        assert notification.amount_decimal == Decimal("10.00")
        assert notification.currency == "LKR"
