"""Tests for the Stripe gateway wrapper and webhook verification."""

import hashlib
import hmac
import json
import time
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe

from app.core.errors import BillingError
from app.services.billing import (
    PRORATION_BEHAVIOR,
    StripeBillingGateway,
    construct_webhook_event,
)


def _subscription(quantity: int) -> dict:
    return {
        "id": "sub_123",
        "items": {"data": [{"id": "si_1", "quantity": quantity}]},
    }


def _sign(payload: bytes, secret: str) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.mark.asyncio
async def test_update_quantity_prorates_and_returns_invoice():
    gateway = StripeBillingGateway("sk_test_x", "Team Member Seats")
    retrieve = MagicMock(return_value=_subscription(3))
    modify = MagicMock(return_value={"id": "sub_123", "latest_invoice": "in_42"})

    with patch.object(stripe.Subscription, "retrieve", retrieve), \
            patch.object(stripe.Subscription, "modify", modify):
        change = await gateway.update_subscription_quantity("sub_123", 5)

    assert change.previous_quantity == 3
    assert change.new_quantity == 5
    assert change.invoice_id == "in_42"
    modify.assert_called_once_with(
        "sub_123",
        api_key="sk_test_x",
        items=[{"id": "si_1", "quantity": 5}],
        proration_behavior=PRORATION_BEHAVIOR,
    )


@pytest.mark.asyncio
async def test_update_quantity_skips_modify_when_unchanged():
    gateway = StripeBillingGateway("sk_test_x", "Seats")
    modify = MagicMock()

    with patch.object(stripe.Subscription, "retrieve", MagicMock(return_value=_subscription(4))), \
            patch.object(stripe.Subscription, "modify", modify):
        change = await gateway.update_subscription_quantity("sub_123", 4)

    assert change.changed is False
    modify.assert_not_called()


@pytest.mark.asyncio
async def test_stripe_errors_become_billing_errors():
    gateway = StripeBillingGateway("sk_test_x", "Seats")
    failing = MagicMock(side_effect=stripe.APIConnectionError("network down"))

    with patch.object(stripe.Subscription, "retrieve", failing):
        with pytest.raises(BillingError):
            await gateway.get_subscription_quantity("sub_123")


@pytest.mark.asyncio
async def test_missing_api_key_is_a_billing_error():
    gateway = StripeBillingGateway("", "Seats")
    with pytest.raises(BillingError, match="STRIPE_SECRET_KEY"):
        await gateway.get_subscription_quantity("sub_123")


@pytest.mark.asyncio
async def test_checkout_session_uses_seat_price():
    gateway = StripeBillingGateway("sk_test_x", "Team Member Seats")
    create = MagicMock(return_value={"id": "cs_1", "url": "https://checkout.stripe.com/c/cs_1"})

    with patch.object(stripe.checkout.Session, "create", create):
        session = await gateway.create_checkout_session(
            company_id="c-1",
            seat_count=2,
            unit_amount_cents=999,
            metadata={"company_id": "c-1"},
            success_url="https://app.test/ok",
            cancel_url="https://app.test/cancel",
        )

    assert session.session_id == "cs_1"
    kwargs = create.call_args.kwargs
    assert kwargs["mode"] == "subscription"
    line = kwargs["line_items"][0]
    assert line["quantity"] == 2
    assert line["price_data"]["unit_amount"] == 999
    assert line["price_data"]["recurring"] == {"interval": "month"}
    assert "customer" not in kwargs


def test_webhook_signature_verified():
    payload = json.dumps({"id": "evt_1", "object": "event", "type": "ping"}).encode()
    secret = "whsec_test"
    fake_settings = SimpleNamespace(stripe_webhook_secret=secret)

    with patch("app.services.billing.get_settings", return_value=fake_settings):
        event = construct_webhook_event(payload, _sign(payload, secret))
        assert event["type"] == "ping"

        with pytest.raises(ValueError, match="signature"):
            construct_webhook_event(payload, _sign(payload, "whsec_wrong"))


def test_webhook_requires_configured_secret():
    with patch(
        "app.services.billing.get_settings",
        return_value=SimpleNamespace(stripe_webhook_secret=""),
    ):
        with pytest.raises(ValueError, match="STRIPE_WEBHOOK_SECRET"):
            construct_webhook_event(b"{}", "t=1,v1=abc")
