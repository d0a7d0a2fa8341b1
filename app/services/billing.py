"""Billing gateway — the seam between seat logic and Stripe.

Services depend on the ``BillingGateway`` protocol. ``StripeBillingGateway``
wraps the blocking Stripe SDK in a worker thread and converts every
``stripe.StripeError`` into ``BillingError``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import stripe

from app.core.config import get_settings
from app.core.errors import BillingError

logger = logging.getLogger(__name__)

PRORATION_BEHAVIOR = "always_invoice"


@dataclass(frozen=True)
class QuantityChange:
    previous_quantity: int
    new_quantity: int
    invoice_id: str | None = None

    @property
    def changed(self) -> bool:
        return self.previous_quantity != self.new_quantity


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


class BillingGateway(Protocol):
    async def get_subscription_quantity(self, subscription_id: str) -> int: ...

    async def update_subscription_quantity(
        self, subscription_id: str, quantity: int
    ) -> QuantityChange: ...

    async def create_checkout_session(
        self,
        *,
        company_id: str,
        seat_count: int,
        unit_amount_cents: int,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_id: str | None = None,
    ) -> CheckoutSession: ...


def _field(obj: Any, key: str, default: Any = None) -> Any:
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def _first_item(subscription: Any) -> Any:
    items = _field(_field(subscription, "items", {}), "data", [])
    if not items:
        raise BillingError(f"Subscription {_field(subscription, 'id')} has no items")
    return items[0]


class StripeBillingGateway:
    def __init__(self, api_key: str, product_name: str) -> None:
        self._api_key = api_key
        self._product_name = product_name

    async def _call(self, fn, *args, **kwargs):
        if not self._api_key:
            raise BillingError("STRIPE_SECRET_KEY is not configured")
        try:
            return await asyncio.to_thread(fn, *args, api_key=self._api_key, **kwargs)
        except stripe.StripeError as exc:
            logger.warning("Stripe call %s failed: %s", getattr(fn, "__qualname__", fn), exc)
            raise BillingError(str(exc)) from exc

    async def get_subscription_quantity(self, subscription_id: str) -> int:
        subscription = await self._call(stripe.Subscription.retrieve, subscription_id)
        return int(_field(_first_item(subscription), "quantity", 0))

    async def update_subscription_quantity(
        self, subscription_id: str, quantity: int
    ) -> QuantityChange:
        subscription = await self._call(stripe.Subscription.retrieve, subscription_id)
        item = _first_item(subscription)
        previous = int(_field(item, "quantity", 0))
        if previous == quantity:
            return QuantityChange(previous_quantity=previous, new_quantity=quantity)

        updated = await self._call(
            stripe.Subscription.modify,
            subscription_id,
            items=[{"id": item["id"], "quantity": quantity}],
            proration_behavior=PRORATION_BEHAVIOR,
        )
        invoice = _field(updated, "latest_invoice")
        invoice_id = invoice if isinstance(invoice, str) else _field(invoice, "id")
        logger.info(
            "Stripe subscription %s quantity %d -> %d (invoice=%s)",
            subscription_id, previous, quantity, invoice_id,
        )
        return QuantityChange(
            previous_quantity=previous, new_quantity=quantity, invoice_id=invoice_id
        )

    async def create_checkout_session(
        self,
        *,
        company_id: str,
        seat_count: int,
        unit_amount_cents: int,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_id: str | None = None,
    ) -> CheckoutSession:
        params: dict[str, Any] = {
            "mode": "subscription",
            "client_reference_id": company_id,
            "line_items": [
                {
                    "price_data": {
                        "currency": "usd",
                        "unit_amount": unit_amount_cents,
                        "recurring": {"interval": "month"},
                        "product_data": {"name": self._product_name},
                    },
                    "quantity": seat_count,
                }
            ],
            "metadata": metadata,
            "subscription_data": {"metadata": {"company_id": company_id}},
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if customer_id:
            params["customer"] = customer_id

        session = await self._call(stripe.checkout.Session.create, **params)
        logger.info("Created checkout session %s for company %s", session["id"], company_id)
        return CheckoutSession(session_id=session["id"], url=session["url"])


def construct_webhook_event(payload: bytes, signature: str | None) -> Any:
    """Verify a Stripe webhook payload. Raises ValueError on any failure."""
    secret = get_settings().stripe_webhook_secret
    if not secret:
        raise ValueError("STRIPE_WEBHOOK_SECRET is not configured")
    try:
        return stripe.Webhook.construct_event(payload, signature or "", secret)
    except stripe.SignatureVerificationError as exc:
        raise ValueError("Invalid Stripe signature") from exc


def get_billing_gateway() -> BillingGateway:
    """FastAPI dependency for the configured gateway."""
    settings = get_settings()
    return StripeBillingGateway(settings.stripe_secret_key, settings.stripe_product_name)
