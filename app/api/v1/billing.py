"""Billing endpoints — seat overview, manual reconcile, Stripe webhook."""

import json
import logging

from fastapi import APIRouter, Header, HTTPException, Request, status
from pydantic import BaseModel

from app.api.deps import AdminAuth, Billing, Session, Settings
from app.core.errors import BillingError
from app.core.pricing import monthly_cost
from app.models.company import Company, SubscriptionStatus
from app.services.billing import construct_webhook_event
from app.services.onboarding import handle_billing_event
from app.services.platform_settings import member_price_cents
from app.services.seats import current_billable_seat_count, reconcile_subscription_quantity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


class SeatSummary(BaseModel):
    billable_seats: int
    billed_quantity: int | None
    subscription_status: SubscriptionStatus
    seats_out_of_sync: bool
    price_per_seat_cents: int
    monthly_cost_cents: int


class ReconcileResponse(BaseModel):
    status: str
    seats: int
    previous_quantity: int | None
    warning: str | None


@router.get("/seats", response_model=SeatSummary)
async def get_seats(
    auth: AdminAuth,
    session: Session,
    billing: Billing,
    settings: Settings,
) -> SeatSummary:
    company = await session.get(Company, auth.company_id)
    if company is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")

    seats = await current_billable_seat_count(session, company.id)
    billed = None
    if company.stripe_subscription_id:
        try:
            billed = await billing.get_subscription_quantity(company.stripe_subscription_id)
        except BillingError as exc:
            logger.warning("Could not read billed quantity for %s: %s", company.id, exc)

    price = await member_price_cents(settings)
    return SeatSummary(
        billable_seats=seats,
        billed_quantity=billed,
        subscription_status=company.subscription_status,
        seats_out_of_sync=company.seats_out_of_sync,
        price_per_seat_cents=price,
        monthly_cost_cents=monthly_cost(seats, price),
    )


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(
    auth: AdminAuth,
    session: Session,
    billing: Billing,
) -> ReconcileResponse:
    """Push the current seat count now instead of waiting for the retry job."""
    result = await reconcile_subscription_quantity(session, auth.company_id, billing)
    return ReconcileResponse(**result.as_dict())


@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(
    request: Request,
    session: Session,
    billing: Billing,
    stripe_signature: str | None = Header(None, alias="stripe-signature"),
) -> dict:
    """Stripe webhook receiver. The signature is verified before anything runs."""
    payload = await request.body()
    try:
        construct_webhook_event(payload, stripe_signature)
    except ValueError as exc:
        logger.error("Rejected Stripe webhook: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    event = json.loads(payload)
    outcome = await handle_billing_event(session, event, billing)
    logger.info("Stripe event %s (%s): %s", event.get("id"), event.get("type"), outcome)
    return {"received": True, "outcome": outcome}
