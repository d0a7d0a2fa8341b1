"""Onboarding / billing gate.

Flow for a company without billing:
  1. Admin adds the first billable member(s), by invite, import or reactivation
  2. ``ensure_billing_before_first_member`` creates a checkout session and a
     ``PendingCheckout`` row holding the waiting member changes; single
     invites also carry the member in the session metadata
  3. Nothing is created until Stripe reports ``checkout.session.completed``
  4. ``complete_billing_setup`` stores the subscription, applies the pending
     member changes and reconciles the seat count
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.models.account import Account, AccountCreate, AccountStatus, normalize_email
from app.models.base import utcnow
from app.models.company import Company, SubscriptionStatus
from app.models.pending_checkout import PendingCheckout
from app.models.subscription_event import SubscriptionEvent, SubscriptionEventType
from app.services.billing import BillingGateway
from app.services.platform_settings import SettingsProvider, member_price_cents
from app.services.seats import (
    ReconcileResult,
    current_billable_seat_count,
    reconcile_subscription_quantity,
)

logger = logging.getLogger(__name__)

METADATA_COMPANY_ID = "company_id"
METADATA_PENDING_MEMBER = "pending_member_data"
METADATA_INVITED_BY = "invited_by"

# Stripe subscription status -> local status
_STRIPE_STATUS = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.INACTIVE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
}


@dataclass
class BillingGateResult:
    needs_billing_setup: bool
    checkout_url: str | None = None
    session_id: str | None = None


@dataclass
class BillingSetupOutcome:
    company_id: uuid.UUID
    members: list[Account] = field(default_factory=list)
    reactivated: list[Account] = field(default_factory=list)
    reconcile: ReconcileResult | None = None


# ── Gate ─────────────────────────────────────────────────────

async def ensure_billing_before_first_member(
    session: AsyncSession,
    company_id: uuid.UUID,
    billing: BillingGateway,
    settings_provider: SettingsProvider,
    *,
    seats_to_add: int = 1,
    pending_member: AccountCreate | None = None,
    pending_members: list[AccountCreate] | None = None,
    reactivate_account_ids: list[uuid.UUID] | None = None,
    invited_by: uuid.UUID | None = None,
) -> BillingGateResult:
    """Decide whether the company must complete checkout before adding members.

    The caller must not create or reactivate any account when
    ``needs_billing_setup`` is set; the waiting changes are stored with the
    checkout session and applied by ``complete_billing_setup``.
    """
    company = await session.get(Company, company_id, populate_existing=True)
    if company is None:
        raise ValueError(f"Company {company_id} not found")

    seats = await current_billable_seat_count(session, company_id)
    if seats > 0 or company.subscription_status == SubscriptionStatus.ACTIVE:
        return BillingGateResult(needs_billing_setup=False)

    metadata = {METADATA_COMPANY_ID: str(company_id)}
    if pending_member is not None:
        metadata[METADATA_PENDING_MEMBER] = pending_member.model_dump_json()
    if invited_by is not None:
        metadata[METADATA_INVITED_BY] = str(invited_by)

    seat_count = max(1, seats_to_add)
    frontend = get_settings().frontend_url.rstrip("/")
    checkout = await billing.create_checkout_session(
        company_id=str(company_id),
        seat_count=seat_count,
        unit_amount_cents=await member_price_cents(settings_provider),
        metadata=metadata,
        success_url=f"{frontend}/team?billing=success&session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{frontend}/team?billing=cancelled",
        customer_id=company.stripe_customer_id,
    )

    waiting = ([pending_member] if pending_member is not None else []) + list(pending_members or [])
    session.add(
        PendingCheckout(
            company_id=company_id,
            checkout_session_id=checkout.session_id,
            seat_count=seat_count,
            members=json.dumps([m.model_dump(mode="json") for m in waiting]),
            reactivate_account_ids=json.dumps(
                [str(account_id) for account_id in reactivate_account_ids or []]
            ),
            invited_by=invited_by,
        )
    )
    await session.commit()
    logger.info(
        "Company %s needs billing setup before adding %d member(s), checkout %s",
        company_id, seat_count, checkout.session_id,
    )
    return BillingGateResult(
        needs_billing_setup=True,
        checkout_url=checkout.url,
        session_id=checkout.session_id,
    )


# ── Checkout completion ──────────────────────────────────────

async def _claim_pending_checkout(
    session: AsyncSession, company_id: uuid.UUID, checkout_session_id: str
) -> PendingCheckout | None:
    result = await session.execute(
        select(PendingCheckout).where(PendingCheckout.checkout_session_id == checkout_session_id)
    )
    record = result.scalar_one_or_none()
    if record is None:
        return None
    if record.company_id != company_id:
        logger.warning(
            "Checkout %s belongs to company %s, not %s",
            checkout_session_id, record.company_id, company_id,
        )
        return None
    if record.completed_at is None:
        record.completed_at = utcnow()
        session.add(record)
    return record


async def _create_paid_members(
    session: AsyncSession,
    company_id: uuid.UUID,
    pending: list[AccountCreate],
    invited_by: uuid.UUID | None,
) -> tuple[list[Account], int]:
    """Create the waiting members as active. Returns (members, newly created)."""
    members: list[Account] = []
    created = 0
    seen: set[str] = set()
    for data in pending:
        email = normalize_email(data.email)
        if email in seen:
            continue
        seen.add(email)
        result = await session.execute(
            select(Account).where(Account.company_id == company_id, Account.email == email)
        )
        member = result.scalar_one_or_none()
        if member is not None:
            logger.info("Pending member %s already exists in company %s", email, company_id)
            members.append(member)
            continue
        member = Account(
            company_id=company_id,
            email=email,
            display_name=data.display_name,
            department=data.department,
            is_admin=data.is_admin,
            monthly_limit=data.monthly_limit,
            invited_by=invited_by,
            # The seat was paid for at checkout
            status=AccountStatus.ACTIVE,
            activated_at=utcnow(),
        )
        session.add(member)
        members.append(member)
        created += 1
    return members, created


async def _reactivate_paid_members(
    session: AsyncSession, company_id: uuid.UUID, account_ids: list[uuid.UUID]
) -> list[Account]:
    reactivated: list[Account] = []
    for account_id in account_ids:
        account = await session.get(Account, account_id, populate_existing=True)
        if account is None or account.company_id != company_id:
            logger.warning("Pending reactivation %s not found in company %s", account_id, company_id)
            continue
        if account.status != AccountStatus.DEACTIVATED:
            continue
        now = utcnow()
        account.status = AccountStatus.ACTIVE
        account.deactivated_at = None
        account.activated_at = now
        account.updated_at = now
        session.add(account)
        reactivated.append(account)
    return reactivated


async def complete_billing_setup(
    session: AsyncSession,
    *,
    company_id: uuid.UUID,
    subscription_id: str,
    customer_id: str | None,
    billing: BillingGateway,
    checkout_session_id: str | None = None,
    pending_members: list[AccountCreate] | None = None,
    invited_by: uuid.UUID | None = None,
) -> BillingSetupOutcome:
    """Activate billing for a company and apply the member changes that waited.

    Waiting changes come from the ``PendingCheckout`` row of the session and
    from ``pending_members``. Safe to call twice for the same checkout: the
    subscription event is only written once and existing accounts are reused.
    The seat count is only pushed when something changed, so a checkout with
    nothing to apply keeps the quantity that was paid for.
    """
    company = await session.get(Company, company_id, populate_existing=True)
    if company is None:
        raise ValueError(f"Company {company_id} not found")

    already_set_up = (
        company.stripe_subscription_id == subscription_id
        and company.subscription_status == SubscriptionStatus.ACTIVE
    )
    if not already_set_up:
        company.stripe_subscription_id = subscription_id
        if customer_id:
            company.stripe_customer_id = customer_id
        company.subscription_status = SubscriptionStatus.ACTIVE
        company.updated_at = utcnow()
        session.add(company)
        session.add(
            SubscriptionEvent(
                company_id=company_id,
                event_type=SubscriptionEventType.SUBSCRIPTION_CREATED,
                details=json.dumps(
                    {
                        "subscription_id": subscription_id,
                        "customer_id": customer_id,
                        "checkout_session_id": checkout_session_id,
                    }
                ),
            )
        )

    pending = list(pending_members or [])
    reactivate_ids: list[uuid.UUID] = []
    if checkout_session_id:
        record = await _claim_pending_checkout(session, company_id, checkout_session_id)
        if record is not None:
            pending.extend(record.pending_members())
            reactivate_ids = record.reactivate_ids()
            invited_by = invited_by or record.invited_by

    members, created = await _create_paid_members(session, company_id, pending, invited_by)
    reactivated = await _reactivate_paid_members(session, company_id, reactivate_ids)

    await session.commit()
    for account in members + reactivated:
        await session.refresh(account)
    logger.info(
        "Billing set up for company %s (subscription %s): %d created, %d reactivated",
        company_id, subscription_id, created, len(reactivated),
    )

    outcome = BillingSetupOutcome(company_id=company_id, members=members, reactivated=reactivated)
    if created or reactivated:
        outcome.reconcile = await reconcile_subscription_quantity(session, company_id, billing)
    else:
        logger.info("No member changes for company %s, keeping the paid quantity", company_id)
    return outcome


# ── Stripe webhook events ────────────────────────────────────

async def update_subscription_status(
    session: AsyncSession, subscription_id: str, stripe_status: str
) -> Company | None:
    result = await session.execute(
        select(Company).where(Company.stripe_subscription_id == subscription_id)
    )
    company = result.scalar_one_or_none()
    if company is None:
        logger.warning("No company for subscription %s", subscription_id)
        return None

    new_status = _STRIPE_STATUS.get(stripe_status, SubscriptionStatus.INACTIVE)
    if new_status == company.subscription_status:
        return company

    previous = company.subscription_status
    company.subscription_status = new_status
    company.updated_at = utcnow()
    session.add(company)
    session.add(
        SubscriptionEvent(
            company_id=company.id,
            event_type=SubscriptionEventType.STATUS_CHANGED,
            details=json.dumps(
                {
                    "subscription_id": subscription_id,
                    "previous_status": str(previous),
                    "new_status": str(new_status),
                    "stripe_status": stripe_status,
                }
            ),
        )
    )
    await session.commit()
    logger.info("Company %s subscription status %s -> %s", company.id, previous, new_status)
    return company


async def handle_billing_event(
    session: AsyncSession, event: dict, billing: BillingGateway
) -> str:
    """Apply a verified Stripe webhook event. Returns a short outcome label."""
    event_type = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == "checkout.session.completed":
        if obj.get("mode") != "subscription" or not obj.get("subscription"):
            return "ignored"
        if obj.get("payment_status") not in ("paid", "no_payment_required"):
            logger.warning("Checkout %s completed without payment", obj.get("id"))
            return "unpaid"

        metadata = obj.get("metadata") or {}
        raw_company_id = metadata.get(METADATA_COMPANY_ID) or obj.get("client_reference_id")
        if not raw_company_id:
            logger.warning("Checkout %s has no company id", obj.get("id"))
            return "ignored"

        pending = metadata.get(METADATA_PENDING_MEMBER)
        invited_by = metadata.get(METADATA_INVITED_BY)
        await complete_billing_setup(
            session,
            company_id=uuid.UUID(raw_company_id),
            subscription_id=obj["subscription"],
            customer_id=obj.get("customer"),
            billing=billing,
            checkout_session_id=obj.get("id"),
            pending_members=[AccountCreate.model_validate_json(pending)] if pending else None,
            invited_by=uuid.UUID(invited_by) if invited_by else None,
        )
        return "billing_setup_completed"

    if event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
        status = "canceled" if event_type.endswith("deleted") else obj.get("status", "")
        company = await update_subscription_status(session, obj.get("id", ""), status)
        return "status_updated" if company is not None else "ignored"

    logger.debug("Ignoring Stripe event %s", event_type)
    return "ignored"
