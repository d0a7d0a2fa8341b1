"""Seat reconciliation — keep the subscription quantity equal to billable seats.

A billable seat is an active, non-admin account. Reconciliation runs after
every member change has already been committed; an external failure is
recorded (``sync_failed`` event, ``seats_out_of_sync`` flag) and returned as
a warning, never raised, so the member change always stands.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from enum import StrEnum

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import BillingError, SubscriptionSyncFailed
from app.models.account import Account, AccountStatus
from app.models.base import utcnow
from app.models.company import Company
from app.models.subscription_event import SubscriptionEvent, SubscriptionEventType
from app.services.billing import BillingGateway

logger = logging.getLogger(__name__)


class SyncStatus(StrEnum):
    SKIPPED = "skipped"
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class ReconcileResult:
    company_id: uuid.UUID
    status: SyncStatus
    seats: int
    previous_quantity: int | None = None
    invoice_id: str | None = None
    warning: SubscriptionSyncFailed | None = None

    @property
    def ok(self) -> bool:
        return self.warning is None

    def as_dict(self) -> dict:
        return {
            "status": str(self.status),
            "seats": self.seats,
            "previous_quantity": self.previous_quantity,
            "warning": str(self.warning) if self.warning else None,
        }


def billable_filter(company_id: uuid.UUID):
    return (
        Account.company_id == company_id,
        Account.is_admin == False,  # noqa: E712
        Account.status == AccountStatus.ACTIVE,
    )


async def current_billable_seat_count(session: AsyncSession, company_id: uuid.UUID) -> int:
    stmt = select(func.count()).select_from(Account).where(*billable_filter(company_id))
    return int((await session.execute(stmt)).scalar_one())


async def reconcile_subscription_quantity(
    session: AsyncSession,
    company_id: uuid.UUID,
    billing: BillingGateway,
) -> ReconcileResult:
    """Push the current billable seat count to the company's subscription."""
    company = await session.get(Company, company_id, populate_existing=True)
    if company is None:
        raise ValueError(f"Company {company_id} not found")

    seats = await current_billable_seat_count(session, company_id)
    if not company.stripe_subscription_id:
        logger.debug("Company %s has no subscription, skipping seat sync", company_id)
        return ReconcileResult(company_id=company_id, status=SyncStatus.SKIPPED, seats=seats)

    subscription_id = company.stripe_subscription_id
    try:
        change = await billing.update_subscription_quantity(subscription_id, seats)
    except BillingError as exc:
        warning = SubscriptionSyncFailed(str(company_id), seats, str(exc))
        logger.warning("%s", warning)
        company.seats_out_of_sync = True
        company.updated_at = utcnow()
        session.add(company)
        session.add(
            SubscriptionEvent(
                company_id=company_id,
                event_type=SubscriptionEventType.SYNC_FAILED,
                new_quantity=seats,
                details=json.dumps({"subscription_id": subscription_id, "error": str(exc)}),
            )
        )
        await session.commit()
        return ReconcileResult(
            company_id=company_id, status=SyncStatus.FAILED, seats=seats, warning=warning
        )

    if change.changed:
        session.add(
            SubscriptionEvent(
                company_id=company_id,
                event_type=SubscriptionEventType.QUANTITY_UPDATED,
                previous_quantity=change.previous_quantity,
                new_quantity=change.new_quantity,
                stripe_invoice_id=change.invoice_id,
                details=json.dumps({"subscription_id": subscription_id}),
            )
        )
    if company.seats_out_of_sync:
        company.seats_out_of_sync = False
        company.updated_at = utcnow()
        session.add(company)
    await session.commit()

    if change.changed:
        logger.info(
            "Company %s subscription quantity %d -> %d",
            company_id, change.previous_quantity, change.new_quantity,
        )
    return ReconcileResult(
        company_id=company_id,
        status=SyncStatus.UPDATED if change.changed else SyncStatus.UNCHANGED,
        seats=seats,
        previous_quantity=change.previous_quantity,
        invoice_id=change.invoice_id,
    )


async def companies_out_of_sync(session: AsyncSession) -> list[uuid.UUID]:
    result = await session.execute(
        select(Company.id).where(
            Company.seats_out_of_sync == True,  # noqa: E712
            Company.stripe_subscription_id.is_not(None),  # type: ignore[union-attr]
        )
    )
    return list(result.scalars().all())
