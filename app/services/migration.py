"""Migration planner — move companies from fixed team slots to per-seat billing.

``analyze`` is read-only (plus best-effort subscription reads).
``migrate`` is idempotent: once the billed quantity and ``team_slots`` both
equal the billable seat count it neither calls Stripe nor writes an event.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import BillingError, NoActiveSubscription, PointsError
from app.core.pricing import seat_cost_change
from app.models.base import utcnow
from app.models.company import Company, SubscriptionStatus
from app.models.subscription_event import SubscriptionEvent, SubscriptionEventType
from app.services.billing import BillingGateway
from app.services.platform_settings import SettingsProvider, member_price_cents
from app.services.seats import current_billable_seat_count

logger = logging.getLogger(__name__)


class MigrationStatus(StrEnum):
    MIGRATED = "migrated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class CompanyAnalysis:
    company_id: uuid.UUID
    company_name: str
    current_slots: int
    current_seats: int
    billed_quantity: int | None
    subscription_status: str
    migration_needed: bool
    estimated_cost_change: int  # cents per month, negative = savings

    def as_dict(self) -> dict:
        data = asdict(self)
        data["company_id"] = str(self.company_id)
        return data


@dataclass
class MigrationResult:
    company_id: uuid.UUID
    status: MigrationStatus
    previous_quantity: int | None = None
    new_quantity: int | None = None
    previous_slots: int | None = None
    new_slots: int | None = None
    error: str | None = None

    def as_dict(self) -> dict:
        data = asdict(self)
        data["company_id"] = str(self.company_id)
        data["status"] = str(self.status)
        return data


async def _subscribed_companies(session: AsyncSession) -> list[Company]:
    result = await session.execute(
        select(Company)
        .where(
            Company.stripe_subscription_id.is_not(None),  # type: ignore[union-attr]
            Company.subscription_status == SubscriptionStatus.ACTIVE,
        )
        .order_by(Company.name)
    )
    return list(result.scalars().all())


# ── Analyze ──────────────────────────────────────────────────

async def analyze(
    session: AsyncSession,
    billing: BillingGateway,
    settings_provider: SettingsProvider,
) -> list[CompanyAnalysis]:
    price = await member_price_cents(settings_provider)
    analysis: list[CompanyAnalysis] = []
    for company in await _subscribed_companies(session):
        seats = await current_billable_seat_count(session, company.id)
        slots = company.team_slots or 0

        billed: int | None = None
        try:
            billed = await billing.get_subscription_quantity(company.stripe_subscription_id)
        except BillingError as exc:
            logger.warning("Could not read subscription for company %s: %s", company.id, exc)

        analysis.append(
            CompanyAnalysis(
                company_id=company.id,
                company_name=company.name,
                current_slots=slots,
                current_seats=seats,
                billed_quantity=billed,
                subscription_status=str(company.subscription_status),
                migration_needed=slots != seats,
                estimated_cost_change=seat_cost_change(seats, slots, price),
            )
        )
    return analysis


# ── Migrate ──────────────────────────────────────────────────

async def migrate(
    session: AsyncSession, company_id: uuid.UUID, billing: BillingGateway
) -> MigrationResult:
    """Set the subscription quantity and ``team_slots`` to the live seat count.

    Raises NoActiveSubscription when billing is not set up and BillingError
    when Stripe cannot be read or updated.
    """
    company = await session.get(Company, company_id, populate_existing=True)
    if company is None or not company.stripe_subscription_id:
        raise NoActiveSubscription("No active subscription found for company")

    subscription_id = company.stripe_subscription_id
    seats = await current_billable_seat_count(session, company_id)
    previous_slots = company.team_slots
    billed = await billing.get_subscription_quantity(subscription_id)

    if billed == seats and previous_slots == seats:
        logger.info("Company %s already on usage-based billing (%d seats)", company_id, seats)
        return MigrationResult(
            company_id=company_id,
            status=MigrationStatus.UNCHANGED,
            previous_quantity=billed,
            new_quantity=seats,
            previous_slots=previous_slots,
            new_slots=seats,
        )

    invoice_id = None
    if billed != seats:
        change = await billing.update_subscription_quantity(subscription_id, seats)
        invoice_id = change.invoice_id

    company.team_slots = seats
    company.seats_out_of_sync = False
    company.updated_at = utcnow()
    session.add(company)
    session.add(
        SubscriptionEvent(
            company_id=company_id,
            event_type=SubscriptionEventType.MIGRATION,
            previous_quantity=billed,
            new_quantity=seats,
            previous_slots=previous_slots,
            new_slots=seats,
            stripe_invoice_id=invoice_id,
            details=json.dumps(
                {
                    "migration_date": utcnow().isoformat(),
                    "migration_type": "slot_to_usage_based",
                }
            ),
        )
    )
    await session.commit()
    logger.info(
        "Migrated company %s: quantity %d -> %d, slots %s -> %d",
        company_id, billed, seats, previous_slots, seats,
    )
    return MigrationResult(
        company_id=company_id,
        status=MigrationStatus.MIGRATED,
        previous_quantity=billed,
        new_quantity=seats,
        previous_slots=previous_slots,
        new_slots=seats,
    )


async def migrate_all(
    session: AsyncSession,
    billing: BillingGateway,
    settings_provider: SettingsProvider,
) -> list[MigrationResult]:
    """Migrate every company that needs it; one failure does not stop the rest."""
    results: list[MigrationResult] = []
    for item in await analyze(session, billing, settings_provider):
        if not item.migration_needed and item.billed_quantity == item.current_seats:
            results.append(
                MigrationResult(company_id=item.company_id, status=MigrationStatus.UNCHANGED)
            )
            continue
        try:
            results.append(await migrate(session, item.company_id, billing))
        except (BillingError, PointsError) as exc:
            await session.rollback()
            logger.warning("Migration failed for company %s: %s", item.company_id, exc)
            results.append(
                MigrationResult(
                    company_id=item.company_id, status=MigrationStatus.FAILED, error=str(exc)
                )
            )
    return results
