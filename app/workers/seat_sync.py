"""Seat sync jobs — on-demand reconcile and the retry sweep for failed syncs."""

from __future__ import annotations

import logging
import uuid

from app.core.database import async_session_factory
from app.services.billing import BillingGateway, get_billing_gateway
from app.services.seats import (
    SyncStatus,
    companies_out_of_sync,
    reconcile_subscription_quantity,
)

logger = logging.getLogger(__name__)


def _billing(ctx: dict) -> BillingGateway:
    # Tests inject a fake gateway via ctx["billing"]
    return ctx.get("billing") or get_billing_gateway()


async def reconcile_company_seats(ctx: dict, company_id: str) -> dict:
    """ARQ job: push one company's billable seat count to its subscription."""
    async with async_session_factory() as session:
        result = await reconcile_subscription_quantity(
            session, uuid.UUID(company_id), _billing(ctx)
        )
    return result.as_dict()


async def retry_pending_seat_syncs(ctx: dict) -> dict:
    """Periodic job: re-run reconciliation for companies flagged out of sync."""
    billing = _billing(ctx)
    recovered = 0
    still_failing = 0

    async with async_session_factory() as session:
        company_ids = await companies_out_of_sync(session)
        if not company_ids:
            logger.info("Seat sync retry: nothing to retry")
            return {"retried": 0, "recovered": 0, "still_failing": 0}

        for company_id in company_ids:
            result = await reconcile_subscription_quantity(session, company_id, billing)
            if result.status == SyncStatus.FAILED:
                still_failing += 1
            else:
                recovered += 1

    logger.info(
        "Seat sync retry: %d companies, %d recovered, %d still failing",
        len(company_ids), recovered, still_failing,
    )
    return {
        "retried": len(company_ids),
        "recovered": recovered,
        "still_failing": still_failing,
    }
