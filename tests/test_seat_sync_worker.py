"""Tests for the seat sync worker jobs."""

import uuid
from unittest.mock import patch

import pytest

from app.models.company import Company
from app.services.seats import reconcile_subscription_quantity
from app.workers.seat_sync import reconcile_company_seats, retry_pending_seat_syncs
from tests.factories import make_account, make_company


@pytest.mark.asyncio
async def test_retry_clears_out_of_sync_flag(session, billing, test_session_factory):
    sub_id = f"sub_{uuid.uuid4().hex[:8]}"
    billing.add_subscription(sub_id, quantity=0)
    company = await make_company(session, subscription_id=sub_id)
    await make_account(session, company)
    await make_account(session, company)
    company_id = company.id

    billing.fail_updates = True
    await reconcile_subscription_quantity(session, company_id, billing)
    assert (await session.get(Company, company_id, populate_existing=True)).seats_out_of_sync

    billing.fail_updates = False
    with patch("app.workers.seat_sync.async_session_factory", test_session_factory):
        summary = await retry_pending_seat_syncs({"billing": billing})

    assert summary["retried"] >= 1
    assert summary["recovered"] >= 1
    assert billing.quantities[sub_id] == 2
    company = await session.get(Company, company_id, populate_existing=True)
    assert company.seats_out_of_sync is False


@pytest.mark.asyncio
async def test_reconcile_job_pushes_quantity(session, billing, test_session_factory):
    sub_id = f"sub_{uuid.uuid4().hex[:8]}"
    billing.add_subscription(sub_id, quantity=5)
    company = await make_company(session, subscription_id=sub_id)
    await make_account(session, company)

    with patch("app.workers.seat_sync.async_session_factory", test_session_factory):
        result = await reconcile_company_seats({"billing": billing}, company_id=str(company.id))

    assert result["status"] == "updated"
    assert result["seats"] == 1
    assert billing.quantities[sub_id] == 1
