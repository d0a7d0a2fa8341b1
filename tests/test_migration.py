"""Tests for the slot-to-seat migration planner."""

import uuid

import pytest
from sqlalchemy import func
from sqlmodel import select

from app.core.errors import NoActiveSubscription
from app.models.company import Company
from app.models.subscription_event import SubscriptionEvent, SubscriptionEventType
from app.services.migration import MigrationStatus, analyze, migrate, migrate_all
from tests.factories import make_account, make_company


async def _migration_events(session, company_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count()).select_from(SubscriptionEvent).where(
            SubscriptionEvent.company_id == company_id,
            SubscriptionEvent.event_type == SubscriptionEventType.MIGRATION,
        )
    )
    return result.scalar_one()


async def _legacy_company(session, billing, *, slots: int, members: int):
    sub_id = f"sub_{uuid.uuid4().hex[:8]}"
    billing.add_subscription(sub_id, quantity=slots)
    company = await make_company(session, subscription_id=sub_id, team_slots=slots)
    await make_account(session, company, is_admin=True)
    for _ in range(members):
        await make_account(session, company)
    return company.id, sub_id


@pytest.mark.asyncio
async def test_analyze_flags_overbilled_company(session, billing, settings_provider):
    company_id, _ = await _legacy_company(session, billing, slots=10, members=7)

    analysis = {a.company_id: a for a in await analyze(session, billing, settings_provider)}
    item = analysis[company_id]

    assert item.current_slots == 10
    assert item.current_seats == 7
    assert item.billed_quantity == 10
    assert item.migration_needed is True
    assert item.estimated_cost_change == (7 - 10) * 999


@pytest.mark.asyncio
async def test_analyze_tolerates_billing_errors(session, billing, settings_provider):
    company = await make_company(session, subscription_id="sub_missing_upstream", team_slots=2)

    analysis = {a.company_id: a for a in await analyze(session, billing, settings_provider)}

    assert analysis[company.id].billed_quantity is None


@pytest.mark.asyncio
async def test_migrate_is_idempotent(session, billing):
    company_id, sub_id = await _legacy_company(session, billing, slots=10, members=7)

    first = await migrate(session, company_id, billing)
    assert first.status == MigrationStatus.MIGRATED
    assert first.previous_quantity == 10
    assert first.new_quantity == 7
    assert billing.quantities[sub_id] == 7
    company = await session.get(Company, company_id, populate_existing=True)
    assert company.team_slots == 7

    second = await migrate(session, company_id, billing)
    assert second.status == MigrationStatus.UNCHANGED
    assert len(billing.update_calls) == 1
    assert await _migration_events(session, company_id) == 1


@pytest.mark.asyncio
async def test_migrate_without_subscription_rejected(session, billing):
    company = await make_company(session, team_slots=3)

    with pytest.raises(NoActiveSubscription):
        await migrate(session, company.id, billing)


@pytest.mark.asyncio
async def test_migrate_all_collects_per_company_results(session, billing, settings_provider):
    over_id, _ = await _legacy_company(session, billing, slots=5, members=2)
    done_id, _ = await _legacy_company(session, billing, slots=3, members=3)
    broken = await make_company(session, subscription_id="sub_gone", team_slots=4)
    broken_id = broken.id

    results = {r.company_id: r for r in await migrate_all(session, billing, settings_provider)}

    assert results[over_id].status == MigrationStatus.MIGRATED
    assert results[done_id].status == MigrationStatus.UNCHANGED
    assert results[broken_id].status == MigrationStatus.FAILED
    assert results[broken_id].error
