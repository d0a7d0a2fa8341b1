"""Tests for the billing endpoints."""

import json
import uuid
from unittest.mock import patch

import pytest
from httpx import AsyncClient

from app.models.account import AccountCreate
from tests.factories import auth_headers, make_account, make_company


async def _subscribed_company(session, billing, *, quantity: int, members: int):
    sub_id = f"sub_{uuid.uuid4().hex[:8]}"
    billing.add_subscription(sub_id, quantity=quantity)
    company = await make_company(session, subscription_id=sub_id)
    admin = await make_account(session, company, is_admin=True)
    for _ in range(members):
        await make_account(session, company)
    return company, admin, sub_id


@pytest.mark.asyncio
async def test_seat_summary(client: AsyncClient, session, billing):
    _, admin, _ = await _subscribed_company(session, billing, quantity=2, members=3)

    resp = await client.get("/v1/billing/seats", headers=auth_headers(admin))

    assert resp.status_code == 200
    body = resp.json()
    assert body["billable_seats"] == 3
    assert body["billed_quantity"] == 2
    assert body["subscription_status"] == "active"
    assert body["price_per_seat_cents"] == 999
    assert body["monthly_cost_cents"] == 3 * 999


@pytest.mark.asyncio
async def test_seat_summary_requires_admin(client: AsyncClient, session, billing):
    company, _, _ = await _subscribed_company(session, billing, quantity=0, members=0)
    member = await make_account(session, company)

    resp = await client.get("/v1/billing/seats", headers=auth_headers(member))

    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_manual_reconcile(client: AsyncClient, session, billing):
    _, admin, sub_id = await _subscribed_company(session, billing, quantity=1, members=4)

    resp = await client.post("/v1/billing/reconcile", headers=auth_headers(admin))

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "updated"
    assert body["seats"] == 4
    assert body["previous_quantity"] == 1
    assert billing.quantities[sub_id] == 4


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(client: AsyncClient):
    resp = await client.post(
        "/v1/billing/webhook",
        content=b'{"type": "checkout.session.completed"}',
        headers={"stripe-signature": "t=1,v1=bogus"},
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_webhook_completes_checkout(client: AsyncClient, session, billing):
    company = await make_company(session)
    admin = await make_account(session, company, is_admin=True)
    sub_id = f"sub_{uuid.uuid4().hex[:8]}"
    billing.add_subscription(sub_id, quantity=1)
    event = {
        "id": "evt_checkout",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_9",
                "mode": "subscription",
                "payment_status": "paid",
                "subscription": sub_id,
                "customer": "cus_1",
                "metadata": {
                    "company_id": str(company.id),
                    "pending_member_data": AccountCreate(
                        email="newhire@example.com", display_name="New Hire"
                    ).model_dump_json(),
                },
            }
        },
    }

    with patch("app.api.v1.billing.construct_webhook_event") as verify:
        resp = await client.post(
            "/v1/billing/webhook",
            content=json.dumps(event).encode(),
            headers={"stripe-signature": "t=1,v1=ok"},
        )

    assert resp.status_code == 200
    assert resp.json() == {"received": True, "outcome": "billing_setup_completed"}
    verify.assert_called_once()

    resp = await client.get("/v1/members", headers=auth_headers(admin))
    emails = [m["email"] for m in resp.json()]
    assert "newhire@example.com" in emails
    assert billing.quantities[sub_id] == 1


@pytest.mark.asyncio
async def test_webhook_ignores_unknown_events(client: AsyncClient):
    event = {"id": "evt_x", "type": "invoice.created", "data": {"object": {}}}

    with patch("app.api.v1.billing.construct_webhook_event"):
        resp = await client.post(
            "/v1/billing/webhook",
            content=json.dumps(event).encode(),
            headers={"stripe-signature": "t=1,v1=ok"},
        )

    assert resp.status_code == 200
    assert resp.json()["outcome"] == "ignored"
