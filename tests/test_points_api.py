"""Tests for the points endpoints."""

import pytest
from httpx import AsyncClient

from app.models.account import AccountStatus
from tests.factories import auth_headers, make_account, make_company


async def _team(session, *, sender_points: int = 200, limit: int = 100, recipients: int = 2):
    company = await make_company(session, points_balance=500)
    sender = await make_account(session, company, points=sender_points, monthly_limit=limit)
    others = [await make_account(session, company) for _ in range(recipients)]
    return company, sender, others


@pytest.mark.asyncio
async def test_give_points_all_succeed(client: AsyncClient, session, feed_bus):
    company, sender, (a, b) = await _team(session)

    async with feed_bus.subscribe(company.id) as queue:
        resp = await client.post(
            "/v1/points/give",
            json={
                "recipient_ids": [str(a.id), str(b.id)],
                "amount_per_recipient": 20,
                "description": "Great demo",
            },
            headers=auth_headers(sender),
        )
        assert queue.qsize() == 1

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "succeeded"
    assert body["total_points"] == 40
    assert body["succeeded_count"] == 2
    assert body["succeeded"][-1]["new_sender_balance"] == 160


@pytest.mark.asyncio
async def test_give_points_partial_returns_207(client: AsyncClient, session):
    company, sender, (a,) = await _team(session, recipients=1)
    gone = await make_account(session, company, status=AccountStatus.DEACTIVATED)

    resp = await client.post(
        "/v1/points/give",
        json={"recipient_ids": [str(a.id), str(gone.id)], "amount_per_recipient": 10},
        headers=auth_headers(sender),
    )

    assert resp.status_code == 207
    body = resp.json()
    assert body["status"] == "partial"
    assert body["succeeded_count"] == 1
    assert body["failed"][0]["recipient_id"] == str(gone.id)
    assert body["failed"][0]["code"] == "invalid_member"


@pytest.mark.asyncio
async def test_give_points_all_failed_returns_409(client: AsyncClient, session):
    company, sender, _ = await _team(session, recipients=0)
    gone = await make_account(session, company, status=AccountStatus.DEACTIVATED)

    resp = await client.post(
        "/v1/points/give",
        json={"recipient_ids": [str(gone.id)], "amount_per_recipient": 10},
        headers=auth_headers(sender),
    )

    assert resp.status_code == 409
    assert resp.json()["status"] == "failed"


@pytest.mark.asyncio
async def test_give_points_over_allowance_moves_nothing(client: AsyncClient, session):
    _, sender, (a, b) = await _team(session, sender_points=500, limit=75)

    resp = await client.post(
        "/v1/points/give",
        json={"recipient_ids": [str(a.id), str(b.id)], "amount_per_recipient": 50},
        headers=auth_headers(sender),
    )

    assert resp.status_code == 409
    assert resp.json()["code"] == "allowance_exceeded"

    resp = await client.get("/v1/points/transactions", headers=auth_headers(sender))
    assert resp.json() == []


@pytest.mark.asyncio
async def test_give_points_rejects_non_positive_amount(client: AsyncClient, session):
    _, sender, (a, _) = await _team(session)

    resp = await client.post(
        "/v1/points/give",
        json={"recipient_ids": [str(a.id)], "amount_per_recipient": 0},
        headers=auth_headers(sender),
    )

    assert resp.status_code == 422
    assert resp.json()["code"] == "invalid_amount"


@pytest.mark.asyncio
async def test_transfer_success_and_failure(client: AsyncClient, session):
    _, sender, (a, _) = await _team(session, sender_points=30)

    resp = await client.post(
        "/v1/points/transfer",
        json={"recipient_id": str(a.id), "amount": 25},
        headers=auth_headers(sender),
    )
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert resp.json()["new_sender_balance"] == 5

    resp = await client.post(
        "/v1/points/transfer",
        json={"recipient_id": str(a.id), "amount": 25},
        headers=auth_headers(sender),
    )
    assert resp.status_code == 409
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "insufficient_balance"


@pytest.mark.asyncio
async def test_allowance_endpoint_tracks_spend(client: AsyncClient, session):
    _, sender, (a, _) = await _team(session, limit=80)
    headers = auth_headers(sender)

    await client.post(
        "/v1/points/transfer", json={"recipient_id": str(a.id), "amount": 30}, headers=headers
    )
    resp = await client.get("/v1/points/allowance", headers=headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["cap"] == 80
    assert body["spent"] == 30
    assert body["remaining"] == 50


@pytest.mark.asyncio
async def test_transactions_scoped_to_caller(client: AsyncClient, session):
    company, sender, (a, b) = await _team(session)
    admin = await make_account(session, company, is_admin=True)
    await client.post(
        "/v1/points/transfer",
        json={"recipient_id": str(a.id), "amount": 5},
        headers=auth_headers(sender),
    )
    await client.post(
        "/v1/points/transfer",
        json={"recipient_id": str(b.id), "amount": 5},
        headers=auth_headers(sender),
    )

    resp = await client.get("/v1/points/transactions", headers=auth_headers(a))
    assert len(resp.json()) == 1

    # company_wide is ignored for non-admins
    resp = await client.get(
        "/v1/points/transactions", params={"company_wide": True}, headers=auth_headers(b)
    )
    assert len(resp.json()) == 1

    resp = await client.get(
        "/v1/points/transactions", params={"company_wide": True}, headers=auth_headers(admin)
    )
    assert len(resp.json()) == 2


@pytest.mark.asyncio
async def test_admin_grant_and_remove(client: AsyncClient, session):
    company, member, _ = await _team(session, sender_points=0, recipients=0)
    admin = await make_account(session, company, is_admin=True)
    headers = auth_headers(admin)

    resp = await client.post(
        "/v1/points/grant", json={"account_id": str(member.id), "amount": 120}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["account_balance"] == 120
    assert resp.json()["pool_balance"] == 380

    resp = await client.post(
        "/v1/points/remove", json={"account_id": str(member.id), "amount": 20}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["account_balance"] == 100
    assert resp.json()["pool_balance"] == 400

    resp = await client.post(
        "/v1/points/grant", json={"account_id": str(member.id), "amount": 401}, headers=headers
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "insufficient_balance"


@pytest.mark.asyncio
async def test_grant_requires_admin(client: AsyncClient, session):
    _, sender, (a, _) = await _team(session)

    resp = await client.post(
        "/v1/points/grant",
        json={"account_id": str(a.id), "amount": 10},
        headers=auth_headers(sender),
    )

    assert resp.status_code == 403
