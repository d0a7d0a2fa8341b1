"""Tests for the feed bus, the SSE stream and the feed listing."""

import asyncio
import json
import uuid

import pytest
from httpx import AsyncClient

from app.api.v1.feed import stream_feed_events
from app.services.feed import FeedBus, FeedEvent
from tests.factories import auth_headers, make_account, make_company


@pytest.mark.asyncio
async def test_publish_reaches_only_the_company():
    bus = FeedBus()
    ours, theirs = uuid.uuid4(), uuid.uuid4()

    async with bus.subscribe(ours) as queue:
        assert bus.publish(FeedEvent(company_id=ours, reason="points.given")) == 1
        assert bus.publish(FeedEvent(company_id=theirs, reason="points.given")) == 0
        assert queue.qsize() == 1

    assert bus.subscriber_count(ours) == 0


@pytest.mark.asyncio
async def test_full_queue_drops_events():
    bus = FeedBus(queue_size=1)
    company_id = uuid.uuid4()

    async with bus.subscribe(company_id) as queue:
        assert bus.publish(FeedEvent(company_id=company_id, reason="a")) == 1
        assert bus.publish(FeedEvent(company_id=company_id, reason="b")) == 0
        assert queue.get_nowait().reason == "a"


@pytest.mark.asyncio
async def test_stream_yields_ready_refresh_and_keepalive():
    bus = FeedBus()
    company_id = uuid.uuid4()
    checks = iter([False, False, True])

    async def is_disconnected() -> bool:
        return next(checks)

    stream = stream_feed_events(bus, company_id, is_disconnected, heartbeat_seconds=0.01)

    first = await stream.__anext__()
    assert first.startswith("event: ready\n")

    bus.publish(FeedEvent(company_id=company_id, reason="member.added"))
    second = await stream.__anext__()
    assert second.startswith("event: refresh\n")
    data = json.loads(second.split("data: ", 1)[1])
    assert data["reason"] == "member.added"

    third = await stream.__anext__()
    assert third == ": keepalive\n\n"

    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert bus.subscriber_count(company_id) == 0


@pytest.mark.asyncio
async def test_feed_lists_recognitions(client: AsyncClient, session):
    company = await make_company(session)
    sender = await make_account(session, company, points=50)
    recipient = await make_account(session, company)

    resp = await client.post(
        "/v1/points/transfer",
        json={"recipient_id": str(recipient.id), "amount": 15, "description": "Thanks!"},
        headers=auth_headers(sender),
    )
    assert resp.status_code == 200

    resp = await client.get("/v1/feed", headers=auth_headers(recipient))

    assert resp.status_code == 200
    items = resp.json()
    assert len(items) == 1
    assert items[0]["points"] == 15
    assert items[0]["description"] == "Thanks!"
    assert items[0]["sender_name"] == "Test Member"
    assert items[0]["recipient_id"] == str(recipient.id)


@pytest.mark.asyncio
async def test_transfer_publishes_to_subscribers(client: AsyncClient, session, feed_bus):
    company = await make_company(session)
    sender = await make_account(session, company, points=5)
    recipient = await make_account(session, company)

    async with feed_bus.subscribe(company.id) as queue:
        await client.post(
            "/v1/points/transfer",
            json={"recipient_id": str(recipient.id), "amount": 5},
            headers=auth_headers(sender),
        )
        event = await asyncio.wait_for(queue.get(), timeout=1)

    assert event.reason == "points.given"
