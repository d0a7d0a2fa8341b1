"""Recognition feed — recent recognitions plus a refresh stream (SSE)."""

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from sqlalchemy.orm import aliased
from sqlmodel import select

from app.api.deps import Auth, Feed, Session
from app.models.account import Account
from app.models.point_transaction import PointTransaction, TransactionKind
from app.services.feed import FeedBus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/feed", tags=["feed"])

HEARTBEAT_SECONDS = 15.0


class FeedItem(BaseModel):
    transaction_id: uuid.UUID
    sender_id: uuid.UUID | None
    sender_name: str | None
    recipient_id: uuid.UUID | None
    recipient_name: str | None
    points: int
    description: str
    created_at: datetime


@router.get("", response_model=list[FeedItem])
async def list_feed(
    auth: Auth,
    session: Session,
    limit: int = 30,
) -> list[FeedItem]:
    """Most recent recognitions in the caller's company."""
    sender = aliased(Account)
    recipient = aliased(Account)
    stmt = (
        select(PointTransaction, sender.display_name, recipient.display_name)
        .outerjoin(sender, PointTransaction.sender_id == sender.id)
        .outerjoin(recipient, PointTransaction.recipient_id == recipient.id)
        .where(
            PointTransaction.company_id == auth.company_id,
            PointTransaction.kind == TransactionKind.RECOGNITION,
        )
        .order_by(PointTransaction.created_at.desc())  # type: ignore[attr-defined]
        .limit(min(limit, 100))
    )
    result = await session.execute(stmt)
    return [
        FeedItem(
            transaction_id=txn.id,
            sender_id=txn.sender_id,
            sender_name=sender_name,
            recipient_id=txn.recipient_id,
            recipient_name=recipient_name,
            points=txn.points,
            description=txn.description,
            created_at=txn.created_at,
        )
        for txn, sender_name, recipient_name in result.all()
    ]


def _format_sse(event: str, data: dict) -> str:
    """Format a single SSE event."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


async def stream_feed_events(
    bus: FeedBus,
    company_id: uuid.UUID,
    is_disconnected: Callable[[], Awaitable[bool]],
    heartbeat_seconds: float = HEARTBEAT_SECONDS,
) -> AsyncGenerator[str, None]:
    """Yield ``refresh`` events for the company until the client goes away."""
    async with bus.subscribe(company_id) as queue:
        yield _format_sse("ready", {"company_id": str(company_id)})
        while not await is_disconnected():
            try:
                event = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield _format_sse("refresh", event.as_dict())


@router.get("/stream")
async def stream_feed(
    request: Request,
    auth: Auth,
    bus: Feed,
) -> StreamingResponse:
    """Server-Sent Events: one ``refresh`` event per change in the company."""
    return StreamingResponse(
        stream_feed_events(bus, auth.company_id, request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
