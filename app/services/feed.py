"""Feed bus — in-process "something changed, re-fetch" notifications.

Publishing never blocks: each subscriber owns a bounded queue and events
for a full queue are dropped (the client re-fetches on the next event
anyway). The SSE endpoint in ``app.api.v1.feed`` is the only subscriber in
production.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from app.models.base import utcnow

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


@dataclass
class FeedEvent:
    company_id: uuid.UUID
    reason: str  # e.g. "points.given", "member.added"
    created_at: str = field(default_factory=lambda: utcnow().isoformat())

    def as_dict(self) -> dict:
        return {
            "company_id": str(self.company_id),
            "reason": self.reason,
            "created_at": self.created_at,
        }


class FeedBus:
    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[uuid.UUID, set[asyncio.Queue[FeedEvent]]] = defaultdict(set)

    def publish(self, event: FeedEvent) -> int:
        """Deliver to every subscriber of the company. Returns delivered count."""
        delivered = 0
        for queue in list(self._subscribers.get(event.company_id, ())):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.debug("Feed subscriber queue full for company %s", event.company_id)
        return delivered

    @asynccontextmanager
    async def subscribe(self, company_id: uuid.UUID) -> AsyncIterator[asyncio.Queue[FeedEvent]]:
        queue: asyncio.Queue[FeedEvent] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers[company_id].add(queue)
        try:
            yield queue
        finally:
            subscribers = self._subscribers.get(company_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    self._subscribers.pop(company_id, None)

    def subscriber_count(self, company_id: uuid.UUID) -> int:
        return len(self._subscribers.get(company_id, ()))


feed_bus = FeedBus()


def get_feed_bus() -> FeedBus:
    """FastAPI dependency returning the process-wide bus."""
    return feed_bus
