"""In-process TTL cache for platform settings.

Prices and limits are read on every transfer and billing call, so decoded
``platform_settings`` values are kept for a short while per worker process.
Writes through ``DatabaseSettingsProvider`` drop the affected key; other
processes pick up the change once their entry expires.
"""

import time
from collections.abc import Hashable
from typing import Any

from app.core.config import get_settings


class TTLCache:
    """Dict-backed cache whose entries expire ``ttl_seconds`` after being stored."""

    def __init__(self, ttl_seconds: float) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: dict[Hashable, tuple[float, Any]] = {}

    def get(self, key: Hashable) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value

    def put(self, key: Hashable, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries[key] = (time.monotonic() + self.ttl_seconds, value)

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


settings_cache = TTLCache(get_settings().settings_cache_ttl_seconds)
