"""Settings provider — typed access to the platform key/value settings.

Services depend on the ``SettingsProvider`` protocol; the API wires in the
database-backed implementation and tests pass a ``StaticSettingsProvider``.
"""

from __future__ import annotations

import json
import logging
from enum import StrEnum
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.cache import settings_cache
from app.core.config import get_settings
from app.core.pricing import DEFAULT_MEMBER_MONTHLY_PRICE_CENTS
from app.models.base import utcnow
from app.models.platform_setting import PlatformSetting

logger = logging.getLogger(__name__)


class SettingKey(StrEnum):
    MEMBER_MONTHLY_PRICE_CENTS = "member_monthly_price_cents"
    DEFAULT_MONTHLY_LIMIT = "default_monthly_limit"


class SettingsProvider(Protocol):
    async def get_setting(self, key: str) -> Any | None: ...


class StaticSettingsProvider:
    """Fixed in-memory settings."""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self._values = dict(values or {})

    async def get_setting(self, key: str) -> Any | None:
        return self._values.get(key)


class DatabaseSettingsProvider:
    """Reads ``platform_settings`` rows, caching decoded values briefly."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_setting(self, key: str) -> Any | None:
        cache_key = ("platform_setting", key)
        cached = settings_cache.get(cache_key)
        if cached is not None:
            return cached

        result = await self._session.execute(
            select(PlatformSetting).where(PlatformSetting.key == key)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        try:
            value = json.loads(row.value)
        except json.JSONDecodeError:
            logger.warning("Platform setting %s is not valid JSON, using raw value", key)
            value = row.value
        settings_cache.put(cache_key, value)
        return value

    async def set_setting(self, key: str, value: Any, description: str | None = None) -> None:
        result = await self._session.execute(
            select(PlatformSetting).where(PlatformSetting.key == key)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = PlatformSetting(key=key, value=json.dumps(value), description=description)
        else:
            row.value = json.dumps(value)
            row.updated_at = utcnow()
        self._session.add(row)
        await self._session.commit()
        settings_cache.invalidate(("platform_setting", key))


async def get_int_setting(provider: SettingsProvider, key: str, default: int) -> int:
    """Fetch an integer setting, falling back to ``default`` when unset or malformed."""
    value = await provider.get_setting(key)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Platform setting %s=%r is not an integer, using %d", key, value, default)
        return default


async def member_price_cents(provider: SettingsProvider) -> int:
    return await get_int_setting(
        provider, SettingKey.MEMBER_MONTHLY_PRICE_CENTS, DEFAULT_MEMBER_MONTHLY_PRICE_CENTS
    )


async def default_monthly_limit(provider: SettingsProvider) -> int:
    return await get_int_setting(
        provider, SettingKey.DEFAULT_MONTHLY_LIMIT, get_settings().default_monthly_limit
    )
