"""Monthly allowance tracker.

The allowance is never stored. It is recomputed from the ledger as
``cap - points sent as recognition since the start of the calendar month``,
where the month boundary is taken in the company's timezone. The pre-flight
check in the recognition engine and the commit-time check in the ledger both
go through ``available_allowance`` + ``ensure_within_allowance``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import AllowanceExceeded
from app.models.account import Account
from app.models.base import utcnow
from app.models.company import Company
from app.models.point_transaction import PointTransaction, TransactionKind
from app.services.platform_settings import SettingsProvider, default_monthly_limit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Allowance:
    cap: int
    spent: int
    period_start: datetime  # naive UTC

    @property
    def remaining(self) -> int:
        return remaining_allowance(self.cap, self.spent)


def resolve_timezone(tz_name: str | None) -> ZoneInfo:
    """Return the zone for ``tz_name``; unknown or empty names mean UTC."""
    if not tz_name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC for allowance period", tz_name)
        return ZoneInfo("UTC")


def period_start(as_of: datetime, tz_name: str | None = None) -> datetime:
    """First instant of the calendar month containing ``as_of`` in ``tz_name``.

    ``as_of`` may be naive (treated as UTC) or aware. The result is naive UTC,
    matching how timestamps are stored.
    """
    if as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=timezone.utc)
    local = as_of.astimezone(resolve_timezone(tz_name))
    month_start = local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return month_start.astimezone(timezone.utc).replace(tzinfo=None)


def remaining_allowance(cap: int, spent: int) -> int:
    """Points still givable this period, floored at zero."""
    return max(0, cap - spent)


def ensure_within_allowance(requested: int, allowance: Allowance) -> None:
    if requested > allowance.remaining:
        raise AllowanceExceeded(
            f"Monthly limit exceeded: {requested} requested, "
            f"{allowance.remaining} of {allowance.cap} remaining this month",
            remaining=allowance.remaining,
            requested=requested,
        )


async def monthly_spent(
    session: AsyncSession,
    account_id: uuid.UUID,
    company_id: uuid.UUID,
    since: datetime,
) -> int:
    """Sum of recognition points sent by the account since ``since``."""
    stmt = select(func.coalesce(func.sum(PointTransaction.points), 0)).where(
        PointTransaction.sender_id == account_id,
        PointTransaction.company_id == company_id,
        PointTransaction.kind == TransactionKind.RECOGNITION,
        PointTransaction.created_at >= since,
    )
    return int((await session.execute(stmt)).scalar_one())


async def resolve_cap(
    account: Account, company: Company, settings_provider: SettingsProvider
) -> int:
    if account.monthly_limit is not None:
        return account.monthly_limit
    if company.team_member_monthly_limit is not None:
        return company.team_member_monthly_limit
    return await default_monthly_limit(settings_provider)


async def available_allowance(
    session: AsyncSession,
    account: Account,
    company: Company,
    settings_provider: SettingsProvider,
    as_of: datetime | None = None,
) -> Allowance:
    start = period_start(as_of or utcnow(), company.timezone)
    cap = await resolve_cap(account, company, settings_provider)
    spent = await monthly_spent(session, account.id, company.id, start)
    return Allowance(cap=cap, spent=spent, period_start=start)
