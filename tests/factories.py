"""Row builders for service-level tests."""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import create_jwt
from app.models.account import Account, AccountStatus
from app.models.company import Company, SubscriptionStatus


async def make_company(
    session: AsyncSession,
    *,
    points_balance: int = 0,
    subscription_id: str | None = None,
    status: SubscriptionStatus | None = None,
    team_slots: int | None = None,
    monthly_limit: int | None = None,
    timezone: str = "UTC",
) -> Company:
    suffix = uuid.uuid4().hex[:12]
    company = Company(
        name=f"Company {suffix}",
        slug=f"co-{suffix}",
        points_balance=points_balance,
        stripe_subscription_id=subscription_id,
        subscription_status=status
        or (SubscriptionStatus.ACTIVE if subscription_id else SubscriptionStatus.INACTIVE),
        team_slots=team_slots,
        team_member_monthly_limit=monthly_limit,
        timezone=timezone,
    )
    session.add(company)
    await session.commit()
    return company


async def make_account(
    session: AsyncSession,
    company: Company,
    *,
    points: int = 0,
    is_admin: bool = False,
    status: AccountStatus = AccountStatus.ACTIVE,
    monthly_limit: int | None = None,
    email: str | None = None,
) -> Account:
    account = Account(
        company_id=company.id,
        email=email or f"{uuid.uuid4().hex[:10]}@example.com",
        display_name="Test Member",
        points=points,
        is_admin=is_admin,
        status=status,
        monthly_limit=monthly_limit,
    )
    session.add(account)
    await session.commit()
    return account


def auth_headers(account: Account, *, platform_admin: bool = False) -> dict:
    token = create_jwt(str(account.id), str(account.company_id), platform_admin=platform_admin)
    return {"Authorization": f"Bearer {token}"}
