"""FastAPI dependencies for authentication, tenant resolution and services."""

import uuid
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.security import decode_jwt
from app.models.account import Account, AccountStatus
from app.services.billing import BillingGateway, get_billing_gateway
from app.services.feed import FeedBus, get_feed_bus
from app.services.platform_settings import DatabaseSettingsProvider, SettingsProvider

bearer_scheme = HTTPBearer()


class AuthContext:
    """Resolved identity carried through a request."""

    __slots__ = ("company_id", "account_id", "is_admin", "is_platform_admin", "status")

    def __init__(
        self,
        company_id: uuid.UUID,
        account_id: uuid.UUID,
        is_admin: bool = False,
        is_platform_admin: bool = False,
        status: AccountStatus = AccountStatus.ACTIVE,
    ) -> None:
        self.company_id = company_id
        self.account_id = account_id
        self.is_admin = is_admin
        self.is_platform_admin = is_platform_admin
        self.status = status


def _decode(token: str) -> dict:
    try:
        return decode_jwt(token)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired JWT",
        ) from exc


async def get_auth_context(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AuthContext:
    """Resolve a bearer JWT to an AuthContext.

    Claims: ``sub`` account id, ``cid`` company id, ``pla`` platform admin.
    Company tokens must map to a non-deactivated account of that company.
    """
    payload = _decode(credentials.credentials)
    try:
        account_id = uuid.UUID(payload["sub"])
        company_id = uuid.UUID(payload["cid"])
    except (KeyError, ValueError, TypeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed JWT payload",
        ) from exc

    if payload.get("pla"):
        return AuthContext(
            company_id=company_id,
            account_id=account_id,
            is_admin=True,
            is_platform_admin=True,
        )

    account = await session.get(Account, account_id)
    if (
        account is None
        or account.company_id != company_id
        or account.status == AccountStatus.DEACTIVATED
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is not a member of this company",
        )

    return AuthContext(
        company_id=company_id,
        account_id=account_id,
        is_admin=account.is_admin,
        status=account.status,
    )


async def require_admin(
    auth: Annotated[AuthContext, Depends(get_auth_context)],
) -> AuthContext:
    if not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Company admin access required",
        )
    return auth


async def require_platform_admin(
    auth: Annotated[AuthContext, Depends(get_auth_context)],
) -> AuthContext:
    if not auth.is_platform_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Platform admin access required",
        )
    return auth


async def get_settings_provider(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SettingsProvider:
    return DatabaseSettingsProvider(session)


# Typed shorthand for use in route signatures
Auth = Annotated[AuthContext, Depends(get_auth_context)]
AdminAuth = Annotated[AuthContext, Depends(require_admin)]
PlatformAuth = Annotated[AuthContext, Depends(require_platform_admin)]
Session = Annotated[AsyncSession, Depends(get_session)]
Billing = Annotated[BillingGateway, Depends(get_billing_gateway)]
Settings = Annotated[SettingsProvider, Depends(get_settings_provider)]
Feed = Annotated[FeedBus, Depends(get_feed_bus)]
