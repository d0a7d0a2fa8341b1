"""Team members — invite, import, activate, remove, reactivate."""

import uuid

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field
from sqlmodel import select

from app.api.deps import AdminAuth, Auth, Billing, Feed, Session, Settings
from app.models.account import Account, AccountCreate, AccountRead, AccountStatus
from app.services import members as member_service

router = APIRouter(prefix="/members", tags=["members"])


# ── Schemas ──────────────────────────────────────────────────

class MemberChangeResponse(BaseModel):
    member: AccountRead
    seat_sync: str | None = None
    sync_warning: str | None = None


class BulkCreateRequest(BaseModel):
    rows: list[AccountCreate] = Field(min_length=1, max_length=1000)


class SkippedRowRead(BaseModel):
    email: str
    reason: str


class BulkCreateResponse(BaseModel):
    created: list[AccountRead]
    skipped: list[SkippedRowRead]
    seat_sync: str | None = None
    sync_warning: str | None = None


def _change_response(result: member_service.MemberChangeResult) -> MemberChangeResponse:
    return MemberChangeResponse(
        member=AccountRead.model_validate(result.account),
        seat_sync=str(result.sync.status) if result.sync else None,
        sync_warning=result.sync_warning,
    )


# ── Routes ────────────────────────────────────────────────────

@router.get("", response_model=list[AccountRead])
async def list_members(
    auth: Auth,
    session: Session,
    include_deactivated: bool = False,
) -> list[AccountRead]:
    stmt = select(Account).where(Account.company_id == auth.company_id)
    if not include_deactivated:
        stmt = stmt.where(Account.status != AccountStatus.DEACTIVATED)
    stmt = stmt.order_by(Account.email.asc())  # type: ignore[union-attr]
    result = await session.execute(stmt)
    return [AccountRead.model_validate(a) for a in result.scalars().all()]


@router.post(
    "",
    response_model=MemberChangeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={202: {"description": "Billing setup required; checkout URL returned"}},
)
async def invite_member(
    body: AccountCreate,
    auth: AdminAuth,
    session: Session,
    billing: Billing,
    settings: Settings,
    bus: Feed,
) -> MemberChangeResponse:
    """Add a member. Returns 202 with a checkout URL when billing must be set up first."""
    result = await member_service.invite_member(
        session,
        company_id=auth.company_id,
        data=body,
        billing=billing,
        settings_provider=settings,
        invited_by=auth.account_id,
        bus=bus,
    )
    return _change_response(result)


@router.post(
    "/bulk",
    response_model=BulkCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def bulk_create_members(
    body: BulkCreateRequest,
    auth: AdminAuth,
    session: Session,
    billing: Billing,
    settings: Settings,
    bus: Feed,
) -> BulkCreateResponse:
    """Create members from already-parsed import rows."""
    result = await member_service.bulk_create_members(
        session,
        company_id=auth.company_id,
        rows=body.rows,
        billing=billing,
        settings_provider=settings,
        invited_by=auth.account_id,
        bus=bus,
    )
    warning = result.sync.warning if result.sync else None
    return BulkCreateResponse(
        created=[AccountRead.model_validate(a) for a in result.created],
        skipped=[SkippedRowRead(email=s.email, reason=s.reason) for s in result.skipped],
        seat_sync=str(result.sync.status) if result.sync else None,
        sync_warning=str(warning) if warning else None,
    )


@router.post("/{account_id}/activate", response_model=MemberChangeResponse)
async def activate_member(
    account_id: uuid.UUID,
    auth: Auth,
    session: Session,
    billing: Billing,
) -> MemberChangeResponse:
    """First login: the member (or an admin on their behalf) activates the account."""
    if account_id != auth.account_id and not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only activate your own account",
        )
    result = await member_service.activate_member(
        session,
        company_id=auth.company_id,
        account_id=account_id,
        billing=billing,
    )
    return _change_response(result)


@router.post("/{account_id}/reactivate", response_model=MemberChangeResponse)
async def reactivate_member(
    account_id: uuid.UUID,
    auth: AdminAuth,
    session: Session,
    billing: Billing,
    settings: Settings,
    bus: Feed,
) -> MemberChangeResponse:
    result = await member_service.reactivate_member(
        session,
        company_id=auth.company_id,
        account_id=account_id,
        billing=billing,
        settings_provider=settings,
        bus=bus,
    )
    return _change_response(result)


@router.delete("/{account_id}", response_model=MemberChangeResponse)
async def remove_member(
    account_id: uuid.UUID,
    auth: AdminAuth,
    session: Session,
    billing: Billing,
    bus: Feed,
) -> MemberChangeResponse:
    """Deactivate a member; their points return to the company pool."""
    result = await member_service.deactivate_member(
        session,
        company_id=auth.company_id,
        account_id=account_id,
        billing=billing,
        bus=bus,
    )
    return _change_response(result)
