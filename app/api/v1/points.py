"""Points endpoints — recognition, allowance, history and admin adjustments."""

import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlmodel import select

from app.api.deps import AdminAuth, Auth, Feed, Session, Settings
from app.core.errors import InvalidMember, PointsError
from app.models.account import Account
from app.models.company import Company
from app.models.point_transaction import PointTransaction, PointTransactionRead
from app.services import ledger, recognition
from app.services.allowance import available_allowance
from app.services.feed import FeedEvent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/points", tags=["points"])

_GIVE_STATUS_CODES = {
    recognition.GiveStatus.SUCCEEDED: status.HTTP_200_OK,
    recognition.GiveStatus.PARTIAL: status.HTTP_207_MULTI_STATUS,
    recognition.GiveStatus.FAILED: status.HTTP_409_CONFLICT,
}


# ── Schemas ──────────────────────────────────────────────────

class GivePointsRequest(BaseModel):
    recipient_ids: list[uuid.UUID] = Field(min_length=1, max_length=100)
    amount_per_recipient: int
    description: str = Field(default="", max_length=1000)


class TransferSuccess(BaseModel):
    recipient_id: uuid.UUID
    transaction_id: uuid.UUID
    new_sender_balance: int


class TransferFailure(BaseModel):
    recipient_id: uuid.UUID
    code: str
    message: str


class GivePointsResponse(BaseModel):
    status: recognition.GiveStatus
    amount_per_recipient: int
    total_points: int
    succeeded_count: int
    failed_count: int
    succeeded: list[TransferSuccess]
    failed: list[TransferFailure]


class TransferRequest(BaseModel):
    recipient_id: uuid.UUID
    amount: int
    description: str = Field(default="", max_length=1000)


class TransferResponse(BaseModel):
    success: bool
    error: str | None = None
    code: str | None = None
    new_sender_balance: int | None = None
    transaction_id: uuid.UUID | None = None


class AllowanceRead(BaseModel):
    cap: int
    spent: int
    remaining: int
    period_start: datetime


class AdjustRequest(BaseModel):
    account_id: uuid.UUID
    amount: int
    description: str = Field(default="", max_length=1000)


class AdjustResponse(BaseModel):
    transaction_id: uuid.UUID
    points: int
    account_balance: int | None
    pool_balance: int


# ── Recognition ──────────────────────────────────────────────

@router.post("/give", response_model=GivePointsResponse)
async def give_points(
    body: GivePointsRequest,
    auth: Auth,
    session: Session,
    settings: Settings,
    bus: Feed,
    response: Response,
) -> GivePointsResponse:
    """Give the same amount to each recipient.

    200 when every transfer succeeded, 207 on partial success, 409 when all
    failed. Pre-flight failures return their own 4xx and move nothing.
    """
    result = await recognition.give_points(
        session,
        sender_id=auth.account_id,
        company_id=auth.company_id,
        recipient_ids=body.recipient_ids,
        amount_per_recipient=body.amount_per_recipient,
        description=body.description,
        settings_provider=settings,
        bus=bus,
    )
    response.status_code = _GIVE_STATUS_CODES[result.status]
    return GivePointsResponse(
        status=result.status,
        amount_per_recipient=result.amount_per_recipient,
        total_points=result.total_points,
        succeeded_count=result.succeeded_count,
        failed_count=result.failed_count,
        succeeded=[
            TransferSuccess(
                recipient_id=o.recipient_id,
                transaction_id=o.transaction_id,
                new_sender_balance=o.new_sender_balance,
            )
            for o in result.succeeded
        ],
        failed=[
            TransferFailure(recipient_id=f.recipient_id, code=f.code, message=f.message)
            for f in result.failed
        ],
    )


@router.post("/transfer", response_model=TransferResponse)
async def transfer(
    body: TransferRequest,
    auth: Auth,
    session: Session,
    settings: Settings,
    bus: Feed,
    response: Response,
) -> TransferResponse:
    """Single atomic transfer; failures come back as ``success: false``."""
    try:
        outcome = await ledger.transfer_points(
            session,
            sender_id=auth.account_id,
            recipient_id=body.recipient_id,
            company_id=auth.company_id,
            amount=body.amount,
            description=body.description,
            settings_provider=settings,
        )
    except PointsError as exc:
        response.status_code = exc.status_code
        return TransferResponse(success=False, error=exc.message, code=exc.code)

    bus.publish(FeedEvent(company_id=auth.company_id, reason="points.given"))
    return TransferResponse(
        success=True,
        new_sender_balance=outcome.new_sender_balance,
        transaction_id=outcome.transaction_id,
    )


@router.get("/allowance", response_model=AllowanceRead)
async def get_allowance(
    auth: Auth,
    session: Session,
    settings: Settings,
) -> AllowanceRead:
    account = await session.get(Account, auth.account_id)
    company = await session.get(Company, auth.company_id)
    if account is None or company is None:
        raise InvalidMember("Account not found")
    allowance = await available_allowance(session, account, company, settings)
    return AllowanceRead(
        cap=allowance.cap,
        spent=allowance.spent,
        remaining=allowance.remaining,
        period_start=allowance.period_start,
    )


@router.get("/transactions", response_model=list[PointTransactionRead])
async def list_transactions(
    auth: Auth,
    session: Session,
    company_wide: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> list[PointTransactionRead]:
    """The caller's transactions, or the whole company's for admins."""
    stmt = select(PointTransaction).where(PointTransaction.company_id == auth.company_id)
    if not (company_wide and auth.is_admin):
        stmt = stmt.where(
            or_(
                PointTransaction.sender_id == auth.account_id,
                PointTransaction.recipient_id == auth.account_id,
            )
        )
    stmt = (
        stmt
        .order_by(PointTransaction.created_at.desc())  # type: ignore[attr-defined]
        .limit(min(limit, 200))
        .offset(offset)
    )
    result = await session.execute(stmt)
    return [PointTransactionRead.model_validate(t) for t in result.scalars().all()]


# ── Admin: company pool <-> member ───────────────────────────

def _adjust_response(outcome: ledger.AdjustmentOutcome) -> AdjustResponse:
    return AdjustResponse(
        transaction_id=outcome.transaction_id,
        points=outcome.points,
        account_balance=outcome.account_balance,
        pool_balance=outcome.pool_balance,
    )


@router.post("/grant", response_model=AdjustResponse)
async def grant_points(
    body: AdjustRequest,
    auth: AdminAuth,
    session: Session,
    bus: Feed,
) -> AdjustResponse:
    outcome = await ledger.grant_points(
        session,
        company_id=auth.company_id,
        account_id=body.account_id,
        amount=body.amount,
        description=body.description or "Points granted by admin",
        initiated_by=auth.account_id,
    )
    bus.publish(FeedEvent(company_id=auth.company_id, reason="points.granted"))
    return _adjust_response(outcome)


@router.post("/remove", response_model=AdjustResponse)
async def remove_points(
    body: AdjustRequest,
    auth: AdminAuth,
    session: Session,
) -> AdjustResponse:
    outcome = await ledger.remove_points(
        session,
        company_id=auth.company_id,
        account_id=body.account_id,
        amount=body.amount,
        description=body.description or "Points removed by admin",
        initiated_by=auth.account_id,
    )
    return _adjust_response(outcome)
