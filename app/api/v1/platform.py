"""Platform-admin endpoints — seat billing migration and company pool."""

import uuid

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from app.api.deps import Billing, PlatformAuth, Session, Settings
from app.core.errors import BillingError
from app.models.company import Company
from app.services import ledger, migration

router = APIRouter(prefix="/platform", tags=["platform"])


# ── Schemas ──────────────────────────────────────────────────

class CompanyAnalysisRead(BaseModel):
    company_id: uuid.UUID
    company_name: str
    current_slots: int
    current_seats: int
    billed_quantity: int | None
    subscription_status: str
    migration_needed: bool
    estimated_cost_change: int


class MigrationResultRead(BaseModel):
    company_id: uuid.UUID
    status: str
    previous_quantity: int | None = None
    new_quantity: int | None = None
    previous_slots: int | None = None
    new_slots: int | None = None
    error: str | None = None


class PoolAdjustRequest(BaseModel):
    amount: int
    operation: ledger.PoolOperation
    description: str = Field(default="", max_length=1000)


class PoolAdjustResponse(BaseModel):
    transaction_id: uuid.UUID
    points: int
    pool_balance: int


# ── Migration ────────────────────────────────────────────────

@router.get("/migration/analysis", response_model=list[CompanyAnalysisRead])
async def analyze_migration(
    _auth: PlatformAuth,
    session: Session,
    billing: Billing,
    settings: Settings,
) -> list[CompanyAnalysisRead]:
    analysis = await migration.analyze(session, billing, settings)
    return [CompanyAnalysisRead(**item.as_dict()) for item in analysis]


@router.post("/migration", response_model=list[MigrationResultRead])
async def migrate_all_companies(
    _auth: PlatformAuth,
    session: Session,
    billing: Billing,
    settings: Settings,
) -> list[MigrationResultRead]:
    results = await migration.migrate_all(session, billing, settings)
    return [MigrationResultRead(**r.as_dict()) for r in results]


@router.post("/migration/{company_id}", response_model=MigrationResultRead)
async def migrate_company(
    company_id: uuid.UUID,
    _auth: PlatformAuth,
    session: Session,
    billing: Billing,
) -> MigrationResultRead:
    if await session.get(Company, company_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
    try:
        result = await migration.migrate(session, company_id, billing)
    except BillingError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Billing provider error: {exc}",
        ) from exc
    return MigrationResultRead(**result.as_dict())


# ── Company pool ─────────────────────────────────────────────

@router.post("/companies/{company_id}/points", response_model=PoolAdjustResponse)
async def adjust_company_points(
    company_id: uuid.UUID,
    body: PoolAdjustRequest,
    auth: PlatformAuth,
    session: Session,
) -> PoolAdjustResponse:
    """Grant points to, or deduct points from, a company's pool."""
    verb = "granted" if body.operation == ledger.PoolOperation.GRANT else "deducted"
    outcome = await ledger.adjust_company_pool(
        session,
        company_id=company_id,
        amount=body.amount,
        operation=body.operation,
        description=body.description or f"Platform admin {verb} {body.amount} points",
        initiated_by=auth.account_id,
    )
    return PoolAdjustResponse(
        transaction_id=outcome.transaction_id,
        points=outcome.points,
        pool_balance=outcome.pool_balance,
    )
