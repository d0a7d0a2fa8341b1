"""Company registration (bootstrap) endpoint."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlmodel import select

from app.api.deps import Auth, Session
from app.core.config import get_settings
from app.core.security import create_jwt
from app.models.account import Account, AccountRead, AccountStatus, normalize_email
from app.models.base import utcnow
from app.models.company import Company, CompanyRead
from app.services.allowance import resolve_timezone

router = APIRouter(prefix="/companies", tags=["companies"])


# ── Bootstrap request / response schemas ──────────────────────

class CompanyBootstrapRequest(BaseModel):
    """Everything needed to create a company + its first admin in one call."""
    company_name: str = Field(max_length=255)
    company_slug: str = Field(max_length=100, pattern=r"^[a-z0-9\-]+$")
    admin_email: EmailStr
    admin_display_name: str = Field(default="", max_length=255)
    timezone: str | None = Field(default=None, max_length=64)
    team_member_monthly_limit: int | None = Field(default=None, ge=0)


class CompanyBootstrapResponse(BaseModel):
    company: CompanyRead
    admin: AccountRead
    access_token: str


# ── Routes ────────────────────────────────────────────────────

@router.post(
    "",
    response_model=CompanyBootstrapResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new company (bootstrap)",
)
async def bootstrap_company(
    body: CompanyBootstrapRequest,
    session: Session,
) -> CompanyBootstrapResponse:
    """Create a company and its first admin, and return a token for the admin.

    This is the only unauthenticated write endpoint. Billing is not set up
    here; it happens when the first billable member is added.
    """
    existing = await session.execute(
        select(Company).where(Company.slug == body.company_slug)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Slug '{body.company_slug}' is already taken",
        )

    tz_name = body.timezone or get_settings().default_timezone
    company = Company(
        name=body.company_name,
        slug=body.company_slug,
        timezone=resolve_timezone(tz_name).key,
        team_member_monthly_limit=body.team_member_monthly_limit,
    )
    session.add(company)
    await session.flush()  # populate company.id

    admin = Account(
        company_id=company.id,
        email=normalize_email(body.admin_email),
        display_name=body.admin_display_name,
        is_admin=True,
        status=AccountStatus.ACTIVE,
        activated_at=utcnow(),
    )
    session.add(admin)
    await session.commit()
    await session.refresh(company)
    await session.refresh(admin)

    return CompanyBootstrapResponse(
        company=CompanyRead.model_validate(company),
        admin=AccountRead.model_validate(admin),
        access_token=create_jwt(str(admin.id), str(company.id)),
    )


@router.get(
    "/me",
    response_model=CompanyRead,
    summary="Get current company info",
)
async def get_current_company(
    auth: Auth,
    session: Session,
) -> CompanyRead:
    company = await session.get(Company, auth.company_id)
    if company is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
    return CompanyRead.model_validate(company)
