"""Company model — tenant boundary, points pool and subscription state."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, new_uuid


class SubscriptionStatus(StrEnum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class Company(TimestampMixin, SQLModel, table=True):
    __tablename__ = "companies"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    name: str = Field(max_length=255, nullable=False)
    slug: str = Field(max_length=100, unique=True, nullable=False, index=True)

    # Company pool that admins distribute from
    points_balance: int = Field(default=0, nullable=False)
    team_member_monthly_limit: int | None = Field(default=None)
    timezone: str = Field(default="UTC", max_length=64)

    # Billing: a null subscription id means billing has not been set up
    stripe_customer_id: str | None = Field(default=None, max_length=255)
    stripe_subscription_id: str | None = Field(default=None, max_length=255, index=True)
    subscription_status: SubscriptionStatus = Field(default=SubscriptionStatus.INACTIVE)
    # Legacy fixed seat count, display only since usage-based billing
    team_slots: int | None = Field(default=None)
    seats_out_of_sync: bool = Field(default=False, index=True)


# ── Pydantic schemas ─────────────────────────────────────────

class CompanyRead(SQLModel):
    id: uuid.UUID
    name: str
    slug: str
    points_balance: int
    team_member_monthly_limit: int | None
    timezone: str
    subscription_status: SubscriptionStatus
    stripe_subscription_id: str | None
    team_slots: int | None
    seats_out_of_sync: bool
