"""Account model — one member of one company."""

import uuid
from datetime import datetime
from enum import StrEnum

from pydantic import EmailStr
from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, new_uuid


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountStatus(StrEnum):
    INVITED = "invited"
    ACTIVE = "active"
    DEACTIVATED = "deactivated"


class Account(TimestampMixin, SQLModel, table=True):
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_accounts_company_email"),
        CheckConstraint("points >= 0", name="ck_accounts_points_non_negative"),
    )

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    company_id: uuid.UUID = Field(foreign_key="companies.id", nullable=False, index=True)
    # Identity provider user id, set on first login
    auth_user_id: str | None = Field(default=None, max_length=255, index=True)
    email: str = Field(max_length=320, nullable=False)
    display_name: str = Field(default="", max_length=255)
    department: str | None = Field(default=None, max_length=255)

    points: int = Field(default=0, nullable=False)
    monthly_limit: int | None = Field(default=None)

    is_admin: bool = Field(default=False)
    status: AccountStatus = Field(default=AccountStatus.INVITED, index=True)
    invited_by: uuid.UUID | None = Field(default=None, foreign_key="accounts.id")
    activated_at: datetime | None = Field(default=None)
    deactivated_at: datetime | None = Field(default=None)

    @property
    def is_billable(self) -> bool:
        return not self.is_admin and self.status == AccountStatus.ACTIVE


# ── Pydantic schemas ─────────────────────────────────────────

class AccountCreate(SQLModel):
    email: EmailStr
    display_name: str = Field(default="", max_length=255)
    department: str | None = Field(default=None, max_length=255)
    is_admin: bool = False
    monthly_limit: int | None = Field(default=None, ge=0)
    # Create as active instead of invited (direct add / import flows)
    activate: bool = False


class AccountRead(SQLModel):
    id: uuid.UUID
    company_id: uuid.UUID
    email: str
    display_name: str
    department: str | None
    points: int
    monthly_limit: int | None
    is_admin: bool
    status: AccountStatus
    created_at: datetime
