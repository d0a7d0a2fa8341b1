"""PointTransaction model — append-only points ledger."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import CheckConstraint, Text
from sqlmodel import Column, Field, SQLModel

from app.models.base import CreatedAtMixin, new_uuid


class TransactionKind(StrEnum):
    RECOGNITION = "recognition"
    ADMIN_GRANT = "admin_grant"
    ADMIN_REMOVAL = "admin_removal"
    MEMBER_REMOVAL_RETURN = "member_removal_return"
    POOL_GRANT = "pool_grant"
    POOL_DEDUCTION = "pool_deduction"
    MONTHLY_ALLOCATION = "monthly_allocation"


class PointTransaction(CreatedAtMixin, SQLModel, table=True):
    """One points movement. Rows are never updated or deleted.

    A null ``sender_id`` means the points came from the company pool (or the
    platform); a null ``recipient_id`` means they went back to the pool.
    """

    __tablename__ = "point_transactions"
    __table_args__ = (CheckConstraint("points > 0", name="ck_point_transactions_positive"),)

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    company_id: uuid.UUID = Field(foreign_key="companies.id", nullable=False, index=True)
    sender_id: uuid.UUID | None = Field(default=None, foreign_key="accounts.id", index=True)
    recipient_id: uuid.UUID | None = Field(default=None, foreign_key="accounts.id", index=True)
    points: int = Field(nullable=False)
    description: str = Field(default="", sa_column=Column(Text, nullable=False))
    kind: TransactionKind = Field(default=TransactionKind.RECOGNITION, index=True)
    initiated_by: uuid.UUID | None = Field(default=None)


# ── Pydantic schemas ─────────────────────────────────────────

class PointTransactionRead(SQLModel):
    id: uuid.UUID
    company_id: uuid.UUID
    sender_id: uuid.UUID | None
    recipient_id: uuid.UUID | None
    points: int
    description: str
    kind: TransactionKind
    created_at: datetime
