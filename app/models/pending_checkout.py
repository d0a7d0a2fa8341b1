"""PendingCheckout model — member changes waiting on a Stripe checkout."""

import json
import uuid
from datetime import datetime

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from app.models.account import AccountCreate
from app.models.base import CreatedAtMixin, new_uuid


class PendingCheckout(CreatedAtMixin, SQLModel, table=True):
    """Members to create or reactivate once the checkout session completes.

    Import batches do not fit in Stripe metadata (500 chars per value), so
    the payload is kept here, keyed by the checkout session id.
    """

    __tablename__ = "pending_checkouts"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    company_id: uuid.UUID = Field(foreign_key="companies.id", nullable=False, index=True)
    checkout_session_id: str = Field(max_length=255, unique=True, index=True, nullable=False)
    seat_count: int = Field(default=1, nullable=False)
    # JSON list of AccountCreate payloads
    members: str = Field(default="[]", sa_column=Column(Text, nullable=False, server_default="[]"))
    # JSON list of account ids
    reactivate_account_ids: str = Field(
        default="[]", sa_column=Column(Text, nullable=False, server_default="[]")
    )
    invited_by: uuid.UUID | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)

    def pending_members(self) -> list[AccountCreate]:
        return [AccountCreate.model_validate(item) for item in json.loads(self.members)]

    def reactivate_ids(self) -> list[uuid.UUID]:
        return [uuid.UUID(value) for value in json.loads(self.reactivate_account_ids)]
