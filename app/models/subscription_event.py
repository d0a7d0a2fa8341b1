"""SubscriptionEvent model — audit trail of billing quantity changes."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from app.models.base import CreatedAtMixin, new_uuid


class SubscriptionEventType(StrEnum):
    SUBSCRIPTION_CREATED = "subscription_created"
    QUANTITY_UPDATED = "quantity_updated"
    MIGRATION = "migration_to_usage_based"
    SYNC_FAILED = "sync_failed"
    STATUS_CHANGED = "status_changed"


class SubscriptionEvent(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "subscription_events"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    company_id: uuid.UUID = Field(foreign_key="companies.id", nullable=False, index=True)
    event_type: SubscriptionEventType = Field(nullable=False, index=True)
    previous_quantity: int | None = Field(default=None)
    new_quantity: int | None = Field(default=None)
    previous_slots: int | None = Field(default=None)
    new_slots: int | None = Field(default=None)
    stripe_invoice_id: str | None = Field(default=None, max_length=255)
    details: str = Field(default="{}", sa_column=Column(Text, nullable=False, server_default="{}"))


# ── Pydantic schemas ─────────────────────────────────────────

class SubscriptionEventRead(SQLModel):
    id: uuid.UUID
    company_id: uuid.UUID
    event_type: SubscriptionEventType
    previous_quantity: int | None
    new_quantity: int | None
    previous_slots: int | None
    new_slots: int | None
    created_at: datetime
