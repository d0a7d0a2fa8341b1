"""PlatformSetting model — global key/value settings (prices, defaults)."""

import uuid

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from app.models.base import TimestampMixin, new_uuid


class PlatformSetting(TimestampMixin, SQLModel, table=True):
    __tablename__ = "platform_settings"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    key: str = Field(max_length=100, unique=True, nullable=False, index=True)
    value: str = Field(sa_column=Column(Text, nullable=False))  # JSON-encoded
    description: str | None = Field(default=None, max_length=500)
