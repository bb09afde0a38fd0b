"""Pydantic schemas for chat sessions and messages."""

from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from support_chat.models import ChatStatus, SenderType


class BaseChatModel(BaseModel):
    """Base model with common configuration for all chat schemas."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
    )


def as_utc(value: datetime) -> datetime:
    """Return `value` as an aware UTC datetime."""
    # SQLite hands back naive datetimes; everything stored is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ChatSessionRead(BaseChatModel):
    """Chat session as seen by the customer."""

    id: UUID
    user_id: UUID
    status: ChatStatus
    created_at: datetime
    updated_at: datetime | None = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_times(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else value


class ChatMessageRead(BaseChatModel):
    """Persisted chat message.

    Instances are immutable once stored; `id` is the dedup key used by
    clients and `(created_at, id)` is the order within a chat.
    """

    id: UUID
    chat_id: UUID
    sender_id: UUID
    sender_type: SenderType
    message: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _normalize_created_at(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """Render order: creation time, then id."""
        return (self.created_at, str(self.id))


class ChatMessageCreate(BaseModel):
    """Request body for sending a customer message."""

    message: str = Field(description="Message text (trimmed, must not be empty)")
