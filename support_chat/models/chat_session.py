"""Support chat session model."""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from support_chat.database import Base


def utc_now() -> datetime:
    """Timezone-aware current time with microsecond precision."""
    return datetime.now(timezone.utc)


class ChatStatus(str, Enum):
    """Lifecycle status of a support chat."""

    OPEN = "open"
    CLOSED = "closed"


class ChatSession(Base):
    """Support chat between one customer and the support desk.

    A customer has at most one open chat at any time. The partial unique
    index below makes a concurrent second insert fail instead of silently
    producing a duplicate open chat.
    """

    __tablename__ = "support_chats"
    __table_args__ = (
        Index(
            "uq_support_chats_open_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(16),
        default=ChatStatus.OPEN.value,
        nullable=False,
        comment="open | closed",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
        comment="Last activity (bumped on every new message)",
    )

    # Relationship
    messages: Mapped[list["ChatMessage"]] = relationship(  # noqa: F821
        "ChatMessage",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="ChatMessage.created_at",
    )
