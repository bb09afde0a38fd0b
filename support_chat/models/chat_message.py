"""Support chat message model."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from support_chat.database import Base
from support_chat.models.chat_session import ChatSession, utc_now

# sender_id used for messages written by the service itself
SYSTEM_SENDER_ID = UUID(int=0)


class SenderType(str, Enum):
    """Author role of a chat message."""

    CUSTOMER = "customer"
    AGENT = "agent"
    SYSTEM = "system"


class ChatMessage(Base):
    """Immutable entry in a chat's append-only message log."""

    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_chat_created", "chat_id", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    chat_id: Mapped[UUID] = mapped_column(
        ForeignKey("support_chats.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id: Mapped[UUID] = mapped_column(nullable=False)
    sender_type: Mapped[str] = mapped_column(
        String(16),
        default=SenderType.CUSTOMER.value,
        nullable=False,
        comment="customer | agent | system",
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    # Relationship
    chat: Mapped[ChatSession] = relationship("ChatSession", back_populates="messages")
