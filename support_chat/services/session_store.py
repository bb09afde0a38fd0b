"""Session store: one row per support chat."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from support_chat.core.errors import NotFoundError, SessionConflict
from support_chat.core.messages import ErrorMessages
from support_chat.models import (
    SYSTEM_SENDER_ID,
    ChatMessage,
    ChatSession,
    ChatStatus,
    SenderType,
)
from support_chat.models.chat_session import utc_now
from support_chat.schemas import ChatMessageRead, ChatSessionRead
from support_chat.services.base import BaseStore


class SessionStore(BaseStore):
    """Reads and writes support chat sessions."""

    async def find_open_session(self, user_id: UUID) -> ChatSessionRead | None:
        """Get the user's open chat, newest first.

        Args:
            user_id: Customer ID

        Returns:
            The open chat, or None when the user has none
        """
        query = (
            select(ChatSession)
            .where(
                ChatSession.user_id == user_id,
                ChatSession.status == ChatStatus.OPEN.value,
            )
            .order_by(ChatSession.created_at.desc())
            .limit(1)
        )
        async with self.session("find_open_session") as db:
            result = await db.execute(query)
            chat = result.scalars().first()
            return ChatSessionRead.model_validate(chat) if chat else None

    async def create_session(
        self,
        user_id: UUID,
        welcome_message: str | None = None,
    ) -> tuple[ChatSessionRead, ChatMessageRead | None]:
        """Create an open chat for the user, seeded with a system message.

        The chat row and its welcome message are written in one transaction,
        so a lost race leaves neither behind.

        Args:
            user_id: Customer ID
            welcome_message: Optional system message seeded into the chat

        Returns:
            Created chat and its welcome message (None when not seeded)

        Raises:
            SessionConflict: If the user already has an open chat
            StoreError: On any other persistence failure
        """
        async with self.session("create_session") as db:
            now = utc_now()
            chat = ChatSession(
                user_id=user_id,
                status=ChatStatus.OPEN.value,
                created_at=now,
                updated_at=now,
            )
            db.add(chat)

            welcome = None
            if welcome_message:
                welcome = ChatMessage(
                    chat=chat,
                    sender_id=SYSTEM_SENDER_ID,
                    sender_type=SenderType.SYSTEM.value,
                    message=welcome_message,
                    created_at=now,
                )
                db.add(welcome)

            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                raise SessionConflict(
                    message="User already has an open chat",
                    details={"user_id": str(user_id)},
                ) from e

            self._log_info("Created chat", chat_id=chat.id, user_id=user_id)
            return (
                ChatSessionRead.model_validate(chat),
                ChatMessageRead.model_validate(welcome) if welcome else None,
            )

    async def get_session(self, chat_id: UUID) -> ChatSessionRead:
        """Get chat by id.

        Raises:
            NotFoundError: If the chat does not exist
        """
        async with self.session("get_session") as db:
            chat = await db.get(ChatSession, chat_id)
            if chat is None:
                raise NotFoundError(
                    ErrorMessages.CHAT_NOT_FOUND.format(chat_id=chat_id),
                    details={"chat_id": str(chat_id)},
                )
            return ChatSessionRead.model_validate(chat)

    async def list_sessions(
        self,
        user_id: UUID,
        status: ChatStatus | None = None,
    ) -> list[ChatSessionRead]:
        """List a user's chats, newest first."""
        query = select(ChatSession).where(ChatSession.user_id == user_id)
        if status is not None:
            query = query.where(ChatSession.status == ChatStatus(status).value)
        query = query.order_by(ChatSession.created_at.desc())

        async with self.session("list_sessions") as db:
            result = await db.execute(query)
            return [ChatSessionRead.model_validate(c) for c in result.scalars().all()]

    async def close_session(self, chat_id: UUID) -> ChatSessionRead:
        """Mark a chat closed (support desk action).

        Closing is idempotent. The chat and its messages are kept.

        Raises:
            NotFoundError: If the chat does not exist
        """
        async with self.session("close_session") as db:
            chat = await db.get(ChatSession, chat_id)
            if chat is None:
                raise NotFoundError(
                    ErrorMessages.CHAT_NOT_FOUND.format(chat_id=chat_id),
                    details={"chat_id": str(chat_id)},
                )
            if chat.status != ChatStatus.CLOSED.value:
                chat.status = ChatStatus.CLOSED.value
                chat.updated_at = utc_now()
                await db.commit()
                self._log_info("Closed chat", chat_id=chat_id)
            return ChatSessionRead.model_validate(chat)
