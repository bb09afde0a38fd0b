"""Message store: append-only chat log with realtime fan-out."""

from uuid import UUID

from sqlalchemy import select

from support_chat.core.errors import NotFoundError, SubscriptionLost
from support_chat.core.messages import ErrorMessages
from support_chat.core.metrics import MESSAGES_APPENDED
from support_chat.core.validation import sanitize_message
from support_chat.models import ChatMessage, ChatSession, SenderType
from support_chat.models.chat_session import utc_now
from support_chat.realtime.bus import RealtimeBus
from support_chat.schemas import ChatMessageRead
from support_chat.services.base import BaseStore


class MessageStore(BaseStore):
    """Appends messages and publishes each committed one to the bus."""

    def __init__(self, session_maker, bus: RealtimeBus) -> None:
        super().__init__(session_maker)
        self.bus = bus

    async def append(
        self,
        chat_id: UUID,
        sender_id: UUID,
        sender_type: SenderType | str,
        message: str,
    ) -> ChatMessageRead:
        """Append a message to a chat.

        Args:
            chat_id: Owning chat
            sender_id: Author (customer id or system sentinel)
            sender_type: customer | agent | system
            message: Message text

        Returns:
            Persisted message with its generated id and created_at

        Raises:
            ValidationError: If the message is empty after trimming
            NotFoundError: If the chat does not exist
            StoreError: On persistence failure
        """
        text = sanitize_message(message)
        sender_type = SenderType(sender_type)

        async with self.session("append") as db:
            chat = await db.get(ChatSession, chat_id)
            if chat is None:
                raise NotFoundError(
                    ErrorMessages.CHAT_NOT_FOUND.format(chat_id=chat_id),
                    details={"chat_id": str(chat_id)},
                )

            now = utc_now()
            row = ChatMessage(
                chat_id=chat_id,
                sender_id=sender_id,
                sender_type=sender_type.value,
                message=text,
                created_at=now,
            )
            db.add(row)
            chat.updated_at = now
            await db.commit()
            stored = ChatMessageRead.model_validate(row)

        MESSAGES_APPENDED.labels(sender_type=sender_type.value).inc()
        self.logger.debug(f"Appended message {stored.id} to chat {chat_id}")
        await self.announce(stored)
        return stored

    async def announce(self, message: ChatMessageRead) -> None:
        """Publish a committed message to realtime subscribers."""
        try:
            await self.bus.publish(message)
        except SubscriptionLost as e:
            # Committed either way; subscribers catch up on their next reload
            self._log_error("announce", e, {"message_id": str(message.id)})

    async def list_messages(self, chat_id: UUID) -> list[ChatMessageRead]:
        """Get a chat's history ordered by created_at, then id."""
        query = (
            select(ChatMessage)
            .where(ChatMessage.chat_id == chat_id)
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        )
        async with self.session("list_messages") as db:
            result = await db.execute(query)
            return [ChatMessageRead.model_validate(m) for m in result.scalars().all()]
