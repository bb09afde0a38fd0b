"""Chat backend seen by the widget, and its in-process implementation."""

from typing import AsyncIterator, Protocol
from uuid import UUID

from support_chat.core.errors import NotFoundError, Unauthenticated
from support_chat.core.messages import ErrorMessages
from support_chat.identity import Identity
from support_chat.models import SenderType
from support_chat.realtime.bus import RealtimeBus, Subscription
from support_chat.schemas import ChatMessageRead, ChatSessionRead
from support_chat.services import MessageStore, SessionResolver, SessionStore


class MessageStream(Protocol):
    """Push stream of one chat's new messages."""

    def __aiter__(self) -> AsyncIterator[ChatMessageRead]: ...

    async def aclose(self) -> None:
        """Release the stream. Must be idempotent."""
        ...


class ChatBackend(Protocol):
    """Operations the widget needs from the support chat service."""

    @property
    def authenticated(self) -> bool: ...

    async def resolve_session(self) -> ChatSessionRead: ...

    async def load_history(self, chat_id: UUID) -> list[ChatMessageRead]: ...

    async def send_message(self, chat_id: UUID, text: str) -> ChatMessageRead: ...

    async def subscribe(self, chat_id: UUID) -> MessageStream: ...


class _SubscriptionStream:
    """MessageStream over an in-process bus subscription."""

    def __init__(self, subscription: Subscription) -> None:
        self._subscription = subscription

    def __aiter__(self) -> AsyncIterator[ChatMessageRead]:
        return self._subscription.__aiter__()

    async def aclose(self) -> None:
        self._subscription.unsubscribe()


class LocalChatBackend:
    """Backend that talks to the chat services in the same process."""

    def __init__(
        self,
        identity: Identity | None,
        resolver: SessionResolver,
        session_store: SessionStore,
        message_store: MessageStore,
        bus: RealtimeBus,
    ) -> None:
        self.identity = identity
        self.resolver = resolver
        self.session_store = session_store
        self.message_store = message_store
        self.bus = bus

    @property
    def authenticated(self) -> bool:
        return self.identity is not None

    async def resolve_session(self) -> ChatSessionRead:
        return await self.resolver.resolve(self.identity)

    async def _check_owner(self, chat_id: UUID) -> None:
        if self.identity is None:
            raise Unauthenticated(ErrorMessages.SIGN_IN_REQUIRED)
        chat = await self.session_store.get_session(chat_id)
        if chat.user_id != self.identity.id:
            raise NotFoundError(ErrorMessages.CHAT_NOT_FOUND.format(chat_id=chat_id))

    async def load_history(self, chat_id: UUID) -> list[ChatMessageRead]:
        await self._check_owner(chat_id)
        return await self.message_store.list_messages(chat_id)

    async def send_message(self, chat_id: UUID, text: str) -> ChatMessageRead:
        await self._check_owner(chat_id)
        return await self.message_store.append(
            chat_id, self.identity.id, SenderType.CUSTOMER, text
        )

    async def subscribe(self, chat_id: UUID) -> MessageStream:
        await self._check_owner(chat_id)
        return _SubscriptionStream(await self.bus.subscribe(chat_id))
