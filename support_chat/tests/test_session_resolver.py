"""Tests for open-chat resolution."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from support_chat.core.errors import SessionConflict, StoreError, Unauthenticated
from support_chat.identity import Identity
from support_chat.models import ChatStatus, SenderType
from support_chat.realtime.bus import RealtimeBus
from support_chat.services import MessageStore, SessionResolver, SessionStore

WELCOME = "Welcome to TrendyCart Support! A support agent will be with you shortly."


@pytest.mark.asyncio
async def test_resolve_creates_chat_with_welcome(
    resolver: SessionResolver,
    message_store: MessageStore,
    customer: Identity,
) -> None:
    """Test the first resolution creates an open chat with one welcome message."""
    chat = await resolver.resolve(customer)

    assert chat.user_id == customer.id
    assert chat.status == ChatStatus.OPEN

    history = await message_store.list_messages(chat.id)
    assert len(history) == 1
    assert history[0].sender_type == SenderType.SYSTEM
    assert history[0].message == WELCOME


@pytest.mark.asyncio
async def test_resolve_is_idempotent(
    resolver: SessionResolver,
    message_store: MessageStore,
    customer: Identity,
) -> None:
    """Test repeated resolutions return the same chat and seed nothing new."""
    first = await resolver.resolve(customer)
    second = await resolver.resolve(customer)

    assert second.id == first.id
    assert len(await message_store.list_messages(first.id)) == 1


@pytest.mark.asyncio
async def test_resolve_unauthenticated(resolver: SessionResolver) -> None:
    """Test resolution without a signed-in customer is refused."""
    with pytest.raises(Unauthenticated):
        await resolver.resolve(None)


@pytest.mark.asyncio
async def test_concurrent_resolutions_share_one_chat(
    resolver: SessionResolver,
    session_store: SessionStore,
    message_store: MessageStore,
    customer: Identity,
) -> None:
    """Test parallel resolutions from several tabs yield a single chat."""
    chats = await asyncio.gather(*(resolver.resolve(customer) for _ in range(5)))

    assert len({c.id for c in chats}) == 1
    assert len(await session_store.list_sessions(customer.id)) == 1
    assert len(await message_store.list_messages(chats[0].id)) == 1


@pytest.mark.asyncio
async def test_concurrent_resolvers_share_one_chat(
    session_maker,
    bus: RealtimeBus,
    customer: Identity,
) -> None:
    """Test resolvers without a shared lock still settle on one chat."""
    resolvers = [
        SessionResolver(
            SessionStore(session_maker),
            MessageStore(session_maker, bus),
            welcome_message=WELCOME,
        )
        for _ in range(4)
    ]

    chats = await asyncio.gather(*(r.resolve(customer) for r in resolvers))

    assert len({c.id for c in chats}) == 1
    store = SessionStore(session_maker)
    assert len(await store.list_sessions(customer.id)) == 1
    messages = await MessageStore(session_maker, bus).list_messages(chats[0].id)
    assert [m.message for m in messages] == [WELCOME]


@pytest.mark.asyncio
async def test_resolve_after_close_creates_new_chat(
    resolver: SessionResolver,
    session_store: SessionStore,
    customer: Identity,
) -> None:
    """Test a closed chat is not reused."""
    first = await resolver.resolve(customer)
    await session_store.close_session(first.id)

    second = await resolver.resolve(customer)

    assert second.id != first.id
    assert second.status == ChatStatus.OPEN


@pytest.mark.asyncio
async def test_resolve_announces_welcome(
    resolver: SessionResolver,
    customer: Identity,
) -> None:
    """Test the welcome message is announced once after creation, not on reuse."""
    resolver.message_store.announce = AsyncMock()

    chat = await resolver.resolve(customer)
    await resolver.resolve(customer)

    resolver.message_store.announce.assert_awaited_once()
    welcome = resolver.message_store.announce.await_args.args[0]
    assert welcome.chat_id == chat.id
    assert welcome.sender_type == SenderType.SYSTEM


@pytest.mark.asyncio
async def test_resolve_adopts_winner_after_conflict(
    session_store: SessionStore,
    message_store: MessageStore,
    customer: Identity,
) -> None:
    """Test a lost insert race re-reads and returns the winner's chat."""
    winner, _ = await session_store.create_session(customer.id, WELCOME)

    class RacingStore(SessionStore):
        """Reports no open chat on the first read, as if the winner was not yet visible."""

        reads = 0

        async def find_open_session(self, user_id):
            self.reads += 1
            if self.reads == 1:
                return None
            return await super().find_open_session(user_id)

    racing = RacingStore(session_store.session_maker)
    resolver = SessionResolver(racing, message_store, welcome_message=WELCOME)

    chat = await resolver.resolve(customer)

    assert chat.id == winner.id
    assert racing.reads == 2


@pytest.mark.asyncio
async def test_resolve_gives_up_after_repeated_conflicts(
    message_store: MessageStore,
    session_maker,
    customer: Identity,
) -> None:
    """Test endless conflicts end in StoreError instead of looping."""

    class AlwaysConflicting(SessionStore):
        async def find_open_session(self, user_id):
            return None

        async def create_session(self, user_id, welcome_message=None):
            raise SessionConflict("conflict")

    resolver = SessionResolver(AlwaysConflicting(session_maker), message_store, max_attempts=2)

    with pytest.raises(StoreError):
        await resolver.resolve(customer)
