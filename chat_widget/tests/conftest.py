"""Pytest fixtures for chat widget tests."""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chat_widget.backend import LocalChatBackend
from chat_widget.config import WidgetSettings
from chat_widget.reconciler import ClientReconciler
from support_chat.database import create_db_and_tables
from support_chat.identity import Identity
from support_chat.models import SenderType
from support_chat.realtime.bus import RealtimeBus
from support_chat.schemas import ChatMessageRead
from support_chat.services import MessageStore, SessionResolver, SessionStore

WELCOME = "Welcome to TrendyCart Support!"


@pytest.fixture
def widget_settings() -> WidgetSettings:
    """Widget settings with tight reconnect bounds."""
    return WidgetSettings(
        chat_service_url="http://chat.test",
        resubscribe_base_delay=0.0,
        resubscribe_max_delay=0.0,
        resubscribe_max_attempts=3,
        optimistic_match_window=10.0,
    )


@pytest.fixture
def reconciler() -> ClientReconciler:
    """Create empty reconciler."""
    return ClientReconciler(match_window=10.0)


@pytest.fixture
def make_message() -> Callable[..., ChatMessageRead]:
    """Factory for confirmed messages."""
    base = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def factory(
        chat_id: UUID,
        text: str = "Hello",
        sender_id: UUID | None = None,
        sender_type: SenderType = SenderType.CUSTOMER,
        offset: float = 0.0,
        created_at: datetime | None = None,
        message_id: UUID | None = None,
    ) -> ChatMessageRead:
        return ChatMessageRead(
            id=message_id or uuid4(),
            chat_id=chat_id,
            sender_id=sender_id or uuid4(),
            sender_type=sender_type,
            message=text,
            created_at=created_at or base + timedelta(seconds=offset),
        )

    return factory


@pytest.fixture
async def chat_services(tmp_path) -> AsyncGenerator[dict, None]:
    """Stores, resolver and bus over a file-backed SQLite database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'widget.db'}")
    await create_db_and_tables(engine)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    bus = RealtimeBus(queue_size=16)
    session_store = SessionStore(session_maker)
    message_store = MessageStore(session_maker, bus)
    resolver = SessionResolver(session_store, message_store, welcome_message=WELCOME)

    yield {
        "bus": bus,
        "session_store": session_store,
        "message_store": message_store,
        "resolver": resolver,
    }

    await bus.close()
    await engine.dispose()


@pytest.fixture
def customer() -> Identity:
    """Signed-in customer."""
    return Identity(id=uuid4())


@pytest.fixture
def local_backend(chat_services: dict, customer: Identity) -> LocalChatBackend:
    """In-process backend for the signed-in customer."""
    return LocalChatBackend(customer, **chat_services)
