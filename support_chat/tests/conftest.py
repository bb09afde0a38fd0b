"""Pytest fixtures for support chat service tests."""

from typing import AsyncGenerator
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from support_chat.config import ChatSettings
from support_chat.database import create_db_and_tables
from support_chat.dependencies import ChatServices
from support_chat.identity import Identity
from support_chat.realtime.bus import RealtimeBus
from support_chat.services import MessageStore, SessionResolver, SessionStore

WELCOME = "Welcome to TrendyCart Support! A support agent will be with you shortly."


@pytest.fixture
def settings(tmp_path) -> ChatSettings:
    """Create test service settings."""
    return ChatSettings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}",
        secret_key="test-secret-key-that-is-long-enough-for-hs256",
        welcome_message=WELCOME,
        bus_queue_size=8,
    )


@pytest.fixture
async def engine(settings: ChatSettings) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine so concurrent sessions see each other."""
    engine = create_async_engine(settings.database_url)
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create session factory."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def bus() -> AsyncGenerator[RealtimeBus, None]:
    """Create in-process realtime bus."""
    bus = RealtimeBus(queue_size=8)
    yield bus
    await bus.close()


@pytest.fixture
def session_store(session_maker) -> SessionStore:
    """Create session store."""
    return SessionStore(session_maker)


@pytest.fixture
def message_store(session_maker, bus: RealtimeBus) -> MessageStore:
    """Create message store."""
    return MessageStore(session_maker, bus)


@pytest.fixture
def resolver(session_store: SessionStore, message_store: MessageStore) -> SessionResolver:
    """Create session resolver with a welcome message."""
    return SessionResolver(session_store, message_store, welcome_message=WELCOME)


@pytest.fixture
def services(
    settings: ChatSettings,
    session_maker,
    bus: RealtimeBus,
) -> ChatServices:
    """Create the services bundle used by the API."""
    return ChatServices.build(settings, session_maker, bus)


@pytest.fixture
def customer() -> Identity:
    """Signed-in customer."""
    return Identity(id=uuid4())
