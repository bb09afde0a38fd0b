"""Realtime bus backed by PostgreSQL LISTEN/NOTIFY.

Each service process holds one asyncpg connection that LISTENs on a shared
channel. Publishing sends only the message id (NOTIFY payloads are capped at
8000 bytes); every listening process loads the committed row and fans it out
to its local subscribers.
"""

import asyncio
import logging
from typing import Any
from uuid import UUID

import asyncpg
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from support_chat.core.errors import SubscriptionLost
from support_chat.core.messages import ErrorMessages
from support_chat.models import ChatMessage
from support_chat.realtime.bus import RealtimeBus, Subscription
from support_chat.schemas import ChatMessageRead

logger = logging.getLogger(__name__)

NOTIFY_CHANNEL = "support_chat_messages"


class PostgresBus(RealtimeBus):
    """Cross-process bus using a dedicated LISTEN connection."""

    def __init__(
        self,
        dsn: str,
        session_maker: async_sessionmaker[AsyncSession],
        queue_size: int = 256,
    ) -> None:
        super().__init__(queue_size)
        self.dsn = dsn
        self.session_maker = session_maker
        self._conn: asyncpg.Connection | None = None
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def connected(self) -> bool:
        return self._conn is not None and not self._conn.is_closed()

    async def start(self) -> None:
        """Open the LISTEN connection (no-op when already connected)."""
        async with self._lock:
            if self.connected:
                return
            try:
                conn = await asyncpg.connect(self.dsn)
                await conn.add_listener(NOTIFY_CHANNEL, self._on_notify)
            except (OSError, asyncpg.PostgresError) as e:
                logger.error(f"Failed to open LISTEN connection: {e}")
                raise SubscriptionLost(
                    ErrorMessages.CONNECTION_LOST, {"reason": str(e)}
                ) from e
            conn.add_termination_listener(self._on_terminated)
            self._conn = conn
            logger.info(f"Listening on channel {NOTIFY_CHANNEL}")

    async def close(self) -> None:
        await super().close()
        async with self._lock:
            if self._conn is not None:
                conn, self._conn = self._conn, None
                await conn.close()
        for task in list(self._pending):
            task.cancel()
        logger.info("Postgres bus closed")

    async def subscribe(self, chat_id: UUID) -> Subscription:
        # A subscription is only as good as the LISTEN connection behind it
        await self.start()
        return await super().subscribe(chat_id)

    async def publish(self, message: ChatMessageRead) -> None:
        """NOTIFY listeners that a message was committed."""
        # Pooled connection: the LISTEN connection must not run concurrent queries
        try:
            async with self.session_maker() as db:
                await db.execute(
                    text("SELECT pg_notify(:channel, :payload)"),
                    {"channel": NOTIFY_CHANNEL, "payload": str(message.id)},
                )
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to publish message {message.id}: {e}")
            raise SubscriptionLost(ErrorMessages.CONNECTION_LOST, {"reason": str(e)}) from e

    def _on_notify(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        task = asyncio.get_running_loop().create_task(self._load_and_fan_out(UUID(payload)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _load_and_fan_out(self, message_id: UUID) -> None:
        try:
            async with self.session_maker() as db:
                row = await db.get(ChatMessage, message_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load notified message {message_id}: {e}")
            return
        if row is None:
            logger.warning(f"Notified message {message_id} not found")
            return
        message = ChatMessageRead.model_validate(row)
        self._fan_out(message)

    def _on_terminated(self, connection: Any) -> None:
        if connection is self._conn:
            self._conn = None
        self.disconnect_all("LISTEN connection terminated")
