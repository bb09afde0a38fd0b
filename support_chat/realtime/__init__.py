"""Realtime bus: per-chat push of newly committed messages."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from support_chat.config import ChatSettings
from support_chat.realtime.bus import RealtimeBus, Subscription


def create_bus(
    settings: ChatSettings,
    session_maker: async_sessionmaker[AsyncSession],
) -> RealtimeBus:
    """Build the bus configured by `settings.bus_backend`."""
    if settings.bus_backend == "postgres":
        from support_chat.realtime.postgres import PostgresBus

        return PostgresBus(
            settings.listen_dsn,
            session_maker,
            queue_size=settings.bus_queue_size,
        )
    return RealtimeBus(queue_size=settings.bus_queue_size)


__all__ = ["RealtimeBus", "Subscription", "create_bus"]
