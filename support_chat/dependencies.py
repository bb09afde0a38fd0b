"""FastAPI dependencies for the support chat service."""

from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from support_chat.config import ChatSettings
from support_chat.identity import Identity, decode_access_token
from support_chat.realtime.bus import RealtimeBus
from support_chat.services import MessageStore, SessionResolver, SessionStore

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class ChatServices:
    """Stores, resolver and bus shared by all requests."""

    settings: ChatSettings
    session_store: SessionStore
    message_store: MessageStore
    resolver: SessionResolver
    bus: RealtimeBus

    @classmethod
    def build(
        cls,
        settings: ChatSettings,
        session_maker: async_sessionmaker[AsyncSession],
        bus: RealtimeBus,
    ) -> "ChatServices":
        """Wire the stores and resolver around one session factory and bus."""
        session_store = SessionStore(session_maker)
        message_store = MessageStore(session_maker, bus)
        resolver = SessionResolver(
            session_store,
            message_store,
            welcome_message=settings.welcome_message,
        )
        return cls(settings, session_store, message_store, resolver, bus)


def get_services(request: Request) -> ChatServices:
    """Get the services attached to the running app."""
    return request.app.state.chat


async def current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    services: ChatServices = Depends(get_services),
) -> Identity:
    """Resolve the signed-in customer from the Authorization header.

    Raises:
        Unauthenticated: If no valid bearer token was sent
    """
    token = credentials.credentials if credentials else None
    return decode_access_token(token, services.settings)
