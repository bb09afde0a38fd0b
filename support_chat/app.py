"""FastAPI application for the support chat service."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from support_chat.config import ChatSettings, get_settings
from support_chat.core.errors import ChatError, NotFoundError, SubscriptionLost
from support_chat.core.messages import ErrorMessages
from support_chat.core.metrics import MONITORING_ENABLED
from support_chat.core.telemetry import init_telemetry
from support_chat.database import create_db_and_tables, dispose_engine, get_session_maker
from support_chat.dependencies import ChatServices, current_identity, get_services
from support_chat.identity import Identity
from support_chat.models import SenderType
from support_chat.realtime import create_bus
from support_chat.realtime.bus import Subscription
from support_chat.schemas import ChatMessageCreate, ChatMessageRead, ChatSessionRead

logger = logging.getLogger(__name__)

SSE_KEEPALIVE_SECONDS = 15.0


async def stream_events(
    subscription: Subscription,
    keepalive: float = SSE_KEEPALIVE_SECONDS,
) -> AsyncGenerator[str, None]:
    """Render a bus subscription as a Server-Sent Events stream.

    The stream opens with a comment so clients know the subscription is live,
    sends a keepalive comment when idle and simply ends when the subscription
    is lost; clients treat the end of the stream as a disconnect.
    """
    try:
        yield ": connected\n\n"
        events = subscription.__aiter__()
        while True:
            try:
                message = await asyncio.wait_for(events.__anext__(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            except StopAsyncIteration:
                break
            except SubscriptionLost as e:
                logger.info(f"Event stream for chat {subscription.chat_id} lost: {e}")
                break
            yield f"id: {message.id}\nevent: message\ndata: {message.model_dump_json()}\n\n"
    finally:
        subscription.unsubscribe()


async def _owned_chat(services: ChatServices, chat_id: UUID, identity: Identity) -> ChatSessionRead:
    chat = await services.session_store.get_session(chat_id)
    if chat.user_id != identity.id:
        # Same answer as a missing chat: don't reveal other customers' chats
        raise NotFoundError(
            ErrorMessages.CHAT_NOT_FOUND.format(chat_id=chat_id),
            details={"chat_id": str(chat_id)},
        )
    return chat


def create_app(
    settings: ChatSettings | None = None,
    services: ChatServices | None = None,
) -> FastAPI:
    """Create the chat API.

    Args:
        settings: Service settings (default: loaded from environment)
        services: Pre-built services; when omitted they are created on startup
            from `settings.database_url` and `settings.bus_backend`

    Returns:
        FastAPI application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        if services is not None:
            yield
            return

        # Startup
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        init_telemetry(settings)

        logger.info("Creating database tables...")
        await create_db_and_tables()

        session_maker = get_session_maker()
        bus = create_bus(settings, session_maker)
        await bus.start()
        app.state.chat = ChatServices.build(settings, session_maker, bus)
        logger.info(f"Support chat service started (bus={settings.bus_backend})")
        yield

        # Shutdown
        await bus.close()
        await dispose_engine()
        logger.info("Support chat service stopped")

    app = FastAPI(
        title="Storefront Support Chat",
        description="Real-time customer support chat",
        version="0.1.0",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.chat = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure based on your needs
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if MONITORING_ENABLED:
        from prometheus_client import make_asgi_app

        app.mount("/metrics", make_asgi_app())

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response().model_dump(),
        )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.post(
        "/users/me/chat_session",
        response_model=ChatSessionRead,
        tags=["chat"],
    )
    async def resolve_chat_session(
        identity: Identity = Depends(current_identity),
        services: ChatServices = Depends(get_services),
    ):
        """Get the current customer's open chat, creating it on first use.

        A new chat comes with a single system welcome message.
        """
        return await services.resolver.resolve(identity)

    @app.get(
        "/chat_sessions/{chat_id}/messages",
        response_model=list[ChatMessageRead],
        tags=["chat"],
    )
    async def list_chat_messages(
        chat_id: UUID,
        identity: Identity = Depends(current_identity),
        services: ChatServices = Depends(get_services),
    ):
        """Get a chat's full history, oldest first."""
        await _owned_chat(services, chat_id, identity)
        return await services.message_store.list_messages(chat_id)

    @app.post(
        "/chat_sessions/{chat_id}/messages",
        response_model=ChatMessageRead,
        tags=["chat"],
    )
    async def send_chat_message(
        chat_id: UUID,
        data: ChatMessageCreate,
        identity: Identity = Depends(current_identity),
        services: ChatServices = Depends(get_services),
    ):
        """Append a customer message; it is also pushed to all subscribers."""
        await _owned_chat(services, chat_id, identity)
        return await services.message_store.append(
            chat_id, identity.id, SenderType.CUSTOMER, data.message
        )

    @app.get("/chat_sessions/{chat_id}/events", tags=["chat"])
    async def chat_events(
        chat_id: UUID,
        identity: Identity = Depends(current_identity),
        services: ChatServices = Depends(get_services),
    ):
        """Server-Sent Events stream of messages appended to the chat."""
        await _owned_chat(services, chat_id, identity)
        subscription = await services.bus.subscribe(chat_id)
        return StreamingResponse(
            stream_events(subscription),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return app
