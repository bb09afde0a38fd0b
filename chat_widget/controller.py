"""Live-support widget controller.

Drives the chat window through `closed -> opening -> open -> closed`,
resolving the customer's chat, keeping one realtime subscription while open
and turning every failure into a non-blocking notice.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from chat_widget.backend import ChatBackend
from chat_widget.config import WidgetSettings, get_settings
from chat_widget.reconciler import ClientReconciler, ViewEntry
from chat_widget.subscriber import ResilientSubscription
from support_chat.core.errors import (
    ChatError,
    NotFoundError,
    StoreError,
    Unauthenticated,
    ValidationError,
)
from support_chat.core.messages import ErrorMessages, InfoMessages
from support_chat.core.validation import sanitize_message
from support_chat.schemas import ChatMessageRead, ChatSessionRead

logger = logging.getLogger(__name__)


class WidgetState(str, Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"


@dataclass
class Notice:
    """User-visible, non-blocking message (toast)."""

    title: str
    description: str
    variant: str = "destructive"
    retryable: bool = False


class WidgetController:
    """Orchestrates the chat window; owns no durable state.

    Usage:
        async with WidgetController(backend) as widget:
            await widget.open()
            widget.input_text = "Need help with my order"
            await widget.send()

    Args:
        backend: Chat backend (in-process or HTTP)
        settings: Widget settings
        reconciler: Optional reconciler (default: a new one)
    """

    def __init__(
        self,
        backend: ChatBackend,
        settings: WidgetSettings | None = None,
        reconciler: ClientReconciler | None = None,
    ) -> None:
        self.backend = backend
        self.settings = settings or get_settings()
        self.reconciler = reconciler or ClientReconciler(self.settings.optimistic_match_window)

        self.state = WidgetState.CLOSED
        self.chat: ChatSessionRead | None = None
        self.input_text = ""
        self.notices: list[Notice] = []
        self.sign_in_required = False
        self.focus_requested = False
        self.scroll_requests = 0

        self._cycle = 0
        self._resolving: asyncio.Task[ChatSessionRead] | None = None
        self._subscription: ResilientSubscription | None = None

    # ------------------------------------------------------------------
    # Presentation state
    # ------------------------------------------------------------------

    @property
    def chat_id(self) -> UUID | None:
        return self.chat.id if self.chat else None

    @property
    def loading(self) -> bool:
        return self.state == WidgetState.OPENING

    @property
    def status_text(self) -> str:
        return InfoMessages.CONNECTING if self.loading else InfoMessages.READY

    @property
    def view(self) -> list[ViewEntry]:
        """Messages to render, oldest first."""
        return self.reconciler.view()

    @property
    def is_empty(self) -> bool:
        """Show the empty-chat placeholder."""
        return not self.loading and len(self.reconciler) == 0

    @property
    def can_send(self) -> bool:
        return (
            self.state == WidgetState.OPEN
            and not self.sign_in_required
            and self.chat is not None
            and bool(self.input_text.strip())
        )

    def _notify(self, description: str, retryable: bool = False, title: str = "Error") -> None:
        self.notices.append(Notice(title=title, description=description, retryable=retryable))

    def _request_scroll(self) -> None:
        self.scroll_requests += 1

    # ------------------------------------------------------------------
    # Open / close
    # ------------------------------------------------------------------

    async def toggle(self) -> None:
        """Chat button handler."""
        if self.state == WidgetState.CLOSED:
            await self.open()
        else:
            await self.close()

    async def open(self) -> None:
        """Open the window and connect to the customer's chat.

        Only the first call of an open-cycle does anything; repeated calls
        while opening or open are ignored.
        """
        if self.state != WidgetState.CLOSED:
            return

        if not self.backend.authenticated:
            # Read-only sign-in prompt, no chat is resolved
            self.state = WidgetState.OPEN
            self.sign_in_required = True
            return

        self.sign_in_required = False
        self.state = WidgetState.OPENING
        self.focus_requested = True
        self._cycle += 1
        await self._connect(self._cycle)

    async def retry(self) -> None:
        """Retry affordance after a failed open."""
        await self.open()

    async def close(self) -> None:
        """Close the window and release the subscription.

        The chat stays open server-side and in-flight sends still complete.
        """
        if self.state == WidgetState.CLOSED:
            return
        self.state = WidgetState.CLOSED
        self.focus_requested = False
        self._cycle += 1
        await self._release_subscription()

    async def _resolve(self) -> ChatSessionRead:
        # At most one resolution in flight, even across quick close/reopen
        if self._resolving is None or self._resolving.done():
            self._resolving = asyncio.create_task(self.backend.resolve_session())
        return await asyncio.shield(self._resolving)

    async def _connect(self, cycle: int) -> None:
        try:
            chat = await self._resolve()
        except Unauthenticated:
            self.state = WidgetState.OPEN
            self.sign_in_required = True
            return
        except ChatError as e:
            logger.error(f"Error loading chat: {e}")
            if cycle == self._cycle:
                self.state = WidgetState.CLOSED
                self._notify(ErrorMessages.CHAT_LOAD_FAILED, retryable=True)
            return

        if cycle != self._cycle:
            # Closed while resolving
            return

        if self.chat is None or self.chat.id != chat.id:
            self.reconciler.reset()
        self.chat = chat

        subscription = ResilientSubscription(
            self.backend,
            chat.id,
            on_message=self._on_message,
            on_resubscribed=self._reload,
            on_failed=self._on_subscription_failed,
            settings=self.settings,
        )
        self._subscription = subscription
        try:
            await subscription.start()
        except ChatError as e:
            logger.error(f"Could not subscribe to chat {chat.id}: {e}")
            await subscription.close()
            if self._subscription is subscription:
                self._subscription = None
            if cycle != self._cycle:
                return
            if isinstance(e, Unauthenticated):
                self.state = WidgetState.OPEN
                self.sign_in_required = True
            else:
                self.state = WidgetState.CLOSED
                self._notify(ErrorMessages.CHAT_LOAD_FAILED, retryable=True)
            return

        if cycle != self._cycle:
            await subscription.close()
            return

        self.state = WidgetState.OPEN
        self._request_scroll()
        logger.info(f"Chat {chat.id} open ({len(self.reconciler)} messages)")

    async def _release_subscription(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    async def _reload(self) -> None:
        if self.chat is None:
            return
        history = await self.backend.load_history(self.chat.id)
        added = self.reconciler.load_history(history)
        if added:
            self._request_scroll()

    def _on_message(self, message: ChatMessageRead) -> None:
        if self.chat is None or message.chat_id != self.chat.id:
            return
        if self.reconciler.apply(message):
            self._request_scroll()

    def _on_subscription_failed(self, error: ChatError) -> None:
        if isinstance(error, Unauthenticated):
            self.sign_in_required = True
            self._notify(ErrorMessages.SIGN_IN_REQUIRED)
            return
        self._notify(ErrorMessages.RECONNECT_FAILED, retryable=True)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self) -> ChatMessageRead | None:
        """Send the current input as a customer message.

        The input is cleared and the message shown right away. On failure the
        placeholder is removed, the text is put back for a manual resend and a
        notice is shown; nothing is retried automatically.

        Returns:
            Persisted message, or None if nothing was sent
        """
        if self.chat is None or self.state != WidgetState.OPEN or self.sign_in_required:
            return None

        raw = self.input_text
        try:
            text = sanitize_message(raw)
        except ValidationError:
            # Rejected before any network call
            return None

        chat = self.chat
        self.input_text = ""
        pending = self.reconciler.add_optimistic(chat.id, chat.user_id, text)
        self._request_scroll()

        try:
            message = await self.backend.send_message(chat.id, text)
        except NotFoundError as e:
            logger.warning(f"Chat {chat.id} vanished before send: {e}")
            self._restore_input(pending.key, raw)
            self._notify(ErrorMessages.SEND_FAILED)
            await self._reconnect()
            return None
        except (StoreError, ValidationError, Unauthenticated) as e:
            logger.error(f"Failed to send message: {e}")
            self._restore_input(pending.key, raw)
            self._notify(ErrorMessages.SEND_FAILED)
            return None

        self.reconciler.confirm(pending.key, message)
        return message

    def _restore_input(self, key: str, raw: str) -> None:
        self.reconciler.fail(key)
        if not self.input_text:
            self.input_text = raw

    async def _reconnect(self) -> None:
        if self.state != WidgetState.OPEN:
            return
        await self._release_subscription()
        self.chat = None
        self.state = WidgetState.OPENING
        self._cycle += 1
        await self._connect(self._cycle)

    # ------------------------------------------------------------------
    # Scoped lifetime
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "WidgetController":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
