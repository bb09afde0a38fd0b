"""Self-healing realtime subscription for one chat."""

import asyncio
import contextlib
import logging
import random
from typing import Awaitable, Callable
from uuid import UUID

from chat_widget.backend import ChatBackend, MessageStream
from chat_widget.config import WidgetSettings, get_settings
from support_chat.core.errors import ChatError, StoreError, SubscriptionLost
from support_chat.core.messages import ErrorMessages
from support_chat.core.metrics import RESUBSCRIPTIONS
from support_chat.schemas import ChatMessageRead

logger = logging.getLogger(__name__)


def exponential_backoff_delay(attempt: int, base_delay: float = 0.5, max_delay: float = 10.0) -> float:
    """
    Calculate exponential backoff delay with jitter

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds

    Returns:
        Delay in seconds
    """
    # Exponential backoff: base_delay * 2^attempt, capped
    delay = min(base_delay * (2**attempt), max_delay)

    # Add jitter to avoid thundering herd effect
    jitter = random.uniform(0, 0.1 * delay)

    return delay + jitter


class ResilientSubscription:
    """Keeps one bus subscription alive for a chat.

    A dropped stream is never trusted to catch up: it is thrown away, a new
    one is opened with bounded exponential backoff, and `on_resubscribed` is
    awaited after every successful (re)subscription so the owner can reload
    the full history. Only after `resubscribe_max_attempts` consecutive
    failures is `on_failed` called and the subscription given up.

    Args:
        backend: Chat backend providing `subscribe`
        chat_id: Chat to follow
        on_message: Called for every delivered message
        on_resubscribed: Awaited after each successful subscription
        on_failed: Called once when reconnecting is abandoned or the
            chat became unreachable (signed out, chat gone)
        settings: Widget settings (backoff bounds)
        sleep: Sleep function, replaceable in tests
    """

    def __init__(
        self,
        backend: ChatBackend,
        chat_id: UUID,
        on_message: Callable[[ChatMessageRead], None],
        on_resubscribed: Callable[[], Awaitable[None]],
        on_failed: Callable[[ChatError], None] | None = None,
        settings: WidgetSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.backend = backend
        self.chat_id = chat_id
        self.on_message = on_message
        self.on_resubscribed = on_resubscribed
        self.on_failed = on_failed
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._stream: MessageStream | None = None
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self.subscriptions = 0
        self.failure: ChatError | None = None

    @property
    def active(self) -> bool:
        return not self._closed and self.failure is None

    async def start(self) -> None:
        """Subscribe, run the first full reload and start pumping events.

        Raises:
            SubscriptionLost: If no subscription could be established
            ChatError: If the first reload failed for a non-transient reason
        """
        await self._establish()
        if self._closed:
            await self._drop_stream()
            return
        self._task = asyncio.create_task(self._pump(), name=f"chat-subscription-{self.chat_id}")

    async def close(self) -> None:
        """Tear down the subscription. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._drop_stream()

    async def _drop_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            await stream.aclose()

    async def _establish(self) -> None:
        attempt = 0
        while not self._closed:
            try:
                self._stream = await self.backend.subscribe(self.chat_id)
                # Full reconciliation after every (re)subscription
                await self.on_resubscribed()
            except (SubscriptionLost, StoreError) as e:
                await self._drop_stream()
                attempt += 1
                if attempt >= self.settings.resubscribe_max_attempts:
                    logger.error(
                        f"Giving up on chat {self.chat_id} after {attempt} attempts: {e}"
                    )
                    raise SubscriptionLost(
                        ErrorMessages.RECONNECT_FAILED,
                        details={"chat_id": str(self.chat_id), "attempts": attempt},
                    ) from e
                delay = exponential_backoff_delay(
                    attempt - 1,
                    self.settings.resubscribe_base_delay,
                    self.settings.resubscribe_max_delay,
                )
                logger.warning(
                    f"Subscription to chat {self.chat_id} failed ({e}), "
                    f"retrying in {delay:.2f}s (attempt {attempt})"
                )
                await self._sleep(delay)
                continue
            except ChatError as e:
                # Unauthenticated or NotFoundError will not heal by retrying
                await self._drop_stream()
                logger.error(f"Subscription to chat {self.chat_id} failed permanently: {e}")
                raise

            self.subscriptions += 1
            if self.subscriptions > 1:
                RESUBSCRIPTIONS.labels(status="recovered").inc()
                logger.info(f"Resubscribed to chat {self.chat_id}")
            return

    async def _pump(self) -> None:
        while not self._closed:
            try:
                async for message in self._stream:
                    self.on_message(message)
                if self._closed:
                    return
                raise SubscriptionLost(ErrorMessages.CONNECTION_LOST, {"reason": "stream ended"})
            except SubscriptionLost as e:
                if self._closed:
                    return
                logger.info(f"Subscription to chat {self.chat_id} lost: {e}")
                await self._drop_stream()
                try:
                    await self._establish()
                except ChatError as failure:
                    RESUBSCRIPTIONS.labels(status="failed").inc()
                    self.failure = failure
                    if self.on_failed is not None:
                        self.on_failed(failure)
                    return
