"""Per-chat realtime event feed.

Every committed message is pushed to the subscribers of its chat. Delivery
is at-least-once: a subscriber that reconnects may see a message again, and
nothing here orders events beyond the order in which commits were published.
Consumers dedup by message id and sort by `(created_at, id)`.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any
from uuid import UUID

from support_chat.core.errors import SubscriptionLost
from support_chat.core.messages import ErrorMessages
from support_chat.core.metrics import BUS_DELIVERIES
from support_chat.schemas import ChatMessageRead

logger = logging.getLogger(__name__)

_CLOSED = object()
_LOST = object()


class Subscription:
    """Stream of messages for a single chat.

    Iterate with `async for`; iteration ends after `unsubscribe()` and raises
    SubscriptionLost when the transport drops. A lost subscription is void:
    open a new one with `RealtimeBus.subscribe`.
    """

    def __init__(self, bus: "RealtimeBus", chat_id: UUID, queue_size: int) -> None:
        self.bus = bus
        self.chat_id = chat_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size)
        self._error: SubscriptionLost | None = None
        self._closed = False

    @property
    def active(self) -> bool:
        """True until unsubscribed or lost."""
        return not self._closed

    def deliver(self, message: ChatMessageRead) -> bool:
        """Queue a message for this subscriber.

        Returns:
            False if the subscription is closed or had to be dropped
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            # A consumer this far behind has lost events; it must reload
            self.lose(SubscriptionLost("Subscriber fell behind", {"chat_id": str(self.chat_id)}))
            return False
        return True

    def lose(self, error: SubscriptionLost) -> None:
        """Void the subscription because the transport dropped."""
        if self._closed:
            return
        self._error = error
        self._finish(_LOST)

    def unsubscribe(self) -> None:
        """Release the subscription. Safe to call more than once."""
        if self._closed:
            return
        self._finish(_CLOSED)

    def _finish(self, sentinel: object) -> None:
        self._closed = True
        self.bus._remove(self)
        # Pending events are dropped; the consumer reloads history anyway
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(sentinel)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChatMessageRead:
        if self._closed and self._queue.empty():
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if item is _LOST:
            raise self._error or SubscriptionLost(ErrorMessages.CONNECTION_LOST)
        return item

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class RealtimeBus:
    """In-process fan-out of committed messages to chat subscribers."""

    def __init__(self, queue_size: int = 256) -> None:
        self.queue_size = queue_size
        self._subscribers: dict[UUID, set[Subscription]] = defaultdict(set)

    async def start(self) -> None:
        """Open the underlying transport (nothing to do in-process)."""

    async def close(self) -> None:
        """Stop the bus and end every open subscription."""
        for subscription in self._all_subscriptions():
            subscription.unsubscribe()

    async def subscribe(self, chat_id: UUID) -> Subscription:
        """Open a subscription for one chat's new messages."""
        subscription = Subscription(self, chat_id, self.queue_size)
        self._subscribers[chat_id].add(subscription)
        logger.debug(f"Subscribed to chat {chat_id}")
        return subscription

    async def publish(self, message: ChatMessageRead) -> None:
        """Publish a committed message to its chat's subscribers."""
        self._fan_out(message)

    def subscriber_count(self, chat_id: UUID) -> int:
        """Number of live subscriptions for a chat."""
        return len(self._subscribers.get(chat_id, ()))

    def disconnect_all(self, reason: str) -> None:
        """Void every subscription, as on a transport drop."""
        subscriptions = self._all_subscriptions()
        if subscriptions:
            logger.warning(f"Dropping {len(subscriptions)} subscriptions: {reason}")
        for subscription in subscriptions:
            subscription.lose(
                SubscriptionLost(ErrorMessages.CONNECTION_LOST, {"reason": reason})
            )

    def _fan_out(self, message: ChatMessageRead) -> int:
        delivered = 0
        for subscription in list(self._subscribers.get(message.chat_id, ())):
            if subscription.deliver(message):
                delivered += 1
                BUS_DELIVERIES.labels(status="delivered").inc()
            else:
                BUS_DELIVERIES.labels(status="dropped").inc()
        return delivered

    def _all_subscriptions(self) -> list[Subscription]:
        return [s for subs in self._subscribers.values() for s in subs]

    def _remove(self, subscription: Subscription) -> None:
        subs = self._subscribers.get(subscription.chat_id)
        if subs is None:
            return
        subs.discard(subscription)
        if not subs:
            del self._subscribers[subscription.chat_id]
