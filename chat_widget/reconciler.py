"""Client-side merge of history, realtime events and optimistic sends."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable
from uuid import UUID, uuid4

from support_chat.models import SenderType
from support_chat.schemas import ChatMessageRead

logger = logging.getLogger(__name__)


@dataclass
class PendingMessage:
    """Locally sent message that the store has not confirmed yet.

    `key` is a client-only placeholder; the permanent id is only known once
    the store (or the bus echo) hands back the persisted row.
    """

    chat_id: UUID
    sender_id: UUID
    message: str
    sender_type: SenderType = SenderType.CUSTOMER
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    key: str = field(default_factory=lambda: f"local-{uuid4().hex}")
    pending: bool = True

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.created_at, self.key)


ViewEntry = ChatMessageRead | PendingMessage


class ClientReconciler:
    """Single ordered, de-duplicated view of one chat.

    Confirmed messages live in a map keyed by their server id, so a message
    delivered by history, by the store response and by one or more bus
    redeliveries still renders once. The view is re-sorted by
    `(created_at, id)` on every read, never by arrival order.
    """

    def __init__(self, match_window: float = 10.0) -> None:
        self.match_window = timedelta(seconds=match_window)
        self._confirmed: dict[UUID, ChatMessageRead] = {}
        self._pending: dict[str, PendingMessage] = {}

    def reset(self) -> None:
        """Forget everything (e.g. when switching chats)."""
        self._confirmed.clear()
        self._pending.clear()

    def load_history(self, messages: Iterable[ChatMessageRead]) -> int:
        """Merge a full history load.

        Messages are immutable and never deleted, so the load is merged into
        what is already known rather than replacing it: events that arrived
        while the load was in flight are kept.

        Returns:
            Number of messages that were not known before
        """
        added = 0
        for message in messages:
            if self.apply(message):
                added += 1
        return added

    def apply(self, message: ChatMessageRead) -> bool:
        """Merge one confirmed message (from the bus or the store).

        Returns:
            False if the message id was already known
        """
        if not self._insert(message):
            return False
        self._discard_matching_placeholder(message)
        return True

    def _insert(self, message: ChatMessageRead) -> bool:
        if message.id in self._confirmed:
            return False
        self._confirmed[message.id] = message
        return True

    def add_optimistic(self, chat_id: UUID, sender_id: UUID, text: str) -> PendingMessage:
        """Show a local send immediately, before the store answers."""
        pending = PendingMessage(chat_id=chat_id, sender_id=sender_id, message=text)
        self._pending[pending.key] = pending
        return pending

    def confirm(self, key: str, message: ChatMessageRead) -> bool:
        """Replace a placeholder with the row the store returned.

        If the bus echo already arrived, the placeholder is gone and the
        confirmed row is a duplicate; both cases end with one entry.
        """
        placeholder = self._pending.pop(key, None)
        if placeholder is not None:
            # Its own placeholder is settled by key, leave look-alikes alone
            return self._insert(message)
        return self.apply(message)

    def fail(self, key: str) -> PendingMessage | None:
        """Drop a placeholder whose send failed."""
        return self._pending.pop(key, None)

    def _discard_matching_placeholder(self, message: ChatMessageRead) -> None:
        # Oldest placeholder with the same author and text, within the window
        candidates = sorted(
            (
                p
                for p in self._pending.values()
                if p.chat_id == message.chat_id
                and p.sender_id == message.sender_id
                and p.message == message.message
                and abs(message.created_at - p.created_at) <= self.match_window
            ),
            key=lambda p: p.sort_key,
        )
        if candidates:
            placeholder = candidates[0]
            del self._pending[placeholder.key]
            logger.debug(f"Placeholder {placeholder.key} matched message {message.id}")

    @property
    def messages(self) -> list[ChatMessageRead]:
        """Confirmed messages in render order."""
        return sorted(self._confirmed.values(), key=lambda m: m.sort_key)

    @property
    def pending(self) -> list[PendingMessage]:
        return sorted(self._pending.values(), key=lambda p: p.sort_key)

    def view(self) -> list[ViewEntry]:
        """Everything to render: confirmed and pending, by `(created_at, id)`."""
        entries: list[ViewEntry] = [*self._confirmed.values(), *self._pending.values()]
        return sorted(entries, key=lambda e: e.sort_key)

    def __len__(self) -> int:
        return len(self._confirmed) + len(self._pending)
