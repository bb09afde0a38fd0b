"""Find-or-create of a customer's open support chat."""

import asyncio
import logging
import weakref
from uuid import UUID

from support_chat.core.errors import SessionConflict, StoreError, Unauthenticated
from support_chat.core.messages import ErrorMessages
from support_chat.core.metrics import RESOLVE_DURATION, SESSIONS_RESOLVED
from support_chat.identity import Identity
from support_chat.schemas import ChatSessionRead
from support_chat.services.message_store import MessageStore
from support_chat.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class SessionResolver:
    """Returns the single open chat for a customer, creating it if needed.

    Two guards keep a user at one open chat:

    * resolutions for the same user are serialized by a per-user lock, so
      tabs served by this process never race each other;
    * across processes the store's partial unique index rejects the second
      insert, and the loser re-reads and adopts the winner's chat.
    """

    def __init__(
        self,
        session_store: SessionStore,
        message_store: MessageStore,
        welcome_message: str | None = None,
        max_attempts: int = 3,
    ) -> None:
        self.session_store = session_store
        self.message_store = message_store
        self.welcome_message = welcome_message
        self.max_attempts = max_attempts
        self._locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, user_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def resolve(self, identity: Identity | None) -> ChatSessionRead:
        """Get or create the customer's open chat.

        Args:
            identity: Signed-in customer (None when signed out)

        Returns:
            The customer's open chat

        Raises:
            Unauthenticated: If no customer is signed in
            StoreError: If the store is unavailable
        """
        if identity is None:
            raise Unauthenticated(ErrorMessages.SIGN_IN_REQUIRED)

        lock = self._lock_for(identity.id)
        async with lock:
            with RESOLVE_DURATION.time():
                return await self._find_or_create(identity.id)

    async def _find_or_create(self, user_id: UUID) -> ChatSessionRead:
        for attempt in range(1, self.max_attempts + 1):
            existing = await self.session_store.find_open_session(user_id)
            if existing is not None:
                SESSIONS_RESOLVED.labels(outcome="found").inc()
                return existing

            try:
                chat, welcome = await self.session_store.create_session(
                    user_id, self.welcome_message
                )
            except SessionConflict:
                SESSIONS_RESOLVED.labels(outcome="conflict").inc()
                logger.info(
                    f"Open chat for user {user_id} created concurrently "
                    f"(attempt {attempt}/{self.max_attempts}), re-reading"
                )
                continue

            SESSIONS_RESOLVED.labels(outcome="created").inc()
            if welcome is not None:
                await self.message_store.announce(welcome)
            return chat

        # Conflict every time yet never visible: the winner was closed in between
        logger.error(f"Could not settle an open chat for user {user_id}")
        raise StoreError(
            ErrorMessages.STORE_UNAVAILABLE,
            details={"user_id": str(user_id), "attempts": self.max_attempts},
        )
