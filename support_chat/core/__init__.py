"""Core module - errors, validation, user-facing messages."""

from support_chat.core.errors import (
    ChatError,
    NotFoundError,
    SessionConflict,
    StoreError,
    SubscriptionLost,
    Unauthenticated,
    ValidationError,
)

__all__ = [
    "ChatError",
    "NotFoundError",
    "SessionConflict",
    "StoreError",
    "SubscriptionLost",
    "Unauthenticated",
    "ValidationError",
]
