"""Chat stores and session resolution."""

from support_chat.services.message_store import MessageStore
from support_chat.services.session_resolver import SessionResolver
from support_chat.services.session_store import SessionStore

__all__ = ["MessageStore", "SessionResolver", "SessionStore"]
