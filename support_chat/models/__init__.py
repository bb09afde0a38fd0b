"""Database models for the support chat service."""

from support_chat.models.chat_message import SYSTEM_SENDER_ID, ChatMessage, SenderType
from support_chat.models.chat_session import ChatSession, ChatStatus

__all__ = [
    "SYSTEM_SENDER_ID",
    "ChatMessage",
    "ChatSession",
    "ChatStatus",
    "SenderType",
]
