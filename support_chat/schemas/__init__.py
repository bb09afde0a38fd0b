"""Pydantic schemas for the support chat service."""

from support_chat.schemas.chat import (
    BaseChatModel,
    ChatMessageCreate,
    ChatMessageRead,
    ChatSessionRead,
)

__all__ = ["BaseChatModel", "ChatMessageCreate", "ChatMessageRead", "ChatSessionRead"]
