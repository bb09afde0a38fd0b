"""Storefront support chat service.

Resolves one open support chat per customer, stores the append-only message
log and pushes new messages to subscribed clients.
"""

from support_chat.config import get_settings

__all__ = ["get_settings"]
