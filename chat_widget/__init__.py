"""Customer-side live-support widget.

Opens the customer's support chat, keeps a realtime subscription while the
window is open and merges history, live events and optimistic sends into one
ordered view.
"""

from chat_widget.backend import ChatBackend, LocalChatBackend
from chat_widget.controller import Notice, WidgetController, WidgetState
from chat_widget.http_backend import HttpChatBackend
from chat_widget.reconciler import ClientReconciler, PendingMessage
from chat_widget.subscriber import ResilientSubscription

__all__ = [
    "ChatBackend",
    "ClientReconciler",
    "HttpChatBackend",
    "LocalChatBackend",
    "Notice",
    "PendingMessage",
    "ResilientSubscription",
    "WidgetController",
    "WidgetState",
]
