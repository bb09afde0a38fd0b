"""Error classes for the support chat service."""

from typing import Any

from pydantic import BaseModel


class ChatErrorResponse(BaseModel):
    """Standard error response model for the chat API."""

    error: str
    message: str
    details: dict[str, Any] | None = None


class ChatError(Exception):
    """Base exception for support chat errors."""

    error: str = "chat_error"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_response(self) -> ChatErrorResponse:
        """Convert exception to error response model."""
        return ChatErrorResponse(
            error=self.error,
            message=self.message,
            details=self.details,
        )


class Unauthenticated(ChatError):
    """No signed-in customer; chat is read-only until sign-in."""

    error = "unauthenticated"
    status_code = 401


class ValidationError(ChatError, ValueError):
    """Message rejected before it reaches the store (e.g. empty text)."""

    error = "validation_error"
    status_code = 422


class NotFoundError(ChatError):
    """Chat session does not exist (or is not visible to the caller)."""

    error = "not_found"
    status_code = 404


class StoreError(ChatError):
    """Transient persistence failure; the caller may retry."""

    error = "store_error"
    status_code = 503


class SubscriptionLost(ChatError):
    """Realtime transport dropped; the subscription must be re-established."""

    error = "subscription_lost"
    status_code = 503


class SessionConflict(ChatError):
    """Another writer created the open chat for this user first."""

    error = "session_conflict"
    status_code = 409


ERRORS_BY_CODE: dict[str, type[ChatError]] = {
    cls.error: cls
    for cls in (
        Unauthenticated,
        ValidationError,
        NotFoundError,
        StoreError,
        SubscriptionLost,
        SessionConflict,
    )
}


def error_from_response(data: dict[str, Any]) -> ChatError:
    """Rebuild a ChatError from an API error payload."""
    cls = ERRORS_BY_CODE.get(data.get("error", ""), ChatError)
    return cls(data.get("message", "Unknown error"), data.get("details"))
