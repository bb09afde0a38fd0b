"""Chat backend over the support chat HTTP API."""

import logging
from contextlib import AsyncExitStack
from typing import Any, AsyncIterator
from uuid import UUID

import httpx
import pydantic

from chat_widget.config import WidgetSettings, get_settings
from support_chat.core.errors import (
    ChatError,
    NotFoundError,
    StoreError,
    SubscriptionLost,
    Unauthenticated,
    ValidationError,
    error_from_response,
)
from support_chat.core.messages import ErrorMessages
from support_chat.schemas import ChatMessageRead, ChatSessionRead

logger = logging.getLogger(__name__)

_ERRORS_BY_STATUS: dict[int, type[ChatError]] = {
    401: Unauthenticated,
    404: NotFoundError,
    422: ValidationError,
}


def error_from_http(response: httpx.Response) -> ChatError:
    """Map a failed API response to the matching ChatError."""
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict) and "error" in data:
        return error_from_response(data)

    cls = _ERRORS_BY_STATUS.get(response.status_code)
    if cls is None:
        cls = StoreError if response.status_code >= 500 else ChatError
    return cls(
        f"Chat API returned {response.status_code}",
        details={"status_code": response.status_code, "body": response.text[:200]},
    )


class SseMessageStream:
    """Server-Sent Events stream of chat messages.

    Any transport error, a malformed event or the server ending the stream
    surfaces as SubscriptionLost unless the stream was closed by us.
    """

    def __init__(self, client: httpx.AsyncClient, url: str, headers: dict[str, str]) -> None:
        self._client = client
        self._url = url
        self._headers = headers
        self._stack = AsyncExitStack()
        self._lines: AsyncIterator[str] | None = None
        self._closed = False

    async def connect(self) -> None:
        """Open the stream.

        The server subscribes before it answers, so a 200 means the
        subscription is live.

        Raises:
            SubscriptionLost: If the connection cannot be established
            ChatError: If the server refuses the subscription
        """
        try:
            response = await self._stack.enter_async_context(
                self._client.stream(
                    "GET",
                    self._url,
                    headers={**self._headers, "Accept": "text/event-stream"},
                    timeout=httpx.Timeout(self._client.timeout.connect, read=None),
                )
            )
        except httpx.TransportError as e:
            await self._stack.aclose()
            raise SubscriptionLost(ErrorMessages.CONNECTION_LOST, {"error": str(e)}) from e

        if response.status_code != 200:
            await response.aread()
            await self._stack.aclose()
            raise error_from_http(response)

        self._lines = response.aiter_lines()

    def __aiter__(self) -> AsyncIterator[ChatMessageRead]:
        return self._events()

    async def _events(self) -> AsyncIterator[ChatMessageRead]:
        if self._lines is None:
            raise SubscriptionLost(ErrorMessages.CONNECTION_LOST, {"reason": "not connected"})

        data: list[str] = []
        try:
            async for line in self._lines:
                if not line:
                    # Blank line dispatches the buffered event
                    if data:
                        yield self._parse("\n".join(data))
                        data = []
                    continue
                if line.startswith(":"):
                    continue
                field, _, value = line.partition(":")
                if field == "data":
                    data.append(value[1:] if value.startswith(" ") else value)
        except httpx.TransportError as e:
            if self._closed:
                return
            raise SubscriptionLost(ErrorMessages.CONNECTION_LOST, {"error": str(e)}) from e

        if not self._closed:
            raise SubscriptionLost(ErrorMessages.CONNECTION_LOST, {"reason": "stream ended"})

    def _parse(self, payload: str) -> ChatMessageRead:
        try:
            return ChatMessageRead.model_validate_json(payload)
        except pydantic.ValidationError as e:
            # Resubscribing reloads history, so the message is not lost
            logger.warning(f"Malformed event on {self._url}: {e}")
            raise SubscriptionLost(
                ErrorMessages.CONNECTION_LOST,
                {"reason": "malformed event", "error": str(e)},
            ) from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._stack.aclose()


class HttpChatBackend:
    """Chat backend calling the support chat service over HTTP.

    Args:
        token: Customer access token (None when signed out)
        settings: Widget settings (default: loaded from environment)
        client: Optional pre-configured httpx client (closed by its owner)
    """

    def __init__(
        self,
        token: str | None,
        settings: WidgetSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.settings.chat_service_url,
            timeout=self.settings.request_timeout,
        )

    @property
    def authenticated(self) -> bool:
        return bool(self.token)

    def _headers(self) -> dict[str, str]:
        if not self.token:
            raise Unauthenticated(ErrorMessages.SIGN_IN_REQUIRED)
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = self._headers()
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise StoreError(ErrorMessages.STORE_UNAVAILABLE, {"error": str(e)}) from e

        if response.status_code != 200:
            raise error_from_http(response)
        return response.json()

    async def resolve_session(self) -> ChatSessionRead:
        data = await self._request("POST", "/users/me/chat_session")
        return ChatSessionRead.model_validate(data)

    async def load_history(self, chat_id: UUID) -> list[ChatMessageRead]:
        data = await self._request("GET", f"/chat_sessions/{chat_id}/messages")
        return [ChatMessageRead.model_validate(m) for m in data]

    async def send_message(self, chat_id: UUID, text: str) -> ChatMessageRead:
        data = await self._request(
            "POST",
            f"/chat_sessions/{chat_id}/messages",
            json={"message": text},
        )
        return ChatMessageRead.model_validate(data)

    async def subscribe(self, chat_id: UUID) -> SseMessageStream:
        stream = SseMessageStream(
            self._client,
            f"/chat_sessions/{chat_id}/events",
            self._headers(),
        )
        await stream.connect()
        return stream

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this backend created it."""
        if self._owns_client:
            await self._client.aclose()
