"""User-facing messages for the support chat."""


class ErrorMessages:
    """Error messages shown to customers."""

    # Validation
    MESSAGE_EMPTY = "Message cannot be empty"
    MESSAGE_BLANK = "Message contains only whitespace or control characters"
    MESSAGE_TOO_LONG = "Message too long: {size} bytes > {max_size} bytes"

    # Sessions
    CHAT_NOT_FOUND = "Chat not found: {chat_id}"
    CHAT_LOAD_FAILED = "Failed to load chat. Please try again."
    SEND_FAILED = "Failed to send message. Please try again."
    STORE_UNAVAILABLE = "Chat storage is unavailable"

    # Realtime
    CONNECTION_LOST = "Connection to live support lost. Reconnecting..."
    RECONNECT_FAILED = "Unable to reconnect to live support. Please reopen the chat."

    # Identity
    SIGN_IN_REQUIRED = "Please sign in to chat with our support team"


class InfoMessages:
    """Informational messages."""

    CONNECTING = "Connecting..."
    READY = "Chat with our team"
    EMPTY_CHAT = "Start a conversation with our support team"
