"""Input validation for chat messages."""

import re

from support_chat.core.errors import ValidationError
from support_chat.core.messages import ErrorMessages

# User input constraints
MAX_MESSAGE_LENGTH = 10 * 1024  # 10KB of UTF-8
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def sanitize_message(text: str | None) -> str:
    """Sanitize a chat message before it is stored.

    Args:
        text: Raw message text

    Returns:
        Sanitized text

    Raises:
        ValidationError: If input exceeds limits or is empty
    """
    if not text:
        raise ValidationError(ErrorMessages.MESSAGE_EMPTY)

    size = len(text.encode("utf-8"))
    if size > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            ErrorMessages.MESSAGE_TOO_LONG.format(size=size, max_size=MAX_MESSAGE_LENGTH),
            details={"size": size, "max_size": MAX_MESSAGE_LENGTH},
        )

    # Remove control characters (except newline \n and tab \t)
    sanitized = CONTROL_CHARS.sub("", text).strip()

    if not sanitized:
        raise ValidationError(ErrorMessages.MESSAGE_BLANK)

    return sanitized
