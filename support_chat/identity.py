"""Customer identity from bearer access tokens."""

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from pydantic import BaseModel

from support_chat.config import ChatSettings
from support_chat.core.errors import Unauthenticated
from support_chat.core.messages import ErrorMessages

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


class Identity(BaseModel):
    """Signed-in customer."""

    id: UUID


def decode_access_token(token: str | None, settings: ChatSettings) -> Identity:
    """Verify a JWT access token and return its subject.

    Tokens are the ones issued by the storefront's auth service: HS256,
    `sub` holding the user id and `aud` matching `settings.jwt_audience`.

    Raises:
        Unauthenticated: If the token is missing, invalid or expired
    """
    if not token:
        raise Unauthenticated(ErrorMessages.SIGN_IN_REQUIRED)
    if not settings.secret_key:
        logger.error("SECRET_KEY is not configured; rejecting all tokens")
        raise Unauthenticated(ErrorMessages.SIGN_IN_REQUIRED)

    try:
        claims = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[JWT_ALGORITHM],
            audience=settings.jwt_audience,
        )
        return Identity(id=UUID(claims["sub"]))
    except (jwt.PyJWTError, KeyError, ValueError) as e:
        logger.info(f"Rejected access token: {e}")
        raise Unauthenticated(ErrorMessages.SIGN_IN_REQUIRED) from e


def issue_access_token(
    user_id: UUID,
    settings: ChatSettings,
    lifetime_seconds: int = 3600,
) -> str:
    """Sign an access token for `user_id` (local development and tests)."""
    payload = {
        "sub": str(user_id),
        "aud": settings.jwt_audience,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=lifetime_seconds),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=JWT_ALGORITHM)
