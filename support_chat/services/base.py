"""Base store class with common functionality."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from support_chat.core.errors import ChatError, StoreError
from support_chat.core.messages import ErrorMessages
from support_chat.core.metrics import ERROR_COUNT


class BaseStore:
    """Row store over an async SQLAlchemy session factory."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker
        self.logger = logging.getLogger(self.__class__.__name__)

    @asynccontextmanager
    async def session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """Open a database session, translating driver failures to StoreError.

        ChatError subclasses raised inside the block pass through untouched.
        """
        try:
            async with self.session_maker() as db:
                yield db
        except ChatError:
            raise
        except SQLAlchemyError as e:
            self._log_error(operation, e)
            raise StoreError(
                message=ErrorMessages.STORE_UNAVAILABLE,
                details={"operation": operation},
            ) from e

    def _log_error(
        self, operation: str, error: Exception, extra_context: dict[str, Any] | None = None
    ) -> None:
        """Log error with context."""
        ERROR_COUNT.labels(error_type=type(error).__name__, operation=operation).inc()
        if extra_context:
            self.logger.error(
                f"{operation} failed: {error}",
                extra={"context": extra_context},
            )
        else:
            self.logger.error(f"{operation} failed: {error}")

    def _log_info(self, message: str, **kwargs: Any) -> None:
        """Log info with context."""
        extra = " ".join(f"{k}={v}" for k, v in kwargs.items())
        self.logger.info(f"{message} {extra}".strip())
