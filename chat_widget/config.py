"""Configuration for the chat widget client."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WidgetSettings(BaseSettings):
    """Configuration for the customer-side chat widget."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Support chat service connection
    chat_service_url: str = Field(
        default="http://support-chat:8004",
        description="Support chat service base URL",
    )
    request_timeout: float = Field(
        default=10.0, gt=0, description="Timeout for chat API requests (seconds)"
    )

    # Realtime resubscription
    resubscribe_base_delay: float = Field(
        default=0.5, ge=0, description="First reconnect delay (seconds)"
    )
    resubscribe_max_delay: float = Field(
        default=10.0, ge=0, description="Upper bound for reconnect delay (seconds)"
    )
    resubscribe_max_attempts: int = Field(
        default=6,
        ge=1,
        description="Consecutive failed reconnects before the user is told",
    )

    # Reconciliation
    optimistic_match_window: float = Field(
        default=10.0,
        gt=0,
        description="Max age difference (seconds) when matching an echoed send to its placeholder",
    )


@lru_cache(maxsize=1)
def get_settings() -> WidgetSettings:
    """Get cached settings instance."""
    return WidgetSettings()
