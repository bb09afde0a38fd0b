"""Entry point for the support chat service.

Usage:
    python -m support_chat

Environment Variables:
    HOST: HTTP server host (default: '0.0.0.0')
    PORT: HTTP server port (default: 8004)
    DATABASE_URL: Database connection string (asyncpg format)
"""

import logging
import sys

import uvicorn

from support_chat.config import get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


def main() -> None:
    """Run the support chat service."""
    settings = get_settings()

    logger.info(f"Starting support chat service on {settings.host}:{settings.port}")
    uvicorn.run(
        "support_chat.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
    )


if __name__ == "__main__":
    main()
