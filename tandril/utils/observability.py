"""Observability configuration with Pydantic Logfire."""

import logging
from typing import Any

from tandril.config import settings

logger = logging.getLogger(__name__)


def setup_logfire(app: Any | None = None) -> None:
    """Configure Logfire for observability.

    Only activates if LOGFIRE_TOKEN environment variable is set.
    Call this at application startup before serving requests.

    Args:
        app: Optional FastAPI application to instrument.
    """
    if not settings.logfire_token:
        return

    try:
        import logfire

        logfire.configure(send_to_logfire="if-token-present")
        logfire.instrument_httpx(capture_all=True)
        if app is not None:
            logfire.instrument_fastapi(app)
    except Exception as e:
        # Observability is optional
        logger.warning("Failed to configure Logfire: %s", str(e))
