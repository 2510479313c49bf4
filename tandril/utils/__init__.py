"""Utility functions for the Tandril operations core."""

from tandril.utils.logging import (
    configure_structured_logging,
    correlation_scope,
    get_correlation_id,
    set_correlation_id,
)
from tandril.utils.observability import setup_logfire

__all__ = [
    "setup_logfire",
    "set_correlation_id",
    "get_correlation_id",
    "correlation_scope",
    "configure_structured_logging",
]
