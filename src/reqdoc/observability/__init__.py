"""Public observability primitives: structured logging and correlation context."""

from reqdoc.observability.logging import (
    LOG_FORMATS,
    configure_logging,
    correlation_scope,
    get_correlation_context,
    reset_correlation_fields,
    set_correlation_fields,
)

__all__ = [
    "LOG_FORMATS",
    "configure_logging",
    "correlation_scope",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
]
