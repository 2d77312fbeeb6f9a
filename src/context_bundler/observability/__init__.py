"""Public observability primitives: queue-backed structured logging with correlation."""

from context_bundler.observability.logging import (
    LOG_FILENAME,
    LoggingConfig,
    StructuredLoggingHandle,
    correlation_scope,
    get_active_logging_handle,
    get_correlation_context,
    reset_correlation_fields,
    set_correlation_fields,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LOG_FILENAME",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
