"""Logging infrastructure for trace-sessions.

Key components:
    get_session_logger: Factory function for module loggers
    setup_logging: Initialize logging configuration from YAML or defaults
    LoggingConfig: Configuration class for logging settings

Example:
    >>> from trace_sessions.logging import get_session_logger
    >>>
    >>> logger = get_session_logger(__name__)
    >>> logger.info("Import started")
"""

from .logging_config import LoggingConfig, get_session_logger, setup_logging

__all__ = [
    "LoggingConfig",
    "setup_logging",
    "get_session_logger",
]
