"""Structured logging configuration.

This module initializes structlog with a stable JSON event format.
Events go to stderr so command output on stdout stays parseable.
Loggers are not cached on first use so test log capture stays reliable.
"""

from __future__ import annotations

import sys
from typing import Any

import structlog

_CONFIGURED = False


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger with structured JSON output.
    """
    global _CONFIGURED
    if not _CONFIGURED:
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(default=str),
            ],
            logger_factory=_stderr_logger,
            cache_logger_on_first_use=False,
        )
        _CONFIGURED = True
    return structlog.get_logger(name)


def mask_sensitive_params(params: dict[str, object], markers: tuple[str, ...]) -> dict[str, str]:
    """Render connection parameters with secret-looking values masked.

    Args:
        params: Raw connection parameters.
        markers: Lower-case key fragments that mark a value as sensitive.

    Returns:
        String parameters safe to log.
    """
    safe: dict[str, str] = {}
    for key, value in params.items():
        lowered = key.lower()
        safe[key] = "***" if any(marker in lowered for marker in markers) else str(value)
    return safe


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    return structlog.PrintLogger(sys.stderr)
