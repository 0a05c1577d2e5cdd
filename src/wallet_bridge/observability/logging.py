"""Structured logging configuration for the wallet bridge.

This module configures structlog for structured logging with support for
both development (console) and production (JSON) output formats.

Every execution context (page, relay, background) logs through the same
configuration. Each context binds its name as ``context`` when it starts
pumping messages, and the background scopes ``port_id``, ``consumer_id``
and ``request_id`` around the work it does for a request, so a sign-in can
be followed across contexts in the logs.

Environment Variables:
    WALLET_BRIDGE_LOG_FORMAT: "json" for JSON output, "console" for colored output
    WALLET_BRIDGE_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR)
    WALLET_BRIDGE_SERVICE_NAME: Service name to include in logs

Example:
    >>> from wallet_bridge.observability.logging import get_logger, configure_logging
    >>>
    >>> configure_logging(log_format="json", log_level="INFO")
    >>> logger = get_logger("wallet_bridge.messaging.router")
    >>> logger.info("wallet_bridge.router.dispatched", message_type="WB_CONNECT")
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.typing import Processor

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "console"
DEFAULT_SERVICE_NAME = "wallet-bridge"

ENV_LOG_FORMAT = "WALLET_BRIDGE_LOG_FORMAT"
ENV_LOG_LEVEL = "WALLET_BRIDGE_LOG_LEVEL"
ENV_SERVICE_NAME = "WALLET_BRIDGE_SERVICE_NAME"

REDACTED_PLACEHOLDER = "***REDACTED***"

# Key substrings (case-insensitive) whose values never reach the logs
_SENSITIVE_KEY_PATTERNS = frozenset(
    {"password", "token", "secret", "key", "authorization", "auth", "signature"}
)

_logging_configured = False


def _is_sensitive_key(key: str) -> bool:
    lower = key.lower()
    return any(pattern in lower for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_for_logging(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with sensitive values redacted.

    Keys containing password, token, secret, key, authorization, auth or
    signature (case-insensitive) are replaced with REDACTED_PLACEHOLDER.
    Nested dicts and lists of dicts are sanitized recursively.

    Example:
        >>> sanitize_for_logging({"address": "0xabc", "sessionToken": "tok_1"})
        {'address': '0xabc', 'sessionToken': '***REDACTED***'}
    """
    if not data:
        return {}
    result: dict[str, Any] = {}
    for k, v in data.items():
        if _is_sensitive_key(k):
            result[k] = REDACTED_PLACEHOLDER
        elif isinstance(v, dict):
            result[k] = sanitize_for_logging(v)
        elif isinstance(v, list):
            result[k] = [
                sanitize_for_logging(item) if isinstance(item, dict) else item for item in v
            ]
        else:
            result[k] = v
    return result


def _get_log_level() -> str:
    return os.environ.get(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper()


def _get_log_format() -> str:
    return os.environ.get(ENV_LOG_FORMAT, DEFAULT_LOG_FORMAT).lower()


def _get_service_name() -> str:
    return os.environ.get(ENV_SERVICE_NAME, DEFAULT_SERVICE_NAME)


def _get_shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(
    log_format: str | None = None,
    log_level: str | None = None,
    service_name: str | None = None,
    force: bool = False,
) -> None:
    """Configure structured logging for the process.

    Args:
        log_format: "json" or "console". Defaults to env var or "console"
        log_level: Minimum log level. Defaults to env var or "INFO"
        service_name: Service name bound into every event
        force: Reconfigure even if logging was already configured
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    log_format = log_format or _get_log_format()
    log_level = log_level or _get_log_level()
    service_name = service_name or _get_service_name()

    shared_processors = _get_shared_processors()

    if log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    structlog.contextvars.bind_contextvars(service=service_name)

    _logging_configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, configuring logging with defaults on first use."""
    if not _logging_configured:
        configure_logging()

    return structlog.stdlib.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables included in all subsequent logs of this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def bound_context(**kwargs: Any) -> Iterator[None]:
    """Bind context variables for the duration of the block.

    None values are skipped, so optional ids can be passed straight through.

    Example:
        >>> with bound_context(consumer_id="tab-1", request_id=None):
        ...     get_logger(__name__).info("wallet_bridge.auth.transition")
    """
    values = {k: v for k, v in kwargs.items() if v is not None}
    with structlog.contextvars.bound_contextvars(**values):
        yield
