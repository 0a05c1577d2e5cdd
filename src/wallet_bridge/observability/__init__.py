"""Observability for the wallet bridge.

Structured logging (structlog) and in-process, Prometheus-compatible
metrics shared by every execution context.

Example:
    >>> from wallet_bridge.observability import get_logger, get_metrics
    >>>
    >>> logger = get_logger(__name__)
    >>> logger.info("wallet_bridge.router.dispatched", message_type="WB_PING")
    >>>
    >>> get_metrics().increment_counter("wallet_bridge_messages_routed_total", {"type": "WB_PING"})
"""

from wallet_bridge.observability.logging import (
    bind_context,
    bound_context,
    clear_context,
    configure_logging,
    get_logger,
    sanitize_for_logging,
)
from wallet_bridge.observability.metrics import (
    MetricsCollector,
    get_metrics,
    reset_metrics,
)

__all__ = [
    "bind_context",
    "bound_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "get_metrics",
    "reset_metrics",
    "MetricsCollector",
    "sanitize_for_logging",
]
