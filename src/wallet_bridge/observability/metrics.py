"""In-process metrics for the wallet bridge.

Counters and histograms are kept per process and can be exported in
Prometheus text format. The background coordinator's process may be
recreated at any time, so these values describe the current incarnation
only.

Example:
    >>> from wallet_bridge.observability.metrics import get_metrics
    >>> metrics = get_metrics()
    >>> metrics.increment_counter("wallet_bridge_messages_routed_total", {"type": "WB_PING"})
    >>> "wallet_bridge_messages_routed_total" in metrics.export_prometheus()
    True
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import ClassVar

LabelKey = tuple[tuple[str, str], ...]


def _label_key(labels: dict[str, str] | None) -> LabelKey:
    return tuple(sorted((labels or {}).items()))


@dataclass
class Counter:
    """A monotonically increasing counter keyed by label set."""

    name: str
    help_text: str
    values: dict[LabelKey, float] = field(default_factory=dict)

    def increment(self, labels: dict[str, str] | None = None, value: float = 1.0) -> None:
        key = _label_key(labels)
        self.values[key] = self.values.get(key, 0.0) + value

    def get(self, labels: dict[str, str] | None = None) -> float:
        return self.values.get(_label_key(labels), 0.0)


DEFAULT_LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


@dataclass
class Histogram:
    """Cumulative-bucket histogram keyed by label set."""

    name: str
    help_text: str
    buckets: tuple[float, ...] = DEFAULT_LATENCY_BUCKETS
    counts: dict[LabelKey, list[float]] = field(default_factory=dict)
    sums: dict[LabelKey, float] = field(default_factory=dict)

    def observe(self, value: float, labels: dict[str, str] | None = None) -> None:
        key = _label_key(labels)
        # one slot per bucket plus the +Inf slot
        slots = self.counts.setdefault(key, [0.0] * (len(self.buckets) + 1))
        for index, bound in enumerate(self.buckets):
            if value <= bound:
                slots[index] += 1.0
        slots[-1] += 1.0
        self.sums[key] = self.sums.get(key, 0.0) + value

    def get_count(self, labels: dict[str, str] | None = None) -> float:
        slots = self.counts.get(_label_key(labels))
        return slots[-1] if slots else 0.0


class MetricsCollector:
    """Thread-safe collector of bridge counters and histograms."""

    DEFAULT_COUNTERS: ClassVar[dict[str, str]] = {
        "wallet_bridge_messages_routed_total": "Messages dispatched to a handler",
        "wallet_bridge_messages_rejected_total": "Messages dropped before dispatch",
        "wallet_bridge_rate_limited_total": "Messages denied by the token bucket",
        "wallet_bridge_deduplicated_total": "Requests collapsed onto an in-flight request",
        "wallet_bridge_handler_errors_total": "Handler failures converted to error results",
        "wallet_bridge_state_transitions_total": "Authentication state machine transitions",
        "wallet_bridge_operations_started_total": "Tracked background operations started",
        "wallet_bridge_operations_failed_total": "Tracked background operations failed or swept",
        "wallet_bridge_ports_opened_total": "Persistent connections opened",
        "wallet_bridge_ports_closed_total": "Persistent connections closed",
        "wallet_bridge_heartbeats_total": "Keep-alive heartbeats fired",
        "wallet_bridge_api_requests_total": "Remote authentication API requests",
        "wallet_bridge_api_retries_total": "Remote authentication API retries",
        "wallet_bridge_api_errors_total": "Remote authentication API failures",
    }

    DEFAULT_HISTOGRAMS: ClassVar[dict[str, str]] = {
        "wallet_bridge_handler_duration_seconds": "Handler execution time in seconds",
        "wallet_bridge_api_duration_seconds": "Remote authentication API latency in seconds",
    }

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._start_time = time.time()
        self._counters = {
            name: Counter(name=name, help_text=text) for name, text in self.DEFAULT_COUNTERS.items()
        }
        self._histograms = {
            name: Histogram(name=name, help_text=text)
            for name, text in self.DEFAULT_HISTOGRAMS.items()
        }

    def increment_counter(
        self, name: str, labels: dict[str, str] | None = None, value: float = 1.0
    ) -> None:
        with self._lock:
            if name in self._counters:
                self._counters[name].increment(labels, value)

    def observe_histogram(
        self, name: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        with self._lock:
            if name in self._histograms:
                self._histograms[name].observe(value, labels)

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            counter = self._counters.get(name)
            return counter.get(labels) if counter else 0.0

    def get_histogram_count(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            histogram = self._histograms.get(name)
            return histogram.get_count(labels) if histogram else 0.0

    @staticmethod
    def _format_labels(labels: LabelKey, extra: tuple[str, str] | None = None) -> str:
        pairs = list(labels) + ([extra] if extra else [])
        if not pairs:
            return ""
        escaped = (
            f'{k}="{v.replace(chr(92), chr(92) * 2).replace(chr(34), chr(92) + chr(34))}"'
            for k, v in pairs
        )
        return "{" + ",".join(escaped) + "}"

    def export_prometheus(self) -> str:
        """Export all metrics in Prometheus text exposition format."""
        lines: list[str] = []
        with self._lock:
            for counter in self._counters.values():
                lines.append(f"# HELP {counter.name} {counter.help_text}")
                lines.append(f"# TYPE {counter.name} counter")
                if not counter.values:
                    lines.append(f"{counter.name} 0")
                for label_key, value in counter.values.items():
                    lines.append(f"{counter.name}{self._format_labels(label_key)} {value}")

            for histogram in self._histograms.values():
                lines.append(f"# HELP {histogram.name} {histogram.help_text}")
                lines.append(f"# TYPE {histogram.name} histogram")
                for label_key, slots in histogram.counts.items():
                    for bound, count in zip(histogram.buckets, slots):
                        label_str = self._format_labels(label_key, ("le", str(bound)))
                        lines.append(f"{histogram.name}_bucket{label_str} {count}")
                    inf_labels = self._format_labels(label_key, ("le", "+Inf"))
                    lines.append(f"{histogram.name}_bucket{inf_labels} {slots[-1]}")
                    base = self._format_labels(label_key)
                    lines.append(f"{histogram.name}_sum{base} {histogram.sums[label_key]}")
                    lines.append(f"{histogram.name}_count{base} {slots[-1]}")

            uptime = time.time() - self._start_time
            lines.append("# HELP wallet_bridge_process_uptime_seconds Time since process start")
            lines.append("# TYPE wallet_bridge_process_uptime_seconds gauge")
            lines.append(f"wallet_bridge_process_uptime_seconds {uptime:.3f}")

        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            for counter in self._counters.values():
                counter.values.clear()
            for histogram in self._histograms.values():
                histogram.counts.clear()
                histogram.sums.clear()


_metrics_collector: MetricsCollector | None = None
_collector_lock = threading.Lock()


def get_metrics() -> MetricsCollector:
    """Return the process-wide metrics collector."""
    global _metrics_collector
    with _collector_lock:
        if _metrics_collector is None:
            _metrics_collector = MetricsCollector()
        return _metrics_collector


def reset_metrics() -> None:
    """Reset the process-wide collector. Useful for testing."""
    with _collector_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset()
