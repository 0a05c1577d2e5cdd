"""Tests for the in-process metrics collector."""

from wallet_bridge.observability import MetricsCollector, get_metrics, reset_metrics


class TestMetricsCollector:
    """Tests for counters and histograms."""

    def test_counter_by_labels(self) -> None:
        metrics = MetricsCollector()
        metrics.increment_counter("wallet_bridge_messages_routed_total", {"type": "WB_PING"})
        metrics.increment_counter("wallet_bridge_messages_routed_total", {"type": "WB_PING"})
        metrics.increment_counter("wallet_bridge_messages_routed_total", {"type": "WB_CONNECT"})

        assert metrics.get_counter("wallet_bridge_messages_routed_total", {"type": "WB_PING"}) == 2
        assert (
            metrics.get_counter("wallet_bridge_messages_routed_total", {"type": "WB_CONNECT"})
            == 1
        )
        assert metrics.get_counter("wallet_bridge_messages_routed_total") == 0

    def test_label_order_does_not_matter(self) -> None:
        metrics = MetricsCollector()
        metrics.increment_counter("wallet_bridge_deduplicated_total", {"a": "1", "b": "2"})
        assert metrics.get_counter("wallet_bridge_deduplicated_total", {"b": "2", "a": "1"}) == 1

    def test_unknown_metrics_are_ignored(self) -> None:
        """Test that unregistered names neither raise nor appear."""
        metrics = MetricsCollector()
        metrics.increment_counter("nope_total")
        metrics.observe_histogram("nope_seconds", 1.0)
        assert metrics.get_counter("nope_total") == 0
        assert metrics.get_histogram_count("nope_seconds") == 0
        assert "nope" not in metrics.export_prometheus()

    def test_histogram(self) -> None:
        metrics = MetricsCollector()
        labels = {"path": "/api/auth/session"}
        metrics.observe_histogram("wallet_bridge_api_duration_seconds", 0.02, labels)
        metrics.observe_histogram("wallet_bridge_api_duration_seconds", 3.0, labels)
        assert metrics.get_histogram_count("wallet_bridge_api_duration_seconds", labels) == 2

    def test_reset(self) -> None:
        metrics = MetricsCollector()
        metrics.increment_counter("wallet_bridge_heartbeats_total")
        metrics.observe_histogram("wallet_bridge_handler_duration_seconds", 0.1)
        metrics.reset()
        assert metrics.get_counter("wallet_bridge_heartbeats_total") == 0
        assert metrics.get_histogram_count("wallet_bridge_handler_duration_seconds") == 0


class TestPrometheusExport:
    """Tests for the text exposition format."""

    def test_counters_exported_with_help_and_type(self) -> None:
        metrics = MetricsCollector()
        metrics.increment_counter("wallet_bridge_rate_limited_total", {"router": "background"})
        text = metrics.export_prometheus()

        assert "# TYPE wallet_bridge_rate_limited_total counter" in text
        assert 'wallet_bridge_rate_limited_total{router="background"} 1.0' in text
        assert "wallet_bridge_heartbeats_total 0" in text
        assert text.endswith("\n")

    def test_histogram_buckets_are_cumulative(self) -> None:
        metrics = MetricsCollector()
        metrics.observe_histogram("wallet_bridge_handler_duration_seconds", 0.02)
        metrics.observe_histogram("wallet_bridge_handler_duration_seconds", 0.2)
        text = metrics.export_prometheus()

        assert 'wallet_bridge_handler_duration_seconds_bucket{le="0.01"} 0.0' in text
        assert 'wallet_bridge_handler_duration_seconds_bucket{le="0.025"} 1.0' in text
        assert 'wallet_bridge_handler_duration_seconds_bucket{le="0.25"} 2.0' in text
        assert 'wallet_bridge_handler_duration_seconds_bucket{le="+Inf"} 2.0' in text
        assert "wallet_bridge_handler_duration_seconds_count 2.0" in text

    def test_label_values_are_escaped(self) -> None:
        metrics = MetricsCollector()
        metrics.increment_counter("wallet_bridge_messages_rejected_total", {"reason": 'a"b\\c'})
        text = metrics.export_prometheus()
        assert 'reason="a\\"b\\\\c"' in text

    def test_uptime_gauge(self) -> None:
        text = MetricsCollector().export_prometheus()
        assert "# TYPE wallet_bridge_process_uptime_seconds gauge" in text


class TestGlobalCollector:
    """Tests for the process-wide collector."""

    def test_singleton(self) -> None:
        assert get_metrics() is get_metrics()

    def test_reset_metrics(self) -> None:
        get_metrics().increment_counter("wallet_bridge_heartbeats_total")
        reset_metrics()
        assert get_metrics().get_counter("wallet_bridge_heartbeats_total") == 0
