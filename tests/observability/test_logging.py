"""Tests for structured logging configuration and redaction."""

import logging
from unittest.mock import patch

import structlog
from structlog.testing import capture_logs

from wallet_bridge.observability.logging import (
    REDACTED_PLACEHOLDER,
    bind_context,
    bound_context,
    clear_context,
    configure_logging,
    get_logger,
    sanitize_for_logging,
)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_respects_log_level(self) -> None:
        """Test that configure_logging sets the root level."""
        configure_logging(log_format="console", log_level="WARNING", force=True)
        assert logging.getLogger().level == logging.WARNING

    def test_json_format(self) -> None:
        """Test that the JSON renderer can be selected."""
        configure_logging(log_format="json", log_level="INFO", force=True)
        assert get_logger("test.json") is not None

    def test_no_reconfigure_without_force(self) -> None:
        """Test that a second call without force is a no-op."""
        configure_logging(log_format="console", log_level="DEBUG", force=True)
        configure_logging(log_format="json", log_level="ERROR")
        assert logging.getLogger().level == logging.DEBUG

    def test_reads_environment(self) -> None:
        """Test that level and service name come from the environment."""
        with patch.dict(
            "os.environ",
            {
                "WALLET_BRIDGE_LOG_FORMAT": "json",
                "WALLET_BRIDGE_LOG_LEVEL": "error",
                "WALLET_BRIDGE_SERVICE_NAME": "env-bridge",
            },
        ):
            configure_logging(force=True)

        assert logging.getLogger().level == logging.ERROR
        assert structlog.contextvars.get_contextvars()["service"] == "env-bridge"

    def test_single_stderr_handler(self) -> None:
        """Test that reconfiguring does not stack handlers."""
        configure_logging(force=True)
        configure_logging(force=True)
        assert len(logging.getLogger().handlers) == 1

    def teardown_method(self) -> None:
        clear_context()
        configure_logging(log_format="console", log_level="INFO", force=True)


class TestContextBinding:
    """Tests for context variables bound into every event."""

    def test_bind_context(self) -> None:
        bind_context(context="background")
        try:
            assert structlog.contextvars.get_contextvars()["context"] == "background"
        finally:
            clear_context()

    def test_events_carry_fields(self) -> None:
        with capture_logs() as logs:
            get_logger("test.context").info("wallet_bridge.test.event", value=1)

        assert logs == [{"event": "wallet_bridge.test.event", "value": 1, "log_level": "info"}]

    def test_clear_context(self) -> None:
        bind_context(context="page")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_bound_context_is_scoped(self) -> None:
        with bound_context(consumer_id="tab-1", request_id=None):
            bound = structlog.contextvars.get_contextvars()
            assert bound["consumer_id"] == "tab-1"
            assert "request_id" not in bound
        assert "consumer_id" not in structlog.contextvars.get_contextvars()


class TestSanitizeForLogging:
    """Tests for redaction of sensitive values."""

    def test_empty(self) -> None:
        assert sanitize_for_logging({}) == {}

    def test_redacts_sensitive_keys(self) -> None:
        """Test that tokens, signatures and auth headers are redacted."""
        data = {
            "address": "0xabc",
            "sessionToken": "sess_1",
            "signature": "0xsig",
            "Authorization": "Bearer sess_1",
            "apiKey": "k",
        }
        assert sanitize_for_logging(data) == {
            "address": "0xabc",
            "sessionToken": REDACTED_PLACEHOLDER,
            "signature": REDACTED_PLACEHOLDER,
            "Authorization": REDACTED_PLACEHOLDER,
            "apiKey": REDACTED_PLACEHOLDER,
        }

    def test_nested_structures(self) -> None:
        data = {
            "session": {"address": "0xabc", "token": "t"},
            "items": [{"secret": "s", "n": 1}, "plain"],
        }
        assert sanitize_for_logging(data) == {
            "session": {"address": "0xabc", "token": REDACTED_PLACEHOLDER},
            "items": [{"secret": REDACTED_PLACEHOLDER, "n": 1}, "plain"],
        }

    def test_input_not_mutated(self) -> None:
        data = {"token": "t"}
        sanitize_for_logging(data)
        assert data == {"token": "t"}
