"""
Unit Tests for Settings and Structured Logging.
"""

from unittest.mock import patch

import pytest
import structlog

from ticketlife.config.settings import LifecycleSettings, Settings
from ticketlife.observability.logging import (
    LogContext,
    add_correlation_id,
    add_log_context,
    censor_sensitive_data,
    configure_from_settings,
    correlation_id_var,
    current_log_context,
    get_logger,
    new_correlation_id,
    operation_context,
)


class TestSettings:

    def test_defaults(self, test_settings: Settings) -> None:
        assert test_settings.neo4j.password.get_secret_value() == "password123"
        assert test_settings.lifecycle.clone_suffix == " Clone"
        assert test_settings.lifecycle.admin_bypass is True

    def test_log_level_is_normalized(self) -> None:
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_lifecycle_env_prefix(self) -> None:
        with patch.dict("os.environ", {"LIFECYCLE_WRITE_LOCK_NAME": "tickets"}):
            assert LifecycleSettings().write_lock_name == "tickets"


class TestLogContext:

    def test_nested_context(self) -> None:
        with LogContext(actor="user-1", operation="delete"):
            with LogContext(operation="restore"):
                assert current_log_context() == {"actor": "user-1", "operation": "restore"}
            assert current_log_context()["operation"] == "delete"

        assert current_log_context() == {}

    def test_context_does_not_override_event_keys(self) -> None:
        with LogContext(actor="user-1", resource_type="ticket"):
            event = add_log_context(None, "info", {"event": "x", "actor": "explicit"})

        assert event == {"event": "x", "actor": "explicit", "resource_type": "ticket"}

    def test_correlation_id(self) -> None:
        token = correlation_id_var.set("req-42")
        try:
            event = add_correlation_id(None, "info", {"event": "x"})
        finally:
            correlation_id_var.reset(token)

        assert event["correlation_id"] == "req-42"

    def test_correlation_id_bound_for_block(self) -> None:
        with LogContext(correlation_id="req-7", actor="user-1"):
            assert correlation_id_var.get() == "req-7"
            event = add_correlation_id(None, "info", {"event": "x"})

        assert event["correlation_id"] == "req-7"
        assert correlation_id_var.get() is None

    def test_operation_context_mints_correlation_id(self) -> None:
        with operation_context("user-1", "delete", "ticket") as ctx:
            minted = correlation_id_var.get()
            fields = current_log_context()

        assert minted and minted == ctx.correlation_id
        assert fields == {"actor": "user-1", "operation": "delete", "resource_type": "ticket"}
        assert correlation_id_var.get() is None

    def test_operation_context_keeps_outer_correlation_id(self) -> None:
        with LogContext(correlation_id="req-outer"):
            with operation_context("user-1", "restore", "ticket"):
                assert correlation_id_var.get() == "req-outer"
            assert correlation_id_var.get() == "req-outer"

    def test_new_correlation_ids_are_unique(self) -> None:
        assert new_correlation_id() != new_correlation_id()


class TestProcessors:

    def test_censor_sensitive_data(self) -> None:
        event = censor_sensitive_data(None, "info", {
            "event": "connect",
            "password": "hunter2",
            "nested": {"api_key": "abc", "uri": "bolt://x"},
        })

        assert event["password"] == "***REDACTED***"
        assert event["nested"] == {"api_key": "***REDACTED***", "uri": "bolt://x"}

    @pytest.mark.parametrize("log_format", ["json", "console"])
    def test_configure_from_settings(self, log_format: str) -> None:
        settings = Settings()
        settings.observability.log_format = log_format

        configure_from_settings(settings)

        assert structlog.is_configured()
        assert get_logger(__name__) is not None
        structlog.reset_defaults()
