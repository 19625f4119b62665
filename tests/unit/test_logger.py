"""
Unit tests for logger utilities.

Tests the logging infrastructure including ContextAwareLogger and AzureQueueHandler.
The Azure queue client is the only thing mocked.
"""

import json
import logging
import sys
from unittest.mock import Mock, patch

import pytest

from tenant_schema_core.utils.logger import (
    LOGGER_NAME,
    AzureQueueHandler,
    ContextAwareLogger,
    configure_logging,
    get_logger,
)


class TestContextAwareLogger:
    def setup_method(self):
        self.mock_logger = Mock(spec=logging.Logger)
        self.context_logger = ContextAwareLogger(self.mock_logger)

    def test_set_level(self):
        self.context_logger.set_level(logging.DEBUG)
        self.mock_logger.setLevel.assert_called_once_with(logging.DEBUG)

    def test_no_extras(self):
        self.context_logger.info("Test message")
        self.mock_logger.info.assert_called_once_with("Test message", extra={})

    def test_extras_are_formatted_and_preserved(self):
        extra = {"schema_name": "tenant_acme", "attempt": 2}
        self.context_logger.warning("Schema not ready yet", extra=extra)

        self.mock_logger.warning.assert_called_once_with(
            "Schema not ready yet | schema_name=tenant_acme | attempt=2", extra=extra
        )

    def test_reserved_record_attributes_are_renamed(self):
        self.context_logger.error("Lookup failed", extra={"name": "acme", "module": "x"})

        _, kwargs = self.mock_logger.error.call_args
        assert kwargs["extra"] == {"ctx_name": "acme", "ctx_module": "x"}

    def test_passes_exc_info_through(self):
        self.context_logger.error("Boom", exc_info=True)
        self.mock_logger.error.assert_called_once_with("Boom", extra={}, exc_info=True)


class TestGetLogger:
    def test_returns_package_logger(self):
        logger = get_logger()
        assert isinstance(logger, ContextAwareLogger)
        assert logger.logger.name == LOGGER_NAME

    def test_explicit_level(self):
        logger = get_logger("DEBUG")
        assert logger.logger.level == logging.DEBUG

    def test_configured_logger_is_reused(self):
        configured = configure_logging("provisioning-worker", log_level="INFO", enable_queue=False)
        assert get_logger() is configured


class TestConfigureLogging:
    def test_console_handler_only(self):
        logger = configure_logging("provisioning-worker", log_level="WARNING", enable_queue=False)

        handlers = logger.logger.handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert logger.logger.level == logging.WARNING

    def test_reconfigure_replaces_handlers(self):
        configure_logging("first", enable_queue=False)
        logger = configure_logging("second", enable_queue=False)
        assert len(logger.logger.handlers) == 1


def _make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        LOGGER_NAME, logging.WARNING, __file__, 42, "Schema verification exhausted", None, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestAzureQueueHandlerEntries:
    """Entry building needs no Azure client: without a connection string nothing is sent."""

    def setup_method(self):
        with patch.dict("os.environ", {"AzureWebJobsStorage": ""}):
            self.handler = AzureQueueHandler(connection_string="", batch_size=5)

    def test_build_entry_promotes_tenant_fields(self):
        entry = self.handler.build_entry(
            _make_record(tenant_id="t-1", schema_name="tenant_acme", attempt=3)
        )

        assert entry["level"] == "WARNING"
        assert entry["logger"] == LOGGER_NAME
        assert entry["message"] == "Schema verification exhausted"
        assert entry["tenant_id"] == "t-1"
        assert entry["schema_name"] == "tenant_acme"
        assert entry["context"] == {"attempt": 3}

    def test_build_entry_includes_exception(self):
        try:
            raise RuntimeError("connection reset")
        except RuntimeError:
            record = _make_record()
            record.exc_info = sys.exc_info()

        entry = self.handler.build_entry(record)
        assert entry["exception"]["type"] == "RuntimeError"
        assert entry["exception"]["message"] == "connection reset"
        assert entry["exception"]["traceback"]

    def test_emit_buffers_entries(self):
        self.handler.emit(_make_record())
        self.handler.emit(_make_record())
        assert len(self.handler.log_buffer) == 2

    def test_flush_without_connection_keeps_buffer(self):
        self.handler.emit(_make_record())
        self.handler.flush()
        assert len(self.handler.log_buffer) == 1


class TestAzureQueueHandlerSending:
    @pytest.fixture(autouse=True)
    def azure_queue(self):
        pytest.importorskip("azure.storage.queue")

    def test_creates_missing_queue(self):
        service = Mock()
        service.list_queues.return_value = []
        with patch(
            "azure.storage.queue.QueueServiceClient.from_connection_string", return_value=service
        ):
            AzureQueueHandler(queue_name="logs-queue", connection_string="UseDevelopmentStorage=true")

        service.create_queue.assert_called_once_with("logs-queue")

    def test_batch_is_sent_when_full(self):
        existing = Mock()
        existing.name = "logs-queue"
        service = Mock()
        service.list_queues.return_value = [existing]
        client = Mock()
        with patch(
            "azure.storage.queue.QueueServiceClient.from_connection_string", return_value=service
        ), patch("azure.storage.queue.QueueClient.from_connection_string", return_value=client):
            handler = AzureQueueHandler(
                queue_name="logs-queue", connection_string="UseDevelopmentStorage=true", batch_size=2
            )
            handler.emit(_make_record(schema_name="tenant_acme"))
            assert client.send_message.call_count == 0
            handler.emit(_make_record(schema_name="tenant_acme"))

        assert client.send_message.call_count == 2
        sent = json.loads(client.send_message.call_args_list[0].args[0])
        assert sent["schema_name"] == "tenant_acme"
        assert handler.log_buffer == []
