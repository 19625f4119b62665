"""Tests for centralized configuration module."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError as PydanticValidationError

from tenant_schema_core.config import (
    AppConfig,
    LoggingConfig,
    ProvisioningConfig,
    QueueConfig,
    get_config,
    reset_config,
    set_config,
)
from tenant_schema_core.constants import LogLevel


class TestQueueConfig:
    def test_default_values(self):
        with patch.dict(os.environ, {}, clear=True):
            config = QueueConfig()
        assert config.connection_string == ""
        assert config.logs_queue_name == "logs-queue"
        assert config.batch_size == 10

    def test_from_env(self):
        with patch.dict(os.environ, {"AzureWebJobsStorage": "DefaultEndpointsProtocol=https;..."}):
            config = QueueConfig()
        assert config.connection_string == "DefaultEndpointsProtocol=https;..."


class TestLoggingConfig:
    def test_default_values(self):
        with patch.dict(os.environ, {}, clear=True):
            config = LoggingConfig()
        assert config.level == LogLevel.INFO.value
        assert config.enable_logs_queue is False

    def test_level_is_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_level_rejected(self):
        with pytest.raises(PydanticValidationError):
            LoggingConfig(level="LOUD")

    def test_from_env(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "WARNING", "ENABLE_LOGS_QUEUE": "true"}):
            config = LoggingConfig()
        assert config.level == "WARNING"
        assert config.enable_logs_queue is True


class TestProvisioningConfig:
    def test_default_values(self):
        with patch.dict(os.environ, {}, clear=True):
            config = ProvisioningConfig()
        assert config.verification_max_attempts == 3
        assert config.verification_delay_seconds == 0.5
        assert config.cleanup_settle_seconds == 1.0
        assert config.expected_table_count == 6
        assert config.application_role == "tenant_user"
        assert config.schema_prefix == "tenant_"
        assert config.require_verification is False
        assert config.max_provisioning_workers == 4

    def test_from_env(self):
        env = {
            "TENANT_VERIFICATION_MAX_ATTEMPTS": "5",
            "TENANT_VERIFICATION_DELAY_SECONDS": "0.1",
            "TENANT_APPLICATION_ROLE": "app_rw",
            "TENANT_SCHEMA_PREFIX": "t_",
            "TENANT_REQUIRE_VERIFICATION": "true",
        }
        with patch.dict(os.environ, env, clear=True):
            config = ProvisioningConfig()
        assert config.verification_max_attempts == 5
        assert config.verification_delay_seconds == 0.1
        assert config.application_role == "app_rw"
        assert config.schema_prefix == "t_"
        assert config.require_verification is True

    @pytest.mark.parametrize("role", ["", "   "])
    def test_blank_role_disables_grant(self, role):
        assert ProvisioningConfig(application_role=role).application_role is None

    @pytest.mark.parametrize(
        "field,value",
        [
            ("verification_max_attempts", 0),
            ("verification_delay_seconds", -1),
            ("max_provisioning_workers", 0),
        ],
    )
    def test_bounds(self, field, value):
        with pytest.raises(PydanticValidationError):
            ProvisioningConfig(**{field: value})


class TestAppConfig:
    def test_nested_defaults(self):
        config = AppConfig()
        assert isinstance(config.queue, QueueConfig)
        assert isinstance(config.logging, LoggingConfig)
        assert isinstance(config.provisioning, ProvisioningConfig)

    def test_custom_values(self):
        config = AppConfig()
        assert config.get_custom("missing", "fallback") == "fallback"
        config.set_custom("region", "eu")
        assert config.get_custom("region") == "eu"


class TestGlobalConfig:
    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_set_and_reset(self):
        custom = AppConfig(environment="staging")
        set_config(custom)
        assert get_config() is custom

        reset_config()
        assert get_config() is not custom
