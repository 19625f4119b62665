"""
Centralized configuration for the tenant schema core.

Configuration objects are Pydantic models whose defaults are read from
environment variables when the model is built, with a process-wide instance
available through get_config(). Database connection settings live in
db.db_config.
"""

import os
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import (
    DEFAULT_APPLICATION_ROLE,
    DEFAULT_SCHEMA_PREFIX,
    TENANT_TABLE_COUNT,
    EnvironmentVariable,
    LogLevel,
    QueueName,
)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _from_env(variable: EnvironmentVariable, default: str, cast: Callable[[str], Any] = str):
    """default_factory reading ``variable`` at model construction time."""
    return lambda: cast(os.getenv(variable.value, default))


class QueueConfig(BaseModel):
    """Azure Storage queue that structured logs are shipped to."""

    connection_string: str = Field(
        default_factory=_from_env(EnvironmentVariable.AZURE_STORAGE_CONNECTION, "")
    )
    logs_queue_name: str = QueueName.LOGS.value
    batch_size: int = Field(default=10, ge=1, description="Entries buffered per send")


class LoggingConfig(BaseModel):
    level: str = Field(default_factory=_from_env(EnvironmentVariable.LOG_LEVEL, LogLevel.INFO.value))
    enable_logs_queue: bool = Field(
        default_factory=lambda: _env_flag(EnvironmentVariable.ENABLE_LOGS_QUEUE.value)
    )

    @field_validator("level")
    def normalize_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LogLevel.__members__:
            raise ValueError(f"Invalid log level: {v}. Must be one of {list(LogLevel.__members__)}")
        return level


class ProvisioningConfig(BaseModel):
    """Tunables for provisioning, verification and cleanup."""

    verification_max_attempts: int = Field(
        default_factory=_from_env(EnvironmentVariable.VERIFICATION_MAX_ATTEMPTS, "3", int),
        ge=1,
        description="Metadata polls before verification gives up",
    )
    verification_delay_seconds: float = Field(
        default_factory=_from_env(EnvironmentVariable.VERIFICATION_DELAY_SECONDS, "0.5", float),
        ge=0,
        description="Sleep between verification polls",
    )
    cleanup_settle_seconds: float = Field(
        default=1.0, ge=0, description="Wait before re-checking a schema during cleanup"
    )
    expected_table_count: int = Field(
        default=TENANT_TABLE_COUNT, ge=1, description="Tables a provisioned schema must hold"
    )
    application_role: Optional[str] = Field(
        default_factory=_from_env(EnvironmentVariable.APPLICATION_ROLE, DEFAULT_APPLICATION_ROLE),
        description="Role granted usage on new schemas; empty disables the grant",
    )
    schema_prefix: str = Field(
        default_factory=_from_env(EnvironmentVariable.SCHEMA_PREFIX, DEFAULT_SCHEMA_PREFIX),
        description="Prefix used to derive and list tenant schemas",
    )
    require_verification: bool = Field(
        default_factory=lambda: _env_flag(EnvironmentVariable.REQUIRE_VERIFICATION.value),
        description="Raise instead of warning when verification times out",
    )
    max_provisioning_workers: int = Field(
        default=4, ge=1, description="Worker threads for asynchronous provisioning"
    )

    @field_validator("application_role")
    def blank_role_disables_grant(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class AppConfig(BaseModel):
    """Root configuration: environment name plus the queue, logging and provisioning sections."""

    environment: str = Field(default_factory=_from_env(EnvironmentVariable.APP_ENV, "development"))
    debug: bool = Field(default_factory=lambda: _env_flag("DEBUG"))

    queue: QueueConfig = Field(default_factory=QueueConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    provisioning: ProvisioningConfig = Field(default_factory=ProvisioningConfig)

    # Host-specific settings that have no typed section
    custom: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls()

    def get_custom(self, key: str, default: Any = None) -> Any:
        return self.custom.get(key, default)

    def set_custom(self, key: str, value: Any) -> None:
        self.custom[key] = value


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Process-wide configuration, built from the environment on first use."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    global _config
    _config = config


def reset_config() -> None:
    """Forget the process-wide configuration; the next get_config() rebuilds it."""
    global _config
    _config = None
