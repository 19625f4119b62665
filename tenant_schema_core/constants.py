"""
Constants and enums for the tenant schema core.

This module centralizes the magic strings used by provisioning, routing and
logging so that every component agrees on the same values.
"""

from enum import Enum


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    AZURE_STORAGE_CONNECTION = "AzureWebJobsStorage"
    APP_ENV = "APP_ENV"
    LOG_LEVEL = "LOG_LEVEL"
    ENABLE_LOGS_QUEUE = "ENABLE_LOGS_QUEUE"
    APPLICATION_ROLE = "TENANT_APPLICATION_ROLE"
    SCHEMA_PREFIX = "TENANT_SCHEMA_PREFIX"
    SCHEMA_DIRECTORY = "TENANT_SCHEMA_DIRECTORY"
    VERIFICATION_MAX_ATTEMPTS = "TENANT_VERIFICATION_MAX_ATTEMPTS"
    VERIFICATION_DELAY_SECONDS = "TENANT_VERIFICATION_DELAY_SECONDS"
    REQUIRE_VERIFICATION = "TENANT_REQUIRE_VERIFICATION"


class QueueName(str, Enum):
    """Queue names used for log shipping."""

    LOGS = "logs-queue"


class ProvisioningState(str, Enum):
    """Stages of one provisioning attempt, in the order they are reached."""

    NOT_PROVISIONED = "NOT_PROVISIONED"
    SCHEMA_CREATING = "SCHEMA_CREATING"
    TABLES_INITIALIZING = "TABLES_INITIALIZING"
    VERIFYING = "VERIFYING"
    PROVISIONED = "PROVISIONED"


class TenantStatus(str, Enum):
    """Durable lifecycle status stored on the tenant registry record."""

    PENDING = "PENDING"
    PROVISIONING = "PROVISIONING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    INACTIVE = "INACTIVE"
    DELETED = "DELETED"
    ARCHIVED = "ARCHIVED"


class AuditAction(str, Enum):
    """Actions recorded in a tenant's audit_logs table."""

    TENANT_PROVISIONED = "TENANT_PROVISIONED"


class SettingType(str, Enum):
    """Value types for rows in tenant_settings."""

    STRING = "STRING"
    BOOLEAN = "BOOLEAN"
    NUMBER = "NUMBER"
    JSON = "JSON"


class SettingCategory(str, Enum):
    """Grouping for rows in tenant_settings."""

    DISPLAY = "DISPLAY"
    FEATURES = "FEATURES"
    DATA = "DATA"


# Backend identifier limit for schema and role names
MAX_IDENTIFIER_LENGTH = 63

# Number of business tables every tenant schema must contain
TENANT_TABLE_COUNT = 6

DEFAULT_APPLICATION_ROLE = "tenant_user"
DEFAULT_SCHEMA_PREFIX = "tenant_"
