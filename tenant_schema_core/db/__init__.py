"""
Database layer: engine and session management, the tenant registry model,
the per-tenant table layout and backend-specific schema mechanics.
"""

from .db_base import JSON, TimestampMixin, UUIDMixin, utc_now
from .db_config import (
    Base,
    DatabaseConfig,
    DatabaseManager,
    get_development_config,
    get_production_config,
    import_all_models,
)
from .db_tenant_models import Tenant
from .db_tenant_tables import TENANT_INDEXES, TENANT_TABLE_NAMES, TENANT_TABLES, tenant_metadata
from .dialects import PostgresSchemaDialect, SchemaDialect, SqliteSchemaDialect, get_schema_dialect

__all__ = [
    # Base definitions
    "Base",
    "JSON",
    "TimestampMixin",
    "UUIDMixin",
    "utc_now",
    # Configuration
    "DatabaseConfig",
    "DatabaseManager",
    "import_all_models",
    "get_production_config",
    "get_development_config",
    # Registry
    "Tenant",
    # Tenant layout
    "tenant_metadata",
    "TENANT_TABLES",
    "TENANT_INDEXES",
    "TENANT_TABLE_NAMES",
    # Dialects
    "SchemaDialect",
    "PostgresSchemaDialect",
    "SqliteSchemaDialect",
    "get_schema_dialect",
]
