"""
The fixed business table layout created inside every tenant schema.

Tables are declared without a schema and bound to a tenant at execution time
through ``schema_translate_map={None: schema_name}``, so one definition serves
every tenant. They are deliberately kept off the registry ``Base.metadata``.
"""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

from .db_base import JSON, new_uuid, utc_now

tenant_metadata = MetaData()


def _id_column() -> Column:
    return Column("id", String(36), primary_key=True, default=new_uuid)


def _audit_columns():
    return [
        Column("created_at", DateTime(timezone=True), default=utc_now),
        Column("updated_at", DateTime(timezone=True), default=utc_now, onupdate=utc_now),
        Column("created_by", String(100)),
        Column("updated_by", String(100)),
    ]


datasets = Table(
    "datasets",
    tenant_metadata,
    _id_column(),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("type", String(50)),
    Column("size_bytes", BigInteger, default=0),
    Column("record_count", BigInteger, default=0),
    Column("schema_definition", JSON),
    Column("metadata", JSON),
    Column("status", String(20), default="ACTIVE"),
    *_audit_columns(),
)

surveys = Table(
    "surveys",
    tenant_metadata,
    _id_column(),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("type", String(50)),
    Column("questions", JSON),
    Column("settings", JSON),
    Column("status", String(20), default="DRAFT"),
    Column("start_date", DateTime(timezone=True)),
    Column("end_date", DateTime(timezone=True)),
    Column("response_count", Integer, default=0),
    *_audit_columns(),
)

models = Table(
    "models",
    tenant_metadata,
    _id_column(),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("type", String(50)),
    Column("algorithm", String(100)),
    Column("parameters", JSON),
    Column("metrics", JSON),
    Column("version", String(20)),
    Column("status", String(20), default="DRAFT"),
    *_audit_columns(),
)

dashboards = Table(
    "dashboards",
    tenant_metadata,
    _id_column(),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("type", String(50)),
    Column("layout", JSON),
    Column("widgets", JSON),
    Column("settings", JSON),
    Column("is_public", Boolean, default=False),
    *_audit_columns(),
)

audit_logs = Table(
    "audit_logs",
    tenant_metadata,
    _id_column(),
    Column("user_id", String(100)),
    Column("action", String(100), nullable=False),
    Column("entity_type", String(50)),
    Column("entity_id", String(36)),
    Column("old_value", JSON),
    Column("new_value", JSON),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("metadata", JSON),
    Column("created_at", DateTime(timezone=True), default=utc_now),
)

tenant_settings = Table(
    "tenant_settings",
    tenant_metadata,
    _id_column(),
    Column("key", String(100), nullable=False, unique=True),
    Column("value", Text),
    Column("type", String(20)),
    Column("category", String(50)),
    Column("description", Text),
    Column("is_encrypted", Boolean, default=False),
    Column("created_at", DateTime(timezone=True), default=utc_now),
    Column("updated_at", DateTime(timezone=True), default=utc_now, onupdate=utc_now),
)

# Creation order; no foreign keys between them
TENANT_TABLES = (datasets, surveys, models, dashboards, audit_logs, tenant_settings)

TENANT_INDEXES = (
    Index("idx_datasets_status", datasets.c.status),
    Index("idx_surveys_status", surveys.c.status),
    Index("idx_models_status", models.c.status),
    Index("idx_dashboards_public", dashboards.c.is_public),
    Index("idx_audit_logs_created", audit_logs.c.created_at),
    Index("idx_audit_logs_user", audit_logs.c.user_id),
    Index("idx_audit_logs_entity", audit_logs.c.entity_type, audit_logs.c.entity_id),
)

TENANT_TABLE_NAMES = tuple(table.name for table in TENANT_TABLES)
