"""
Schema provisioning engine.

Creates a tenant schema, builds the fixed six-table layout with its indexes
and seed rows, drops schemas, and answers catalog questions about them.
Schema creation and initialization are separate commit boundaries: the
schema is committed on its own before any table is created, and every table,
index and seed row is then written in a single transaction.
"""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateIndex, CreateTable

from ..config import ProvisioningConfig, get_config
from ..context.operation_context import operation
from ..context.schema_router import SchemaRouter
from ..db.db_config import DatabaseManager, get_db_manager
from ..db.db_tenant_tables import TENANT_INDEXES, TENANT_TABLES, dashboards
from ..db.naming import validate_schema_name
from ..exceptions import (
    ErrorCode,
    InitializationError,
    ProvisioningError,
    SchemaCreationError,
    ServiceError,
)
from ..schemas.tenant_schema import SchemaCatalogFact, SchemaStatistics
from ..utils.logger import get_logger
from .seed_data import DEFAULT_SEED_DATA, SeedData


class SchemaProvisioningService:
    """
    DDL and catalog access for tenant schemas.

    Nothing here caches schema existence or table counts; every query goes to
    the live catalog over a fresh connection.
    """

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        config: Optional[ProvisioningConfig] = None,
        seed_data: Optional[SeedData] = None,
    ):
        """
        Args:
            db_manager: Database manager; defaults to the global one
            config: Provisioning settings; defaults to get_config().provisioning
            seed_data: Rows written during initialization
        """
        self.db_manager = db_manager or get_db_manager()
        self.engine = self.db_manager.engine
        self.dialect = self.db_manager.dialect
        self.router = SchemaRouter(self.db_manager)
        self.config = config or get_config().provisioning
        self.seed_data = seed_data or DEFAULT_SEED_DATA
        self.logger = get_logger()

    # ==================== DDL ====================

    @operation()
    def create_schema(self, schema_name: str) -> bool:
        """
        Create ``schema_name`` in its own committed unit of work.

        Returns:
            True if the schema was created, False if it already existed

        Raises:
            InvalidSchemaNameError: If the name fails validation
            SchemaCreationError: If the DDL fails or the schema is not visible
                on a fresh connection right after commit
        """
        validate_schema_name(schema_name)

        try:
            with self.engine.connect() as conn:
                if self.dialect.schema_exists(conn, schema_name):
                    self.logger.info("Schema already exists", extra={"schema_name": schema_name})
                    return False

                self.dialect.create_schema(conn, schema_name)
                self._grant_application_role(conn, schema_name)
                conn.commit()
        except SQLAlchemyError as e:
            raise SchemaCreationError(
                f"Failed to create schema {schema_name}: {e}", schema_name, cause=e
            ) from e

        if not self.schema_exists(schema_name):
            raise SchemaCreationError(
                f"Schema {schema_name} is not visible after creation", schema_name
            )

        self.logger.info("Schema created", extra={"schema_name": schema_name})
        return True

    def _grant_application_role(self, conn, schema_name: str) -> None:
        role = self.config.application_role
        if not role:
            return
        if not self.dialect.supports_grants:
            self.logger.debug(
                "Backend has no roles; skipping grant",
                extra={"schema_name": schema_name, "role": role},
            )
            return
        self.dialect.grant_schema_access(conn, schema_name, role)

    @operation()
    def initialize_schema_with_data(self, schema_name: str, tenant_id: str) -> None:
        """
        Create the tenant tables, their indexes and the seed rows as one transaction.

        Any failing statement rolls back the whole unit, so a partial table
        set never persists.

        Raises:
            InvalidSchemaNameError: If the name fails validation
            InitializationError: If the schema is missing or any statement fails
        """
        validate_schema_name(schema_name)

        try:
            with self.router.scoped_connection(schema_name) as conn:
                if not self.dialect.schema_exists(conn, schema_name):
                    raise InitializationError(
                        f"Schema does not exist: {schema_name}", schema_name, tenant_id=tenant_id
                    )

                for table in TENANT_TABLES:
                    conn.execute(CreateTable(table, if_not_exists=True))
                for index in TENANT_INDEXES:
                    conn.execute(CreateIndex(index, if_not_exists=True))

                if not self.dialect.table_exists(conn, schema_name, dashboards.name):
                    raise InitializationError(
                        f"Dashboards table was not created in schema {schema_name}",
                        schema_name,
                        tenant_id=tenant_id,
                    )

                self.seed_data.insert(conn, schema_name, tenant_id)
        except SQLAlchemyError as e:
            raise InitializationError(
                f"Failed to initialize tenant schema {schema_name}: {e}",
                schema_name,
                tenant_id=tenant_id,
                cause=e,
            ) from e

        self.logger.info(
            "Schema initialized with tables and seed data",
            extra={"schema_name": schema_name, "tenant_id": tenant_id},
        )

    @operation()
    def drop_schema(self, schema_name: str) -> None:
        """Drop ``schema_name`` and everything in it. Missing schemas are ignored."""
        validate_schema_name(schema_name)
        self.logger.warning("Dropping schema", extra={"schema_name": schema_name})

        try:
            with self.engine.connect() as conn:
                self.dialect.drop_schema(conn, schema_name)
                conn.commit()
        except (SQLAlchemyError, OSError) as e:
            raise ProvisioningError(
                f"Failed to drop schema {schema_name}: {e}",
                schema_name,
                error_code=ErrorCode.DATABASE_ERROR,
                operation="drop_schema",
                cause=e,
            ) from e

        self.logger.info("Schema dropped", extra={"schema_name": schema_name})

    # ==================== CATALOG ====================

    def _catalog_error(self, action: str, schema_name: str, error: Exception) -> ServiceError:
        return ServiceError(
            f"Failed to {action} for schema {schema_name}: {error}",
            error_code=ErrorCode.DATABASE_ERROR,
            operation=action.replace(" ", "_"),
            schema_name=schema_name,
            cause=error,
        )

    def schema_exists(self, schema_name: str) -> bool:
        validate_schema_name(schema_name)
        try:
            with self.engine.connect() as conn:
                return self.dialect.schema_exists(conn, schema_name)
        except SQLAlchemyError as e:
            raise self._catalog_error("check schema existence", schema_name, e) from e

    def list_table_names(self, schema_name: str) -> List[str]:
        validate_schema_name(schema_name)
        try:
            with self.engine.connect() as conn:
                return self.dialect.table_names(conn, schema_name)
        except SQLAlchemyError as e:
            raise self._catalog_error("list tables", schema_name, e) from e

    def get_table_count(self, schema_name: str) -> int:
        return len(self.list_table_names(schema_name))

    def get_catalog_fact(self, schema_name: str) -> SchemaCatalogFact:
        """Existence and table list for ``schema_name`` read over one fresh connection."""
        validate_schema_name(schema_name)
        try:
            with self.engine.connect() as conn:
                if not self.dialect.schema_exists(conn, schema_name):
                    return SchemaCatalogFact(schema_name=schema_name, exists=False)
                names = self.dialect.table_names(conn, schema_name)
        except SQLAlchemyError as e:
            raise self._catalog_error("read catalog", schema_name, e) from e

        return SchemaCatalogFact(
            schema_name=schema_name, exists=True, table_count=len(names), table_names=names
        )

    def list_tenant_schemas(self, prefix: Optional[str] = None) -> List[str]:
        """Names of all schemas starting with ``prefix`` (default: the configured tenant prefix)."""
        prefix = self.config.schema_prefix if prefix is None else prefix
        try:
            with self.engine.connect() as conn:
                return self.dialect.list_schemas(conn, prefix)
        except SQLAlchemyError as e:
            raise self._catalog_error("list schemas", prefix or "*", e) from e

    def get_schema_size(self, schema_name: str) -> Optional[int]:
        validate_schema_name(schema_name)
        try:
            with self.engine.connect() as conn:
                return self.dialect.schema_size(conn, schema_name)
        except SQLAlchemyError as e:
            raise self._catalog_error("read schema size", schema_name, e) from e

    @operation()
    def get_schema_statistics(self, schema_name: str) -> SchemaStatistics:
        """Table and index counts, size on disk and per-table row counts."""
        fact = self.get_catalog_fact(schema_name)
        if not fact.exists:
            return SchemaStatistics(schema_name=schema_name, exists=False)

        try:
            with self.router.scoped_connection(schema_name) as conn:
                index_count = self.dialect.index_count(conn, schema_name)
                row_counts = {
                    table.name: conn.execute(select(func.count()).select_from(table)).scalar_one()
                    for table in TENANT_TABLES
                    if table.name in fact.table_names
                }
        except SQLAlchemyError as e:
            raise self._catalog_error("collect statistics", schema_name, e) from e

        return SchemaStatistics(
            schema_name=schema_name,
            exists=True,
            table_count=fact.table_count,
            index_count=index_count,
            size_bytes=self.get_schema_size(schema_name),
            row_counts=row_counts,
        )
