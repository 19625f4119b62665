"""
Backend-specific schema mechanics.

A tenant schema is a PostgreSQL schema in production. On SQLite (development
and tests) it is a database file attached to the connection under the schema
name, so the same qualified table names work on both backends. Everything
above this module talks to a SchemaDialect and never to information_schema,
PRAGMAs or the filesystem directly.
"""

import os
import sqlite3
from typing import List, Optional, Sequence

from sqlalchemy import event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ..exceptions import ErrorCode, ServiceError
from ..utils.logger import get_logger
from .naming import IDENTIFIER_PATTERN, quote_identifier, quote_schema_name

logger = get_logger()


class SchemaDialect:
    """Catalog queries, schema DDL and resolution-path handling for one backend."""

    name = "generic"
    supports_grants = False
    supports_search_path = False

    def configure_engine(self, engine: Engine) -> None:
        """Install any engine-level hooks the backend needs."""

    def prepare_connection(self, conn: Connection, schema_name: str) -> bool:
        """Make ``schema_name`` addressable on ``conn``. Returns False if it does not exist."""
        return True

    def schema_exists(self, conn: Connection, schema_name: str) -> bool:
        raise NotImplementedError

    def create_schema(self, conn: Connection, schema_name: str) -> None:
        raise NotImplementedError

    def grant_schema_access(self, conn: Connection, schema_name: str, role: str) -> bool:
        return False

    def drop_schema(self, conn: Connection, schema_name: str) -> None:
        raise NotImplementedError

    def table_names(self, conn: Connection, schema_name: str) -> List[str]:
        raise NotImplementedError

    def index_count(self, conn: Connection, schema_name: str) -> int:
        raise NotImplementedError

    def schema_size(self, conn: Connection, schema_name: str) -> Optional[int]:
        return None

    def list_schemas(self, conn: Connection, prefix: str = "") -> List[str]:
        raise NotImplementedError

    def get_search_path(self, conn: Connection) -> Optional[str]:
        return None

    def set_search_path(self, conn: Connection, search_path: Optional[str]) -> None:
        """Set the session resolution path. No-op where the backend has none."""

    def scoped_search_path(self, schema_name: str) -> str:
        return quote_schema_name(schema_name)

    def table_count(self, conn: Connection, schema_name: str) -> int:
        return len(self.table_names(conn, schema_name))

    def table_exists(self, conn: Connection, schema_name: str, table_name: str) -> bool:
        return table_name in self.table_names(conn, schema_name)


class PostgresSchemaDialect(SchemaDialect):
    """PostgreSQL: schemas, information_schema and the session search_path."""

    name = "postgresql"
    supports_grants = True
    supports_search_path = True

    def schema_exists(self, conn: Connection, schema_name: str) -> bool:
        result = conn.execute(
            text("SELECT 1 FROM information_schema.schemata WHERE schema_name = :schema"),
            {"schema": schema_name},
        )
        return result.first() is not None

    def create_schema(self, conn: Connection, schema_name: str) -> None:
        conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {quote_schema_name(schema_name)}"))

    def grant_schema_access(self, conn: Connection, schema_name: str, role: str) -> bool:
        statement = text(
            f"GRANT ALL ON SCHEMA {quote_schema_name(schema_name)} "
            f"TO {quote_identifier(role, field='application_role')}"
        )
        # A savepoint keeps a failed grant from aborting the CREATE SCHEMA transaction
        try:
            with conn.begin_nested():
                conn.execute(statement)
        except SQLAlchemyError as e:
            logger.warning(
                "Could not grant schema access; continuing without grant",
                extra={"schema_name": schema_name, "role": role, "error": str(e)},
            )
            return False
        return True

    def drop_schema(self, conn: Connection, schema_name: str) -> None:
        conn.execute(text(f"DROP SCHEMA IF EXISTS {quote_schema_name(schema_name)} CASCADE"))

    def table_names(self, conn: Connection, schema_name: str) -> List[str]:
        result = conn.execute(
            text(
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = :schema AND table_type = 'BASE TABLE' "
                "ORDER BY table_name"
            ),
            {"schema": schema_name},
        )
        return [row[0] for row in result]

    def index_count(self, conn: Connection, schema_name: str) -> int:
        result = conn.execute(
            text(
                "SELECT count(*) FROM pg_indexes "
                "WHERE schemaname = :schema AND indexname NOT LIKE '%\\_pkey' "
                "AND indexname NOT LIKE '%\\_key'"
            ),
            {"schema": schema_name},
        )
        return int(result.scalar() or 0)

    def schema_size(self, conn: Connection, schema_name: str) -> Optional[int]:
        result = conn.execute(
            text(
                "SELECT COALESCE(SUM(pg_total_relation_size("
                "quote_ident(schemaname) || '.' || quote_ident(tablename))), 0) "
                "FROM pg_tables WHERE schemaname = :schema"
            ),
            {"schema": schema_name},
        )
        return int(result.scalar() or 0)

    def list_schemas(self, conn: Connection, prefix: str = "") -> List[str]:
        result = conn.execute(
            text("SELECT schema_name FROM information_schema.schemata ORDER BY schema_name")
        )
        return [row[0] for row in result if row[0].startswith(prefix)]

    def get_search_path(self, conn: Connection) -> Optional[str]:
        return conn.execute(text("SELECT current_setting('search_path')")).scalar()

    def set_search_path(self, conn: Connection, search_path: Optional[str]) -> None:
        if search_path is None:
            return
        # set_config takes the path as a bound value; nothing is formatted into SQL
        conn.execute(
            text("SELECT set_config('search_path', :search_path, false)"),
            {"search_path": search_path},
        )

    def scoped_search_path(self, schema_name: str) -> str:
        return f"{quote_schema_name(schema_name)}, public"


class SqliteSchemaDialect(SchemaDialect):
    """
    SQLite: one database file per tenant schema, attached on demand.

    Files live in ``schema_directory`` as ``<schema_name>.db``; a file on disk
    is a schema that exists. The engine is switched to explicit BEGIN so that
    DDL is transactional and rolls back with the rest of a unit of work.
    """

    name = "sqlite"

    def __init__(self, schema_directory: Optional[str]):
        self.schema_directory = schema_directory

    def configure_engine(self, engine: Engine) -> None:
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    def _require_directory(self) -> str:
        if not self.schema_directory:
            raise ServiceError(
                "SQLite schema_directory is not configured",
                error_code=ErrorCode.CONFIGURATION_ERROR,
                operation="resolve_schema_path",
            )
        return self.schema_directory

    def schema_path(self, schema_name: str) -> str:
        quote_schema_name(schema_name)
        return os.path.join(self._require_directory(), f"{schema_name}.db")

    @staticmethod
    def _driver_execute(conn: Connection, statement: str, params: Sequence = ()):
        # ATTACH and DETACH are refused inside a transaction, so they go straight
        # to the driver connection before SQLAlchemy autobegins one
        try:
            return conn.connection.driver_connection.execute(statement, params)
        except sqlite3.Error as e:
            raise OperationalError(statement, params, e) from e

    def _attached(self, conn: Connection) -> List[str]:
        return [row[1] for row in self._driver_execute(conn, "PRAGMA database_list").fetchall()]

    def prepare_connection(self, conn: Connection, schema_name: str) -> bool:
        """
        Attach the schema file to ``conn`` if it is not attached yet.

        A connection that has already begun a transaction cannot attach, so a
        caller-supplied connection must be scoped before its first statement.

        Raises:
            ServiceError: PRECONDITION_FAILED if ``conn`` is inside a transaction
                and ``schema_name`` is not attached to it
        """
        if schema_name in self._attached(conn):
            return True
        path = self.schema_path(schema_name)
        if not os.path.isfile(path):
            return False
        if conn.in_transaction():
            raise ServiceError(
                f"Cannot attach schema {schema_name} to a connection inside a transaction",
                error_code=ErrorCode.PRECONDITION_FAILED,
                operation="prepare_connection",
                schema_name=schema_name,
            )
        self._driver_execute(conn, f"ATTACH DATABASE ? AS {quote_schema_name(schema_name)}", (path,))
        return True

    def schema_exists(self, conn: Connection, schema_name: str) -> bool:
        return os.path.isfile(self.schema_path(schema_name))

    def create_schema(self, conn: Connection, schema_name: str) -> None:
        if self.prepare_connection(conn, schema_name):
            return
        os.makedirs(self._require_directory(), exist_ok=True)
        quoted = quote_schema_name(schema_name)
        self._driver_execute(conn, f"ATTACH DATABASE ? AS {quoted}", (self.schema_path(schema_name),))
        # Writing the header is what puts the file on disk
        self._driver_execute(conn, f"PRAGMA {quoted}.user_version = 1")

    def drop_schema(self, conn: Connection, schema_name: str) -> None:
        if schema_name in self._attached(conn):
            self._driver_execute(conn, f"DETACH DATABASE {quote_schema_name(schema_name)}")
        path = self.schema_path(schema_name)
        if os.path.exists(path):
            os.remove(path)

    def table_names(self, conn: Connection, schema_name: str) -> List[str]:
        if not self.prepare_connection(conn, schema_name):
            return []
        result = conn.execute(
            text(
                f"SELECT name FROM {quote_schema_name(schema_name)}.sqlite_master "
                "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
            )
        )
        return [row[0] for row in result]

    def index_count(self, conn: Connection, schema_name: str) -> int:
        if not self.prepare_connection(conn, schema_name):
            return 0
        # Automatic indexes for PRIMARY KEY / UNIQUE have no SQL text
        result = conn.execute(
            text(
                f"SELECT count(*) FROM {quote_schema_name(schema_name)}.sqlite_master "
                "WHERE type = 'index' AND sql IS NOT NULL"
            )
        )
        return int(result.scalar() or 0)

    def schema_size(self, conn: Connection, schema_name: str) -> Optional[int]:
        path = self.schema_path(schema_name)
        if not os.path.isfile(path):
            return None
        return os.path.getsize(path)

    def list_schemas(self, conn: Connection, prefix: str = "") -> List[str]:
        directory = self._require_directory()
        if not os.path.isdir(directory):
            return []
        names = []
        for filename in os.listdir(directory):
            stem, extension = os.path.splitext(filename)
            if extension == ".db" and IDENTIFIER_PATTERN.fullmatch(stem) and stem.startswith(prefix):
                names.append(stem)
        return sorted(names)


def get_schema_dialect(dialect_name: str, schema_directory: Optional[str] = None) -> SchemaDialect:
    """Return the SchemaDialect for a SQLAlchemy dialect name."""
    if dialect_name == "postgresql":
        return PostgresSchemaDialect()
    if dialect_name == "sqlite":
        return SqliteSchemaDialect(schema_directory)
    raise ServiceError(
        f"Unsupported database dialect for tenant schemas: {dialect_name}",
        error_code=ErrorCode.CONFIGURATION_ERROR,
        operation="get_schema_dialect",
    )
