"""
Connection scoping for tenant schemas.

SchemaRouter hands out connections whose unqualified tenant tables resolve to
one schema. Resolution is bound to the connection itself, through SQLAlchemy's
schema_translate_map and, on PostgreSQL, the session search_path, and is
restored before the connection is released. No process-wide state records
which tenant a connection serves.
"""

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Tuple, TypeVar

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from ..db.db_config import DatabaseManager, get_db_manager
from ..db.naming import validate_schema_name
from ..utils.logger import get_logger

T = TypeVar("T")


class SchemaRouter:
    """Scopes connections to a tenant schema and restores the prior scope afterwards."""

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db_manager = db_manager or get_db_manager()
        self.engine = self.db_manager.engine
        self.dialect = self.db_manager.dialect
        self.logger = get_logger()

    def _enter_scope(self, conn: Connection, schema_name: str) -> Tuple[Optional[str], Any]:
        prior_map = conn.get_execution_options().get("schema_translate_map")
        prior_path = self.dialect.get_search_path(conn) if self.dialect.supports_search_path else None

        conn.execution_options(schema_translate_map={None: schema_name})
        if self.dialect.supports_search_path:
            self.dialect.set_search_path(conn, self.dialect.scoped_search_path(schema_name))
        return prior_path, prior_map

    def _exit_scope(
        self,
        conn: Connection,
        schema_name: str,
        prior_path: Optional[str],
        prior_map: Any,
        commit: bool,
    ) -> None:
        conn.execution_options(schema_translate_map=prior_map)
        if not self.dialect.supports_search_path:
            return
        try:
            self.dialect.set_search_path(conn, prior_path)
            if commit:
                conn.commit()
        except SQLAlchemyError as e:
            # A connection whose path cannot be restored must never serve another tenant
            self.logger.error(
                "Failed to restore search path; invalidating connection",
                extra={"schema_name": schema_name, "error": str(e)},
            )
            conn.invalidate()

    @contextmanager
    def scoped_connection(
        self, schema_name: str, connection: Optional[Connection] = None
    ) -> Iterator[Connection]:
        """
        Yield a connection scoped to ``schema_name``.

        Without ``connection`` a new connection is acquired and the block runs
        as one transaction: committed on normal exit, rolled back on error.
        With ``connection`` the caller's connection is scoped in place and the
        caller keeps control of its transaction. Either way the prior
        resolution path is restored on every exit path.

        Raises:
            InvalidSchemaNameError: If ``schema_name`` fails validation
        """
        validate_schema_name(schema_name)

        if connection is not None:
            self.dialect.prepare_connection(connection, schema_name)
            prior_path, prior_map = self._enter_scope(connection, schema_name)
            try:
                yield connection
            finally:
                self._exit_scope(connection, schema_name, prior_path, prior_map, commit=False)
            return

        conn = self.engine.connect()
        try:
            self.dialect.prepare_connection(conn, schema_name)
            prior_path, prior_map = self._enter_scope(conn, schema_name)
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                self._exit_scope(conn, schema_name, prior_path, prior_map, commit=True)
        finally:
            conn.close()

    def execute_in_scoped_schema(
        self,
        schema_name: str,
        fn: Callable[[Connection], T],
        connection: Optional[Connection] = None,
    ) -> T:
        """Run ``fn(conn)`` with ``conn`` scoped to ``schema_name`` and return its result."""
        with self.scoped_connection(schema_name, connection=connection) as conn:
            return fn(conn)
