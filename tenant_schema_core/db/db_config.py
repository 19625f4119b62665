"""
Database connection settings and the process-wide DatabaseManager.

The manager owns the engine for the tenant registry and the SchemaDialect
that knows how tenant schemas exist on that backend.
"""

import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

from ..constants import EnvironmentVariable
from ..exceptions import ErrorCode, ServiceError, ValidationError
from ..utils.logger import get_logger
from .dialects import SchemaDialect, get_schema_dialect

# Registry models only; tenant tables are Core tables on their own MetaData
Base: Any = declarative_base()

SUPPORTED_DB_TYPES = ("postgres", "sqlite")


class DatabaseConfig(BaseModel):
    """Where the registry lives and, for SQLite, where tenant schema files go."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    db_type: str = "postgres"
    database: str
    host: str = ""
    port: str = "5432"
    username: str = ""
    password: str = ""
    url: Optional[str] = None
    schema_directory: Optional[str] = None
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    echo: bool = False
    development_mode: bool = False

    def get_connection_string(self) -> str:
        """
        SQLAlchemy URL for the registry database; ``url`` wins when set.

        Raises:
            ValidationError: Missing Postgres credentials (MISSING_REQUIRED) or
                an unknown ``db_type`` (INVALID_FORMAT)
        """
        if self.url:
            return self.url

        db_type = self.db_type.lower()
        if db_type == "sqlite":
            return f"sqlite:///{self.database}"
        if db_type != "postgres":
            raise ValidationError(
                f"Unsupported database type: {self.db_type}",
                field="db_type",
                error_code=ErrorCode.INVALID_FORMAT,
                value=self.db_type,
                supported=SUPPORTED_DB_TYPES,
            )

        missing = [
            name
            for name in ("host", "database", "username", "password")
            if not getattr(self, name)
        ]
        if missing:
            raise ValidationError(
                f"Missing Postgres settings: {', '.join(missing)}",
                field="database_config",
                error_code=ErrorCode.MISSING_REQUIRED,
                missing=missing,
            )
        return URL.create(
            "postgresql",
            username=self.username,
            password=self.password,
            host=self.host,
            port=int(self.port),
            database=self.database,
        ).render_as_string(hide_password=False)

    def get_schema_directory(self) -> Optional[str]:
        """Directory holding per-tenant SQLite files; defaults to ``tenant_schemas`` beside the registry file."""
        if self.schema_directory:
            return self.schema_directory
        if self.db_type.lower() != "sqlite" or self.database in ("", ":memory:"):
            return None
        return os.path.join(os.path.dirname(os.path.abspath(self.database)), "tenant_schemas")

    def __repr__(self) -> str:
        shown = ", ".join(
            f"{name}='{getattr(self, name)}'" for name in ("db_type", "host", "port", "database", "username")
        )
        return f"DatabaseConfig({shown}, password='***')"


class DatabaseManager:
    """Owns the engine, the session factory and the backend SchemaDialect."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.engine = self._create_engine()
        self.dialect: SchemaDialect = get_schema_dialect(
            self.engine.dialect.name, config.get_schema_directory()
        )
        self.dialect.configure_engine(self.engine)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def _engine_options(self, connection_string: str) -> Dict[str, Any]:
        if connection_string.startswith("sqlite"):
            # Tenant files are attached per connection, so connections are never reused
            return {"poolclass": NullPool, "connect_args": {"check_same_thread": False}}
        return {
            "pool_size": self.config.pool_size,
            "max_overflow": self.config.max_overflow,
            "pool_timeout": self.config.pool_timeout,
            "pool_pre_ping": True,
        }

    def _create_engine(self) -> Engine:
        connection_string = self.config.get_connection_string()
        return create_engine(
            connection_string, echo=self.config.echo, **self._engine_options(connection_string)
        )

    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop the registry tables. Only allowed with ``development_mode``."""
        if not self.config.development_mode:
            raise ServiceError(
                "Refusing to drop registry tables outside development mode",
                error_code=ErrorCode.CONFIGURATION_ERROR,
                operation="drop_tables",
            )
        Base.metadata.drop_all(self.engine)

    def get_session(self) -> Session:
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Session committed when the block exits normally, rolled back otherwise.

        Usage:
            with db_manager.session_scope() as session:
                session.add(tenant)
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "false").lower() == "true"


def get_development_config() -> DatabaseConfig:
    """SQLite registry for local work (``DEV_DB_PATH``, ``TENANT_SCHEMA_DIRECTORY``)."""
    return DatabaseConfig(
        db_type="sqlite",
        database=os.environ.get("DEV_DB_PATH", "./tenant_registry.db"),
        schema_directory=os.environ.get(EnvironmentVariable.SCHEMA_DIRECTORY.value),
        echo=_env_flag("DB_ECHO"),
        development_mode=True,
    )


def get_production_config() -> DatabaseConfig:
    """PostgreSQL registry from the ``DB_*`` environment variables."""
    env = os.environ.get
    return DatabaseConfig(
        db_type="postgres",
        host=env("DB_HOST", "localhost"),
        port=env("DB_PORT", "5432"),
        database=env("DB_NAME", "tenant_db"),
        username=env("DB_USER", "postgres"),
        password=env("DB_PASSWORD", ""),
        pool_size=int(env("DB_POOL_SIZE", "5")),
        max_overflow=int(env("DB_MAX_OVERFLOW", "10")),
        pool_timeout=int(env("DB_POOL_TIMEOUT", "30")),
        echo=_env_flag("DB_ECHO"),
        development_mode=False,
    )


def import_all_models():
    """Register the registry models with Base.metadata."""
    from sqlalchemy.orm import configure_mappers

    from .db_tenant_models import Tenant  # noqa

    configure_mappers()


_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """
    The process-wide DatabaseManager.

    Raises:
        ServiceError: CONFIGURATION_ERROR if initialize_db() has not run
    """
    if _db_manager is None:
        raise ServiceError(
            "Database manager not initialized. Call initialize_db() first.",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            operation="get_db_manager",
        )
    return _db_manager


def set_db_manager(manager: Optional[DatabaseManager]) -> None:
    global _db_manager
    _db_manager = manager


def initialize_db(config: Optional[DatabaseConfig] = None) -> DatabaseManager:
    """Create the process-wide manager (production settings by default) and the registry tables."""
    global _db_manager

    config = config or get_production_config()
    get_logger().info("Initializing tenant registry database", extra={"db_type": config.db_type})

    import_all_models()
    _db_manager = DatabaseManager(config)
    _db_manager.create_tables()
    return _db_manager


def close_db() -> None:
    global _db_manager
    if _db_manager is not None:
        _db_manager.close()
        _db_manager = None
