"""
Test fixtures for the tenant schema core.

Every test gets its own file-backed SQLite registry and schema directory under
pytest's tmp_path, so tenant schemas are real attached database files and no
state leaks between tests.
"""

from typing import List

import pytest
from sqlalchemy import event

from tenant_schema_core.config import ProvisioningConfig, reset_config
from tenant_schema_core.context.schema_router import SchemaRouter
from tenant_schema_core.db.db_config import (
    DatabaseConfig,
    DatabaseManager,
    import_all_models,
    set_db_manager,
)
from tenant_schema_core.exceptions import clear_correlation_id
from tenant_schema_core.provisioning import (
    SchemaProvisioningService,
    TenantProvisioner,
    VerificationCoordinator,
)
from tenant_schema_core.services import SqlTenantDirectory
from tenant_schema_core.utils.logger import reset_logging


@pytest.fixture(autouse=True)
def reset_global_state():
    """Global config, logger and correlation id are process-wide; reset around each test."""
    reset_config()
    reset_logging()
    clear_correlation_id()
    yield
    set_db_manager(None)
    reset_config()
    reset_logging()
    clear_correlation_id()


@pytest.fixture
def db_config(tmp_path) -> DatabaseConfig:
    """SQLite registry database with tenant schema files in a sibling directory."""
    return DatabaseConfig(
        db_type="sqlite",
        database=str(tmp_path / "registry.db"),
        schema_directory=str(tmp_path / "schemas"),
        echo=False,
        development_mode=True,
    )


@pytest.fixture
def db_manager(db_config: DatabaseConfig):
    """Database manager with the registry tables created and installed globally."""
    import_all_models()
    manager = DatabaseManager(db_config)
    manager.create_tables()
    set_db_manager(manager)

    yield manager

    manager.close()


@pytest.fixture
def db_session(db_manager: DatabaseManager):
    """Session bound to the test registry; closed after each test."""
    session = db_manager.get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def provisioning_config() -> ProvisioningConfig:
    """Provisioning settings with no waiting between polls or before cleanup."""
    return ProvisioningConfig(
        verification_max_attempts=3,
        verification_delay_seconds=0,
        cleanup_settle_seconds=0,
        application_role="tenant_user",
        schema_prefix="tenant_",
        require_verification=False,
    )


class SleepRecorder:
    """Stand-in for time.sleep that records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def no_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def statement_spy(db_manager: DatabaseManager):
    """
    Records every SQL statement sent through the engine.

    Usage:
        statement_spy.clear()
        ...
        assert statement_spy == []
    """
    statements: List[str] = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(db_manager.engine, "before_cursor_execute", _record)
    yield statements
    event.remove(db_manager.engine, "before_cursor_execute", _record)


@pytest.fixture
def schema_router(db_manager: DatabaseManager) -> SchemaRouter:
    return SchemaRouter(db_manager)


@pytest.fixture
def provisioning_service(db_manager, provisioning_config) -> SchemaProvisioningService:
    return SchemaProvisioningService(db_manager, config=provisioning_config)


@pytest.fixture
def verification(provisioning_service, provisioning_config, no_sleep) -> VerificationCoordinator:
    return VerificationCoordinator(provisioning_service, config=provisioning_config, sleep=no_sleep)


@pytest.fixture
def provisioner(provisioning_service, verification, provisioning_config) -> TenantProvisioner:
    return TenantProvisioner(
        provisioning_service=provisioning_service,
        verification=verification,
        config=provisioning_config,
    )


@pytest.fixture
def tenant_directory(db_manager) -> SqlTenantDirectory:
    return SqlTenantDirectory(db_manager)


@pytest.fixture
def tenant_factory(db_session):
    """TenantFactory bound to the test session."""
    from tests.fixtures.factories import TenantFactory

    TenantFactory._meta.sqlalchemy_session = db_session
    return TenantFactory
