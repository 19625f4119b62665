"""Tests for database configuration and the database manager."""

import os

import pytest

from tenant_schema_core.db.db_config import (
    DatabaseConfig,
    DatabaseManager,
    close_db,
    get_db_manager,
    get_development_config,
    get_production_config,
    initialize_db,
    set_db_manager,
)
from tenant_schema_core.db.db_tenant_models import Tenant
from tenant_schema_core.exceptions import ErrorCode, ServiceError, ValidationError


class TestDatabaseConfig:
    def test_sqlite_connection_string(self, tmp_path):
        config = DatabaseConfig(db_type="sqlite", database=str(tmp_path / "r.db"))
        assert config.get_connection_string() == f"sqlite:///{tmp_path / 'r.db'}"

    def test_postgres_connection_string(self):
        config = DatabaseConfig(
            db_type="postgres", host="db", database="tenants", username="app", password="secret"
        )
        assert config.get_connection_string() == "postgresql://app:secret@db:5432/tenants"

    def test_postgres_requires_credentials(self):
        config = DatabaseConfig(db_type="postgres", database="tenants")
        with pytest.raises(ValidationError) as exc_info:
            config.get_connection_string()
        assert exc_info.value.error_code == ErrorCode.MISSING_REQUIRED

    def test_url_overrides_parts(self):
        config = DatabaseConfig(database="ignored", url="postgresql://u:p@h/d")
        assert config.get_connection_string() == "postgresql://u:p@h/d"

    def test_unsupported_type(self):
        with pytest.raises(ValidationError):
            DatabaseConfig(db_type="oracle", database="x").get_connection_string()

    def test_default_schema_directory(self, tmp_path):
        config = DatabaseConfig(db_type="sqlite", database=str(tmp_path / "r.db"))
        assert config.get_schema_directory() == os.path.join(str(tmp_path), "tenant_schemas")

    def test_no_schema_directory_for_memory_db(self):
        config = DatabaseConfig(db_type="sqlite", database=":memory:")
        assert config.get_schema_directory() is None

    def test_repr_masks_password(self):
        config = DatabaseConfig(database="tenants", password="secret")
        assert "secret" not in repr(config)
        assert "***" in repr(config)

    def test_development_config(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DEV_DB_PATH", str(tmp_path / "dev.db"))
        monkeypatch.setenv("TENANT_SCHEMA_DIRECTORY", str(tmp_path / "schemas"))
        config = get_development_config()
        assert config.db_type == "sqlite"
        assert config.development_mode is True
        assert config.get_schema_directory() == str(tmp_path / "schemas")

    def test_production_config(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "pg")
        monkeypatch.setenv("DB_NAME", "tenants")
        monkeypatch.setenv("DB_USER", "app")
        monkeypatch.setenv("DB_PASSWORD", "secret")
        monkeypatch.setenv("DB_POOL_SIZE", "2")
        config = get_production_config()
        assert config.get_connection_string() == "postgresql://app:secret@pg:5432/tenants"
        assert config.pool_size == 2
        assert config.development_mode is False


class TestDatabaseManager:
    def test_registry_table_created(self, db_manager):
        with db_manager.session_scope() as session:
            assert session.query(Tenant).count() == 0

    def test_session_scope_rolls_back_on_error(self, db_manager):
        with pytest.raises(RuntimeError):
            with db_manager.session_scope() as session:
                session.add(
                    Tenant(name="Acme", subdomain="acme", schema_name="tenant_acme")
                )
                session.flush()
                raise RuntimeError("abort")

        with db_manager.session_scope() as session:
            assert session.query(Tenant).count() == 0

    def test_drop_tables_requires_development_mode(self, tmp_path):
        manager = DatabaseManager(
            DatabaseConfig(db_type="sqlite", database=str(tmp_path / "r.db"), development_mode=False)
        )
        try:
            with pytest.raises(ServiceError):
                manager.drop_tables()
        finally:
            manager.close()

    def test_global_manager_must_be_initialized(self):
        set_db_manager(None)
        with pytest.raises(ServiceError) as exc_info:
            get_db_manager()
        assert exc_info.value.error_code == ErrorCode.CONFIGURATION_ERROR

    def test_global_manager(self, db_manager):
        assert get_db_manager() is db_manager

    def test_initialize_and_close_db(self, tmp_path):
        manager = initialize_db(DatabaseConfig(db_type="sqlite", database=str(tmp_path / "r.db")))
        try:
            assert get_db_manager() is manager
            with manager.session_scope() as session:
                assert session.query(Tenant).count() == 0
        finally:
            close_db()

        with pytest.raises(ServiceError):
            get_db_manager()
