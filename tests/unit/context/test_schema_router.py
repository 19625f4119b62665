"""
Tests for SchemaRouter connection scoping and cross-tenant isolation.

Uses real provisioned SQLite tenant schemas; concurrency tests run scoped
units of work on a thread pool.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select

from tenant_schema_core.db.db_tenant_tables import datasets
from tenant_schema_core.exceptions import ErrorCode, InvalidSchemaNameError, ServiceError


@pytest.fixture
def two_tenants(provisioner):
    provisioner.provision("tenant-a", "tenant_a")
    provisioner.provision("tenant-b", "tenant_b")
    return "tenant_a", "tenant_b"


def insert_dataset(conn, name):
    conn.execute(datasets.insert().values(name=name))


def dataset_names(conn):
    return sorted(conn.execute(select(datasets.c.name)).scalars())


class TestScopedConnection:
    def test_unqualified_tables_resolve_to_schema(self, schema_router, two_tenants):
        schema_a, schema_b = two_tenants

        with schema_router.scoped_connection(schema_a) as conn:
            insert_dataset(conn, "a-only")

        with schema_router.scoped_connection(schema_a) as conn:
            assert dataset_names(conn) == ["a-only"]
        with schema_router.scoped_connection(schema_b) as conn:
            assert dataset_names(conn) == []

    def test_rolls_back_on_error(self, schema_router, two_tenants):
        schema_a, _ = two_tenants

        with pytest.raises(RuntimeError):
            with schema_router.scoped_connection(schema_a) as conn:
                insert_dataset(conn, "discarded")
                raise RuntimeError("handler failed")

        with schema_router.scoped_connection(schema_a) as conn:
            assert dataset_names(conn) == []

    def test_restores_caller_connection(self, db_manager, schema_router, two_tenants):
        schema_a, schema_b = two_tenants

        with db_manager.engine.connect() as conn:
            db_manager.dialect.prepare_connection(conn, schema_b)
            conn.execution_options(schema_translate_map={None: schema_b})

            with schema_router.scoped_connection(schema_a, connection=conn) as scoped:
                assert scoped is conn
                assert conn.get_execution_options()["schema_translate_map"] == {None: schema_a}
                insert_dataset(conn, "via-caller")

            assert conn.get_execution_options()["schema_translate_map"] == {None: schema_b}
            assert dataset_names(conn) == []
            conn.commit()

        with schema_router.scoped_connection(schema_a) as conn:
            assert dataset_names(conn) == ["via-caller"]

    def test_restores_after_exception(self, db_manager, schema_router, two_tenants):
        schema_a, _ = two_tenants

        with db_manager.engine.connect() as conn:
            with pytest.raises(ValueError):
                with schema_router.scoped_connection(schema_a, connection=conn):
                    raise ValueError("boom")

            assert conn.get_execution_options().get("schema_translate_map") is None

    def test_caller_connection_must_be_scoped_before_use(self, db_manager, schema_router, two_tenants):
        schema_a, _ = two_tenants

        with db_manager.engine.connect() as conn:
            conn.execute(select(1))
            with pytest.raises(ServiceError) as exc_info:
                with schema_router.scoped_connection(schema_a, connection=conn):
                    pass

        assert exc_info.value.error_code == ErrorCode.PRECONDITION_FAILED

    def test_invalid_schema_name(self, schema_router, statement_spy):
        statement_spy.clear()
        with pytest.raises(InvalidSchemaNameError):
            with schema_router.scoped_connection("tenant_a; DROP TABLE datasets"):
                pass
        assert statement_spy == []

    def test_execute_in_scoped_schema(self, schema_router, two_tenants):
        schema_a, schema_b = two_tenants

        schema_router.execute_in_scoped_schema(schema_b, lambda conn: insert_dataset(conn, "b-row"))

        assert schema_router.execute_in_scoped_schema(schema_b, dataset_names) == ["b-row"]
        assert schema_router.execute_in_scoped_schema(schema_a, dataset_names) == []


class TestConcurrentIsolation:
    def test_sequential_alternation(self, schema_router, two_tenants):
        schema_a, schema_b = two_tenants

        for i in range(5):
            schema_router.execute_in_scoped_schema(schema_a, lambda c, i=i: insert_dataset(c, f"a-{i}"))
            schema_router.execute_in_scoped_schema(schema_b, lambda c, i=i: insert_dataset(c, f"b-{i}"))

        names_a = schema_router.execute_in_scoped_schema(schema_a, dataset_names)
        names_b = schema_router.execute_in_scoped_schema(schema_b, dataset_names)
        assert names_a == [f"a-{i}" for i in range(5)]
        assert names_b == [f"b-{i}" for i in range(5)]

    def test_concurrent_writers_per_tenant(self, provisioner, schema_router):
        schemas = [f"tenant_{n}" for n in range(4)]
        for schema in schemas:
            provisioner.provision(f"id-{schema}", schema)

        barrier = threading.Barrier(len(schemas))

        def unit_of_work(schema):
            barrier.wait(timeout=10)
            for i in range(10):
                schema_router.execute_in_scoped_schema(
                    schema, lambda c, i=i: insert_dataset(c, f"{schema}-{i}")
                )
            return schema_router.execute_in_scoped_schema(schema, dataset_names)

        with ThreadPoolExecutor(max_workers=len(schemas)) as pool:
            results = dict(zip(schemas, pool.map(unit_of_work, schemas)))

        for schema, names in results.items():
            assert len(names) == 10
            assert all(name.startswith(f"{schema}-") for name in names)

    def test_concurrent_readers_never_see_other_tenant(self, schema_router, two_tenants):
        schema_a, schema_b = two_tenants
        schema_router.execute_in_scoped_schema(schema_a, lambda c: insert_dataset(c, "a-row"))
        schema_router.execute_in_scoped_schema(schema_b, lambda c: insert_dataset(c, "b-row"))

        def read(schema):
            return schema, schema_router.execute_in_scoped_schema(schema, dataset_names)

        with ThreadPoolExecutor(max_workers=8) as pool:
            observations = list(pool.map(read, [schema_a, schema_b] * 20))

        for schema, names in observations:
            assert names == (["a-row"] if schema == schema_a else ["b-row"])

    def test_row_counts_stay_separate(self, schema_router, two_tenants):
        schema_a, schema_b = two_tenants
        schema_router.execute_in_scoped_schema(schema_a, lambda c: insert_dataset(c, "only-a"))

        def count(conn):
            return conn.execute(select(func.count()).select_from(datasets)).scalar_one()

        assert schema_router.execute_in_scoped_schema(schema_a, count) == 1
        assert schema_router.execute_in_scoped_schema(schema_b, count) == 0
