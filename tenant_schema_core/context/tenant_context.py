"""
Per-unit-of-work tenant routing context.

A RoutingContext is created by the code that owns a unit of work (a request
handler, a job) and passed to whatever needs the current tenant. It is never
stored in a module global or a thread-local, so two units of work running
concurrently on the same thread pool cannot observe each other's tenant.
"""

from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy.engine import Connection

from ..exceptions import BaseError, TenantContextError
from ..schemas.tenant_schema import ResolvedTenant, TenantRead
from ..services.tenant_directory import TenantDirectory
from ..utils.logger import get_logger
from .schema_router import SchemaRouter

T = TypeVar("T")


class RoutingContext:
    """
    The resolved (tenant id, schema name) pair for one unit of work.

    Resolution failures leave the context fully unset, never half set.
    """

    def __init__(self, directory: TenantDirectory, router: SchemaRouter):
        self.directory = directory
        self.router = router
        self.logger = get_logger()
        self._tenant: Optional[ResolvedTenant] = None

    def __enter__(self) -> "RoutingContext":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.clear_context()

    def _resolve(
        self, lookup: Callable[[str], Optional[TenantRead]], key: str, value: str
    ) -> Optional[ResolvedTenant]:
        self.clear_context()
        try:
            tenant = lookup(value)
        except BaseError:
            self.logger.warning(
                "Tenant lookup failed; routing context cleared", extra={key: value}
            )
            raise

        if tenant is None:
            self.logger.warning("Tenant not found; routing context cleared", extra={key: value})
            return None

        self._tenant = ResolvedTenant(tenant_id=tenant.id, schema_name=tenant.schema_name)
        self.logger.debug(
            "Routing context established",
            extra={"tenant_id": tenant.id, "schema_name": tenant.schema_name},
        )
        return self._tenant

    def set_current_tenant(self, tenant_id: str) -> Optional[ResolvedTenant]:
        """
        Resolve ``tenant_id`` and make it the current tenant.

        Returns:
            The resolved pair, or None if the tenant does not exist (the
            context is then unset)

        Raises:
            RepositoryError: If the lookup itself failed; the context is unset
        """
        return self._resolve(self.directory.get_tenant_by_id, "tenant_id", tenant_id)

    def set_current_tenant_by_subdomain(self, subdomain: str) -> Optional[ResolvedTenant]:
        """Resolve ``subdomain`` and make its tenant current. See set_current_tenant."""
        return self._resolve(self.directory.get_tenant_by_subdomain, "subdomain", subdomain)

    def get_current_tenant_id(self) -> Optional[str]:
        return self._tenant.tenant_id if self._tenant else None

    def get_current_schema(self) -> Optional[str]:
        return self._tenant.schema_name if self._tenant else None

    @property
    def current(self) -> Optional[ResolvedTenant]:
        return self._tenant

    def clear_context(self) -> None:
        self._tenant = None

    def validate_context_established(self) -> ResolvedTenant:
        """
        Raises:
            TenantContextError: If no tenant is currently scoped
        """
        if self._tenant is None:
            raise TenantContextError()
        return self._tenant

    @contextmanager
    def scoped_connection(self, connection: Optional[Connection] = None) -> Iterator[Connection]:
        """Connection scoped to the current tenant's schema; fails fast when unset."""
        tenant = self.validate_context_established()
        with self.router.scoped_connection(tenant.schema_name, connection=connection) as conn:
            yield conn

    def execute(self, fn: Callable[[Connection], T], connection: Optional[Connection] = None) -> T:
        """Run ``fn(conn)`` against the current tenant's schema."""
        tenant = self.validate_context_established()
        return self.router.execute_in_scoped_schema(tenant.schema_name, fn, connection=connection)


@contextmanager
def tenant_scope(
    directory: TenantDirectory,
    router: SchemaRouter,
    tenant_id: Optional[str] = None,
    subdomain: Optional[str] = None,
) -> Iterator[RoutingContext]:
    """
    Resolve a tenant for the duration of a block and clear it afterwards.

    Exactly one of ``tenant_id`` and ``subdomain`` must be given. The yielded
    context may be unset if the tenant does not exist.

    Usage:
        with tenant_scope(directory, router, subdomain="acme") as ctx:
            rows = ctx.execute(lambda conn: conn.execute(select(datasets)).all())
    """
    if (tenant_id is None) == (subdomain is None):
        raise ValueError("Exactly one of tenant_id or subdomain is required")

    context = RoutingContext(directory, router)
    try:
        if tenant_id is not None:
            context.set_current_tenant(tenant_id)
        else:
            context.set_current_tenant_by_subdomain(subdomain)
        yield context
    finally:
        context.clear_context()
