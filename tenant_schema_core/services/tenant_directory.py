"""
Tenant lookup.

Routing and lifecycle code resolve tenants through the TenantDirectory
protocol. SqlTenantDirectory implements it over the registry table; any other
source of tenant identity (an HTTP client, a cache) can stand in for it.
"""

from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..constants import TenantStatus
from ..db.db_config import DatabaseManager, get_db_manager
from ..db.db_tenant_models import Tenant
from ..exceptions import ErrorCode, RepositoryError, not_found
from ..schemas.tenant_schema import TenantRead
from ..utils.logger import get_logger


class TenantDirectory(Protocol):
    def get_tenant_by_id(self, tenant_id: str) -> Optional[TenantRead]: ...

    def get_tenant_by_subdomain(self, subdomain: str) -> Optional[TenantRead]: ...


class SqlTenantDirectory:
    """TenantDirectory backed by the ``tenants`` registry table."""

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db_manager = db_manager or get_db_manager()
        self.logger = get_logger()

    def _get_one(self, column: str, value: str) -> Optional[TenantRead]:
        try:
            with self.db_manager.session_scope() as session:
                tenant = session.scalars(
                    select(Tenant).where(getattr(Tenant, column) == value)
                ).one_or_none()
                return TenantRead.model_validate(tenant) if tenant else None
        except SQLAlchemyError as e:
            raise RepositoryError(
                f"Failed to look up tenant by {column}: {e}",
                cause=e,
                **{column: value},
            ) from e

    def get_tenant_by_id(self, tenant_id: str) -> Optional[TenantRead]:
        return self._get_one("id", tenant_id)

    def get_tenant_by_subdomain(self, subdomain: str) -> Optional[TenantRead]:
        return self._get_one("subdomain", subdomain)

    def update_status(self, tenant_id: str, status: TenantStatus) -> TenantRead:
        """
        Set a tenant's durable status in its own committed transaction.

        Raises:
            RepositoryError: NOT_FOUND if the tenant does not exist
        """
        try:
            with self.db_manager.session_scope() as session:
                tenant = session.get(Tenant, tenant_id)
                if tenant is None:
                    raise not_found("Tenant", tenant_id=tenant_id)
                previous = tenant.status
                tenant.status = TenantStatus(status).value
                session.flush()
                result = TenantRead.model_validate(tenant)
        except SQLAlchemyError as e:
            raise RepositoryError(
                f"Failed to update tenant status: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
                cause=e,
                tenant_id=tenant_id,
            ) from e

        self.logger.info(
            "Tenant status updated",
            extra={"tenant_id": tenant_id, "from_status": previous, "to_status": result.status.value},
        )
        return result
