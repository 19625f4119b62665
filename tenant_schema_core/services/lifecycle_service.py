"""
Tenant lifecycle around provisioning.

Moves the durable status on the registry record through
PENDING/PROVISIONING -> ACTIVE around a provisioning attempt, restores the
pre-attempt status when the attempt fails, and allows at most one in-flight
attempt per tenant.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Set

from ..config import ProvisioningConfig, get_config
from ..constants import TenantStatus
from ..context.operation_context import operation
from ..db.db_config import DatabaseManager, get_db_manager
from ..exceptions import ErrorCode, ServiceError, not_found
from ..provisioning.provisioner import TenantProvisioner
from ..schemas.tenant_schema import ProvisioningResult, TenantRead
from ..utils.logger import get_logger
from .tenant_directory import SqlTenantDirectory

PROVISIONABLE_STATUSES = frozenset({TenantStatus.PENDING, TenantStatus.PROVISIONING})


class TenantLifecycleService:
    """Provisioning and deprovisioning of registered tenants."""

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        provisioner: Optional[TenantProvisioner] = None,
        directory: Optional[SqlTenantDirectory] = None,
        config: Optional[ProvisioningConfig] = None,
    ):
        self.db_manager = db_manager or get_db_manager()
        self.config = config or get_config().provisioning
        self.directory = directory or SqlTenantDirectory(self.db_manager)
        self.provisioner = provisioner or TenantProvisioner(
            config=self.config, db_manager=self.db_manager
        )
        self.logger = get_logger()

        self._in_flight: Set[str] = set()
        self._in_flight_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    def _require_tenant(self, tenant_id: str) -> TenantRead:
        tenant = self.directory.get_tenant_by_id(tenant_id)
        if tenant is None:
            raise not_found("Tenant", tenant_id=tenant_id)
        return tenant

    def _claim(self, tenant_id: str) -> None:
        with self._in_flight_lock:
            if tenant_id in self._in_flight:
                raise ServiceError(
                    f"Provisioning already in progress for tenant {tenant_id}",
                    error_code=ErrorCode.CONFLICT,
                    operation="provision_tenant",
                    tenant_id=tenant_id,
                )
            self._in_flight.add(tenant_id)

    def _release(self, tenant_id: str) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(tenant_id)

    def is_provisioning(self, tenant_id: str) -> bool:
        with self._in_flight_lock:
            return tenant_id in self._in_flight

    @operation()
    def provision_tenant(
        self, tenant_id: str, require_verification: Optional[bool] = None
    ) -> ProvisioningResult:
        """
        Provision a registered tenant and mark it ACTIVE.

        Raises:
            RepositoryError: NOT_FOUND if the tenant is not registered
            ServiceError: INVALID_STATE_TRANSITION if the tenant is not
                PENDING or PROVISIONING, CONFLICT if an attempt for the same
                tenant is already running
            ProvisioningError: From the attempt itself; the tenant's status
                is back to its pre-attempt value when this propagates
        """
        self._claim(tenant_id)
        try:
            tenant = self._require_tenant(tenant_id)
            if tenant.status not in PROVISIONABLE_STATUSES:
                raise ServiceError(
                    f"Tenant {tenant_id} cannot be provisioned from status {tenant.status.value}",
                    error_code=ErrorCode.INVALID_STATE_TRANSITION,
                    operation="provision_tenant",
                    tenant_id=tenant_id,
                    status=tenant.status.value,
                )

            previous_status = tenant.status
            self.directory.update_status(tenant_id, TenantStatus.PROVISIONING)
            try:
                result = self.provisioner.provision(
                    tenant_id, tenant.schema_name, require_verification=require_verification
                )
                self.directory.update_status(tenant_id, TenantStatus.ACTIVE)
            except Exception:
                self.directory.update_status(tenant_id, previous_status)
                self.logger.warning(
                    "Provisioning failed; tenant status restored",
                    extra={"tenant_id": tenant_id, "tenant_status": previous_status.value},
                )
                raise

            return result
        finally:
            self._release(tenant_id)

    def provision_tenant_async(
        self, tenant_id: str, require_verification: Optional[bool] = None
    ) -> "Future[ProvisioningResult]":
        """Run provision_tenant on a worker thread; the whole attempt is one unit."""
        return self._get_executor().submit(
            self.provision_tenant, tenant_id, require_verification
        )

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.max_provisioning_workers,
                    thread_name_prefix="tenant-provisioning",
                )
            return self._executor

    @operation()
    def deprovision_tenant(self, tenant_id: str) -> TenantRead:
        """Drop the tenant's schema and archive the registry record."""
        tenant = self._require_tenant(tenant_id)
        if self.is_provisioning(tenant_id):
            raise ServiceError(
                f"Cannot deprovision tenant {tenant_id} while provisioning is in progress",
                error_code=ErrorCode.CONFLICT,
                operation="deprovision_tenant",
                tenant_id=tenant_id,
            )
        self.provisioner.provisioning_service.drop_schema(tenant.schema_name)
        return self.directory.update_status(tenant_id, TenantStatus.ARCHIVED)

    @operation()
    def verify_tenant_provisioning(self, tenant_id: str) -> bool:
        """True if the tenant is ACTIVE and its schema exists with at least one table."""
        tenant = self._require_tenant(tenant_id)
        fact = self.provisioner.provisioning_service.get_catalog_fact(tenant.schema_name)
        verified = (
            fact.exists and fact.table_count > 0 and tenant.status == TenantStatus.ACTIVE
        )
        self.logger.info(
            "Tenant provisioning check",
            extra={
                "tenant_id": tenant_id,
                "schema_name": tenant.schema_name,
                "exists": fact.exists,
                "table_count": fact.table_count,
                "tenant_status": tenant.status.value,
                "verified": verified,
            },
        )
        return verified

    def shutdown(self, wait: bool = True) -> None:
        """Stop the async provisioning workers."""
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None
