"""
One provisioning attempt for one tenant.

Start -> schema ensured -> initialized -> verified (or accepted), or on any
failure -> conditional cleanup -> aborted with a typed error.
"""

import time
from typing import Optional

from ..config import ProvisioningConfig, get_config
from ..constants import TENANT_TABLE_COUNT, ProvisioningState
from ..context.operation_context import operation
from ..db.db_config import DatabaseManager
from ..db.naming import validate_schema_name
from ..exceptions import BaseError, ProvisioningError, VerificationTimeoutError
from ..schemas.tenant_schema import ProvisioningResult
from ..utils.logger import get_logger
from .provisioning_service import SchemaProvisioningService
from .verification import VerificationCoordinator


class TenantProvisioner:
    """
    Runs provisioning attempts.

    The provisioner does not serialize attempts for the same tenant; callers
    that may race on one tenant must do that themselves (see
    TenantLifecycleService).
    """

    def __init__(
        self,
        provisioning_service: Optional[SchemaProvisioningService] = None,
        verification: Optional[VerificationCoordinator] = None,
        config: Optional[ProvisioningConfig] = None,
        db_manager: Optional[DatabaseManager] = None,
    ):
        self.config = config or get_config().provisioning
        self.provisioning_service = provisioning_service or SchemaProvisioningService(
            db_manager, config=self.config
        )
        self.verification = verification or VerificationCoordinator(
            self.provisioning_service, config=self.config
        )
        self.logger = get_logger()

    @operation()
    def provision(
        self,
        tenant_id: str,
        schema_name: str,
        require_verification: Optional[bool] = None,
    ) -> ProvisioningResult:
        """
        Provision ``schema_name`` for ``tenant_id``.

        An existing schema with the full table set only goes through
        verification; an existing schema missing tenant tables is initialized
        first. Either way it is never dropped by cleanup. A verification miss is logged and
        accepted (``verified=False``) unless ``require_verification`` is set,
        in which case VerificationTimeoutError is raised and the schema is
        kept.

        Raises:
            InvalidSchemaNameError: Before any statement is issued
            SchemaCreationError, InitializationError, VerificationTimeoutError:
                With ``state_reached`` and ``cleanup_performed`` in their context
            ProvisioningError: Wrapping any other failure
        """
        validate_schema_name(schema_name)

        strict = self.config.require_verification if require_verification is None else require_verification
        started = time.time()
        state = ProvisioningState.NOT_PROVISIONED
        initialized = False
        already_existed = False

        try:
            state = ProvisioningState.SCHEMA_CREATING
            if self.provisioning_service.schema_exists(schema_name):
                already_existed = True
                existing_tables = self.provisioning_service.get_table_count(schema_name)
                if existing_tables < TENANT_TABLE_COUNT:
                    # Left behind between schema creation and initialization
                    self.logger.warning(
                        "Existing schema is missing tenant tables; initializing it",
                        extra={
                            "tenant_id": tenant_id,
                            "schema_name": schema_name,
                            "table_count": existing_tables,
                        },
                    )
                    state = ProvisioningState.TABLES_INITIALIZING
                    self.provisioning_service.initialize_schema_with_data(schema_name, tenant_id)
                else:
                    self.logger.info(
                        "Schema already exists; skipping creation and initialization",
                        extra={"tenant_id": tenant_id, "schema_name": schema_name},
                    )
                initialized = True
            else:
                self.provisioning_service.create_schema(schema_name)
                state = ProvisioningState.TABLES_INITIALIZING
                self.provisioning_service.initialize_schema_with_data(schema_name, tenant_id)
                initialized = True

            state = ProvisioningState.VERIFYING
            verified = self.verification.verify_with_retry(
                schema_name,
                self.config.verification_max_attempts,
                self.config.verification_delay_seconds,
            )
            if not verified:
                if strict:
                    raise VerificationTimeoutError(
                        schema_name, self.config.verification_max_attempts, tenant_id=tenant_id
                    )
                self.logger.warning(
                    "Verification did not confirm the schema; accepting initialization result",
                    extra={"tenant_id": tenant_id, "schema_name": schema_name},
                )
            table_count = self.provisioning_service.get_table_count(schema_name)

        except Exception as e:
            error = e if isinstance(e, BaseError) else ProvisioningError(
                f"Provisioning failed for schema {schema_name}: {e}",
                schema_name,
                tenant_id=tenant_id,
                cause=e,
            )
            cleanup_performed = self._cleanup(schema_name, error, initialized, already_existed)
            error.add_context(
                tenant_id=tenant_id,
                state_reached=state.value,
                cleanup_performed=cleanup_performed,
            )
            if error is e:
                raise
            raise error from e

        result = ProvisioningResult(
            tenant_id=tenant_id,
            schema_name=schema_name,
            state=ProvisioningState.PROVISIONED,
            verified=verified,
            schema_already_existed=already_existed,
            table_count=table_count,
            duration_ms=(time.time() - started) * 1000,
        )
        self.logger.info(
            "Tenant provisioned",
            extra={
                "tenant_id": tenant_id,
                "schema_name": schema_name,
                "verified": verified,
                "table_count": table_count,
            },
        )
        return result

    def _cleanup(
        self, schema_name: str, error: Exception, initialized: bool, already_existed: bool
    ) -> bool:
        if already_existed:
            # This attempt did not create the schema, so it is not ours to drop
            self.logger.warning(
                "Provisioning of existing schema failed; leaving schema in place",
                extra={"schema_name": schema_name, "error": str(error)},
            )
            return False
        return self.verification.cleanup_after_failure(schema_name, error, initialized)
