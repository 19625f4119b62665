"""
Post-provisioning verification and the cleanup policy.

DDL committed on one connection is not guaranteed to be visible to catalog
queries on another one straight away, so verification polls with a bounded
number of attempts and reports a miss as False instead of raising. The same
coordinator decides whether a failed attempt should drop the schema:
a verification-only failure after a completed initialization keeps it.
"""

import time
from typing import Callable, Optional

from ..config import ProvisioningConfig, get_config
from ..context.operation_context import operation
from ..exceptions import BaseError, VerificationTimeoutError
from ..schemas.tenant_schema import SchemaCatalogFact
from ..utils.logger import get_logger
from .provisioning_service import SchemaProvisioningService


class VerificationCoordinator:
    """Polls the live catalog and applies the conditional cleanup policy."""

    def __init__(
        self,
        provisioning_service: SchemaProvisioningService,
        config: Optional[ProvisioningConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provisioning_service = provisioning_service
        self.config = config or provisioning_service.config or get_config().provisioning
        self._sleep = sleep
        self.logger = get_logger()

    @operation()
    def verify_with_retry(
        self,
        schema_name: str,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> bool:
        """
        Poll until the schema exists with the expected number of tables.

        Args:
            schema_name: Schema to check
            max_attempts: Polls before giving up (default from config, 3)
            delay: Seconds between polls (default from config, 0.5)

        Returns:
            True once the schema exists and holds at least the expected number
            of tables, False if every attempt missed
        """
        max_attempts = self.config.verification_max_attempts if max_attempts is None else max_attempts
        delay = self.config.verification_delay_seconds if delay is None else delay
        expected = self.config.expected_table_count

        for attempt in range(1, max_attempts + 1):
            try:
                fact = self.provisioning_service.get_catalog_fact(schema_name)
            except BaseError as e:
                # Already logged by the error itself; a failed poll counts as a miss
                fact = None
                self.logger.warning(
                    "Verification poll failed",
                    extra={"schema_name": schema_name, "attempt": attempt, "error": e.message},
                )

            if fact is not None and fact.exists and fact.table_count >= expected:
                self.logger.info(
                    "Schema verified",
                    extra={
                        "schema_name": schema_name,
                        "attempt": attempt,
                        "table_count": fact.table_count,
                    },
                )
                return True

            self.logger.info(
                "Schema not ready yet",
                extra={
                    "schema_name": schema_name,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "exists": fact.exists if fact else None,
                    "table_count": fact.table_count if fact else None,
                },
            )
            if attempt < max_attempts:
                self._sleep(delay)

        self.logger.warning(
            "Schema verification exhausted all attempts",
            extra={"schema_name": schema_name, "max_attempts": max_attempts},
        )
        return False

    def verify_schema_detailed(self, schema_name: str) -> SchemaCatalogFact:
        """
        Read the catalog once and log what is there.

        Logs the table list when the schema exists, otherwise the tenant
        schemas that do exist, to help diagnose naming mismatches.
        """
        fact = self.provisioning_service.get_catalog_fact(schema_name)
        if fact.exists:
            self.logger.info(
                "Schema contents",
                extra={
                    "schema_name": schema_name,
                    "table_count": fact.table_count,
                    "tables": ", ".join(fact.table_names),
                },
            )
        else:
            existing = self.provisioning_service.list_tenant_schemas()
            self.logger.warning(
                "Schema does not exist",
                extra={"schema_name": schema_name, "existing_schemas": ", ".join(existing)},
            )
        return fact

    @staticmethod
    def is_verification_failure(error: Exception) -> bool:
        if isinstance(error, VerificationTimeoutError):
            return True
        message = error.message if isinstance(error, BaseError) else str(error)
        return "verification" in message.lower()

    def should_cleanup(self, error: Exception, schema_created_successfully: bool) -> bool:
        """
        Decide whether a failed attempt should drop the schema.

        Returns False only when initialization completed and the failure is a
        verification miss; every other failure is cleaned up.
        """
        if schema_created_successfully and self.is_verification_failure(error):
            return False
        return True

    def cleanup_after_failure(
        self, schema_name: str, error: Exception, schema_created_successfully: bool
    ) -> bool:
        """
        Apply the cleanup policy after a failed attempt.

        Waits for in-flight transactions to settle, re-checks that the schema
        exists and drops it only if it does. Failures during cleanup are
        logged and never replace the original error.

        Returns:
            True if the schema was dropped
        """
        if not self.should_cleanup(error, schema_created_successfully):
            self.logger.warning(
                "Skipping cleanup: schema was initialized and only verification failed",
                extra={"schema_name": schema_name, "error": str(error)},
            )
            return False

        self._sleep(self.config.cleanup_settle_seconds)

        try:
            if not self.provisioning_service.schema_exists(schema_name):
                self.logger.info("Nothing to clean up", extra={"schema_name": schema_name})
                return False
            self.provisioning_service.drop_schema(schema_name)
        except Exception as cleanup_error:
            self.logger.error(
                "Cleanup after failed provisioning did not complete",
                extra={"schema_name": schema_name, "cleanup_error": str(cleanup_error)},
                exc_info=True,
            )
            return False

        self.logger.info("Cleaned up schema after failure", extra={"schema_name": schema_name})
        return True
