"""Tenant schema provisioning: DDL, seed data, verification and cleanup."""

from .provisioner import TenantProvisioner
from .provisioning_service import SchemaProvisioningService
from .seed_data import DEFAULT_SEED_DATA, SeedData
from .verification import VerificationCoordinator

__all__ = [
    "DEFAULT_SEED_DATA",
    "SchemaProvisioningService",
    "SeedData",
    "TenantProvisioner",
    "VerificationCoordinator",
]
