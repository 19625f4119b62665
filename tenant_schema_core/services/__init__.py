"""Tenant lookup and lifecycle services built on the provisioning engine."""

from .lifecycle_service import TenantLifecycleService
from .tenant_directory import SqlTenantDirectory, TenantDirectory

__all__ = ["SqlTenantDirectory", "TenantDirectory", "TenantLifecycleService"]
