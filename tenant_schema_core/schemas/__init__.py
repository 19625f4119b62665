from .tenant_schema import (
    ProvisioningResult,
    ResolvedTenant,
    SchemaCatalogFact,
    SchemaStatistics,
    TenantRead,
)

__all__ = [
    "ProvisioningResult",
    "ResolvedTenant",
    "SchemaCatalogFact",
    "SchemaStatistics",
    "TenantRead",
]
