"""
Pydantic schemas for tenant records and provisioning outcomes.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..constants import ProvisioningState, TenantStatus


class TenantRead(BaseModel):
    """
    Tenant identity and status as seen by provisioning and routing.
    """

    id: str
    name: str
    subdomain: str
    schema_name: str
    status: TenantStatus = TenantStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ResolvedTenant(BaseModel):
    """A routing context's resolved (tenant id, schema name) pair."""

    tenant_id: str
    schema_name: str

    model_config = ConfigDict(frozen=True)


class ProvisioningResult(BaseModel):
    """
    Outcome of one successful provisioning attempt.

    ``verified`` is False when verification timed out and the attempt was
    accepted optimistically.
    """

    tenant_id: str
    schema_name: str
    state: ProvisioningState = ProvisioningState.PROVISIONED
    verified: bool
    schema_already_existed: bool = False
    table_count: int = 0
    duration_ms: float = 0.0


class SchemaCatalogFact(BaseModel):
    """What the live catalog says about a schema at the moment it was queried."""

    schema_name: str
    exists: bool
    table_count: int = 0
    table_names: List[str] = Field(default_factory=list)


class SchemaStatistics(BaseModel):
    """Size and content summary for a tenant schema."""

    schema_name: str
    exists: bool
    table_count: int = 0
    index_count: int = 0
    size_bytes: Optional[int] = None
    row_counts: Dict[str, int] = Field(default_factory=dict)
