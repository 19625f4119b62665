"""
Tenant registry record.

The registry is owned by the tenant lifecycle layer; provisioning only reads
the schema name and moves the status field through its transitions.
"""

from sqlalchemy import Column, Index, String

from ..constants import TenantStatus
from .db_base import TimestampMixin, UUIDMixin
from .db_config import Base


class Tenant(Base, UUIDMixin, TimestampMixin):
    """Registry row: one per tenant, pointing at its schema."""

    __tablename__ = "tenants"

    name = Column(String(200), nullable=False)
    subdomain = Column(String(100), nullable=False, unique=True)
    schema_name = Column(String(63), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default=TenantStatus.PENDING.value)

    __table_args__ = (Index("ix_tenants_status", "status"),)
