"""
Factory Boy factories for tenant registry rows.
"""

import factory

from tenant_schema_core.constants import TenantStatus
from tenant_schema_core.db import Tenant
from tenant_schema_core.db.db_base import new_uuid
from tenant_schema_core.db.naming import schema_name_for_subdomain


class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    """Base factory with common patterns."""

    class Meta:
        abstract = True
        sqlalchemy_session_persistence = "commit"


class TenantFactory(BaseFactory):
    """Factory for registry tenants; schema_name follows the subdomain convention."""

    class Meta:
        model = Tenant

    id = factory.LazyFunction(new_uuid)
    name = factory.Faker("company")
    subdomain = factory.Sequence(lambda n: f"tenant-{n}")
    schema_name = factory.LazyAttribute(lambda o: schema_name_for_subdomain(o.subdomain))
    status = TenantStatus.PENDING.value
