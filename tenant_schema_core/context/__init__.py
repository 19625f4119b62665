"""Operation context and tenant schema routing."""

from .operation_context import OperationContext, operation
from .schema_router import SchemaRouter

# RoutingContext and tenant_scope live in .tenant_context, which depends on
# the services package and is imported from there directly.

__all__ = [
    "operation",
    "OperationContext",
    "SchemaRouter",
]
