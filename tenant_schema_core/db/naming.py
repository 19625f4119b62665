"""
Tenant schema names and identifier quoting.

This module is the only place where a dynamic identifier (schema or role name)
becomes SQL text. Every such identifier is validated against the identifier
grammar first; values are always passed as bound parameters instead.
"""

import re
from typing import Any

from ..constants import DEFAULT_SCHEMA_PREFIX, MAX_IDENTIFIER_LENGTH
from ..exceptions import InvalidSchemaNameError

IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def validate_identifier(value: Any, field: str = "identifier") -> str:
    """
    Validate a dynamic SQL identifier and return it unchanged.

    Raises:
        InvalidSchemaNameError: If the value is not a string, is empty, exceeds
            the backend identifier length, or contains characters outside
            letters, digits and underscore (or starts with a digit).
    """
    if not isinstance(value, str) or not value:
        raise InvalidSchemaNameError(value, "must be a non-empty string", field=field)
    # fullmatch so a trailing newline cannot slip past "$"
    if not IDENTIFIER_PATTERN.fullmatch(value):
        raise InvalidSchemaNameError(
            value,
            "must start with a letter or underscore and contain only letters, digits and underscores",
            field=field,
        )
    if len(value.encode("utf-8")) > MAX_IDENTIFIER_LENGTH:
        raise InvalidSchemaNameError(
            value, f"must be at most {MAX_IDENTIFIER_LENGTH} characters", field=field
        )
    return value


def validate_schema_name(schema_name: Any) -> str:
    """Validate a tenant schema name. Called before any DDL is issued."""
    return validate_identifier(schema_name, field="schema_name")


def quote_identifier(value: Any, field: str = "identifier") -> str:
    """Validate an identifier and return its double-quoted SQL form."""
    return f'"{validate_identifier(value, field=field)}"'


def quote_schema_name(schema_name: Any) -> str:
    """Validated, quoted schema name for use in DDL."""
    return quote_identifier(schema_name, field="schema_name")


def schema_name_for_subdomain(subdomain: str, prefix: str = DEFAULT_SCHEMA_PREFIX) -> str:
    """
    Derive a tenant's schema name from its subdomain.

    ``acme-corp`` becomes ``tenant_acme_corp``. The result is validated, so a
    subdomain that cannot produce a legal identifier raises
    InvalidSchemaNameError.
    """
    if not isinstance(subdomain, str) or not subdomain.strip():
        raise InvalidSchemaNameError(subdomain, "subdomain must be a non-empty string")
    return validate_schema_name(f"{prefix}{subdomain.strip().lower().replace('-', '_')}")
