"""
Multi-Tenant Service: schema-per-tenant scoping

WHY: Each tenant owns a full copy of the ledger tables in its own database
schema. The tenant is an explicit, request-scoped parameter: routes build a
CallerContext from the authenticated identity and pass its tenant_schema to
every service call, which binds it to the current transaction.

SECURITY INVARIANTS:
1. Schema names are validated against a strict identifier pattern before
   they are ever interpolated into SQL
2. Binding uses SET LOCAL, so it lasts for one transaction and never leaks to
   the next request that reuses the pooled connection
3. No module-level "current tenant" state exists

USAGE:
    from fuelsync.services.tenant_service import bind_tenant_schema

    def _op():
        bind_tenant_schema(schema)
        ...
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy import text

from ..extensions import db


SCHEMA_NAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")

ROLE_OWNER = "owner"
ROLE_MANAGER = "manager"
ROLE_ATTENDANT = "attendant"

VALID_ROLES = {ROLE_OWNER, ROLE_MANAGER, ROLE_ATTENDANT}


class TenantAccessError(Exception):
    """Raised when the tenant context is missing or malformed."""
    pass


@dataclass(frozen=True)
class CallerContext:
    """
    Pre-authenticated caller identity handed to the core by the HTTP layer.

    The core trusts these values; issuing and verifying them is the job of
    the upstream auth collaborator.
    """
    user_id: str
    role: str
    tenant_schema: str | None = None


def validate_schema_name(schema: str | None) -> str | None:
    """Return the schema name unchanged if valid; None passes through."""
    if schema is None:
        return None
    if not isinstance(schema, str) or not SCHEMA_NAME_PATTERN.match(schema):
        raise TenantAccessError(f"Invalid tenant schema: {schema!r}")
    return schema


def build_caller_context(user_id, role, tenant_schema=None) -> CallerContext:
    """
    Validate raw identity values and build a CallerContext.

    Raises TenantAccessError on missing user, unknown role or bad schema.
    """
    user_id = str(user_id).strip() if user_id is not None else ""
    if not user_id:
        raise TenantAccessError("Caller identity missing user id")

    role = (role or "").strip().lower()
    if role not in VALID_ROLES:
        raise TenantAccessError(f"Unknown role: {role!r}")

    tenant_schema = (tenant_schema or "").strip() or None
    return CallerContext(
        user_id=user_id,
        role=role,
        tenant_schema=validate_schema_name(tenant_schema),
    )


def bind_tenant_schema(schema: str | None) -> None:
    """
    Point the current transaction at the tenant's schema.

    PostgreSQL only; other dialects have a single namespace, so the name is
    validated and otherwise ignored.
    """
    schema = validate_schema_name(schema)
    if schema is None:
        return
    if db.engine.dialect.name != "postgresql":
        return
    db.session.execute(text(f'SET LOCAL search_path TO "{schema}", public'))
