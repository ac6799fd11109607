# Overview: Caller identity and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services.tenant_service import (
    CallerContext,
    TenantAccessError,
    build_caller_context,
)


def _has_caller() -> bool:
    return isinstance(getattr(g, "caller", None), CallerContext)


def require_caller(f):
    """
    Establish the caller identity for the request.

    The upstream auth collaborator has already authenticated the user and
    forwards the identity in trusted headers:
    - X-User-Id
    - X-User-Role (owner, manager, attendant)
    - X-Tenant-Schema (optional; falls back to DEFAULT_TENANT_SCHEMA)

    Sets g.caller to a CallerContext. Returns 401 when the identity is
    missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.caller = build_caller_context(
                request.headers.get("X-User-Id"),
                request.headers.get("X-User-Role"),
                request.headers.get("X-Tenant-Schema") or current_app.config.get("DEFAULT_TENANT_SCHEMA"),
            )
        except TenantAccessError as e:
            return jsonify({"error": "Authentication required", "message": str(e)}), 401

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Require the caller to hold one of the given roles."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_caller was called first
            if not _has_caller():
                return jsonify({"error": "Authentication required"}), 401

            if g.caller.role not in roles:
                current_app.logger.warning(
                    "Role denied user=%s role=%s path=%s required=%s",
                    g.caller.user_id, g.caller.role, request.path, ",".join(roles),
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                    "message": f"Requires one of: {', '.join(roles)}"
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
