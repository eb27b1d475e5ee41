# Overview: Request-context and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


STAFF_ROLES = frozenset({"super_admin", "owner", "admin", "manager", "budtender", "staff"})


def _has_context() -> bool:
    return hasattr(g, "user_id") and hasattr(g, "tenant_id")


def require_context(f):
    """
    Establish tenant and principal context from the upstream gateway.

    Authentication happens before requests reach this service; the gateway
    forwards the verified identity as headers:
    - X-Tenant-Id   -> g.tenant_id (organization id, required, integer)
    - X-User-Id     -> g.user_id   (required)
    - X-User-Role   -> g.role      (defaults to "customer")

    Returns 401 when either required header is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_header = (request.headers.get("X-Tenant-Id") or "").strip()
        user_id = (request.headers.get("X-User-Id") or "").strip()

        if not tenant_header or not user_id:
            return jsonify({"error": "Authentication required"}), 401

        try:
            tenant_id = int(tenant_header)
        except ValueError:
            return jsonify({"error": "Invalid session: missing tenant context"}), 401

        g.tenant_id = tenant_id
        g.user_id = user_id
        g.role = (request.headers.get("X-User-Role") or "customer").strip().lower()

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Require one of the given roles (after @require_context)."""
    allowed = frozenset(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _has_context():
                return jsonify({"error": "Authentication required"}), 401

            if g.role not in allowed:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": sorted(allowed),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_staff(f):
    return require_role(*STAFF_ROLES)(f)


def is_staff() -> bool:
    return _has_context() and g.role in STAFF_ROLES
