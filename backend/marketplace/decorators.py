# Overview: Request decorators for API routes; resolve the caller and enforce roles.

from functools import wraps
from flask import request, jsonify, g

from .principal import Principal, VALID_ROLES


HEADER_USER_ID = "X-User-Id"
HEADER_ROLE = "X-User-Role"
HEADER_PROFILE_ID = "X-Profile-Id"


def _parse_int(value):
    if value is None or not str(value).strip():
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def require_principal(f):
    """
    Resolve the caller from the identity gateway headers.

    Sets g.principal to a Principal. The role comes from the gateway as-is;
    profile tables are never probed to guess it.

    Returns 401 if:
    - X-User-Id is missing or not an integer
    - X-User-Role is not brand, creator or admin
    - a brand/creator request has no usable X-Profile-Id
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = _parse_int(request.headers.get(HEADER_USER_ID))
        role = (request.headers.get(HEADER_ROLE) or "").strip().lower()
        profile_id = _parse_int(request.headers.get(HEADER_PROFILE_ID))

        if user_id is None:
            return jsonify({"error": "Authentication required"}), 401
        if role not in VALID_ROLES:
            return jsonify({"error": "Invalid or missing role"}), 401
        if role != "admin" and profile_id is None:
            return jsonify({"error": "Profile context required"}), 401

        g.principal = Principal(user_id=user_id, role=role, profile_id=profile_id)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Restrict a route to the given roles. Use after @require_principal.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return jsonify({"error": "Authentication required"}), 401
            if principal.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
