# Overview: Request and role decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .models.auth import ROLE_ADMIN, ROLE_DEPOT
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def require_auth(f):
    """
    Require a valid session token.

    Sets g.current_user and g.token. Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - Account (or its depot) deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentification requise."}), 401

        user = session_service.validate_session(token)
        if not user:
            return jsonify({"error": "Session invalide ou expirée."}), 401

        g.current_user = user
        g.token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(role: str):
    """Require @require_auth first; 403 when the user has another role."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "current_user"):
                return jsonify({"error": "Authentification requise."}), 401
            if g.current_user.role != role:
                return jsonify({
                    "error": "Accès non autorisé.",
                    "required_role": role,
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def is_admin() -> bool:
    return g.current_user.role == ROLE_ADMIN


def current_depot_scope() -> tuple[str | None, str | None]:
    """
    (depot_id, depot_name) a depot user is restricted to; (None, None) for admins.
    """
    user = g.current_user
    if user.role != ROLE_DEPOT:
        return None, None
    depot = user.depot
    return user.depot_id, (depot.name if depot else None)


def can_access_depot(depot_id: str) -> bool:
    if is_admin():
        return True
    return g.current_user.depot_id == str(depot_id)
