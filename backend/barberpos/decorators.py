# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

DEFAULT_ROLE = "BARBER"


def require_actor(f):
    """
    Require an already-authenticated actor identity.

    Authentication itself happens upstream (gateway / session layer); this
    boundary only trusts the identity it forwards:
    - X-Actor-Id: positive integer, REQUIRED
    - X-Actor-Role: role name, defaults to BARBER

    Sets g.actor_id and g.actor_role. Returns 401 when the id is missing or
    malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_id = (request.headers.get("X-Actor-Id") or "").strip()
        if not raw_id.isdigit() or int(raw_id) <= 0:
            return jsonify({"error": "Actor identity required", "code": "UNAUTHENTICATED"}), 401

        g.actor_id = int(raw_id)
        g.actor_role = (request.headers.get("X-Actor-Role") or DEFAULT_ROLE).strip().upper()

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the actor's role to be one of roles (default: PRIVILEGED_ROLES).

    Must be applied AFTER @require_actor.

    Usage:
        @require_actor
        @require_role()
        def reconcile_route():
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            role = getattr(g, "actor_role", None)
            if role is None:
                return jsonify({"error": "Actor identity required", "code": "UNAUTHENTICATED"}), 401

            allowed = {r.upper() for r in roles} if roles else set(current_app.config["PRIVILEGED_ROLES"])
            if role not in allowed:
                current_app.logger.warning(
                    "Role %s denied for actor %s on %s %s", role, g.actor_id, request.method, request.path
                )
                return jsonify({
                    "error": "Permission denied",
                    "code": "FORBIDDEN",
                    "details": {"role": role, "allowed": sorted(allowed)},
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
