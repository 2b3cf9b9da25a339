# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


ACTOR_HEADER = "X-User-Id"


def require_actor(f):
    """
    Require the acting user id and expose it as ``g.current_user_id``.

    Authentication happens upstream; the gateway forwards the authenticated
    user's id in the X-User-Id header. Returns 401 when the header is missing
    or is not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not raw.isdigit() or int(raw) <= 0:
            return jsonify({"error": "Authentication required"}), 401

        g.current_user_id = int(raw)
        return f(*args, **kwargs)

    return decorated_function
