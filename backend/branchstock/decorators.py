# Overview: Request decorators for API routes.

from functools import wraps
from flask import current_app, g, jsonify, request


def require_actor(f):
    """
    Resolve the acting user id for a mutating request.

    Identity is established upstream; this only reads the id it forwards
    in the ACTOR_HEADER header (default "X-Actor-Id") and exposes it as
    g.actor_id. Returns 401 when the header is missing or not an integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        header = current_app.config.get("ACTOR_HEADER", "X-Actor-Id")
        raw = (request.headers.get(header) or "").strip()
        if not raw.isdigit() or int(raw) <= 0:
            return jsonify({"error": f"{header} header with a positive user id is required"}), 401

        g.actor_id = int(raw)
        return f(*args, **kwargs)

    return decorated_function
