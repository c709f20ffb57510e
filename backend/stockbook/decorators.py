# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


USER_HEADER = "X-User-Id"


def require_user(f):
    """
    Require an acting user and store it on the request.

    Authentication itself happens upstream (the gateway in front of this
    service); it forwards the verified user id in the X-User-Id header.
    Sets g.user_id for routes and services.

    Returns 401 if the header is missing or not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(USER_HEADER) or "").strip()
        if not raw:
            return jsonify({"error": "Authentication required"}), 401

        try:
            user_id = int(raw)
        except ValueError:
            return jsonify({"error": "Invalid user id"}), 401
        if user_id <= 0:
            return jsonify({"error": "Invalid user id"}), 401

        g.user_id = user_id
        return f(*args, **kwargs)

    return decorated_function
