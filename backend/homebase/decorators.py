# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


OWNER_HEADER = "X-Owner-Id"


def require_owner(f):
    """
    Establish owner context for document routes.

    The upstream gateway authenticates the caller and forwards the owning
    account in the X-Owner-Id header. Sets:
    - g.owner_id: the owner every query in the request is scoped to

    Returns 401 if the header is missing or not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(OWNER_HEADER) or "").strip()

        if not raw:
            return jsonify({"error": "Owner context required"}), 401

        if not raw.isdigit() or int(raw) <= 0:
            return jsonify({"error": "Invalid owner context"}), 401

        g.owner_id = int(raw)
        return f(*args, **kwargs)

    return decorated_function
