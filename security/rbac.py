from functools import wraps

from flask import g, jsonify

def require_account_types(*account_types: str):
    """
    Usage: @require_account_types("admin")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401
            if user.account_type not in account_types or user.status != "active":
                return jsonify(error="Forbidden"), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator
