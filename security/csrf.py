import hmac
import secrets

from flask import current_app, jsonify, request

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"


def issue_csrf_token(resp):
    """Double-submit cookie: readable by client JS, echoed back in CSRF_HEADER."""
    resp.set_cookie(
        CSRF_COOKIE,
        secrets.token_urlsafe(32),
        httponly=False,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return resp


def require_csrf():
    cookie_token = request.cookies.get(CSRF_COOKIE) or ""
    header_token = request.headers.get(CSRF_HEADER) or ""
    if not cookie_token or not hmac.compare_digest(cookie_token, header_token):
        return jsonify(error="CSRF validation failed"), 403
    return None
