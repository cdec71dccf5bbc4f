from flask import Blueprint, current_app, g, jsonify, request

from models import db
from models.db import utcnow
from models.user import User
from security.csrf import issue_csrf_token
from security.login_attempts import AttemptInput, normalize_email, record_attempt_safely, should_block_attempt
from security.password import verify_password
from security.session import create_session, revoke_all_sessions, revoke_session
from utils.audit import log_event
from utils.auth_context import login_required
from utils.request_info import client_ip, client_user_agent

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

# account status -> (failure_reason, message)
_INACTIVE_STATUS = {
    "pending": ("account_pending", "Your account is pending admin approval"),
    "suspended": ("account_suspended", "Your account has been suspended"),
    "rejected": ("other", "Your account has been rejected"),
}


def _record(email: str, success: bool, user=None, failure_reason=None, blocked=False):
    return record_attempt_safely(AttemptInput(
        email=email,
        success=success,
        ip_address=client_ip(),
        user_type=user.account_type if user else None,
        user_id=user.id if user else None,
        failure_reason=failure_reason,
        user_agent=client_user_agent(),
        blocked=blocked,
    ))


def _user_json(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "account_type": user.account_type,
        "status": user.status,
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
    }


@auth_bp.post("/login")
def login():
    """Unified login for every account type. Each call records exactly one attempt."""
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""

    if not email or not password:
        return jsonify(error="Please provide email and password"), 400

    if should_block_attempt(email, client_ip()):
        _record(email, False, failure_reason="other", blocked=True)
        log_event("LOGIN_BLOCKED", metadata={"email": email})
        current_app.logger.warning("Blocked login attempt for %s from %s", email, client_ip())
        return jsonify(error="Too many failed login attempts. Please try again later."), 429

    user = User.query.filter_by(email=email).first()
    if not verify_password(password, user.password_hash if user else None):
        reason = "invalid_password" if user else "user_not_found"
        attempt = _record(email, False, user=user, failure_reason=reason)
        log_event(
            "LOGIN_FAIL",
            user_id=user.id if user else None,
            metadata={
                "email": email,
                "reason": reason,
                "risk_score": attempt.risk_score if attempt else None,
            },
        )
        return jsonify(error="Invalid email or password"), 401

    if user.status in _INACTIVE_STATUS:
        reason, message = _INACTIVE_STATUS[user.status]
        _record(email, False, user=user, failure_reason=reason)
        log_event("LOGIN_FAIL", user_id=user.id, metadata={"email": email, "reason": reason})
        return jsonify(error=message, status=user.status), 403

    attempt = _record(email, True, user=user)

    user.last_login_at = utcnow()
    db.session.commit()

    # Rotate: revoke any existing sessions for this user
    revoked_count = revoke_all_sessions(user.id)
    raw_token = create_session(user.id)

    resp = jsonify(message="Login OK", user=_user_json(user))
    resp.set_cookie(
        current_app.config.get("AUTH_COOKIE_NAME", "loginguard_session"),
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60),
        path="/",
    )
    resp = issue_csrf_token(resp)

    log_event(
        "LOGIN_SUCCESS",
        user_id=user.id,
        metadata={
            "revoked_sessions": revoked_count,
            "risk_score": attempt.risk_score if attempt else None,
        },
    )
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(_user_json(g.user)), 200


@auth_bp.post("/logout")
@login_required
def logout():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "loginguard_session")
    revoke_session(request.cookies.get(cookie_name))
    log_event("LOGOUT", user_id=g.user.id)

    resp = jsonify(message="Logged out")
    resp.delete_cookie(cookie_name, path="/")
    return resp, 200
