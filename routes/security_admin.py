from datetime import datetime, timedelta, timezone

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import func

from models import db
from models.db import utcnow
from models.login_attempt import LoginAttempt
from models.security_alert import (
    ACTIVE_STATUSES,
    ALERT_SEVERITIES,
    ALERT_STATUSES,
    ALERT_TYPES,
    SecurityAlert,
)
from security.alert_lifecycle import transition_alert
from security.errors import AlertNotFound, InvalidTransitionError, StorageError, ValidationError
from security.login_attempts import normalize_email
from security.rbac import require_account_types

security_bp = Blueprint("security_admin", __name__, url_prefix="/admin/security")


class _BadQuery(Exception):
    pass


def _limit() -> int:
    limit = request.args.get("limit", type=int) or 200
    return max(1, min(limit, 500))


def _time_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise _BadQuery(f"Invalid {name}: expected ISO-8601 timestamp")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _choice_arg(name: str, allowed):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    if raw not in allowed:
        raise _BadQuery(f"Invalid {name}: must be one of {', '.join(allowed)}")
    return raw


@security_bp.errorhandler(_BadQuery)
def _bad_query(exc):
    return jsonify(error=str(exc)), 400


@security_bp.get("/login-attempts")
@require_account_types("admin")
def list_login_attempts():
    q = LoginAttempt.query

    email = request.args.get("email")
    if email:
        q = q.filter(LoginAttempt.email == normalize_email(email))
    ip = request.args.get("ip")
    if ip:
        q = q.filter(LoginAttempt.ip_address == ip)

    success = request.args.get("success")
    if success is not None and success != "":
        q = q.filter(LoginAttempt.success.is_(success.lower() in ("1", "true", "yes")))

    min_risk = request.args.get("min_risk", type=int)
    if min_risk is not None:
        q = q.filter(LoginAttempt.risk_score >= min_risk)

    since, until = _time_arg("since"), _time_arg("until")
    if since:
        q = q.filter(LoginAttempt.created_at >= since)
    if until:
        q = q.filter(LoginAttempt.created_at <= until)

    rows = q.order_by(LoginAttempt.created_at.desc(), LoginAttempt.id.desc()).limit(_limit()).all()
    return jsonify([r.to_dict() for r in rows]), 200


@security_bp.get("/alerts")
@require_account_types("admin")
def list_alerts():
    q = SecurityAlert.query

    status = _choice_arg("status", ALERT_STATUSES)
    if status:
        q = q.filter(SecurityAlert.status == status)
    severity = _choice_arg("severity", ALERT_SEVERITIES)
    if severity:
        q = q.filter(SecurityAlert.severity == severity)
    alert_type = _choice_arg("alert_type", ALERT_TYPES)
    if alert_type:
        q = q.filter(SecurityAlert.alert_type == alert_type)
    email = request.args.get("email")
    if email:
        q = q.filter(SecurityAlert.email == normalize_email(email))

    since, until = _time_arg("since"), _time_arg("until")
    if since:
        q = q.filter(SecurityAlert.created_at >= since)
    if until:
        q = q.filter(SecurityAlert.created_at <= until)

    rows = q.order_by(SecurityAlert.created_at.desc(), SecurityAlert.id.desc()).limit(_limit()).all()
    return jsonify([r.to_dict() for r in rows]), 200


@security_bp.get("/alerts/<int:alert_id>")
@require_account_types("admin")
def get_alert(alert_id: int):
    alert = db.session.get(SecurityAlert, alert_id)
    if alert is None:
        return jsonify(error="Security alert not found"), 404

    out = alert.to_dict()
    out["login_attempt"] = alert.login_attempt.to_dict() if alert.login_attempt else None
    return jsonify(out), 200


@security_bp.post("/alerts/<int:alert_id>/transition")
@require_account_types("admin")
def transition(alert_id: int):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    notes = data.get("notes")
    if not isinstance(status, str) or not status:
        return jsonify(error="status is required"), 400
    if notes is not None and not isinstance(notes, str):
        return jsonify(error="notes must be a string"), 400

    try:
        alert = transition_alert(alert_id, status, g.user.id, notes=notes)
    except AlertNotFound as exc:
        return jsonify(error=str(exc)), 404
    except ValidationError as exc:
        return jsonify(error=str(exc)), 400
    except InvalidTransitionError as exc:
        return jsonify(error=str(exc), status=exc.current), 409
    except StorageError:
        return jsonify(error="Security alert store unavailable"), 503

    return jsonify(alert.to_dict()), 200


@security_bp.get("/summary")
@require_account_types("admin")
def summary():
    since = utcnow() - timedelta(hours=24)
    high_risk = current_app.config.get("ALERT_HIGH_RISK_THRESHOLD", 70)

    open_by_severity = dict(
        db.session.query(SecurityAlert.severity, func.count(SecurityAlert.id))
        .filter(SecurityAlert.status.in_(ACTIVE_STATUSES))
        .group_by(SecurityAlert.severity)
        .all()
    )

    recent = LoginAttempt.query.filter(LoginAttempt.created_at >= since)
    return jsonify(
        open_alerts={sev: open_by_severity.get(sev, 0) for sev in ALERT_SEVERITIES},
        last_24h={
            "attempts": recent.count(),
            "failed": recent.filter(LoginAttempt.success.is_(False)).count(),
            "blocked": recent.filter(LoginAttempt.blocked.is_(True)).count(),
            "high_risk": recent.filter(LoginAttempt.risk_score >= high_risk).count(),
        },
    ), 200
