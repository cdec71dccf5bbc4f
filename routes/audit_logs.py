from flask import Blueprint, jsonify, request

from models.audit_log import AuditLog
from security.rbac import require_account_types

audit_bp = Blueprint("audit", __name__, url_prefix="/admin")


@audit_bp.get("/audit-logs")
@require_account_types("admin")
def list_audit_logs():
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 500))

    q = AuditLog.query
    action = request.args.get("action")
    if action:
        q = q.filter(AuditLog.action == action)
    user_id = request.args.get("user_id", type=int)
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)
    entity = request.args.get("entity")
    if entity:
        q = q.filter(AuditLog.entity == entity)

    rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify([
        {
            "id": r.id,
            "created_at": r.timestamp.isoformat() if r.timestamp else None,
            "user_id": r.user_id,
            "action": r.action,
            "entity": r.entity,
            "entity_id": r.entity_id,
            "ip": r.ip,
            "user_agent": r.user_agent,
            "metadata": r.metadata_json,
        }
        for r in rows
    ]), 200
