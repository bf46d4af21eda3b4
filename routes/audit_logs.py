import json

from flask import Blueprint, jsonify, request
from models.audit_log import AuditLog
from security.rbac import require_roles
from utils.i18n import error_response
from utils.slots import parse_day

audit_bp = Blueprint("audit", __name__, url_prefix="/admin")


def _metadata(raw):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


@audit_bp.get("/audit-logs")
@require_roles("ADMIN")
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
        entity_id = request.args.get("entity_id")
        if entity_id:
            q = q.filter(AuditLog.entity_id == entity_id)

    date_str = request.args.get("date")
    if date_str:
        try:
            start, end = parse_day(date_str)
        except ValueError:
            return error_response("invalid_date", 400)
        q = q.filter(AuditLog.timestamp >= start, AuditLog.timestamp < end)

    rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify([
        {
            "id": r.id,
            "created_at": r.timestamp.isoformat(),
            "user_id": r.user_id,
            "action": r.action,
            "entity": r.entity,
            "entity_id": r.entity_id,
            "ip": r.ip,
            "user_agent": r.user_agent,
            "metadata": _metadata(r.metadata_json),
        }
        for r in rows
    ]), 200
