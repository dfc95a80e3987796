from flask import Blueprint, jsonify, request
from audit.models import AuditLog

audit_bp = Blueprint('audit', __name__, url_prefix='/api/audit')


@audit_bp.route('/logs', methods=['GET'])
def get_all_logs():
    query = AuditLog.query
    table_name = request.args.get("table_name")
    record_id = request.args.get("record_id", type=int)
    if table_name:
        query = query.filter_by(table_name=table_name)
    if record_id is not None:
        query = query.filter_by(record_id=record_id)
    limit = min(request.args.get("limit", 100, type=int) or 100, 500)
    logs = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify([log.to_dict() for log in logs]), 200
