# utils/audit_logger.py
import json
import logging
from datetime import datetime

from audit.models import AuditLog
from extensions import db

logger = logging.getLogger(__name__)


def log_audit_action(admin_user_id, action, table_name, record_id=None, old=None, new=None):
    """
    Record an operator action in the audit table.
    Best-effort: a failed write is logged and rolled back, never raised.
    """
    old_json = json.dumps(old, default=str) if old else None
    new_json = json.dumps(new, default=str) if new else None

    try:
        entry = AuditLog(
            admin_user_id=str(admin_user_id) if admin_user_id is not None else None,
            action=action,
            table_name=table_name,
            record_id=record_id,
            old_value=old_json,
            new_value=new_json,
            timestamp=datetime.utcnow(),
        )
        db.session.add(entry)
        db.session.commit()
        return entry.id
    except Exception:
        db.session.rollback()
        logger.exception("Failed to save audit entry %s on %s/%s", action, table_name, record_id)
        return None
