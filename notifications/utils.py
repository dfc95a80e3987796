# notifications/utils.py
import logging

from extensions import db
from notifications.models import NotificationOutbox

logger = logging.getLogger(__name__)


def enqueue_notifications(commands) -> int:
    """
    Queue notification commands for the dispatcher.
    Best-effort: runs after the ledger commit and never raises.
    """
    if not commands:
        return 0
    try:
        rows = [
            NotificationOutbox(recipient=c.to, subject=c.subject, body=c.body, type=c.ntype)
            for c in commands
        ]
        db.session.add_all(rows)
        db.session.commit()
        return len(rows)
    except Exception:
        db.session.rollback()
        logger.exception("Failed to enqueue %s notification(s)", len(commands))
        return 0
