# notifications/dispatcher.py
import logging
from datetime import datetime

import requests
from flask import current_app

from extensions import db
from notifications.models import NotificationOutbox

logger = logging.getLogger(__name__)


class HttpEmailSender:
    """Posts messages to a transactional e-mail HTTP API."""

    def __init__(self, url, api_key, sender, timeout=10):
        self.url = url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    def send(self, to, subject, body):
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {"from": self.sender, "to": [to], "subject": subject, "text": body}
        r = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        r.raise_for_status()
        return r.json() if r.content else {}


class LogSender:
    """Used when no e-mail API is configured."""

    def send(self, to, subject, body):
        logger.info("Notification to %s: %s", to, subject)
        return {"status": "logged"}


def get_sender(config=None):
    config = config or current_app.config
    url = config.get("NOTIFY_API_URL")
    if not url:
        return LogSender()
    return HttpEmailSender(url, config.get("NOTIFY_API_KEY"), config.get("NOTIFY_FROM"))


def process_outbox(sender=None, max_attempts=None, batch_size=100):
    """
    Deliver pending outbox rows. A failed send stays pending until it has
    been tried `max_attempts` times, then it is marked failed.
    """
    sender = sender or get_sender()
    max_attempts = max_attempts or current_app.config.get("OUTBOX_MAX_ATTEMPTS", 5)

    pending = (
        NotificationOutbox.query.filter_by(status="pending")
        .order_by(NotificationOutbox.created_at, NotificationOutbox.id)
        .limit(batch_size)
        .all()
    )
    sent = 0
    for row in pending:
        try:
            sender.send(row.recipient, row.subject, row.body)
            row.status = "sent"
            row.sent_at = datetime.utcnow()
            sent += 1
        except Exception as e:
            row.attempts = (row.attempts or 0) + 1
            row.last_error = str(e)[:2000]
            if row.attempts >= max_attempts:
                row.status = "failed"
            logger.warning("Notification %s to %s failed (attempt %s): %s",
                           row.id, row.recipient, row.attempts, e)
        row.updated_at = datetime.utcnow()
        db.session.commit()

    if pending:
        logger.info("Outbox run finished: %s/%s sent", sent, len(pending))
    return sent
