# notifications/models.py
from datetime import datetime
from extensions import db


class NotificationOutbox(db.Model):
    """Outbound e-mail waiting for the background dispatcher."""
    __tablename__ = "notification_outbox"

    id         = db.Column(db.Integer, primary_key=True)
    recipient  = db.Column(db.String(255), nullable=False)
    subject    = db.Column(db.String(255), nullable=False)
    body       = db.Column(db.Text, nullable=False)
    type       = db.Column(db.String(50), nullable=False, default="info")   # info|funding|repayment|delivery|dispute
    status     = db.Column(db.String(32), nullable=False, default="pending", index=True)  # pending|sent|failed
    attempts   = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    sent_at    = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient": self.recipient,
            "subject": self.subject,
            "type": self.type,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": self.created_at.strftime("%Y-%m-%d %H:%M:%S") if self.created_at else None,
            "sent_at": self.sent_at.strftime("%Y-%m-%d %H:%M:%S") if self.sent_at else None,
        }

    def __repr__(self) -> str:
        return f"<NotificationOutbox id={self.id} to={self.recipient} status={self.status}>"
