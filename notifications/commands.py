# notifications/commands.py
from dataclasses import dataclass


@dataclass(frozen=True)
class NotificationCommand:
    """An outbound message the caller should deliver after the ledger commit."""
    to: str
    subject: str
    body: str
    ntype: str = "info"   # info|funding|repayment|delivery|dispute

    def to_dict(self):
        return {"to": self.to, "subject": self.subject, "body": self.body, "type": self.ntype}


def notify(recipients, to, subject, body, ntype="info"):
    # recipients without an email on file are skipped
    if to:
        recipients.append(NotificationCommand(to=to, subject=subject, body=body, ntype=ntype))
