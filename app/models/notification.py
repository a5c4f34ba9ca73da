"""
Notification Model — delivery log of outbound messages (email, Telegram).

One record per recipient per message.
"""

from app.models import db
from app.models.base import TenantModel, iso

# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_CHANNELS = frozenset({"EMAIL", "TELEGRAM"})
DELIVERY_STATUSES = frozenset({"PENDING", "SENT", "FAILED"})


class Notification(TenantModel):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    channel = db.Column(db.String(20), nullable=False, default="EMAIL")
    recipient = db.Column(db.String(200), nullable=False)
    template_key = db.Column(db.String(100), nullable=False, default="custom")
    payload = db.Column(db.JSON, default=dict)
    sent_at = db.Column(db.DateTime(timezone=True))
    delivery_status = db.Column(db.String(20), nullable=False, default="PENDING")
    error_message = db.Column(db.Text)

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "channel": self.channel,
            "recipient": self.recipient,
            "template_key": self.template_key,
            "payload": self.payload or {},
            "sent_at": iso(self.sent_at),
            "delivery_status": self.delivery_status,
            "error_message": self.error_message,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.channel} → {self.recipient}>"
