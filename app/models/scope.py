"""
Scope Decision Model — AI classification of a feedback item against the
contracted scope, followed by a PM decision.

One decision per feedback item (unique feedback_item_id).
"""

from app.models import db
from app.models.base import TimestampMixin, iso

# ── Constants ─────────────────────────────────────────────────────────────────

SCOPE_LABELS = frozenset({"IN_SCOPE", "OUT_OF_SCOPE", "UNCLEAR"})
PM_DECISIONS = frozenset({"APPROVED", "REJECTED", "CHANGE_REQUEST"})


class ScopeDecision(TimestampMixin, db.Model):
    __tablename__ = "scope_decisions"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    feedback_item_id = db.Column(
        db.Integer,
        db.ForeignKey("feedback_items.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    ai_label = db.Column(db.String(20), nullable=False, default="UNCLEAR")
    ai_confidence = db.Column(db.Float, nullable=False, default=0.0)
    ai_reasoning = db.Column(db.Text)
    pm_decision = db.Column(db.String(20))
    pm_reason = db.Column(db.Text)
    change_request_amount = db.Column(db.Numeric(12, 2))
    decided_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    decided_at = db.Column(db.DateTime(timezone=True))

    project = db.relationship("Project", back_populates="scope_decisions")
    feedback_item = db.relationship("FeedbackItem")
    decider = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "feedback_item_id": self.feedback_item_id,
            "feedback": {
                "id": self.feedback_item.id,
                "text": self.feedback_item.text,
                "timecode_sec": self.feedback_item.timecode_sec,
            } if self.feedback_item else None,
            "ai_label": self.ai_label,
            "ai_confidence": self.ai_confidence,
            "ai_reasoning": self.ai_reasoning,
            "pm_decision": self.pm_decision,
            "pm_reason": self.pm_reason,
            "change_request_amount": (
                float(self.change_request_amount)
                if self.change_request_amount is not None else None
            ),
            "decided_by": self.decider.to_summary() if self.decider else None,
            "decided_at": iso(self.decided_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
