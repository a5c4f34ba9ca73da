"""
Feedback Model — timecoded comments left on an asset version.

Feedback is written either by a logged-in user (author_type USER) or by
an external client through the review portal (author_type CLIENT).
"""

from app.models import db
from app.models.base import TimestampMixin, iso

# ── Constants ─────────────────────────────────────────────────────────────────

AUTHOR_USER = "USER"
AUTHOR_CLIENT = "CLIENT"
AUTHOR_TYPES = frozenset({AUTHOR_USER, AUTHOR_CLIENT})

FEEDBACK_STATUSES = frozenset({"NEW", "IN_PROGRESS", "RESOLVED", "REJECTED"})
FEEDBACK_CATEGORIES = frozenset({"CONTENT", "DESIGN", "SOUND", "LEGAL", "OTHER"})

MAX_FEEDBACK_LENGTH = 5000


class FeedbackItem(TimestampMixin, db.Model):
    __tablename__ = "feedback_items"

    id = db.Column(db.Integer, primary_key=True)
    asset_version_id = db.Column(
        db.Integer,
        db.ForeignKey("asset_versions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_type = db.Column(db.String(10), nullable=False, default=AUTHOR_USER)
    author_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    author_email = db.Column(db.String(200))
    author_name = db.Column(db.String(200))
    timecode_sec = db.Column(db.Float)
    text = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(20))
    status = db.Column(db.String(20), nullable=False, default="NEW")

    asset_version = db.relationship("AssetVersion", back_populates="feedback_items")
    author = db.relationship("User")

    @property
    def display_name(self):
        if self.author is not None and self.author.full_name:
            return self.author.full_name
        return self.author_name or "Anonymous"

    def to_dict(self):
        return {
            "id": self.id,
            "asset_version_id": self.asset_version_id,
            "author_type": self.author_type,
            "author": {
                "id": self.author_id,
                "name": self.display_name,
                "email": self.author.email if self.author is not None else self.author_email,
            },
            "timecode_sec": self.timecode_sec,
            "text": self.text,
            "category": self.category,
            "status": self.status,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
