"""
Asset Version Models — video iterations and Kinescope upload sessions.

Version review lifecycle:
    DRAFT → IN_REVIEW → CHANGES_REQUESTED → IN_REVIEW → ... → APPROVED → FINAL

Feedback on a version is locked once it reaches APPROVED or FINAL.
"""

from app.models import db
from app.models.base import TenantModel, TimestampMixin, iso

# ── Constants ─────────────────────────────────────────────────────────────────

VERSION_STATUSES = frozenset({"DRAFT", "IN_REVIEW", "CHANGES_REQUESTED", "APPROVED", "FINAL"})

# Allowed manual status changes: current → {next, ...}
VERSION_TRANSITIONS = {
    "DRAFT": frozenset({"IN_REVIEW"}),
    "IN_REVIEW": frozenset({"CHANGES_REQUESTED", "APPROVED"}),
    "CHANGES_REQUESTED": frozenset({"IN_REVIEW"}),
    "APPROVED": frozenset({"FINAL"}),
    "FINAL": frozenset(),
}

APPROVABLE_STATUSES = frozenset({"DRAFT", "IN_REVIEW", "CHANGES_REQUESTED"})
LOCKED_STATUSES = frozenset({"APPROVED", "FINAL"})

PROCESSING_STATUSES = frozenset({"UPLOADING", "PROCESSING", "READY", "FAILED"})
VIDEO_PROVIDERS = frozenset({"EXTERNAL", "KINESCOPE"})


class AssetVersion(TimestampMixin, db.Model):
    __tablename__ = "asset_versions"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version_no = db.Column(db.Integer, nullable=False)
    file_url = db.Column(db.Text, nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.BigInteger, nullable=False, default=0)
    duration_sec = db.Column(db.Integer)
    notes = db.Column(db.Text)
    status = db.Column(db.String(30), nullable=False, default="DRAFT")
    approved_by = db.Column(db.String(100))
    approved_at = db.Column(db.DateTime(timezone=True))

    video_provider = db.Column(db.String(20), nullable=False, default="EXTERNAL")
    kinescope_video_id = db.Column(db.String(100), index=True)
    stream_url = db.Column(db.Text)
    processing_status = db.Column(db.String(20))
    processing_error = db.Column(db.Text)

    __table_args__ = (
        db.UniqueConstraint("project_id", "version_no", name="uq_asset_version_project_no"),
    )

    project = db.relationship("Project", back_populates="versions")
    feedback_items = db.relationship(
        "FeedbackItem", back_populates="asset_version", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def is_locked(self):
        return self.status in LOCKED_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "version_no": self.version_no,
            "file_url": self.file_url,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "duration_sec": self.duration_sec,
            "notes": self.notes,
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_at": iso(self.approved_at),
            "video_provider": self.video_provider,
            "kinescope_video_id": self.kinescope_video_id,
            "stream_url": self.stream_url,
            "processing_status": self.processing_status,
            "processing_error": self.processing_error,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class VideoUploadSession(TenantModel):
    __tablename__ = "video_upload_sessions"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kinescope_video_id = db.Column(db.String(100), unique=True, nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    file_type = db.Column(db.String(100), nullable=False)
    file_size = db.Column(db.BigInteger, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="UPLOADING")
    stream_url = db.Column(db.Text)
    duration_sec = db.Column(db.Integer)
    error_message = db.Column(db.Text)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "kinescope_video_id": self.kinescope_video_id,
            "file_name": self.file_name,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "status": self.status,
            "stream_url": self.stream_url,
            "duration_sec": self.duration_sec,
            "error_message": self.error_message,
            "created_at": iso(self.created_at),
        }
