"""
AI Task Model — production tasks, most of them extracted from client feedback.
"""

from app.models import db
from app.models.base import TimestampMixin, iso

# ── Constants ─────────────────────────────────────────────────────────────────

TASK_STATUSES = frozenset({"TODO", "IN_PROGRESS", "DONE", "CANCELLED"})

# Ordered low → high; used for sorting and due-date defaults
TASK_PRIORITY_ORDER = ("LOW", "MEDIUM", "HIGH", "URGENT")
TASK_PRIORITIES = frozenset(TASK_PRIORITY_ORDER)

TASK_CATEGORIES = frozenset({"CONTENT", "DESIGN", "SOUND", "LEGAL", "OTHER"})

# Hours from creation to default due date, by priority
PRIORITY_DUE_HOURS = {"URGENT": 24, "HIGH": 24, "MEDIUM": 48, "LOW": 72}


class AITask(TimestampMixin, db.Model):
    __tablename__ = "ai_tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default="TODO")
    priority = db.Column(db.String(10), nullable=False, default="MEDIUM")
    category = db.Column(db.String(20))
    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    estimated_minutes = db.Column(db.Integer)
    due_date = db.Column(db.DateTime(timezone=True))
    completed_at = db.Column(db.DateTime(timezone=True))
    source_feedback_ids = db.Column(db.JSON, default=list)
    ai_generated = db.Column(db.Boolean, nullable=False, default=False)

    __table_args__ = (
        db.Index("ix_ai_tasks_project_status", "project_id", "status"),
        db.Index("ix_ai_tasks_assignee", "assigned_to_user_id"),
    )

    project = db.relationship("Project", back_populates="tasks")
    assignee = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "project": {"id": self.project.id, "name": self.project.name} if self.project else None,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "category": self.category,
            "assigned_to_user_id": self.assigned_to_user_id,
            "assignee": self.assignee.to_summary() if self.assignee else None,
            "estimated_minutes": self.estimated_minutes,
            "due_date": iso(self.due_date),
            "completed_at": iso(self.completed_at),
            "source_feedback_ids": self.source_feedback_ids or [],
            "ai_generated": self.ai_generated,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
