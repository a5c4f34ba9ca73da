"""
Project Models — projects, project members, workflow stages.

Project lifecycle:
    DRAFT → IN_PROGRESS → CLIENT_REVIEW → COMPLETED
    (ON_HOLD / CANCELLED reachable from any open state)

Each project carries one opaque ``portal_token`` that grants the client
access to the public review portal. Rotating the token invalidates every
link shared before.

Workflow stages are created once per project in STAGE_ORDER; at most one
stage is active (started, not completed) at a time.
"""

from datetime import datetime, timezone

from app.models import db
from app.models.base import TenantModel, TimestampMixin, iso

# ── Constants ─────────────────────────────────────────────────────────────────

PROJECT_STATUSES = frozenset({
    "DRAFT",
    "IN_PROGRESS",
    "CLIENT_REVIEW",
    "COMPLETED",
    "ON_HOLD",
    "CANCELLED",
})

STAGE_ORDER = (
    "BRIEFING",
    "PRODUCTION",
    "CLIENT_REVIEW",
    "REVISIONS",
    "APPROVAL",
    "DELIVERY",
    "COMPLETED",
)

DEFAULT_STAGE_SLA = {
    "BRIEFING": 24,
    "PRODUCTION": 72,
    "CLIENT_REVIEW": 48,
    "REVISIONS": 48,
    "APPROVAL": 24,
    "DELIVERY": 24,
    "COMPLETED": 0,
}


class Project(TenantModel):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(
        db.Integer,
        db.ForeignKey("client_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default="DRAFT")
    revisions_limit = db.Column(db.Integer, default=3)
    due_date = db.Column(db.DateTime(timezone=True))
    scope_doc_url = db.Column(db.Text)
    portal_token = db.Column(db.String(64), unique=True, nullable=False)

    __table_args__ = (
        db.Index("ix_projects_tenant_status", "tenant_id", "status"),
    )

    client = db.relationship("ClientAccount", back_populates="projects")
    versions = db.relationship(
        "AssetVersion", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    members = db.relationship(
        "ProjectMember", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    stages = db.relationship(
        "WorkflowStage", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    tasks = db.relationship(
        "AITask", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    scope_decisions = db.relationship(
        "ScopeDecision", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self, include_client=False):
        d = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "revisions_limit": self.revisions_limit,
            "due_date": iso(self.due_date),
            "scope_doc_url": self.scope_doc_url,
            "portal_token": self.portal_token,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_client and self.client is not None:
            d["client"] = {
                "id": self.client.id,
                "name": self.client.name,
                "company_name": self.client.company_name,
            }
        return d


class ProjectMember(db.Model):
    __tablename__ = "project_members"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role_on_project = db.Column(db.String(30), default="editor")
    added_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    added_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
        db.Index("ix_project_members_user", "user_id"),
    )

    project = db.relationship("Project", back_populates="members")
    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "first_name": self.user.first_name if self.user else None,
            "last_name": self.user.last_name if self.user else None,
            "email": self.user.email if self.user else None,
            "role_on_project": self.role_on_project,
            "added_at": iso(self.added_at),
        }


class WorkflowStage(TimestampMixin, db.Model):
    __tablename__ = "workflow_stages"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stage_name = db.Column(db.String(30), nullable=False)
    # Position in STAGE_ORDER, kept so listings sort without a lookup table
    position = db.Column(db.Integer, nullable=False, default=0)
    sla_hours = db.Column(db.Integer, nullable=False, default=0)
    started_at = db.Column(db.DateTime(timezone=True))
    completed_at = db.Column(db.DateTime(timezone=True))
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))

    __table_args__ = (
        db.UniqueConstraint("project_id", "stage_name", name="uq_workflow_stage_project_name"),
    )

    project = db.relationship("Project", back_populates="stages")
    owner = db.relationship("User")

    @property
    def is_active(self):
        return self.started_at is not None and self.completed_at is None

    def elapsed_hours(self, now=None):
        if self.started_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        started_at = self.started_at
        if started_at.tzinfo is None:
            started_at = started_at.replace(tzinfo=timezone.utc)
        return (now - started_at).total_seconds() / 3600

    def remaining_hours(self, now=None):
        if not self.is_active:
            return None
        return self.sla_hours - self.elapsed_hours(now)

    def is_overdue(self, now=None):
        remaining = self.remaining_hours(now)
        return self.sla_hours > 0 and remaining is not None and remaining < 0

    def to_dict(self):
        remaining = self.remaining_hours()
        return {
            "id": self.id,
            "project_id": self.project_id,
            "stage_name": self.stage_name,
            "sla_hours": self.sla_hours,
            "started_at": iso(self.started_at),
            "completed_at": iso(self.completed_at),
            "owner": self.owner.to_summary() if self.owner else None,
            "is_active": self.is_active,
            "is_overdue": self.is_overdue(),
            "remaining_hours": round(remaining, 2) if remaining is not None else None,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
