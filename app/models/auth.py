"""
Auth Models — tenants, users, workspaces, workspace members, invite links.

A tenant is one agency account. Every tenant owns exactly one workspace;
workspace members with role EDITOR form the pool of people that can be
added to projects and auto-assigned AI tasks.
"""

from datetime import datetime, timezone

from app.models import db
from app.models.base import TimestampMixin, iso

# ── Constants ─────────────────────────────────────────────────────────────────

ROLE_OWNER = "OWNER"
ROLE_PM = "PM"
ROLE_EDITOR = "EDITOR"
ROLE_CLIENT_VIEWER = "CLIENT_VIEWER"

VALID_USER_ROLES = frozenset({ROLE_OWNER, ROLE_PM, ROLE_EDITOR, ROLE_CLIENT_VIEWER})
MANAGER_ROLES = frozenset({ROLE_OWNER, ROLE_PM})

VALID_WORKSPACE_ROLES = frozenset({ROLE_OWNER, ROLE_PM, ROLE_EDITOR})


# ═══════════════════════════════════════════════════════════════
# 1. TENANTS
# ═══════════════════════════════════════════════════════════════
class Tenant(TimestampMixin, db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    plan = db.Column(db.String(50), default="trial")
    timezone = db.Column(db.String(64), default="UTC")
    is_active = db.Column(db.Boolean, default=True)
    stripe_customer_id = db.Column(db.String(100), unique=True)

    users = db.relationship("User", back_populates="tenant", lazy="dynamic")
    workspace = db.relationship(
        "Workspace", back_populates="tenant", uselist=False, cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "plan": self.plan,
            "timezone": self.timezone,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(TimestampMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    email = db.Column(db.String(200), nullable=False)
    password_hash = db.Column(db.String(256))
    first_name = db.Column(db.String(100), nullable=False, default="")
    last_name = db.Column(db.String(100), nullable=False, default="")
    role = db.Column(db.String(20), nullable=False, default=ROLE_EDITOR)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login_at = db.Column(db.DateTime(timezone=True))

    # Same email may exist in different tenants
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
        db.Index("ix_users_tenant_id", "tenant_id"),
        db.Index("ix_users_email", "email"),
    )

    tenant = db.relationship("Tenant", back_populates="users")

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_summary(self):
        """Compact reference used inside other resources (assignee, owner, ...)."""
        return {"id": self.id, "name": self.full_name}

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "is_active": self.is_active,
            "last_login_at": iso(self.last_login_at),
            "created_at": iso(self.created_at),
        }


# ═══════════════════════════════════════════════════════════════
# 3. WORKSPACES
# ═══════════════════════════════════════════════════════════════
class Workspace(TimestampMixin, db.Model):
    __tablename__ = "workspaces"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    name = db.Column(db.String(200), nullable=False)

    tenant = db.relationship("Tenant", back_populates="workspace")
    members = db.relationship(
        "WorkspaceMember", back_populates="workspace", lazy="dynamic", cascade="all, delete-orphan"
    )
    invites = db.relationship(
        "InviteLink", back_populates="workspace", lazy="dynamic", cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "created_at": iso(self.created_at),
        }


class WorkspaceMember(TimestampMixin, db.Model):
    __tablename__ = "workspace_members"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer, db.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role = db.Column(db.String(20), nullable=False, default=ROLE_EDITOR)

    __table_args__ = (
        db.UniqueConstraint("workspace_id", "user_id", name="uq_workspace_member"),
    )

    workspace = db.relationship("Workspace", back_populates="members")
    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "user_id": self.user_id,
            "role": self.role,
            "first_name": self.user.first_name if self.user else None,
            "last_name": self.user.last_name if self.user else None,
            "email": self.user.email if self.user else None,
            "created_at": iso(self.created_at),
        }


# ═══════════════════════════════════════════════════════════════
# 4. INVITE LINKS
# ═══════════════════════════════════════════════════════════════
class InviteLink(TimestampMixin, db.Model):
    __tablename__ = "invite_links"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer, db.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    token = db.Column(db.String(64), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    workspace = db.relationship("Workspace", back_populates="invites")

    @property
    def is_expired(self):
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at < datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "created_by": self.created_by,
            "token": self.token,
            "expires_at": iso(self.expires_at),
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
        }
