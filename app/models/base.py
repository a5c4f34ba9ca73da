"""
TenantModel — Abstract base class for tenant-scoped models.

Models owned directly by a tenant (clients, projects, notifications, ...)
inherit from TenantModel instead of db.Model. This adds:
  - tenant_id FK column with index
  - created_at / updated_at timestamps
  - query_for_tenant(tenant_id) classmethod
  - get_for_tenant(tenant_id, pk) classmethod

Child rows (versions, feedback, tasks, stages) are scoped through their
project and carry no tenant_id of their own.
"""

from datetime import datetime, timezone

from app.models import db


def utcnow():
    return datetime.now(timezone.utc)


def iso(value):
    """Serialise an optional datetime to ISO-8601 (UTC assumed for naive values)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class TimestampMixin:
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class TenantModel(TimestampMixin, db.Model):
    """Abstract base for tenant-scoped tables."""
    __abstract__ = True

    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_tenant(cls, tenant_id):
        """Return a query filtered by tenant_id."""
        return cls.query.filter_by(tenant_id=tenant_id)

    @classmethod
    def get_for_tenant(cls, tenant_id, pk):
        """Fetch one row by primary key, or None when missing or owned by another tenant."""
        if pk is None:
            return None
        return cls.query.filter_by(tenant_id=tenant_id, id=pk).first()
