"""
Client Accounts — the agency's customers.

A client account is owned by one tenant and groups the projects produced
for that customer. ``name`` holds the contact person, ``company_name`` the
organisation.
"""

from app.models import db
from app.models.base import TenantModel, iso


class ClientAccount(TenantModel):
    __tablename__ = "client_accounts"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    company_name = db.Column(db.String(200))
    email = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(50))
    notes = db.Column(db.Text)

    __table_args__ = (
        db.Index("ix_client_accounts_tenant_email", "tenant_id", "email"),
    )

    projects = db.relationship(
        "Project", back_populates="client", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "company_name": self.company_name,
            "email": self.email,
            "phone": self.phone,
            "notes": self.notes,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
