"""
Subscription Model — Stripe billing state mirrored per tenant.
"""

from app.models import db
from app.models.base import TenantModel, iso


class Subscription(TenantModel):
    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    stripe_subscription_id = db.Column(db.String(100), unique=True, nullable=False)
    stripe_customer_id = db.Column(db.String(100), index=True)
    plan = db.Column(db.String(50), nullable=False, default="trial")
    status = db.Column(db.String(30), nullable=False, default="active")
    seats = db.Column(db.Integer, nullable=False, default=1)
    current_period_end = db.Column(db.DateTime(timezone=True))

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "stripe_subscription_id": self.stripe_subscription_id,
            "stripe_customer_id": self.stripe_customer_id,
            "plan": self.plan,
            "status": self.status,
            "seats": self.seats,
            "current_period_end": iso(self.current_period_end),
            "created_at": iso(self.created_at),
        }
