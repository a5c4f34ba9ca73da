"""
Billing service — Stripe webhook verification and subscription mirroring.

Stripe signs each delivery with a header of the form
``Stripe-Signature: t=<unix ts>,v1=<hex>[,v1=<hex>...]`` where every v1 value
is HMAC-SHA256 of ``"{t}.{raw body}"`` keyed by the endpoint secret. Events
older than STRIPE_WEBHOOK_TOLERANCE seconds are rejected.

Handled events:
    customer.subscription.created / updated / deleted
        upsert the Subscription row and copy its plan onto the tenant
    checkout.session.completed
        link the Stripe customer to the tenant named in metadata /
        client_reference_id

Anything else is acknowledged and ignored.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone

from flask import current_app

from app.core.exceptions import AuthenticationError, ServiceUnavailableError, ValidationError
from app.models import db
from app.models.auth import Tenant
from app.models.subscription import Subscription
from app.utils.crypto import hmac_sha256_hex, signatures_match

logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENTS = frozenset({
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
})
CHECKOUT_COMPLETED = "checkout.session.completed"
FREE_PLAN = "free"


# ── Signature ────────────────────────────────────────────────────────────────


def parse_signature_header(header: str | None) -> tuple[int | None, list[str]]:
    """Split a Stripe-Signature header into (timestamp, [v1 signatures])."""
    timestamp = None
    signatures = []
    for part in (header or "").split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                timestamp = None
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def verify_signature(
    raw_body: bytes | str,
    header: str | None,
    *,
    secret: str | None = None,
    tolerance: int | None = None,
    now: float | None = None,
) -> bool:
    cfg = current_app.config
    secret = secret if secret is not None else cfg.get("STRIPE_WEBHOOK_SECRET")
    tolerance = tolerance if tolerance is not None else cfg.get("STRIPE_WEBHOOK_TOLERANCE", 300)
    if not secret:
        raise ServiceUnavailableError("Stripe webhooks are not configured")

    timestamp, signatures = parse_signature_header(header)
    if timestamp is None or not signatures:
        return False
    now = now if now is not None else time.time()
    if tolerance and abs(now - timestamp) > tolerance:
        return False

    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    expected = hmac_sha256_hex(secret, f"{timestamp}.".encode("utf-8") + raw_body)
    return any(signatures_match(expected, candidate) for candidate in signatures)


def construct_event(raw_body: bytes | str, header: str | None) -> dict:
    """Verify and decode a delivery; raises on a bad signature or body."""
    if not verify_signature(raw_body, header):
        raise AuthenticationError("Invalid webhook signature")
    try:
        event = json.loads(raw_body)
    except ValueError as exc:
        raise ValidationError("Invalid webhook payload") from exc
    if not isinstance(event, dict) or not event.get("type"):
        raise ValidationError("Invalid webhook payload")
    return event


# ── Event handling ───────────────────────────────────────────────────────────


def _metadata_tenant_id(obj: dict) -> int | None:
    metadata = obj.get("metadata") or {}
    raw = metadata.get("tenant_id") or obj.get("client_reference_id")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def _resolve_tenant(obj: dict) -> Tenant | None:
    tenant_id = _metadata_tenant_id(obj)
    if tenant_id is not None:
        tenant = db.session.get(Tenant, tenant_id)
        if tenant is not None:
            return tenant
    customer = obj.get("customer")
    if customer:
        return Tenant.query.filter_by(stripe_customer_id=customer).first()
    return None


def _plan_from_subscription(obj: dict) -> str:
    metadata = obj.get("metadata") or {}
    if metadata.get("plan"):
        return str(metadata["plan"])
    items = ((obj.get("items") or {}).get("data")) or []
    if items:
        price = items[0].get("price") or {}
        plan = price.get("lookup_key") or price.get("nickname") or (obj.get("plan") or {}).get("nickname")
        if plan:
            return str(plan)
    return "standard"


def _seats(obj: dict) -> int:
    items = ((obj.get("items") or {}).get("data")) or []
    if items and isinstance(items[0].get("quantity"), int):
        return max(items[0]["quantity"], 1)
    quantity = obj.get("quantity")
    return quantity if isinstance(quantity, int) and quantity > 0 else 1


def _period_end(obj: dict) -> datetime | None:
    value = obj.get("current_period_end")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return None


def sync_subscription(event_type: str, obj: dict) -> dict:
    tenant = _resolve_tenant(obj)
    if tenant is None:
        logger.warning("Stripe subscription %s has no matching tenant", obj.get("id"))
        return {"handled": False, "reason": "tenant not found"}

    sub = Subscription.query.filter_by(stripe_subscription_id=obj.get("id")).first()
    if sub is None:
        sub = Subscription(tenant_id=tenant.id, stripe_subscription_id=obj.get("id"))
        db.session.add(sub)

    deleted = event_type == "customer.subscription.deleted"
    sub.stripe_customer_id = obj.get("customer") or sub.stripe_customer_id
    sub.plan = _plan_from_subscription(obj)
    sub.status = "canceled" if deleted else (obj.get("status") or "active")
    sub.seats = _seats(obj)
    sub.current_period_end = _period_end(obj)

    tenant.plan = FREE_PLAN if deleted else sub.plan
    if sub.stripe_customer_id and not tenant.stripe_customer_id:
        tenant.stripe_customer_id = sub.stripe_customer_id
    db.session.flush()

    logger.info(
        "Stripe %s synced subscription=%s tenant=%s plan=%s status=%s",
        event_type, sub.stripe_subscription_id, tenant.id, tenant.plan, sub.status,
    )
    return {"handled": True, "subscription": sub.to_dict()}


def link_checkout_customer(obj: dict) -> dict:
    tenant_id = _metadata_tenant_id(obj)
    tenant = db.session.get(Tenant, tenant_id) if tenant_id is not None else None
    customer = obj.get("customer")
    if tenant is None or not customer:
        logger.warning("Stripe checkout %s without tenant/customer", obj.get("id"))
        return {"handled": False, "reason": "tenant or customer missing"}

    tenant.stripe_customer_id = customer
    db.session.flush()
    logger.info("Stripe customer %s linked to tenant %s", customer, tenant.id)
    return {"handled": True, "tenant_id": tenant.id}


def handle_event(event: dict) -> dict:
    event_type = event.get("type")
    obj = ((event.get("data") or {}).get("object")) or {}
    if not isinstance(obj, dict) or not obj.get("id"):
        raise ValidationError("Invalid webhook payload")

    if event_type in SUBSCRIPTION_EVENTS:
        result = sync_subscription(event_type, obj)
    elif event_type == CHECKOUT_COMPLETED:
        result = link_checkout_customer(obj)
    else:
        logger.info("Stripe event %s ignored", event_type)
        result = {"handled": False, "reason": "unhandled event type"}
    return {"received": True, "type": event_type, **result}
