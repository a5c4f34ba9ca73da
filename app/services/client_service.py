"""Client account CRUD, always scoped by tenant."""

from __future__ import annotations

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.client import ClientAccount

UPDATABLE_FIELDS = ("name", "email", "phone", "company_name", "notes")


def list_clients(*, tenant_id: int) -> list[ClientAccount]:
    return (
        ClientAccount.query_for_tenant(tenant_id)
        .order_by(ClientAccount.created_at.desc(), ClientAccount.id.desc())
        .all()
    )


def get_client(*, tenant_id: int, client_id: int) -> ClientAccount:
    client = ClientAccount.get_for_tenant(tenant_id, client_id)
    if client is None:
        raise NotFoundError("Client not found", resource_id=client_id, tenant_id=tenant_id)
    return client


def create_client(*, tenant_id: int, data: dict) -> ClientAccount:
    client = ClientAccount(
        tenant_id=tenant_id,
        name=data["name"],
        email=data["email"],
        company_name=data.get("company_name") or "",
        phone=data.get("phone"),
        notes=data.get("notes"),
    )
    db.session.add(client)
    db.session.flush()
    return client


def update_client(*, tenant_id: int, client_id: int, data: dict) -> ClientAccount:
    """Apply a partial update; at least one contact field must be present."""
    if not any(data.get(field) is not None for field in ("name", "email", "phone", "company_name")):
        raise ValidationError("At least one field is required")

    client = get_client(tenant_id=tenant_id, client_id=client_id)
    for field in UPDATABLE_FIELDS:
        if field in data and data[field] is not None:
            setattr(client, field, data[field])
    db.session.flush()
    return client


def delete_client(*, tenant_id: int, client_id: int) -> None:
    client = get_client(tenant_id=tenant_id, client_id=client_id)
    db.session.delete(client)
    db.session.flush()
