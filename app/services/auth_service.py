"""Signup, login and current-user lookup.

Signup creates the whole account in one transaction: Tenant, its
Workspace, the OWNER user and the owner's WorkspaceMember row. The
blueprint commits; this module only flushes.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email

from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.models import db
from app.models.auth import ROLE_OWNER, Tenant, User, Workspace, WorkspaceMember
from app.services.jwt_service import generate_access_token
from app.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def _auth_result(user: User, tenant: Tenant) -> dict:
    return {
        "token": generate_access_token(user.id, tenant.id, user.role),
        "user": user.to_dict(),
        "tenant": tenant.to_dict(),
    }


def signup(
    *,
    email: str | None,
    password: str | None,
    first_name: str | None,
    last_name: str | None,
    tenant_name: str | None,
    tenant_slug: str | None,
) -> dict:
    """Register a new agency. Returns ``{token, user, tenant}``."""
    if not all((email, password, first_name, last_name, tenant_name, tenant_slug)):
        raise ValidationError("All fields are required")

    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password must be at least 8 characters")

    try:
        email = validate_email(email.strip(), check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError("Invalid email format", details={"email": str(exc)}) from exc

    tenant_slug = tenant_slug.strip().lower()

    # One email identifies one login across the platform
    if User.query.filter_by(email=email).first() is not None:
        raise ConflictError("Email already exists")
    if Tenant.query.filter_by(slug=tenant_slug).first() is not None:
        raise ConflictError("Tenant slug already exists")

    tenant = Tenant(name=tenant_name.strip(), slug=tenant_slug)
    db.session.add(tenant)
    db.session.flush()

    workspace = Workspace(tenant_id=tenant.id, name=tenant.name)
    user = User(
        tenant_id=tenant.id,
        email=email,
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        role=ROLE_OWNER,
        is_active=True,
    )
    db.session.add_all([workspace, user])
    db.session.flush()

    db.session.add(WorkspaceMember(workspace_id=workspace.id, user_id=user.id, role=ROLE_OWNER))
    db.session.flush()

    logger.info("Tenant %s created with owner user %s", tenant.slug, user.id)
    return _auth_result(user, tenant)


def login(*, email: str | None, password: str | None, tenant_slug: str | None) -> dict:
    """Authenticate against one tenant. Returns ``{token, user, tenant}``."""
    if not email or not password or not tenant_slug:
        raise ValidationError("Email, password and tenantSlug are required")

    tenant = Tenant.query.filter_by(slug=tenant_slug.strip().lower()).first()
    if tenant is None:
        raise NotFoundError("Tenant not found")

    user = User.query.filter_by(tenant_id=tenant.id, email=email.strip()).first()
    if user is None:
        raise AuthenticationError("Invalid credentials")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")
    if not verify_password(password, user.password_hash):
        logger.info("Failed login for user %s (tenant %s)", user.id, tenant.slug)
        raise AuthenticationError("Invalid credentials")

    user.last_login_at = datetime.now(timezone.utc)
    db.session.flush()
    return _auth_result(user, tenant)


def get_current_user(user_id: int) -> dict:
    """Return the user with a compact tenant block."""
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")
    data = user.to_dict()
    data["tenant"] = {"id": user.tenant.id, "name": user.tenant.name, "slug": user.tenant.slug}
    return data
