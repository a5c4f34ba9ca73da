"""
Invite service — shareable links that add users to the tenant workspace.

Token format: ``inv_`` + 24 random bytes, base64url without padding.
Links stay valid for INVITE_TTL_DAYS unless deactivated earlier.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.models import db
from app.models.auth import ROLE_EDITOR, InviteLink, User, WorkspaceMember

logger = logging.getLogger(__name__)

INVITE_TTL_DAYS = 7
TOKEN_PREFIX = "inv_"


def generate_token() -> str:
    return f"{TOKEN_PREFIX}{secrets.token_urlsafe(24)}"


def create_invite_link(*, workspace_id: int, created_by: int, expires_at: datetime | None = None) -> InviteLink:
    invite = InviteLink(
        workspace_id=workspace_id,
        created_by=created_by,
        token=generate_token(),
        expires_at=expires_at or datetime.now(timezone.utc) + timedelta(days=INVITE_TTL_DAYS),
        is_active=True,
    )
    db.session.add(invite)
    db.session.flush()
    logger.info("Invite link created workspace=%s by=%s", workspace_id, created_by)
    return invite


def get_invite_by_token(token: str) -> InviteLink | None:
    if not token:
        return None
    return InviteLink.query.filter_by(token=token).first()


def validate_invite_token(token: str) -> InviteLink:
    """Return the invite or raise when it is missing, inactive or past expiry."""
    invite = get_invite_by_token(token)
    if not invite:
        raise NotFoundError("Invite link not found")
    if not invite.is_active:
        raise ValidationError("Invite link is inactive")
    if invite.is_expired:
        raise ValidationError("Invite link is expired")
    return invite


def accept_invite(*, token: str, user_id: int) -> InviteLink:
    invite = validate_invite_token(token)

    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.tenant_id != invite.workspace.tenant_id:
        raise ForbiddenError("User belongs to another workspace")

    member = WorkspaceMember.query.filter_by(
        workspace_id=invite.workspace_id, user_id=user.id,
    ).first()
    if member is None:
        db.session.add(WorkspaceMember(
            workspace_id=invite.workspace_id, user_id=user.id, role=ROLE_EDITOR,
        ))
        db.session.flush()
        logger.info("Invite accepted workspace=%s user=%s", invite.workspace_id, user.id)
    return invite


def list_active_invites(*, workspace_id: int) -> list[InviteLink]:
    return (
        InviteLink.query
        .filter_by(workspace_id=workspace_id, is_active=True)
        .order_by(InviteLink.created_at.desc(), InviteLink.id.desc())
        .all()
    )


def deactivate_invite(*, workspace_id: int, invite_id: int) -> InviteLink:
    invite = InviteLink.query.filter_by(id=invite_id, workspace_id=workspace_id).first()
    if not invite:
        raise NotFoundError("Invite link not found")
    invite.is_active = False
    db.session.flush()
    return invite
