"""Team API — workspace members and invite links."""

from datetime import datetime, timedelta, timezone

from app.models import db
from app.models.auth import ROLE_EDITOR, InviteLink, User, WorkspaceMember
from app.utils.crypto import hash_password

from tests.conftest import PASSWORD, auth_headers, headers_for, signup


def _bare_user(tenant_id):
    """A tenant user that has not joined the workspace yet."""
    user = User(
        tenant_id=tenant_id, email="newbie@videoagency.com", password_hash=hash_password(PASSWORD),
        first_name="Nina", last_name="Newbie", role=ROLE_EDITOR, is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def _invite(client, headers, **body):
    res = client.post("/api/v1/team/invites", json=body, headers=headers)
    assert res.status_code == 201
    return res.get_json()


class TestMembers:
    def test_owner_then_editor(self, client, owner, owner_headers, editor):
        res = client.get("/api/v1/team/members", headers=owner_headers)
        assert res.status_code == 200
        members = res.get_json()
        assert [m["role"] for m in members] == ["OWNER", "EDITOR"]
        assert members[0]["email"] == owner["user"]["email"]


class TestInviteLinks:
    def test_create_defaults_to_a_week(self, client, owner_headers):
        invite = _invite(client, owner_headers)
        assert invite["token"].startswith("inv_")
        assert invite["is_active"] is True
        expires = datetime.fromisoformat(invite["expires_at"].replace("Z", "+00:00"))
        assert timedelta(days=6) < expires - datetime.now(timezone.utc) <= timedelta(days=7)

    def test_custom_expiry(self, client, owner_headers):
        invite = _invite(client, owner_headers, expires_in_days=2)
        expires = datetime.fromisoformat(invite["expires_at"].replace("Z", "+00:00"))
        assert expires - datetime.now(timezone.utc) <= timedelta(days=2)

    def test_expiry_out_of_range(self, client, owner_headers):
        res = client.post("/api/v1/team/invites", json={"expires_in_days": 90}, headers=owner_headers)
        assert res.status_code == 400

    def test_list_and_deactivate(self, client, owner_headers):
        invite = _invite(client, owner_headers)
        listed = client.get("/api/v1/team/invites", headers=owner_headers).get_json()
        assert [i["id"] for i in listed] == [invite["id"]]

        res = client.delete(f"/api/v1/team/invites/{invite['id']}", headers=owner_headers)
        assert res.status_code == 200
        assert res.get_json()["is_active"] is False
        assert client.get("/api/v1/team/invites", headers=owner_headers).get_json() == []

    def test_editor_cannot_manage(self, client, editor_headers):
        assert client.get("/api/v1/team/invites", headers=editor_headers).status_code == 403
        assert client.post("/api/v1/team/invites", json={}, headers=editor_headers).status_code == 403


class TestInviteValidation:
    def test_public_lookup(self, client, owner_headers):
        invite = _invite(client, owner_headers)
        res = client.get(f"/api/v1/invite/{invite['token']}")
        assert res.status_code == 200
        data = res.get_json()
        assert data["valid"] is True
        assert data["workspace"]["id"] == invite["workspace_id"]

    def test_unknown_token(self, client):
        res = client.get("/api/v1/invite/inv_missing")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Invite link not found"

    def test_inactive_token(self, client, owner_headers):
        invite = _invite(client, owner_headers)
        client.delete(f"/api/v1/team/invites/{invite['id']}", headers=owner_headers)
        res = client.get(f"/api/v1/invite/{invite['token']}")
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invite link is inactive"

    def test_expired_token(self, client, owner_headers):
        invite = _invite(client, owner_headers)
        row = db.session.get(InviteLink, invite["id"])
        row.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        db.session.commit()
        res = client.get(f"/api/v1/invite/{invite['token']}")
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invite link is expired"


class TestAcceptInvite:
    def test_joins_workspace_as_editor(self, client, owner, owner_headers):
        invite = _invite(client, owner_headers)
        user = _bare_user(owner["tenant"]["id"])

        res = client.post(f"/api/v1/invite/{invite['token']}/accept", headers=headers_for(user))
        assert res.status_code == 200
        assert res.get_json() == {"success": True, "workspace_id": invite["workspace_id"]}

        member = WorkspaceMember.query.filter_by(workspace_id=invite["workspace_id"], user_id=user.id).one()
        assert member.role == ROLE_EDITOR

        # A second accept does not duplicate the membership
        client.post(f"/api/v1/invite/{invite['token']}/accept", headers=headers_for(user))
        assert WorkspaceMember.query.filter_by(user_id=user.id).count() == 1

    def test_requires_login(self, client, owner_headers):
        invite = _invite(client, owner_headers)
        assert client.post(f"/api/v1/invite/{invite['token']}/accept").status_code == 401

    def test_user_of_other_tenant_is_forbidden(self, client, owner_headers):
        invite = _invite(client, owner_headers)
        rival = signup(client, slug="rival-invites")
        res = client.post(f"/api/v1/invite/{invite['token']}/accept", headers=auth_headers(rival["token"]))
        assert res.status_code == 403
        assert res.get_json()["error"] == "User belongs to another workspace"
