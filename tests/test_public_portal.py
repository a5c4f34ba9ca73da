"""Public review portal — token view, client approval and client feedback."""

import base64
import json
import time

import pytest

from app.models.notification import Notification
from app.services.portal_service import resolve_portal_token


def _wrap(payload: dict) -> str:
    raw = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()
    return raw.rstrip("=")


class TestResolvePortalToken:
    def test_raw_token(self):
        assert resolve_portal_token("abc123") == "abc123"

    def test_empty(self):
        assert resolve_portal_token("  ") is None
        assert resolve_portal_token(None) is None

    def test_base64_wrapper(self):
        assert resolve_portal_token(_wrap({"token": "abc123", "exp": time.time() + 60})) == "abc123"

    def test_expired_wrapper(self):
        assert resolve_portal_token(_wrap({"token": "abc123", "exp": time.time() - 60})) is None

    def test_jwt_shaped_wrapper(self):
        token = f"header.{_wrap({'versionId': 'abc123'})}.signature"
        assert resolve_portal_token(token) == "abc123"


class TestPortalView:
    def test_view_promotes_draft(self, client, project, version):
        res = client.get(f"/api/v1/public/portal/{project['portal_token']}")
        assert res.status_code == 200
        data = res.get_json()
        assert data["project"]["name"] == "Launch Teaser"
        assert data["project"]["company_name"] == "Brand Corp"
        assert data["active_version_id"] == version["id"]
        assert data["versions"][0]["status"] == "IN_REVIEW"
        assert data["feedback"] == []

    def test_unknown_token(self, client):
        res = client.get("/api/v1/public/portal/nope")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Portal not found"

    def test_expired_link(self, client, project):
        token = _wrap({"token": project["portal_token"], "exp": time.time() - 5})
        res = client.get(f"/api/v1/public/portal/{token}")
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invalid portal token"

    def test_rotated_token_stops_working(self, client, owner_headers, project):
        client.post(f"/api/v1/projects/{project['id']}/portal-token/reset", headers=owner_headers)
        assert client.get(f"/api/v1/public/portal/{project['portal_token']}").status_code == 404


class TestPortalApproval:
    def test_approve(self, client, project, version):
        url = f"/api/v1/public/portal/{project['portal_token']}/approve"
        res = client.post(url, json={"version_id": version["id"]})
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "APPROVED"
        assert data["approved_by"] == "client-portal"

        again = client.post(url, json={"version_id": version["id"]}).get_json()
        assert again == {"status": "APPROVED", "approved_at": data["approved_at"]}

    def test_version_from_other_project(self, client, owner_headers, agency_client, project, version):
        other = client.post("/api/v1/projects", json={
            "name": "Other Project", "client_id": agency_client["id"],
        }, headers=owner_headers).get_json()
        res = client.post(f"/api/v1/public/portal/{other['portal_token']}/approve",
                          json={"version_id": version["id"]})
        assert res.status_code == 404
        assert res.get_json()["error"] == "Version not found in this portal"


class TestPublicFeedback:
    def test_client_feedback_notifies_managers(self, client, owner, version):
        res = client.post("/api/v1/public/feedback", json={
            "asset_version_id": version["id"],
            "text": "Can the music be softer?",
            "author_name": "Carla",
            "author_email": "carla@brandcorp.com",
            "timecode_sec": 4,
        })
        assert res.status_code == 201
        data = res.get_json()
        assert data["author_type"] == "CLIENT"
        assert data["author"]["name"] == "Carla"

        emails = Notification.query.filter_by(template_key="new_feedback").all()
        assert [n.recipient for n in emails] == [owner["user"]["email"]]

    def test_client_feedback_is_queued_for_parsing(self, client, owner, project, version, monkeypatch):
        calls = []
        monkeypatch.setattr(
            "app.jobs.queues.enqueue_parse_feedback", lambda **kwargs: calls.append(kwargs),
        )
        res = client.post("/api/v1/public/feedback", json={
            "asset_version_id": version["id"], "text": "Make the logo bigger", "author_name": "Carla",
        })
        assert res.status_code == 201
        assert calls == [{
            "tenant_id": owner["tenant"]["id"],
            "project_id": project["id"],
            "feedback_ids": [res.get_json()["id"]],
        }]

    @pytest.mark.parametrize("body", [
        {"text": "Hello"},
        {"text": "", "author_name": "Carla"},
        {"text": "Hello", "author_email": "not-an-email"},
        {"text": "Hello", "author_name": "Carla", "timecode_sec": -3},
    ])
    def test_invalid_bodies(self, client, version, body):
        res = client.post("/api/v1/public/feedback", json={"asset_version_id": version["id"], **body})
        assert res.status_code == 400

    def test_unknown_version(self, client):
        res = client.post("/api/v1/public/feedback", json={
            "asset_version_id": 999, "text": "Hello", "author_name": "Carla",
        })
        assert res.status_code == 404

    def test_locked_version(self, client, project, version):
        client.post(f"/api/v1/public/portal/{project['portal_token']}/approve", json={"version_id": version["id"]})
        res = client.post("/api/v1/public/feedback", json={
            "asset_version_id": version["id"], "text": "One more thing", "author_name": "Carla",
        })
        assert res.status_code == 409

    def test_feedback_shows_in_portal(self, client, project, version):
        client.post("/api/v1/public/feedback", json={
            "asset_version_id": version["id"], "text": "Love the intro", "author_name": "Carla",
        })
        data = client.get(f"/api/v1/public/portal/{project['portal_token']}").get_json()
        assert [f["text"] for f in data["feedback"]] == ["Love the intro"]
        assert data["feedback"][0]["author_name"] == "Carla"
