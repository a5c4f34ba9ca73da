"""Internal feedback API — creation, locking, listing and status changes."""

from app.models.notification import Notification


def _post_feedback(client, headers, version, **extra):
    body = {"asset_version_id": version["id"], "text": "Make the logo bigger", **extra}
    return client.post("/api/v1/feedback", json=body, headers=headers)


class TestCreateFeedback:
    def test_author_is_current_user(self, client, owner, owner_headers, version):
        res = _post_feedback(client, owner_headers, version, timecode_sec=12.5, category="DESIGN")
        assert res.status_code == 201
        data = res.get_json()
        assert data["author_type"] == "USER"
        assert data["author"]["id"] == owner["user"]["id"]
        assert data["author"]["name"] == "Olga Owner"
        assert data["status"] == "NEW"
        assert data["timecode_sec"] == 12.5

    def test_author_fields_in_body_are_ignored(self, client, owner, owner_headers, version):
        res = _post_feedback(client, owner_headers, version, author_type="CLIENT", author_id=999)
        assert res.status_code == 201
        assert res.get_json()["author"]["id"] == owner["user"]["id"]

    def test_blank_text(self, client, owner_headers, version):
        res = _post_feedback(client, owner_headers, version, text="   ")
        assert res.status_code == 400
        assert "Feedback text is required" in res.get_json()["error"]

    def test_negative_timecode(self, client, owner_headers, version):
        res = _post_feedback(client, owner_headers, version, timecode_sec=-1)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Timecode must be non-negative"

    def test_unknown_category(self, client, owner_headers, version):
        res = _post_feedback(client, owner_headers, version, category="VIBES")
        assert res.status_code == 400
        assert res.get_json()["error"] == "Validation failed"

    def test_unknown_version(self, client, owner_headers):
        res = client.post("/api/v1/feedback", json={"asset_version_id": 4242, "text": "Hi"},
                          headers=owner_headers)
        assert res.status_code == 404

    def test_locked_after_approval(self, client, owner_headers, project, version):
        client.post(f"/api/v1/projects/{project['id']}/versions/{version['id']}/approve", headers=owner_headers)
        res = _post_feedback(client, owner_headers, version)
        assert res.status_code == 409
        assert res.get_json()["error"] == "Version is already approved. Feedback is locked."

    def test_editor_without_membership_gets_404(self, client, editor_headers, version):
        res = _post_feedback(client, editor_headers, version)
        assert res.status_code == 404

    def test_no_notification_for_internal_feedback(self, client, owner_headers, version):
        _post_feedback(client, owner_headers, version)
        assert Notification.query.count() == 0


class TestListAndUpdate:
    def test_version_feedback_oldest_first(self, client, owner_headers, version):
        _post_feedback(client, owner_headers, version, text="First")
        _post_feedback(client, owner_headers, version, text="Second")
        res = client.get(f"/api/v1/versions/{version['id']}/feedback", headers=owner_headers)
        assert [f["text"] for f in res.get_json()] == ["First", "Second"]

    def test_project_feedback_newest_first(self, client, owner_headers, project, version):
        _post_feedback(client, owner_headers, version, text="First")
        _post_feedback(client, owner_headers, version, text="Second")
        res = client.get(f"/api/v1/projects/{project['id']}/feedback", headers=owner_headers)
        assert [f["text"] for f in res.get_json()] == ["Second", "First"]

    def test_status_update(self, client, owner_headers, version):
        item = _post_feedback(client, owner_headers, version).get_json()
        res = client.patch(f"/api/v1/feedback/{item['id']}", json={"status": "RESOLVED"}, headers=owner_headers)
        assert res.status_code == 200
        assert res.get_json()["status"] == "RESOLVED"

        res = client.patch(f"/api/v1/feedback/{item['id']}", json={"status": "DONE"}, headers=owner_headers)
        assert res.status_code == 400

    def test_delete(self, client, owner_headers, version):
        item = _post_feedback(client, owner_headers, version).get_json()
        assert client.delete(f"/api/v1/feedback/{item['id']}", headers=owner_headers).status_code == 200
        res = client.get(f"/api/v1/versions/{version['id']}/feedback", headers=owner_headers)
        assert res.get_json() == []
