"""AI API — stateless assistant endpoints, run against the local stub provider."""

import io

import pytest


def _post(client, path, body, headers):
    return client.post(f"/api/v1/ai/{path}", json=body, headers=headers)


class TestParseFeedback:
    def test_extracts_actions_and_skips_praise(self, client, owner_headers):
        res = _post(client, "parse-feedback", {
            "feedback_items": [
                {"id": 11, "text": "Make the logo bigger", "timecode_sec": 65, "author_name": "Carla"},
                {"id": 12, "text": "Great work", "author_name": "Carla"},
            ],
            "project_context": {"name": "Launch Teaser"},
        }, owner_headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["total_feedback_processed"] == 2
        assert len(data["action_items"]) == 1
        item = data["action_items"][0]
        assert item["text"] == "Make the logo bigger (1:05)"
        assert item["category"] == "DESIGN"
        assert item["source_feedback_ids"] == [11]
        assert data["usage"]["total_tokens"] > 0

    def test_items_required(self, client, owner_headers):
        res = _post(client, "parse-feedback", {"feedback_items": []}, owner_headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Validation failed"

    def test_negative_timecode(self, client, owner_headers):
        res = _post(client, "parse-feedback", {
            "feedback_items": [{"id": 1, "text": "Cut", "timecode_sec": -1, "author_name": "Carla"}],
        }, owner_headers)
        assert res.status_code == 400

    def test_requires_login(self, client):
        res = client.post("/api/v1/ai/parse-feedback", json={"feedback_items": []})
        assert res.status_code == 401


class TestTextHelpers:
    def test_extract_action_items(self, client, owner_headers):
        res = _post(client, "extract-action-items", {"feedback_text": "Music is too loud"}, owner_headers)
        assert res.status_code == 200
        items = res.get_json()["action_items"]
        assert [(i["text"], i["category"]) for i in items] == [("Music is too loud", "SOUND")]

    @pytest.mark.parametrize("text, label, cost", [
        ("Make the transition smoother", "IN_SCOPE", None),
        ("Add a second version in Spanish", "OUT_OF_SCOPE", 500),
    ])
    def test_analyze_scope(self, client, owner_headers, text, label, cost):
        res = _post(client, "analyze-scope", {
            "feedback_text": text, "feedback_id": 7,
            "project_scope": "30 second teaser", "project_name": "Launch Teaser",
        }, owner_headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["label"] == label
        assert data["estimated_cost"] == cost

    def test_analyze_with_brief(self, client, owner_headers):
        res = _post(client, "analyze-with-brief", {
            "comment_text": "Make the cut tighter", "project_brief": "30 second teaser",
            "existing_tasks": ["Colour grade"],
        }, owner_headers)
        data = res.get_json()
        assert data["in_scope"] is True
        assert data["recommendation"] == "APPROVE"
        assert data["estimated_extra_hours"] is None

    def test_analyze_with_brief_needs_brief(self, client, owner_headers):
        res = _post(client, "analyze-with-brief", {"comment_text": "Make the cut tighter"}, owner_headers)
        assert res.status_code == 400

    def test_categorize(self, client, owner_headers):
        res = _post(client, "categorize", {"comments": [
            {"id": 1, "text": "Music is too loud"},
            {"id": 2, "text": "Logo is wrong"},
        ]}, owner_headers)
        assert res.status_code == 200
        data = res.get_json()
        assert [c["id"] for c in data["categories"]["SOUND"]] == ["1"]
        assert data["categories"]["DESIGN"][0]["priority"] == "HIGH"
        assert data["summary"]["total_comments"] == 2
        assert data["summary"]["by_priority"] == {"HIGH": 1, "MEDIUM": 1, "LOW": 0}

    def test_categorize_nothing(self, client, owner_headers):
        data = _post(client, "categorize", {"comments": []}, owner_headers).get_json()
        assert data["summary"]["total_comments"] == 0

    def test_change_request(self, client, owner_headers):
        res = _post(client, "change-request", {
            "feedback_text": "Add a Spanish version", "project_name": "Launch Teaser", "estimated_cost": 750,
        }, owner_headers)
        data = res.get_json()
        assert data["subject"] == "Change Request: Launch Teaser"
        assert data["estimated_cost"] == 750
        assert data["estimated_days"] == 3

    def test_change_request_negative_cost(self, client, owner_headers):
        res = _post(client, "change-request", {
            "feedback_text": "Add a Spanish version", "project_name": "Launch Teaser", "estimated_cost": -1,
        }, owner_headers)
        assert res.status_code == 400


class TestGenerateSummary:
    def test_needs_completed_tasks(self, client, owner_headers, project):
        res = _post(client, "generate-summary", {"project_id": project["id"]}, owner_headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Project has no completed tasks to report"

    def test_update_from_done_tasks(self, client, owner_headers, project):
        task = client.post("/api/v1/tasks", json={"project_id": project["id"], "title": "Colour grade"},
                           headers=owner_headers).get_json()
        client.patch(f"/api/v1/tasks/{task['id']}", json={"status": "DONE"}, headers=owner_headers)

        res = _post(client, "generate-summary", {"project_id": project["id"], "next_steps": "Final mix"},
                    owner_headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["subject"] == "Update on Launch Teaser"
        assert data["tone"] == "professional"
        assert data["completed_tasks"] == 1

    def test_hidden_project(self, client, editor_headers, project):
        res = _post(client, "generate-summary", {"project_id": project["id"]}, editor_headers)
        assert res.status_code == 404


class TestTranscribeAudio:
    def test_transcribes_upload(self, client, owner_headers):
        res = client.post(
            "/api/v1/ai/transcribe-audio",
            data={"audio": (io.BytesIO(b"voice-bytes"), "note.webm")},
            content_type="multipart/form-data",
            headers=owner_headers,
        )
        assert res.status_code == 200
        assert res.get_json() == {"text": "Transcribed 11 bytes from note.webm"}

    def test_missing_file(self, client, owner_headers):
        res = client.post("/api/v1/ai/transcribe-audio", data={}, content_type="multipart/form-data",
                          headers=owner_headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Audio file is required"
