"""Error translation, health checks and the CLI sweep."""

import pytest

from app.core.error_handlers import status_for_message


class TestStatusForMessage:
    @pytest.mark.parametrize("message,status", [
        ("Project not found in this tenant", 404),
        ("Unauthorized", 401),
        ("Invalid token", 401),
        ("Forbidden", 403),
        ("Title is required and must be under 200 characters", 400),
        ("Due date cannot be in the past", 400),
        ("Email already exists", 409),
        ("database is on fire", 500),
        ("", 500),
    ])
    def test_mapping(self, message, status):
        assert status_for_message(message) == status


class TestErrorBodies:
    def test_unknown_route_is_json(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_method_not_allowed(self, client):
        res = client.delete("/api/v1/health")
        assert res.status_code == 405

    def test_app_error_carries_code(self, client, owner_headers):
        res = client.get("/api/v1/clients/999", headers=owner_headers)
        assert res.status_code == 404
        body = res.get_json()
        assert body["code"] == "ERR_NOT_FOUND"
        assert "not found" in body["error"].lower()

    def test_schema_error_lists_issues(self, client, owner_headers):
        res = client.post("/api/v1/tasks", json={"title": "No project"}, headers=owner_headers)
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert [issue["path"] for issue in body["issues"]] == ["project_id"]


class TestHealth:
    def test_root_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live_without_redis(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "ok"
        assert data["checks"]["redis"]["status"] == "skipped"
        assert data["checks"]["app"]["jobs_enabled"] is False

    def test_security_headers(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.headers.get("X-Content-Type-Options") == "nosniff"


class TestCli:
    def test_check_workflows_command(self, app, owner):
        result = app.test_cli_runner().invoke(args=["check-workflows"])
        assert result.exit_code == 0
