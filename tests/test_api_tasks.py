"""Task API — manual tasks, filters, updates and AI extraction from feedback."""

from datetime import datetime, timedelta, timezone

from app.services import task_service

from tests.conftest import make_user


def _create_task(client, headers, project, **extra):
    body = {"project_id": project["id"], "title": "Color grade intro", **extra}
    return client.post("/api/v1/tasks", json=body, headers=headers)


def _feedback(client, headers, version, text):
    res = client.post("/api/v1/feedback", json={"asset_version_id": version["id"], "text": text},
                      headers=headers)
    assert res.status_code == 201
    return res.get_json()


class TestManualTasks:
    def test_create_defaults(self, client, owner_headers, project):
        res = _create_task(client, owner_headers, project)
        assert res.status_code == 201
        data = res.get_json()
        assert data["status"] == "TODO"
        assert data["priority"] == "MEDIUM"
        assert data["ai_generated"] is False
        assert data["project"]["name"] == "Launch Teaser"

    def test_title_required(self, client, owner_headers, project):
        res = _create_task(client, owner_headers, project, title="  ")
        assert res.status_code == 400
        assert "Title is required" in res.get_json()["error"]

    def test_due_date_in_past(self, client, owner_headers, project):
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        res = _create_task(client, owner_headers, project, due_date=past)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Due date cannot be in the past"

    def test_assignee_must_be_in_tenant(self, client, owner_headers, project):
        res = _create_task(client, owner_headers, project, assigned_to_user_id=9999)
        assert res.status_code == 404

    def test_list_sorted_by_priority(self, client, owner_headers, project):
        _create_task(client, owner_headers, project, title="Low one", priority="LOW")
        _create_task(client, owner_headers, project, title="Urgent one", priority="URGENT")
        _create_task(client, owner_headers, project, title="Medium one")
        res = client.get("/api/v1/tasks", headers=owner_headers)
        assert [t["title"] for t in res.get_json()] == ["Urgent one", "Medium one", "Low one"]

        res = client.get("/api/v1/tasks?priority=LOW", headers=owner_headers)
        assert [t["title"] for t in res.get_json()] == ["Low one"]

    def test_update_status_sets_completed_at(self, client, owner_headers, project):
        task = _create_task(client, owner_headers, project).get_json()
        res = client.patch(f"/api/v1/tasks/{task['id']}", json={"status": "DONE"}, headers=owner_headers)
        assert res.status_code == 200
        assert res.get_json()["completed_at"] is not None

        res = client.patch(f"/api/v1/tasks/{task['id']}", json={"status": "IN_PROGRESS"}, headers=owner_headers)
        assert res.get_json()["completed_at"] is None

    def test_update_requires_a_field(self, client, owner_headers, project):
        task = _create_task(client, owner_headers, project).get_json()
        res = client.patch(f"/api/v1/tasks/{task['id']}", json={}, headers=owner_headers)
        assert res.status_code == 400

    def test_delete(self, client, owner_headers, project):
        task = _create_task(client, owner_headers, project).get_json()
        assert client.delete(f"/api/v1/tasks/{task['id']}", headers=owner_headers).status_code == 200
        assert client.get(f"/api/v1/tasks/{task['id']}", headers=owner_headers).status_code == 404

    def test_editor_only_sees_member_projects(self, client, owner_headers, editor, editor_headers, project):
        _create_task(client, owner_headers, project)
        assert client.get("/api/v1/tasks", headers=editor_headers).get_json() == []

        client.post(f"/api/v1/projects/{project['id']}/members", json={"user_ids": [editor.id]},
                    headers=owner_headers)
        assert len(client.get("/api/v1/tasks", headers=editor_headers).get_json()) == 1


class TestTasksFromFeedback:
    def test_extracts_and_assigns(self, client, owner_headers, editor, project, version):
        first = _feedback(client, owner_headers, version, "Make the logo bigger")
        second = _feedback(client, owner_headers, version, "Looks good overall")

        res = client.post("/api/v1/tasks/from-feedback", json={
            "project_id": project["id"], "feedback_ids": [first["id"], second["id"]],
        }, headers=owner_headers)
        assert res.status_code == 201
        data = res.get_json()
        assert data["summary"]
        assert data["tasks_created"] == 1

        task = data["tasks"][0]
        assert task["title"] == "Make the logo bigger"
        assert task["category"] == "DESIGN"
        assert task["ai_generated"] is True
        assert task["source_feedback_ids"] == [first["id"]]
        assert task["assigned_to_user_id"] == editor.id
        assert task["due_date"] is not None

    def test_without_auto_assign(self, client, owner_headers, editor, project, version):
        item = _feedback(client, owner_headers, version, "Music is too loud")
        data = client.post("/api/v1/tasks/from-feedback", json={
            "project_id": project["id"], "feedback_ids": [item["id"]], "auto_assign": False,
        }, headers=owner_headers).get_json()
        assert data["tasks"][0]["assigned_to_user_id"] is None
        assert data["tasks"][0]["category"] == "SOUND"

    def test_only_praise_creates_nothing(self, client, owner_headers, project, version):
        item = _feedback(client, owner_headers, version, "Great work")
        res = client.post("/api/v1/tasks/from-feedback", json={
            "project_id": project["id"], "feedback_ids": [item["id"]],
        }, headers=owner_headers)
        assert res.status_code == 201
        assert res.get_json()["tasks_created"] == 0

    def test_feedback_ids_required(self, client, owner_headers, project):
        res = client.post("/api/v1/tasks/from-feedback", json={
            "project_id": project["id"], "feedback_ids": [],
        }, headers=owner_headers)
        assert res.status_code == 400


class TestAutoAssign:
    ITEMS = [{"text": f"Fix shot {n}", "priority": "LOW"} for n in range(3)]

    def test_round_robin_over_tenant_editors(self, owner, project):
        first = make_user(owner["tenant"]["id"])
        second = make_user(owner["tenant"]["id"])
        tasks = task_service.create_tasks_from_action_items(
            project_id=project["id"], tenant_id=owner["tenant"]["id"], action_items=self.ITEMS,
        )
        assert [t.assigned_to_user_id for t in tasks] == [first.id, second.id, first.id]

    def test_project_editors_come_first(self, client, owner, owner_headers, project):
        make_user(owner["tenant"]["id"])
        member = make_user(owner["tenant"]["id"])
        client.post(f"/api/v1/projects/{project['id']}/members", json={"user_ids": [member.id]},
                    headers=owner_headers)
        tasks = task_service.create_tasks_from_action_items(
            project_id=project["id"], tenant_id=owner["tenant"]["id"], action_items=self.ITEMS,
        )
        assert {t.assigned_to_user_id for t in tasks} == {member.id}
