"""Scope guard API — AI labelling of feedback and PM decisions."""

import pytest

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.services import scope_guard_service

from tests.conftest import auth_headers, signup


def _feedback(client, headers, version, text):
    res = client.post("/api/v1/feedback", json={"asset_version_id": version["id"], "text": text},
                      headers=headers)
    assert res.status_code == 201
    return res.get_json()


def _analyze(client, headers, project, feedback):
    return client.post("/api/v1/scope/analyze", json={
        "project_id": project["id"], "feedback_id": feedback["id"],
    }, headers=headers)


class TestAnalyze:
    def test_revision_is_in_scope(self, client, owner_headers, project, version):
        item = _feedback(client, owner_headers, version, "Make the transition smoother")
        res = _analyze(client, owner_headers, project, item)
        assert res.status_code == 200
        data = res.get_json()
        assert data["analysis"]["label"] == "IN_SCOPE"
        assert data["analysis"]["estimated_cost"] is None
        assert data["decision"]["ai_label"] == "IN_SCOPE"
        assert data["decision"]["pm_decision"] is None
        assert data["decision"]["feedback"]["id"] == item["id"]

    def test_extra_deliverable_is_out_of_scope(self, client, owner_headers, project, version):
        item = _feedback(client, owner_headers, version, "Add a second version in Spanish")
        data = _analyze(client, owner_headers, project, item).get_json()
        assert data["analysis"]["label"] == "OUT_OF_SCOPE"
        assert data["analysis"]["estimated_cost"] == 500
        assert 0 <= data["decision"]["ai_confidence"] <= 1

    def test_one_decision_per_feedback(self, client, owner_headers, project, version):
        item = _feedback(client, owner_headers, version, "Swap the end card")
        _analyze(client, owner_headers, project, item)
        res = _analyze(client, owner_headers, project, item)
        assert res.status_code == 409
        assert res.get_json()["error"] == "Scope decision already exists for this feedback"

    def test_duplicate_is_refused_before_the_model_call(self, client, owner, owner_headers, project, version):
        item = _feedback(client, owner_headers, version, "Swap the end card")
        _analyze(client, owner_headers, project, item)

        class _CountingAI:
            calls = 0

            def analyze_scope_compliance(self, **kwargs):
                self.calls += 1
                return {"label": "IN_SCOPE", "confidence": 0.9, "reasoning": "Revision"}

        ai = _CountingAI()
        with pytest.raises(ConflictError):
            scope_guard_service.analyze_feedback_scope(
                tenant_id=owner["tenant"]["id"], project_id=project["id"], feedback_id=item["id"], ai=ai,
            )
        assert ai.calls == 0

    def test_feedback_of_other_project(self, client, owner_headers, agency_client, version):
        item = _feedback(client, owner_headers, version, "Swap the end card")
        other = client.post("/api/v1/projects", json={
            "name": "Other Project", "client_id": agency_client["id"],
        }, headers=owner_headers).get_json()
        res = _analyze(client, owner_headers, other, item)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Feedback does not belong to this project"


class TestDecisions:
    def test_list_by_project_and_all(self, client, owner_headers, project, version):
        item = _feedback(client, owner_headers, version, "Swap the end card")
        _analyze(client, owner_headers, project, item)

        by_project = client.get(f"/api/v1/scope/decisions?project_id={project['id']}",
                                headers=owner_headers).get_json()
        assert len(by_project) == 1
        assert client.get("/api/v1/scope/decisions", headers=owner_headers).get_json() == by_project

    def test_editor_without_access_sees_nothing(self, client, owner_headers, editor_headers, project, version):
        item = _feedback(client, owner_headers, version, "Swap the end card")
        _analyze(client, owner_headers, project, item)
        assert client.get("/api/v1/scope/decisions", headers=editor_headers).get_json() == []

    def test_pm_decision(self, client, owner, owner_headers, project, version):
        item = _feedback(client, owner_headers, version, "Add a second version in Spanish")
        decision = _analyze(client, owner_headers, project, item).get_json()["decision"]

        res = client.post(f"/api/v1/scope/decisions/{decision['id']}/decide", json={
            "decision": "CHANGE_REQUEST", "reason": "New deliverable", "change_request_amount": 750,
        }, headers=owner_headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["pm_decision"] == "CHANGE_REQUEST"
        assert data["change_request_amount"] == 750.0
        assert data["decided_by"]["id"] == owner["user"]["id"]
        assert data["decided_at"] is not None

    def test_negative_amount_rejected(self, client, owner_headers, project, version):
        item = _feedback(client, owner_headers, version, "Swap the end card")
        decision = _analyze(client, owner_headers, project, item).get_json()["decision"]
        res = client.post(f"/api/v1/scope/decisions/{decision['id']}/decide", json={
            "decision": "APPROVED", "change_request_amount": -1,
        }, headers=owner_headers)
        assert res.status_code == 400

    def test_editor_cannot_decide(self, client, owner_headers, editor_headers, project, version):
        item = _feedback(client, owner_headers, version, "Swap the end card")
        decision = _analyze(client, owner_headers, project, item).get_json()["decision"]
        res = client.post(f"/api/v1/scope/decisions/{decision['id']}/decide",
                          json={"decision": "APPROVED"}, headers=editor_headers)
        assert res.status_code == 403

    def test_other_tenant_cannot_decide(self, client, owner_headers, project, version):
        item = _feedback(client, owner_headers, version, "Swap the end card")
        decision = _analyze(client, owner_headers, project, item).get_json()["decision"]
        rival = signup(client, slug="rival-cuts")
        res = client.post(f"/api/v1/scope/decisions/{decision['id']}/decide",
                          json={"decision": "APPROVED"}, headers=auth_headers(rival["token"]))
        assert res.status_code == 404


class TestServiceDirect:
    def test_invalid_decision(self, owner):
        with pytest.raises(ValidationError, match="Invalid decision"):
            scope_guard_service.make_pm_decision(
                decision_id=1, tenant_id=owner["tenant"]["id"], pm_user_id=owner["user"]["id"],
                decision="MAYBE",
            )

    def test_unknown_decision_id(self, owner):
        with pytest.raises(NotFoundError):
            scope_guard_service.get_scope_decision(decision_id=999, tenant_id=owner["tenant"]["id"])
