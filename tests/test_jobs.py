"""
Background jobs — handler bodies, enqueue helpers and retry backoff.

Handlers are called directly; no broker is involved.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.jobs import queues
from app.jobs.celery_app import backoff_seconds
from app.jobs.handlers import (
    create_parse_feedback_handler,
    handle_check_workflows,
    handle_parse_feedback,
    handle_send_email,
)
from app.jobs.tasks import job_context, run_with_retry
from app.middleware.logging_config import JSONFormatter, ReadableFormatter
from app.models import db
from app.models.notification import Notification
from app.models.project import WorkflowStage
from app.models.task import AITask


class _Recorder:
    def __init__(self, result=None):
        self.calls = []
        self.result = result

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        return self.result


def _stub_handler(action_items, project=None):
    get_feedback = _Recorder({"id": 1, "text": "Cut the intro", "timecode_sec": 3.0})
    parse = _Recorder({"summary": "ok", "action_items": action_items})
    create_tasks = _Recorder(["task-a", "task-b"])
    commit = _Recorder()
    handler = create_parse_feedback_handler(
        get_feedback=get_feedback,
        get_project=_Recorder(project if project is not None else {"id": 5, "name": "Teaser"}),
        parse_feedback=parse,
        create_tasks=create_tasks,
        commit=commit,
    )
    return handler, parse, create_tasks, commit


class TestParseFeedbackHandler:
    def test_creates_tasks_and_commits(self):
        handler, parse, create_tasks, commit = _stub_handler([{"text": "Cut the intro"}])
        result = handler(tenant_id=1, project_id=5, feedback_ids=[1])

        assert result == {"action_items": 1, "tasks_created": 2}
        items, context = parse.calls[0][0]
        assert items[0]["text"] == "Cut the intro"
        assert context == {"name": "Teaser", "brief": None}
        assert create_tasks.calls[0][1]["auto_assign"] is True
        assert len(commit.calls) == 1

    def test_no_action_items_skips_task_creation(self):
        handler, _, create_tasks, commit = _stub_handler([])
        assert handler(tenant_id=1, project_id=5, feedback_ids=[1]) == {"action_items": 0, "tasks_created": 0}
        assert create_tasks.calls == []
        assert commit.calls == []

    def test_requires_feedback_ids(self):
        handler, *_ = _stub_handler([])
        with pytest.raises(ValidationError):
            handler(tenant_id=1, project_id=5, feedback_ids=[])

    def test_missing_project(self):
        handler = create_parse_feedback_handler(
            get_feedback=_Recorder({"id": 1, "text": "x"}),
            get_project=_Recorder(None),
            parse_feedback=_Recorder(),
            create_tasks=_Recorder(),
            commit=_Recorder(),
        )
        with pytest.raises(NotFoundError):
            handler(tenant_id=1, project_id=5, feedback_ids=[1])

    def test_default_handler_end_to_end(self, client, owner, owner_headers, editor, project, version):
        res = client.post("/api/v1/feedback", json={
            "asset_version_id": version["id"], "text": "The voice is too quiet",
        }, headers=owner_headers)
        feedback_id = res.get_json()["id"]

        result = handle_parse_feedback(
            tenant_id=owner["tenant"]["id"], project_id=project["id"], feedback_ids=[feedback_id],
        )
        assert result == {"action_items": 1, "tasks_created": 1}
        task = AITask.query.filter_by(project_id=project["id"]).one()
        assert task.category == "SOUND"
        assert task.assigned_to_user_id == editor.id


class TestOtherHandlers:
    def test_check_workflows_emails_managers(self, owner, project):
        stage = WorkflowStage.query.filter_by(project_id=project["id"], stage_name="BRIEFING").one()
        stage.started_at = datetime.now(timezone.utc) - timedelta(hours=30)
        db.session.commit()

        result = handle_check_workflows()
        assert result == {"tenants": 1, "overdue_stages": 1, "emails": 1}
        notification = Notification.query.filter_by(template_key="stage_overdue").one()
        assert notification.recipient == owner["user"]["email"]
        assert notification.payload["stage_name"] == "BRIEFING"

    def test_check_workflows_nothing_overdue(self, owner, project):
        assert handle_check_workflows(tenant_id=owner["tenant"]["id"])["overdue_stages"] == 0
        assert Notification.query.count() == 0

    def test_send_email_unknown_template(self, owner):
        result = handle_send_email(
            tenant_id=owner["tenant"]["id"], to_email="pm@videoagency.com",
            template_name="does_not_exist", context={},
        )
        assert result == {"sent": False, "reason": "unknown template"}

    def test_send_email_template(self, owner):
        result = handle_send_email(
            tenant_id=owner["tenant"]["id"], to_email="pm@videoagency.com",
            template_name="stage_overdue",
            context={"project_name": "Teaser", "project_id": 1, "stage_name": "EDITING", "overdue_hours": 3},
        )
        assert result["sent"] is True


class TestQueuesAndBackoff:
    def test_helpers_are_noops_when_disabled(self, app):
        assert not queues.jobs_enabled()
        assert queues.enqueue_parse_feedback(tenant_id=1, project_id=1, feedback_ids=[1]) is None
        assert queues.enqueue_analyze_scope(tenant_id=1, project_id=1, feedback_id=1) is None
        assert queues.enqueue_send_email(tenant_id=1, to_email="a@b.co", template_name="x", context={}) is None

    def test_exponential_backoff(self):
        assert [backoff_seconds(n) for n in range(3)] == [2, 4, 8]


# ═══════════════════════════════════════════════════════════════
# TASK WRAPPER LOGGING
# ═══════════════════════════════════════════════════════════════

class _Retry(Exception):
    pass


class _FakeTask:
    name = "app.jobs.tasks.parse_feedback"

    def __init__(self, retries=0):
        self.request = SimpleNamespace(
            id="job-1", retries=retries, delivery_info={"routing_key": "feedback-processing"},
        )
        self.retried = []

    def retry(self, exc, countdown):
        self.retried.append(countdown)
        return _Retry(str(exc))


def _task_records(caplog):
    return [r for r in caplog.records if r.name == "app.jobs.tasks"]


class TestTaskWrapper:
    def test_success_logs_job_context(self, caplog):
        caplog.set_level(logging.INFO, logger="app.jobs.tasks")
        result = run_with_retry(_FakeTask(), lambda **kw: {"tenant": kw["tenant_id"]}, tenant_id=3)
        assert result == {"tenant": 3}

        records = _task_records(caplog)
        assert [r.getMessage() for r in records] == ["parse_feedback started", "parse_feedback finished"]
        assert records[0].job_id == "job-1"
        assert records[0].queue == "feedback-processing"
        assert records[0].attempt == 1
        assert records[0].tenant_id == 3
        assert not hasattr(records[0], "project_id")

    def test_failure_schedules_backoff(self, caplog):
        caplog.set_level(logging.INFO, logger="app.jobs.tasks")
        task = _FakeTask(retries=1)

        def _boom(**kwargs):
            raise RuntimeError("model timeout")

        with pytest.raises(_Retry):
            run_with_retry(task, _boom, tenant_id=3, project_id=9)
        assert task.retried == [4]

        warning = _task_records(caplog)[-1]
        assert warning.levelname == "WARNING"
        assert warning.getMessage() == "parse_feedback attempt 2 failed: model timeout"
        assert warning.attempt == 2
        assert warning.project_id == 9

    def test_eager_request_without_delivery_info(self):
        task = _FakeTask()
        task.request.delivery_info = None
        assert job_context(task)["queue"] is None


class TestLogFormatters:
    @staticmethod
    def _record(**extra):
        record = logging.LogRecord("app.jobs.tasks", logging.INFO, __file__, 1, "%s finished", ("parse_feedback",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_carries_job_fields(self):
        entry = json.loads(JSONFormatter().format(self._record(job_id="job-1", queue="email-delivery", attempt=2)))
        assert entry["message"] == "parse_feedback finished"
        assert entry["job_id"] == "job-1"
        assert entry["queue"] == "email-delivery"
        assert entry["attempt"] == 2
        assert "path" not in entry

    def test_readable_appends_context_tags(self):
        line = ReadableFormatter(use_color=False).format(
            self._record(request_id="abc", method="GET", duration_ms=12.4, tenant_id=3),
        )
        assert line.endswith("app.jobs.tasks: parse_feedback finished [12ms] request_id=abc tenant_id=3")
