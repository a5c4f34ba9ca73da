"""
Task Blueprint — production tasks, manual or extracted from feedback by AI.

  GET    /api/v1/tasks?project_id=&assigned_to_user_id=&status=&priority=&category=
  POST   /api/v1/tasks
  GET    /api/v1/tasks/<id>
  PATCH  /api/v1/tasks/<id>                 status / assignee / due date
  DELETE /api/v1/tasks/<id>
  POST   /api/v1/tasks/from-feedback        { project_id, feedback_ids, auto_assign }

Editors only see tasks of projects they can access.
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.core.exceptions import ValidationError
from app.middleware.jwt_auth import login_required
from app.schemas import TaskCreate, TasksFromFeedback, TaskUpdate, load
from app.services import task_service
from app.services.access_control import assert_project_access, get_accessible_project_ids, is_owner_or_pm
from app.services.ai_service import AIService
from app.services.feedback_service import get_feedback, to_ai_item
from app.utils.helpers import db_commit_or_error, parse_datetime

logger = logging.getLogger(__name__)

task_bp = Blueprint("task_bp", __name__, url_prefix="/api/v1")

_FILTER_FIELDS = ("status", "priority", "category")


def _due_date(value):
    try:
        return parse_datetime(value)
    except ValueError as exc:
        raise ValidationError("Invalid due_date") from exc


def _load_task(task_id):
    task = task_service.get_task(tenant_id=g.tenant.id, task_id=task_id)
    assert_project_access(g.current_user, task.project_id)
    return task


@task_bp.route("/tasks", methods=["GET"])
@login_required
def list_tasks():
    filters = {field: request.args.get(field) for field in _FILTER_FIELDS if request.args.get(field)}
    project_id = request.args.get("project_id", type=int)
    if project_id:
        filters["project_id"] = project_id
    assignee = request.args.get("assigned_to_user_id", type=int)
    if assignee:
        filters["assigned_to_user_id"] = assignee

    accessible = None
    if not is_owner_or_pm(g.jwt_role):
        accessible = get_accessible_project_ids(g.current_user)

    tasks = task_service.list_tasks(
        tenant_id=g.tenant.id, filters=filters, accessible_project_ids=accessible,
    )
    return jsonify([t.to_dict() for t in tasks]), 200


@task_bp.route("/tasks", methods=["POST"])
@login_required
def create_task():
    payload = load(TaskCreate)
    assert_project_access(g.current_user, payload.project_id)
    data = payload.data()
    data["due_date"] = _due_date(data.get("due_date"))
    task = task_service.create_task(tenant_id=g.tenant.id, **data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(task.to_dict()), 201


@task_bp.route("/tasks/<int:task_id>", methods=["GET"])
@login_required
def get_task(task_id):
    return jsonify(_load_task(task_id).to_dict()), 200


@task_bp.route("/tasks/<int:task_id>", methods=["PATCH"])
@login_required
def update_task(task_id):
    _load_task(task_id)
    data = load(TaskUpdate).data(partial=True)
    if "due_date" in data:
        data["due_date"] = _due_date(data["due_date"])
    task = task_service.update_task(tenant_id=g.tenant.id, task_id=task_id, data=data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(task.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
@login_required
def delete_task(task_id):
    _load_task(task_id)
    task_service.delete_task(tenant_id=g.tenant.id, task_id=task_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True}), 200


@task_bp.route("/tasks/from-feedback", methods=["POST"])
@login_required
def tasks_from_feedback():
    """Parse feedback with the AI and turn its action items into tasks."""
    payload = load(TasksFromFeedback)
    project = assert_project_access(g.current_user, payload.project_id)
    items = [
        to_ai_item(get_feedback(tenant_id=g.tenant.id, feedback_id=fid))
        for fid in payload.feedback_ids
    ]

    parsed = AIService().parse_feedback(
        items, {"name": project.name, "brief": project.description or project.scope_doc_url},
    )
    action_items = parsed["action_items"]

    tasks = []
    if action_items:
        tasks = task_service.create_tasks_from_action_items(
            project_id=project.id,
            tenant_id=g.tenant.id,
            action_items=action_items,
            auto_assign=payload.auto_assign,
        )
        err = db_commit_or_error()
        if err:
            return err
    logger.info("Created %d tasks from %d feedback items on project %s", len(tasks), len(items), project.id)

    return jsonify({
        "summary": parsed["summary"],
        "tasks_created": len(tasks),
        "tasks": [t.to_dict() for t in tasks],
    }), 201
