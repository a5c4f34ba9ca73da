"""
AI Blueprint — direct access to the AI assistant for the dashboard.

  POST /api/v1/ai/parse-feedback         { feedback_items[], project_context? }
  POST /api/v1/ai/extract-action-items   { feedback_text }
  POST /api/v1/ai/analyze-scope          { feedback_text, feedback_id, project_scope, project_name }
  POST /api/v1/ai/analyze-with-brief     { comment_text, project_brief, existing_tasks? }
  POST /api/v1/ai/categorize             { comments: [{id, text}] }
  POST /api/v1/ai/generate-summary       { project_id, next_steps? }  client update from DONE tasks
  POST /api/v1/ai/change-request         { feedback_text, project_name, estimated_cost }
  POST /api/v1/ai/transcribe-audio       multipart, field "audio"

Nothing here is persisted; stored scope decisions and tasks go through
/scope and /tasks. Responses that run a completion include ``usage``.
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.core.exceptions import ValidationError
from app.middleware.jwt_auth import login_required
from app.schemas import (
    AIAnalyzeScope,
    AIAnalyzeWithBrief,
    AICategorize,
    AIChangeRequest,
    AIExtractActionItems,
    AIGenerateSummary,
    AIParseFeedback,
    load,
)
from app.services import task_service
from app.services.access_control import assert_project_access
from app.services.ai_service import AIService

logger = logging.getLogger(__name__)

ai_bp = Blueprint("ai_bp", __name__, url_prefix="/api/v1/ai")


def _with_usage(ai: AIService, body: dict):
    return jsonify({**body, "usage": ai.get_token_usage()}), 200


@ai_bp.route("/parse-feedback", methods=["POST"])
@login_required
def parse_feedback():
    payload = load(AIParseFeedback)
    data = payload.data()
    ai = AIService()
    result = ai.parse_feedback(data["feedback_items"], data.get("project_context"))
    return _with_usage(ai, result)


@ai_bp.route("/extract-action-items", methods=["POST"])
@login_required
def extract_action_items():
    payload = load(AIExtractActionItems)
    ai = AIService()
    return _with_usage(ai, {"action_items": ai.extract_action_items(payload.feedback_text)})


@ai_bp.route("/analyze-scope", methods=["POST"])
@login_required
def analyze_scope():
    payload = load(AIAnalyzeScope)
    ai = AIService()
    return _with_usage(ai, ai.analyze_scope_compliance(**payload.data()))


@ai_bp.route("/analyze-with-brief", methods=["POST"])
@login_required
def analyze_with_brief():
    payload = load(AIAnalyzeWithBrief)
    ai = AIService()
    return _with_usage(ai, ai.analyze_with_brief(**payload.data()))


@ai_bp.route("/categorize", methods=["POST"])
@login_required
def categorize():
    payload = load(AICategorize)
    ai = AIService()
    return _with_usage(ai, ai.categorize_comments(payload.data()["comments"]))


@ai_bp.route("/generate-summary", methods=["POST"])
@login_required
def generate_summary():
    payload = load(AIGenerateSummary)
    project = assert_project_access(g.current_user, payload.project_id)
    done = task_service.list_tasks(
        tenant_id=g.tenant.id, filters={"project_id": project.id, "status": "DONE"},
    )
    if not done:
        raise ValidationError("Project has no completed tasks to report")

    ai = AIService()
    update = ai.generate_client_update(
        project.name,
        [{"title": t.title, "category": t.category or "OTHER"} for t in done],
        payload.next_steps,
    )
    return _with_usage(ai, {**update, "project_id": project.id, "completed_tasks": len(done)})


@ai_bp.route("/change-request", methods=["POST"])
@login_required
def change_request():
    payload = load(AIChangeRequest)
    ai = AIService()
    template = ai.generate_change_request_template(
        payload.feedback_text, payload.estimated_cost, payload.project_name,
    )
    return _with_usage(ai, template)


@ai_bp.route("/transcribe-audio", methods=["POST"])
@login_required
def transcribe_audio():
    audio = request.files.get("audio")
    if audio is None or not audio.filename:
        raise ValidationError("Audio file is required")
    result = AIService().transcribe_audio_feedback(audio.read(), audio.filename)
    logger.info("Voice feedback transcribed for user %s", g.current_user.id)
    return jsonify(result), 200
