"""
AI Service — feedback parsing, scope analysis and client communication.

Every method builds a prompt, runs a JSON-mode completion through the
LLM gateway and validates the result field by field: unknown enum values
fall back to defaults (priority MEDIUM, category OTHER, tone
professional, recommendation REQUEST_INFO) and numbers are clamped.

Provider failures surface as ExternalServiceError with a normalised
message; bad input raises ValidationError before any call is made.
"""

from __future__ import annotations

import logging
import math

from flask import current_app, has_app_context

from app.ai.gateway import INVALID_JSON_MESSAGE, LLMGateway, normalize_provider_error
from app.core.exceptions import ExternalServiceError, ValidationError
from app.models.task import TASK_CATEGORIES, TASK_PRIORITIES

logger = logging.getLogger(__name__)

CATEGORIZE_BATCH_SIZE = 50
MAX_AUDIO_BYTES = 25 * 1024 * 1024

TONES = ("professional", "friendly", "formal")
RECOMMENDATIONS = frozenset({"APPROVE", "DECLINE", "REQUEST_INFO"})
SCOPE_LABELS = frozenset({"IN_SCOPE", "OUT_OF_SCOPE", "UNCLEAR"})
COMMENT_PRIORITIES = ("HIGH", "MEDIUM", "LOW")

PARSE_FEEDBACK_SYSTEM_PROMPT = """You are an AI assistant for a video editing agency CRM.
Your task is to analyze client feedback and extract actionable tasks for video editors.

Guidelines:
- Identify specific, actionable requests
- Remove duplicate or similar feedback
- Assign priority based on urgency and impact
- Categorize by type (CONTENT, DESIGN, SOUND, LEGAL, OTHER)
- Preserve timecode references in the action text
- Ignore vague praise like "looks good" or "great work"
- Combine related feedback items when appropriate

Return a JSON object with:
{
  "summary": "Brief overview of all feedback in 1-2 sentences",
  "actionItems": [
    {
      "text": "Clear action description with timecode if applicable",
      "priority": "LOW|MEDIUM|HIGH|URGENT",
      "category": "CONTENT|DESIGN|SOUND|LEGAL|OTHER",
      "estimatedMinutes": 15,
      "sourceFeedbackIds": [1, 2]
    }
  ],
  "dedupedCount": 2
}"""

EXTRACT_ACTION_ITEMS_PROMPT = """Extract actionable tasks from the feedback text for a video editing team.
Return JSON only.
Output schema:
{
  "actionItems": [
    {
      "text": "Action item",
      "priority": "LOW|MEDIUM|HIGH|URGENT",
      "category": "CONTENT|DESIGN|SOUND|LEGAL|OTHER",
      "estimatedMinutes": 15
    }
  ]
}"""

CLIENT_UPDATE_PROMPT = """You are writing a professional email to a client about their video project.
Be concise, friendly, and positive. Highlight completed work and set clear expectations.

Return JSON:
{
  "subject": "Short email subject line (under 60 chars)",
  "body": "Email body with greeting, completed tasks summary, and next steps. Use markdown formatting.",
  "tone": "professional"
}"""

SCOPE_ANALYSIS_PROMPT = """You are an AI assistant for a video production agency.
Your task is to analyze client feedback and determine if it's within the original project scope.

Guidelines:
- Compare the feedback request with the original project brief/SOW
- Is this a NEW deliverable, or a refinement of EXISTING agreed work?
- Is the magnitude of work reasonable for the original quote?
- Is the request vague and needs clarification?

Labels:
  IN_SCOPE: clearly within the original agreement
  OUT_OF_SCOPE: a new deliverable or major change
  UNCLEAR: needs clarification from the client

Give a confidence score between 0.0 and 1.0, explain the reasoning in 2-3
sentences, suggest an action for the PM and, when out of scope, a
conservative additional cost in USD (typical range $200-$2000).

Return JSON:
{
  "label": "IN_SCOPE|OUT_OF_SCOPE|UNCLEAR",
  "confidence": 0.85,
  "reasoning": "Detailed explanation",
  "suggestedAction": "What PM should do",
  "estimatedCost": 500
}"""

CHANGE_REQUEST_PROMPT = """You are writing a professional change request email for a video production client.
The client's request is out of the original project scope.

Tone: Professional, friendly, solution-oriented.
Acknowledge the request, explain it is beyond the original scope, give the
cost estimate and timeline and offer next steps. Use markdown.

Return JSON:
{
  "subject": "Short email subject line (under 60 chars)",
  "body": "Email body",
  "estimatedCost": %s,
  "estimatedDays": 3
}"""

CATEGORIZE_PROMPT = """You categorize client feedback comments on a video.

For each comment return category (DESIGN|AUDIO|CONTENT|TECHNICAL|OTHER) and
priority (HIGH|MEDIUM|LOW). Detect duplicates: the first comment of a group is
the original (isDuplicate=false), similar ones get isDuplicate=true,
duplicateOf=<original id> and a similarityScore between 0 and 1.

Return JSON:
{
  "categories": {
    "DESIGN": [
      {"id": "1", "category": "DESIGN", "priority": "MEDIUM", "isDuplicate": false}
    ]
  },
  "summary": {"totalComments": 1, "uniqueComments": 1}
}"""

ANALYZE_WITH_BRIEF_PROMPT = """You are a PM assistant guarding project scope.
Decide whether the client's request fits the project brief.

PROJECT BRIEF:
%s
%s
Return JSON:
{
  "inScope": true,
  "confidence": 0.0,
  "reasoning": "string",
  "recommendation": "APPROVE|DECLINE|REQUEST_INFO",
  "estimatedExtraHours": 10,
  "suggestedResponse": "string"
}"""


# ── Value helpers ─────────────────────────────────────────────────────────────

def _get_string(value):
    return value if isinstance(value, str) else None


def _get_number(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def _get_non_negative_int(value):
    number = _get_number(value)
    if number is None or number < 0:
        return None
    return int(math.floor(number))


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def format_timecode(seconds) -> str:
    """Seconds → ``m:ss``; negative or non-numeric input renders as ``0:00``."""
    number = _get_number(seconds)
    safe = int(math.floor(number)) if number is not None and number >= 0 else 0
    return f"{safe // 60}:{safe % 60:02d}"


def validate_priority(value) -> str:
    normalized = value.upper() if isinstance(value, str) else ""
    return normalized if normalized in TASK_PRIORITIES else "MEDIUM"


def validate_category(value) -> str:
    normalized = value.upper() if isinstance(value, str) else ""
    return normalized if normalized in TASK_CATEGORIES else "OTHER"


def validate_tone(value) -> str:
    normalized = value.lower() if isinstance(value, str) else ""
    return normalized if normalized in TONES else "professional"


def validate_recommendation(value) -> str:
    normalized = value.upper() if isinstance(value, str) else ""
    return normalized if normalized in RECOMMENDATIONS else "REQUEST_INFO"


def _comment_priority(value) -> str:
    normalized = value.upper() if isinstance(value, str) else ""
    return normalized if normalized in COMMENT_PRIORITIES else "MEDIUM"


def _source_ids(value) -> list:
    if not isinstance(value, list):
        return []
    ids = []
    for item in value:
        if isinstance(item, bool):
            continue
        if isinstance(item, int):
            ids.append(item)
        elif isinstance(item, str) and item.strip():
            ids.append(int(item) if item.strip().isdigit() else item.strip())
    return ids


def validate_action_items(items) -> list[dict]:
    """Keep well-formed action items, defaulting unknown priority/category."""
    if not isinstance(items, list):
        return []
    result = []
    for item in items:
        if not isinstance(item, dict):
            continue
        text = (_get_string(item.get("text")) or "").strip()
        if not text:
            continue
        result.append({
            "text": text,
            "priority": validate_priority(item.get("priority")),
            "category": validate_category(item.get("category")),
            "suggested_assignee": _get_string(item.get("suggestedAssignee")),
            "estimated_minutes": _get_non_negative_int(item.get("estimatedMinutes")) or None,
            "source_feedback_ids": _source_ids(item.get("sourceFeedbackIds")),
        })
    return result


class AIService:
    """
    AI features for the CRM, backed by an LLMGateway.

    Pass a gateway to control the provider (tests use the local stub or a
    fake provider); otherwise one is built from the current app config.
    """

    def __init__(self, gateway: LLMGateway | None = None):
        if gateway is None:
            gateway = LLMGateway(app=current_app if has_app_context() else None)
        self.gateway = gateway

    def _complete(self, prefix: str, system_prompt: str, user_prompt: str, *,
                  purpose: str, temperature: float, max_tokens: int = 1200, retries: int = 1,
                  allow_list: bool = False):
        try:
            parsed = self.gateway.chat_json(
                system_prompt, user_prompt,
                purpose=purpose, temperature=temperature, max_tokens=max_tokens, retries=retries,
            )
        except Exception as exc:
            error = normalize_provider_error(prefix, exc)
            logger.error("%s: %s", prefix, error.message)
            raise error from exc
        if isinstance(parsed, list) and not allow_list:
            raise ExternalServiceError(INVALID_JSON_MESSAGE, service="openai")
        return parsed

    def get_token_usage(self) -> dict:
        return self.gateway.get_token_usage()

    # ── Feedback → action items ───────────────────────────────────────────

    @staticmethod
    def build_parse_feedback_prompt(feedback_items: list[dict], project_context: dict | None = None) -> str:
        prompt = ""
        if project_context:
            prompt += f"Project: {project_context.get('name')}\n"
            if project_context.get("brief"):
                prompt += f"Brief: {project_context['brief']}\n"
            prompt += "\n"

        prompt += "Client Feedback:\n"
        for item in feedback_items:
            author = (item.get("author_name") or "").strip() or "Client"
            timecode = item.get("timecode_sec")
            at = f" at {format_timecode(timecode)}" if _get_number(timecode) is not None else ""
            prompt += f"[{item['id']}] {author}{at}: {item['text']}\n"

        prompt += "\nPlease analyze and extract actionable tasks."
        return prompt

    def parse_feedback(self, feedback_items: list[dict], project_context: dict | None = None) -> dict:
        """Summarise feedback and extract deduplicated action items."""
        if not isinstance(feedback_items, list) or not feedback_items:
            raise ValidationError("Feedback items are required")
        for item in feedback_items:
            text = item.get("text") if isinstance(item, dict) else None
            if not isinstance(item, dict) or item.get("id") in (None, "") or not isinstance(text, str) or not text.strip():
                raise ValidationError("Each feedback item must have id and text")

        parsed = self._complete(
            "AI parsing failed",
            PARSE_FEEDBACK_SYSTEM_PROMPT,
            self.build_parse_feedback_prompt(feedback_items, project_context),
            purpose="parse_feedback", temperature=0.3,
        )
        return {
            "summary": _get_string(parsed.get("summary")) or "No summary provided",
            "action_items": validate_action_items(parsed.get("actionItems")),
            "deduped_count": _get_non_negative_int(parsed.get("dedupedCount")) or 0,
            "total_feedback_processed": len(feedback_items),
        }

    def extract_action_items(self, feedback_text: str) -> list[dict]:
        if not feedback_text or not feedback_text.strip():
            raise ValidationError("Feedback text is required")

        parsed = self._complete(
            "Action item extraction failed",
            EXTRACT_ACTION_ITEMS_PROMPT,
            f"Feedback:\n{feedback_text}\n\nExtract action items.",
            purpose="extract_action_items", temperature=0.3, allow_list=True,
        )
        payload = parsed if isinstance(parsed, list) else parsed.get("actionItems")
        return validate_action_items(payload)

    # ── Client communication ──────────────────────────────────────────────

    def generate_client_update(self, project_name: str, completed_tasks: list[dict],
                               next_steps: str | None = None) -> dict:
        if not project_name or not project_name.strip() or not isinstance(completed_tasks, list) or not completed_tasks:
            raise ValidationError("Project name and completed tasks are required")

        task_lines = "\n".join(
            f"- {task.get('title')} ({task.get('category')})" for task in completed_tasks
        )
        user_prompt = (
            f"Project: {project_name}\n\n"
            f"Completed tasks:\n{task_lines}\n\n"
            f"{f'Next steps: {next_steps}' if next_steps else 'Awaiting client feedback.'}\n\n"
            "Write a client update email."
        )
        parsed = self._complete(
            "Client update generation failed", CLIENT_UPDATE_PROMPT, user_prompt,
            purpose="client_update", temperature=0.5,
        )
        return {
            "subject": _get_string(parsed.get("subject")) or f"Update on {project_name}",
            "body": _get_string(parsed.get("body")) or "No update available.",
            "tone": validate_tone(parsed.get("tone")),
        }

    def generate_change_request_template(self, feedback_text: str, estimated_cost: float,
                                         project_name: str) -> dict:
        if not feedback_text or not project_name:
            raise ValidationError("Feedback text and project name are required")

        user_prompt = (
            f"Project: {project_name}\n"
            f"Client Request: {feedback_text}\n"
            f"Estimated Additional Cost: ${estimated_cost}\n\n"
            "Generate a change request email."
        )
        parsed = self._complete(
            "Template generation failed", CHANGE_REQUEST_PROMPT % estimated_cost, user_prompt,
            purpose="change_request", temperature=0.4,
        )
        cost = _get_number(parsed.get("estimatedCost"))
        return {
            "subject": _get_string(parsed.get("subject")) or f"Change Request: {project_name}",
            "body": _get_string(parsed.get("body")) or "Template generation failed",
            "estimated_cost": cost if cost is not None else estimated_cost,
            "estimated_days": max(1, _get_non_negative_int(parsed.get("estimatedDays")) or 3),
        }

    # ── Scope guard ───────────────────────────────────────────────────────

    def analyze_scope_compliance(self, *, feedback_text: str, feedback_id, project_scope: str,
                                 project_name: str) -> dict:
        """Classify a feedback item as IN_SCOPE, OUT_OF_SCOPE or UNCLEAR."""
        if not feedback_text or not project_scope:
            raise ValidationError("Feedback text and project scope are required")
        if not project_scope.strip():
            raise ValidationError("Project scope/brief is empty. Cannot analyze without original scope.")

        user_prompt = (
            f"Project: {project_name}\n\n"
            f"Original Scope/Brief:\n{project_scope}\n\n"
            f"New Client Feedback (ID: {feedback_id}):\n{feedback_text}\n\n"
            "Analyze: Is this request in-scope or out-of-scope?"
        )
        parsed = self._complete(
            "Scope analysis failed", SCOPE_ANALYSIS_PROMPT, user_prompt,
            purpose="scope_analysis", temperature=0.2,
        )

        label = _get_string(parsed.get("label"))
        confidence = _get_number(parsed.get("confidence"))
        estimated_cost = _get_number(parsed.get("estimatedCost"))
        return {
            "label": label if label in SCOPE_LABELS else "UNCLEAR",
            "confidence": _clamp01(confidence if confidence is not None else 0.5),
            "reasoning": _get_string(parsed.get("reasoning")) or "No reasoning provided",
            "suggested_action": _get_string(parsed.get("suggestedAction")) or "Review manually with PM",
            "estimated_cost": estimated_cost if estimated_cost and estimated_cost > 0 else None,
        }

    def analyze_with_brief(self, *, comment_text: str, project_brief: str,
                           existing_tasks: list[str] | None = None) -> dict:
        if not comment_text or not comment_text.strip():
            raise ValidationError("Comment text is required")
        if not project_brief or not project_brief.strip():
            raise ValidationError("Project brief is required")

        agreed = ""
        if existing_tasks:
            agreed = "\nAlready agreed tasks:\n" + "\n".join(f"- {task}" for task in existing_tasks) + "\n"

        parsed = self._complete(
            "Scope analysis with brief failed",
            ANALYZE_WITH_BRIEF_PROMPT % (project_brief, agreed),
            f'Client request: "{comment_text}"',
            purpose="analyze_with_brief", temperature=0.3, max_tokens=800, retries=2,
        )

        in_scope = parsed.get("inScope")
        reasoning = (_get_string(parsed.get("reasoning")) or "").strip()
        if not isinstance(in_scope, bool) or not reasoning:
            raise ExternalServiceError("Invalid response format", service="openai")

        confidence = _get_number(parsed.get("confidence"))
        return {
            "in_scope": in_scope,
            "confidence": _clamp01(confidence if confidence is not None else 0.5),
            "reasoning": reasoning,
            "recommendation": validate_recommendation(parsed.get("recommendation")),
            "estimated_extra_hours": None if in_scope else _get_non_negative_int(parsed.get("estimatedExtraHours")),
            "suggested_response": _get_string(parsed.get("suggestedResponse")),
        }

    # ── Voice feedback ────────────────────────────────────────────────────

    def transcribe_audio_feedback(self, audio: bytes | None, filename: str | None = None) -> dict:
        """Turn a recorded voice note into feedback text."""
        if not audio:
            raise ValidationError("Audio file is required")
        if len(audio) > MAX_AUDIO_BYTES:
            raise ValidationError("Audio file must be 25 MB or smaller")

        try:
            text = self.gateway.transcribe(audio, filename or "feedback.webm")
        except Exception as exc:
            error = normalize_provider_error("Audio transcription failed", exc)
            logger.error("Audio transcription failed: %s", error.message)
            raise error from exc

        text = (text or "").strip() if isinstance(text, str) else ""
        if not text:
            raise ExternalServiceError("Audio transcription failed: empty transcript", service="openai")
        return {"text": text}

    # ── Comment categorisation ────────────────────────────────────────────

    def categorize_comments(self, comments: list[dict]) -> dict:
        """Categorise comments in batches of 50 and merge the batch results."""
        if not isinstance(comments, list):
            raise ValidationError("Comments should be an array")
        if not comments:
            return {
                "categories": {},
                "summary": {
                    "total_comments": 0,
                    "unique_comments": 0,
                    "by_category": {},
                    "by_priority": {p: 0 for p in COMMENT_PRIORITIES},
                },
            }

        results = []
        for start in range(0, len(comments), CATEGORIZE_BATCH_SIZE):
            batch = comments[start:start + CATEGORIZE_BATCH_SIZE]
            user_prompt = "Comments:\n" + "\n".join(f"ID:{c['id']} | {c['text']}" for c in batch)
            parsed = self._complete(
                "Comment categorization failed", CATEGORIZE_PROMPT, user_prompt,
                purpose="categorize_comments", temperature=0.2, max_tokens=2000, retries=2,
            )
            results.append(self._validate_categorize_result(parsed, len(batch)))

        return self._merge_categorize_results(results)

    @staticmethod
    def _validate_categorized_comment(item, fallback_category: str):
        if not isinstance(item, dict):
            return None
        raw_id = item.get("id")
        comment_id = str(raw_id).strip() if isinstance(raw_id, (str, int)) and not isinstance(raw_id, bool) else ""
        if not comment_id:
            return None
        similarity = _get_number(item.get("similarityScore"))
        return {
            "id": comment_id,
            "category": _get_string(item.get("category")) or fallback_category,
            "priority": _comment_priority(item.get("priority")),
            "is_duplicate": item.get("isDuplicate") if isinstance(item.get("isDuplicate"), bool) else False,
            "duplicate_of": _get_string(item.get("duplicateOf")),
            "similarity_score": _clamp01(similarity) if similarity is not None else None,
        }

    def _validate_categorize_result(self, parsed, fallback_total: int) -> dict:
        raw = parsed.get("categories") if isinstance(parsed, dict) else None
        if not isinstance(raw, dict):
            raise ExternalServiceError("Invalid response format", service="openai")

        categories = {}
        for category, items in raw.items():
            if not isinstance(items, list):
                continue
            valid = [c for c in (self._validate_categorized_comment(i, category) for i in items) if c]
            if valid:
                categories[category] = valid
        if not categories:
            raise ExternalServiceError("Invalid response format", service="openai")

        by_priority = {p: 0 for p in COMMENT_PRIORITIES}
        by_category = {}
        unique = 0
        total = 0
        for category, items in categories.items():
            by_category[category] = len(items)
            total += len(items)
            for item in items:
                unique += 0 if item["is_duplicate"] else 1
                by_priority[item["priority"]] += 1

        summary = parsed.get("summary") if isinstance(parsed.get("summary"), dict) else {}
        total_comments = _get_non_negative_int(summary.get("totalComments"))
        unique_comments = _get_non_negative_int(summary.get("uniqueComments"))
        return {
            "categories": categories,
            "summary": {
                "total_comments": total_comments if total_comments is not None else (total or fallback_total),
                "unique_comments": unique_comments if unique_comments is not None else unique,
                "by_category": by_category,
                "by_priority": by_priority,
            },
        }

    @staticmethod
    def _merge_categorize_results(results: list[dict]) -> dict:
        if len(results) == 1:
            return results[0]

        categories: dict[str, list] = {}
        by_priority = {p: 0 for p in COMMENT_PRIORITIES}
        total = 0
        unique = 0
        for result in results:
            total += result["summary"]["total_comments"]
            unique += result["summary"]["unique_comments"]
            for priority, count in result["summary"]["by_priority"].items():
                by_priority[priority] += count
            for category, items in result["categories"].items():
                categories.setdefault(category, []).extend(items)

        return {
            "categories": categories,
            "summary": {
                "total_comments": total,
                "unique_comments": unique,
                "by_category": {category: len(items) for category, items in categories.items()},
                "by_priority": by_priority,
            },
        }
