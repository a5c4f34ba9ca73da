"""
AI Service Tests — prompt building, response validation and provider errors.

A scripted provider stands in for OpenAI; the local stub is exercised
where its deterministic output is the behaviour under test.
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app.ai.gateway import (
    LLMGateway,
    LLMProvider,
    LocalStubProvider,
    OpenAIProvider,
    is_transient_error,
    normalize_provider_error,
)
from app.core.exceptions import ExternalServiceError, ValidationError
from app.services.ai_service import AIService, format_timecode, validate_action_items


class ScriptedProvider(LLMProvider):
    name = "scripted"

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def chat(self, messages, model, **kwargs):
        self.calls.append({"messages": messages, "model": model, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        content = response if isinstance(response, str) else json.dumps(response)
        return {"content": content, "prompt_tokens": 100, "completion_tokens": 50, "model": model}


class RateLimited(Exception):
    status_code = 429


def _service(*responses):
    provider = ScriptedProvider(*responses)
    return AIService(LLMGateway(provider=provider)), provider


FEEDBACK = [
    {"id": 11, "text": "Logo is too small", "timecode_sec": 65.4, "author_name": "Carla"},
    {"id": 12, "text": "Music too loud"},
]


class TestParseFeedback:
    def test_prompt_and_validation(self):
        ai, provider = _service({
            "summary": "Two fixes",
            "actionItems": [
                {"text": "Enlarge logo", "priority": "high", "category": "DESIGN",
                 "estimatedMinutes": 20, "sourceFeedbackIds": ["11"]},
                {"text": "  ", "priority": "LOW"},
                {"text": "Lower music", "priority": "whenever", "category": "NOISE"},
            ],
            "dedupedCount": 1,
        })
        result = ai.parse_feedback(FEEDBACK, {"name": "Teaser", "brief": "30s cut"})

        prompt = provider.calls[0]["messages"][1]["content"]
        assert "Project: Teaser" in prompt
        assert "Brief: 30s cut" in prompt
        assert "[11] Carla at 1:05: Logo is too small" in prompt
        assert "[12] Client: Music too loud" in prompt
        assert provider.calls[0]["purpose"] == "parse_feedback"

        assert result["summary"] == "Two fixes"
        assert result["deduped_count"] == 1
        assert result["total_feedback_processed"] == 2
        first, second = result["action_items"]
        assert first == {
            "text": "Enlarge logo", "priority": "HIGH", "category": "DESIGN", "suggested_assignee": None,
            "estimated_minutes": 20, "source_feedback_ids": [11],
        }
        assert second["priority"] == "MEDIUM"
        assert second["category"] == "OTHER"

    def test_requires_items(self):
        ai, _ = _service()
        with pytest.raises(ValidationError):
            ai.parse_feedback([])
        with pytest.raises(ValidationError, match="id and text"):
            ai.parse_feedback([{"id": 1, "text": " "}])

    def test_invalid_json(self):
        ai, _ = _service("not json")
        with pytest.raises(ExternalServiceError, match="Invalid JSON"):
            ai.parse_feedback(FEEDBACK)

    def test_list_response_rejected(self):
        ai, _ = _service([{"text": "x"}])
        with pytest.raises(ExternalServiceError):
            ai.parse_feedback(FEEDBACK)

    def test_usage_is_tracked(self):
        ai, _ = _service({"summary": "s", "actionItems": []})
        ai.parse_feedback(FEEDBACK)
        usage = ai.get_token_usage()
        assert usage["total_tokens"] == 150
        assert usage["estimated_usd"] > 0


class TestProviderErrors:
    def test_transient_error_is_retried(self):
        ai, provider = _service(RateLimited("slow down"), {"summary": "ok", "actionItems": []})
        assert ai.parse_feedback(FEEDBACK)["summary"] == "ok"
        assert len(provider.calls) == 2

    def test_quota_error_after_retries(self):
        ai, _ = _service(RateLimited("slow down"), RateLimited("slow down"))
        with pytest.raises(ExternalServiceError, match="quota exceeded"):
            ai.parse_feedback(FEEDBACK)

    def test_other_errors_keep_prefix(self):
        error = normalize_provider_error("AI parsing failed", ValueError("boom"))
        assert error.message == "AI parsing failed: boom"
        assert error.status_code == 502

    def test_transient_detection(self):
        assert is_transient_error(TimeoutError())
        assert is_transient_error(RateLimited())
        assert not is_transient_error(ValueError())


class TestScopeAndWriting:
    def test_scope_label_and_confidence_clamped(self):
        ai, _ = _service({"label": "OUT_OF_SCOPE", "confidence": 1.7, "reasoning": "New deliverable",
                          "estimatedCost": 0})
        result = ai.analyze_scope_compliance(
            feedback_text="Add a 15s cut", feedback_id=3, project_scope="One 30s cut", project_name="Teaser",
        )
        assert result["label"] == "OUT_OF_SCOPE"
        assert result["confidence"] == 1.0
        assert result["estimated_cost"] is None
        assert result["suggested_action"] == "Review manually with PM"

    def test_unknown_label_becomes_unclear(self):
        ai, _ = _service({"label": "MAYBE"})
        result = ai.analyze_scope_compliance(
            feedback_text="x", feedback_id=1, project_scope="brief", project_name="P",
        )
        assert result["label"] == "UNCLEAR"
        assert result["confidence"] == 0.5

    def test_blank_scope_rejected(self):
        ai, _ = _service()
        with pytest.raises(ValidationError, match="empty"):
            ai.analyze_scope_compliance(feedback_text="x", feedback_id=1, project_scope="   ", project_name="P")

    def test_analyze_with_brief_requires_reasoning(self):
        ai, _ = _service({"inScope": True, "reasoning": ""})
        with pytest.raises(ExternalServiceError, match="Invalid response format"):
            ai.analyze_with_brief(comment_text="Trim intro", project_brief="One cut")

    def test_client_update_defaults(self):
        ai, _ = _service({"tone": "shouty"})
        result = ai.generate_client_update("Teaser", [{"title": "Color grade", "category": "DESIGN"}])
        assert result["subject"] == "Update on Teaser"
        assert result["tone"] == "professional"

    def test_change_request_keeps_given_cost(self):
        ai, _ = _service({"subject": "CR", "body": "Body"})
        result = ai.generate_change_request_template("Add a cut", 250.0, "Teaser")
        assert result["estimated_cost"] == 250.0
        assert result["estimated_days"] == 3

    def test_categorize_batches_merge(self):
        comments = [{"id": n, "text": "Logo too small"} for n in range(60)]
        ai = AIService(LLMGateway(provider=LocalStubProvider()))
        result = ai.categorize_comments(comments)
        assert result["summary"]["total_comments"] == 60
        assert len(result["categories"]["DESIGN"]) == 60


class TestLocalStub:
    def test_praise_and_duplicates(self):
        ai = AIService(LLMGateway(provider=LocalStubProvider()))
        result = ai.parse_feedback([
            {"id": 1, "text": "Love it"},
            {"id": 2, "text": "Fix the broken subtitle"},
            {"id": 3, "text": "fix the broken subtitle"},
        ])
        assert len(result["action_items"]) == 1
        item = result["action_items"][0]
        assert item["priority"] == "HIGH"
        assert item["source_feedback_ids"] == [2, 3]
        assert result["deduped_count"] == 1


class TestHelpers:
    @pytest.mark.parametrize("seconds,expected", [(0, "0:00"), (65.9, "1:05"), (-3, "0:00"), ("x", "0:00")])
    def test_format_timecode(self, seconds, expected):
        assert format_timecode(seconds) == expected

    def test_validate_action_items_ignores_garbage(self):
        assert validate_action_items(None) == []
        assert validate_action_items(["text", {"text": ""}]) == []


# ═══════════════════════════════════════════════════════════════
# VOICE FEEDBACK
# ═══════════════════════════════════════════════════════════════

class TestTranscription:
    def test_audio_required(self):
        with pytest.raises(ValidationError, match="Audio file is required"):
            AIService(LLMGateway(provider="local")).transcribe_audio_feedback(b"", "note.webm")

    def test_too_large(self, monkeypatch):
        monkeypatch.setattr("app.services.ai_service.MAX_AUDIO_BYTES", 4)
        with pytest.raises(ValidationError, match="25 MB"):
            AIService(LLMGateway(provider="local")).transcribe_audio_feedback(b"12345", "note.webm")

    def test_provider_without_audio_support(self):
        service, _ = _service()
        with pytest.raises(ExternalServiceError, match="not supported by the scripted provider"):
            service.transcribe_audio_feedback(b"voice", "note.webm")

    def test_openai_upload_and_blank_transcript(self):
        provider = OpenAIProvider(api_key="sk-test")
        provider._client = MagicMock()
        provider._client.audio.transcriptions.create.return_value = SimpleNamespace(text="  Cut the intro  ")
        service = AIService(LLMGateway(provider=provider))

        assert service.transcribe_audio_feedback(b"voice", "note.webm") == {"text": "Cut the intro"}
        provider._client.audio.transcriptions.create.assert_called_once_with(
            model="whisper-1", file=("note.webm", b"voice"),
        )

        provider._client.audio.transcriptions.create.return_value = SimpleNamespace(text="   ")
        with pytest.raises(ExternalServiceError, match="empty transcript"):
            service.transcribe_audio_feedback(b"voice", "note.webm")

    def test_quota_error_is_normalised(self):
        provider = OpenAIProvider(api_key="sk-test")
        provider._client = MagicMock()
        provider._client.audio.transcriptions.create.side_effect = RateLimited("slow down")
        with pytest.raises(ExternalServiceError, match="OpenAI API quota exceeded"):
            AIService(LLMGateway(provider=provider)).transcribe_audio_feedback(b"voice", "note.webm")
