"""
LLM Gateway — provider-agnostic chat completions for the CRM's AI features.

    - OpenAI provider (JSON mode) when an API key is configured
    - Deterministic local stub for development and tests
    - Retry on transient provider errors (timeouts, 408, 429)
    - Token usage and estimated cost tracking
    - Audio transcription (whisper-1) for voice feedback
    - Provider errors normalised into ExternalServiceError

Usage:
    from app.ai.gateway import LLMGateway
    gw = LLMGateway(provider="local")
    result = gw.chat_json(system_prompt, user_prompt, purpose="parse_feedback")
"""

import json
import logging
import os
import re
import time
from abc import ABC, abstractmethod

from app.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

# USD per token (gpt-4o list price)
PROMPT_TOKEN_COST = 0.0000025
COMPLETION_TOKEN_COST = 0.00001

TRANSIENT_STATUS_CODES = frozenset({408, 429})
NETWORK_ERROR_CODES = frozenset({"ECONNRESET", "ETIMEDOUT", "ENOTFOUND"})

INVALID_JSON_MESSAGE = "Invalid JSON response from OpenAI"


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    name = "abstract"

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            **kwargs: temperature, max_tokens, purpose.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...

    def transcribe(self, audio: bytes, filename: str, model: str) -> str:
        """Speech to text; providers without audio support refuse."""
        raise ExternalServiceError(f"Audio transcription is not supported by the {self.name} provider",
                                   service=self.name)


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    """OpenAI chat completions in JSON mode."""

    name = "openai"

    def __init__(self, api_key: str | None = None, timeout: float | None = None):
        self.api_key = (api_key if api_key is not None else os.getenv("OPENAI_API_KEY", "")).strip()
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise ExternalServiceError("OPENAI_API_KEY is required", service="openai")
            import openai
            self._client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def chat(self, messages: list, model: str = "gpt-4o", **kwargs) -> dict:
        client = self._get_client()
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=kwargs.get("max_tokens", 1200),
            temperature=kwargs.get("temperature", 0.3),
            response_format={"type": "json_object"},
        )
        choice = response.choices[0] if response.choices else None
        content = choice.message.content if choice is not None else None
        usage = response.usage
        return {
            "content": content,
            "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
            "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
            "total_tokens": getattr(usage, "total_tokens", None),
            "model": model,
        }

    def transcribe(self, audio: bytes, filename: str, model: str = "whisper-1") -> str:
        client = self._get_client()
        result = client.audio.transcriptions.create(model=model, file=(filename, audio))
        return getattr(result, "text", None) or ""


# ── Local Stub Provider (for dev/test without API keys) ──────────────────────

_FEEDBACK_LINE = re.compile(r"^\[(?P<id>[^\]]+)\]\s+(?P<author>.+?)(?: at (?P<tc>\d+:\d{2}))?:\s(?P<text>.+)$")
_COMMENT_LINE = re.compile(r"^ID:(?P<id>[^|]+)\|\s*(?P<text>.*)$")

_PRAISE = ("looks good", "great work", "love it", "perfect", "well done", "nice job")
_OUT_OF_SCOPE_HINTS = ("new ", "additional", "extra ", "another", "add a", "second version", "translate")

_CATEGORY_KEYWORDS = (
    ("SOUND", ("music", "sound", "audio", "voice", "volume", "voiceover")),
    ("DESIGN", ("logo", "color", "colour", "font", "title card", "graphic", "animation")),
    ("LEGAL", ("legal", "license", "licence", "copyright", "disclaimer")),
)


def _stub_category(text: str) -> str:
    lower = text.lower()
    for category, words in _CATEGORY_KEYWORDS:
        if any(word in lower for word in words):
            return category
    return "CONTENT"


def _stub_priority(text: str) -> str:
    lower = text.lower()
    if "urgent" in lower or "asap" in lower:
        return "URGENT"
    if "must" in lower or "wrong" in lower or "broken" in lower:
        return "HIGH"
    if "maybe" in lower or "minor" in lower or "could" in lower:
        return "LOW"
    return "MEDIUM"


class LocalStubProvider(LLMProvider):
    """
    Local stub that returns deterministic JSON for dev/testing.
    No API key required. Responses are keyed by the call's purpose.
    """

    name = "local"

    def chat(self, messages: list, model: str = "local-stub", **kwargs) -> dict:
        user_msg = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_msg = m["content"]
                break

        content = json.dumps(self._generate_stub_response(kwargs.get("purpose", ""), user_msg))
        return {
            "content": content,
            "prompt_tokens": len(user_msg.split()) * 2,  # rough estimate
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    def transcribe(self, audio: bytes, filename: str, model: str = "local-stub") -> str:
        return f"Transcribed {len(audio)} bytes from {filename}"

    @staticmethod
    def _generate_stub_response(purpose: str, user_msg: str) -> dict:
        if purpose in ("parse_feedback", "extract_action_items"):
            return LocalStubProvider._stub_action_items(user_msg)
        if purpose == "scope_analysis":
            return LocalStubProvider._stub_scope(user_msg)
        if purpose == "client_update":
            project = user_msg.splitlines()[0].replace("Project:", "").strip()
            return {
                "subject": f"Update on {project}",
                "body": f"Hello,\n\nHere is the latest progress on **{project}**.",
                "tone": "professional",
            }
        if purpose == "change_request":
            project = user_msg.splitlines()[0].replace("Project:", "").strip()
            return {
                "subject": f"Change Request: {project}",
                "body": "Thank you for the request. It falls outside the agreed scope.",
                "estimatedDays": 3,
            }
        if purpose == "categorize_comments":
            return LocalStubProvider._stub_categories(user_msg)
        if purpose == "analyze_with_brief":
            request_text = user_msg.lower()
            in_scope = not any(hint in request_text for hint in _OUT_OF_SCOPE_HINTS)
            return {
                "inScope": in_scope,
                "confidence": 0.6,
                "reasoning": "Keyword comparison against the project brief.",
                "recommendation": "APPROVE" if in_scope else "REQUEST_INFO",
                "estimatedExtraHours": 0 if in_scope else 4,
                "suggestedResponse": "We will review this request with the team.",
            }
        return {"message": "local stub response"}

    @staticmethod
    def _stub_action_items(user_msg: str) -> dict:
        items = []
        seen = {}
        total = 0
        deduped = 0
        for line in user_msg.splitlines():
            match = _FEEDBACK_LINE.match(line.strip())
            if match:
                feedback_id, text, timecode = match.group("id"), match.group("text"), match.group("tc")
            elif line.strip() and not line.startswith(("Project:", "Brief:", "Client Feedback", "Please", "Feedback:", "Extract")):
                feedback_id, text, timecode = None, line.strip(), None
            else:
                continue
            total += 1
            if any(phrase in text.lower() for phrase in _PRAISE):
                continue
            key = text.strip().lower()
            if key in seen:
                deduped += 1
                if feedback_id is not None:
                    seen[key]["sourceFeedbackIds"].append(feedback_id)
                continue
            item = {
                "text": f"{text.strip()} ({timecode})" if timecode else text.strip(),
                "priority": _stub_priority(text),
                "category": _stub_category(text),
                "estimatedMinutes": 30,
                "sourceFeedbackIds": [feedback_id] if feedback_id is not None else [],
            }
            seen[key] = item
            items.append(item)
        return {
            "summary": f"{total} feedback item(s) reviewed, {len(items)} action item(s) extracted.",
            "actionItems": items,
            "dedupedCount": deduped,
        }

    @staticmethod
    def _stub_scope(user_msg: str) -> dict:
        _, _, feedback = user_msg.partition("New Client Feedback")
        lower = feedback.lower()
        out_of_scope = any(hint in lower for hint in _OUT_OF_SCOPE_HINTS)
        return {
            "label": "OUT_OF_SCOPE" if out_of_scope else "IN_SCOPE",
            "confidence": 0.6,
            "reasoning": "Keyword comparison against the project brief.",
            "suggestedAction": "Send a change request" if out_of_scope else "Proceed with the revision",
            "estimatedCost": 500 if out_of_scope else 0,
        }

    @staticmethod
    def _stub_categories(user_msg: str) -> dict:
        categories: dict[str, list] = {}
        for line in user_msg.splitlines():
            match = _COMMENT_LINE.match(line.strip())
            if not match:
                continue
            text = match.group("text")
            category = _stub_category(text)
            priority = _stub_priority(text)
            categories.setdefault(category, []).append({
                "id": match.group("id").strip(),
                "category": category,
                "priority": "HIGH" if priority == "URGENT" else priority,
                "isDuplicate": False,
            })
        return {"categories": categories}


# ── Error helpers ─────────────────────────────────────────────────────────────

def _error_code(exc) -> str:
    code = getattr(exc, "code", None)
    return code if isinstance(code, str) else ""


def _error_status(exc) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def is_transient_error(exc) -> bool:
    """Timeouts, connection resets and 408/429 responses are worth retrying."""
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True
    if type(exc).__name__ in ("APITimeoutError", "APIConnectionError"):
        return True
    return _error_code(exc) in NETWORK_ERROR_CODES or _error_status(exc) in TRANSIENT_STATUS_CODES


def normalize_provider_error(prefix: str, exc) -> ExternalServiceError:
    """Map a provider exception to a user-facing ExternalServiceError."""
    if isinstance(exc, ExternalServiceError):
        return exc

    code = _error_code(exc)
    status = _error_status(exc)
    if code == "insufficient_quota" or status == 429:
        return ExternalServiceError("OpenAI API quota exceeded", service="openai")
    if code == "invalid_api_key" or status == 401:
        return ExternalServiceError("Invalid OpenAI API key", service="openai")
    if (
        code in NETWORK_ERROR_CODES
        or isinstance(exc, (TimeoutError, ConnectionError))
        or type(exc).__name__ in ("APITimeoutError", "APIConnectionError")
    ):
        return ExternalServiceError("OpenAI network error", service="openai")

    message = str(getattr(exc, "message", "") or exc) or "Unexpected error"
    return ExternalServiceError(f"{prefix}: {message}", service="openai")


# ── LLM Gateway (Main Interface) ─────────────────────────────────────────────

class LLMGateway:
    """
    Central gateway for all LLM calls.

    Features:
        - Provider selection from config (openai | local)
        - Retry on transient errors
        - Token/cost tracking per gateway instance

    Usage:
        gw = LLMGateway(app=flask_app)
        content = gw.chat_json(system, user, purpose="scope_analysis")
    """

    DEFAULT_CHAT_MODEL = "gpt-4o"
    DEFAULT_TRANSCRIPTION_MODEL = "whisper-1"

    def __init__(self, app=None, *, provider=None, model: str | None = None):
        config = app.config if app is not None else {}
        self.model = model or config.get("OPENAI_MODEL") or self.DEFAULT_CHAT_MODEL
        self.transcription_model = config.get("OPENAI_TRANSCRIPTION_MODEL") or self.DEFAULT_TRANSCRIPTION_MODEL

        if isinstance(provider, LLMProvider):
            self.provider = provider
        else:
            name = provider or config.get("AI_PROVIDER") or ("openai" if os.getenv("OPENAI_API_KEY") else "local")
            self.provider = self._build_provider(name, config)

        self.usage = {
            "prompt_tokens": 0,
            "completion_tokens": 0,
            "total_tokens": 0,
            "estimated_usd": 0.0,
        }

    @staticmethod
    def _build_provider(name: str, config) -> LLMProvider:
        if name == "openai":
            return OpenAIProvider(
                api_key=config.get("OPENAI_API_KEY"),
                timeout=config.get("AI_TIMEOUT_SECONDS"),
            )
        if name != "local":
            logger.warning("Unknown AI provider '%s', falling back to local stub", name)
        return LocalStubProvider()

    def _track_usage(self, result: dict) -> None:
        prompt = max(int(result.get("prompt_tokens") or 0), 0)
        completion = max(int(result.get("completion_tokens") or 0), 0)
        total = result.get("total_tokens")
        self.usage["prompt_tokens"] += prompt
        self.usage["completion_tokens"] += completion
        self.usage["total_tokens"] += int(total) if total else prompt + completion
        self.usage["estimated_usd"] += prompt * PROMPT_TOKEN_COST + completion * COMPLETION_TOKEN_COST

    def get_token_usage(self) -> dict:
        return dict(self.usage)

    def chat(
        self,
        messages: list,
        *,
        purpose: str = "",
        temperature: float = 0.3,
        max_tokens: int = 1200,
        retries: int = 1,
    ) -> dict:
        """
        Send a chat request, retrying transient failures up to *retries* times.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, latency_ms, provider}
        """
        attempts = max(1, retries + 1)
        for attempt in range(1, attempts + 1):
            start = time.time()
            try:
                result = self.provider.chat(
                    messages, self.model,
                    temperature=temperature, max_tokens=max_tokens, purpose=purpose,
                )
            except Exception as exc:
                if attempt >= attempts or not is_transient_error(exc):
                    raise
                logger.warning(
                    "LLM %s call failed (attempt %d/%d): %s", purpose or "chat", attempt, attempts, exc,
                )
                continue

            result["latency_ms"] = int((time.time() - start) * 1000)
            result["provider"] = self.provider.name
            self._track_usage(result)
            logger.debug(
                "LLM %s via %s: %s+%s tokens in %sms",
                purpose or "chat", self.provider.name,
                result.get("prompt_tokens"), result.get("completion_tokens"), result["latency_ms"],
            )
            return result

        raise ExternalServiceError("OpenAI request failed after retries", service="openai")

    def chat_json(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        purpose: str = "",
        temperature: float = 0.3,
        max_tokens: int = 1200,
        retries: int = 1,
    ) -> dict:
        """Run a JSON-mode completion and return the decoded object."""
        result = self.chat(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            purpose=purpose, temperature=temperature, max_tokens=max_tokens, retries=retries,
        )
        content = result.get("content")
        if not content or not isinstance(content, str):
            raise ExternalServiceError("Empty response from OpenAI", service="openai")
        try:
            parsed = json.loads(content)
        except ValueError as exc:
            raise ExternalServiceError(INVALID_JSON_MESSAGE, service="openai") from exc
        if not isinstance(parsed, (dict, list)):
            raise ExternalServiceError(INVALID_JSON_MESSAGE, service="openai")
        return parsed

    def transcribe(self, audio: bytes, filename: str) -> str:
        """Speech-to-text through the configured provider."""
        start = time.time()
        text = self.provider.transcribe(audio, filename, self.transcription_model)
        logger.debug(
            "Transcribed %d bytes via %s in %sms",
            len(audio), self.provider.name, int((time.time() - start) * 1000),
        )
        return text
