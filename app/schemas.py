"""
Request payload schemas (pydantic v2).

Blueprints validate JSON bodies with ``load(Schema)`` before calling a
service. A failure raises ``pydantic.ValidationError``, which the central
error translator answers with 400 ``{"error": "Validation failed",
"issues": [...]}``. Business rules (tenant ownership, transitions, dates in
the past, ...) stay in the services.
"""

from __future__ import annotations

from typing import List, Literal, Optional, Union

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.utils.helpers import get_json_body

FeedbackCategory = Literal["CONTENT", "DESIGN", "SOUND", "LEGAL", "OTHER"]
TaskPriority = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]
TaskStatus = Literal["TODO", "IN_PROGRESS", "DONE", "CANCELLED"]


def _check_email(value: str) -> str:
    try:
        return validate_email(value, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValueError("Invalid email") from exc


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    def data(self, *, partial: bool = False) -> dict:
        """Plain dict for services; ``partial`` keeps only fields actually sent."""
        return self.model_dump(exclude_unset=partial)


def load(schema: type[_Payload], payload: dict | None = None) -> _Payload:
    """Validate *payload* (default: the request JSON body) against *schema*."""
    return schema.model_validate(get_json_body() if payload is None else payload)


# --- clients ---


class ClientCreate(_Payload):
    name: str = Field(min_length=1, max_length=200)
    email: str
    company_name: str = Field(min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _check_email(v)


class ClientUpdate(_Payload):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[str] = None
    company_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, v: Optional[str]) -> Optional[str]:
        return _check_email(v) if v is not None else None


# --- projects ---


class ProjectCreate(_Payload):
    name: str = Field(min_length=2, max_length=200)
    client_id: int
    description: Optional[str] = None
    revisions_limit: Optional[int] = Field(default=None, ge=0)
    due_date: Optional[str] = None
    scope_doc_url: Optional[str] = None


class ProjectUpdate(_Payload):
    name: Optional[str] = Field(default=None, min_length=2, max_length=200)
    client_id: Optional[int] = None
    description: Optional[str] = None
    status: Optional[str] = None
    revisions_limit: Optional[int] = Field(default=None, ge=0)
    due_date: Optional[str] = None
    scope_doc_url: Optional[str] = None


class MembersAdd(_Payload):
    user_ids: List[int] = Field(min_length=1)


# --- versions / workflow ---


class VersionCreate(_Payload):
    version_no: Optional[int] = Field(default=None, ge=1)
    file_url: str = Field(min_length=1)
    file_name: str = Field(min_length=1, max_length=255)
    file_size: int = Field(default=0, ge=0)
    duration_sec: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None
    kinescope_video_id: Optional[str] = None


class VersionStatusUpdate(_Payload):
    status: str = Field(min_length=1)


class WorkflowTransition(_Payload):
    stage_name: str = Field(min_length=1)
    owner_user_id: Optional[int] = None


# --- feedback ---


class FeedbackCreate(_Payload):
    asset_version_id: int
    text: str
    timecode_sec: Optional[float] = None
    category: Optional[FeedbackCategory] = None


class FeedbackStatusUpdate(_Payload):
    status: Literal["NEW", "IN_PROGRESS", "RESOLVED", "REJECTED"]


class PublicFeedbackCreate(_Payload):
    asset_version_id: int
    text: str = Field(min_length=1, max_length=5000)
    author_email: Optional[str] = None
    author_name: Optional[str] = Field(default=None, max_length=200)
    timecode_sec: Optional[float] = Field(default=None, ge=0)
    category: Optional[FeedbackCategory] = None

    @field_validator("author_email")
    @classmethod
    def _email(cls, v: Optional[str]) -> Optional[str]:
        return _check_email(v) if v else None


class PortalApprove(_Payload):
    version_id: int


# --- tasks ---


class TaskCreate(_Payload):
    project_id: int
    title: str
    description: Optional[str] = None
    priority: TaskPriority = "MEDIUM"
    category: Optional[FeedbackCategory] = None
    assigned_to_user_id: Optional[int] = None
    estimated_minutes: Optional[int] = None
    due_date: Optional[str] = None


class TaskUpdate(_Payload):
    status: Optional[TaskStatus] = None
    assigned_to_user_id: Optional[int] = None
    due_date: Optional[str] = None

    @model_validator(mode="after")
    def _at_least_one(self):
        if not self.model_fields_set:
            raise ValueError("At least one field is required")
        return self


class TasksFromFeedback(_Payload):
    project_id: int
    feedback_ids: List[int] = Field(min_length=1)
    auto_assign: bool = True


# --- scope guard ---


class ScopeAnalyze(_Payload):
    feedback_id: int
    project_id: int


class ScopeDecide(_Payload):
    decision: Literal["APPROVED", "REJECTED", "CHANGE_REQUEST"]
    reason: Optional[str] = Field(default=None, max_length=2000)
    change_request_amount: Optional[float] = Field(default=None, ge=0)


# --- uploads / team ---


class UploadCreate(_Payload):
    project_id: int
    file_name: str
    file_type: str
    file_size: int


class UploadConfirm(_Payload):
    project_id: int
    kinescope_video_id: str = Field(min_length=1)


class InviteCreate(_Payload):
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=30)


# --- AI ---

ItemId = Union[int, str]


class AIFeedbackItem(_Payload):
    id: ItemId
    text: str = Field(min_length=1, max_length=5000)
    timecode_sec: Optional[int] = Field(default=None, ge=0)
    category: Optional[FeedbackCategory] = None
    author_name: str = Field(min_length=1)


class AIProjectContext(_Payload):
    name: str = Field(min_length=1)
    brief: Optional[str] = None


class AIParseFeedback(_Payload):
    feedback_items: List[AIFeedbackItem] = Field(min_length=1)
    project_context: Optional[AIProjectContext] = None


class AIExtractActionItems(_Payload):
    feedback_text: str = Field(min_length=1, max_length=5000)


class AIAnalyzeScope(_Payload):
    feedback_text: str = Field(min_length=1)
    feedback_id: ItemId
    project_scope: str = Field(min_length=1)
    project_name: str = Field(min_length=1)


class AIAnalyzeWithBrief(_Payload):
    comment_text: str = Field(min_length=1)
    project_brief: str = Field(min_length=1)
    existing_tasks: List[str] = Field(default_factory=list)


class AIComment(_Payload):
    id: ItemId
    text: str = Field(min_length=1)


class AICategorize(_Payload):
    comments: List[AIComment]


class AIGenerateSummary(_Payload):
    project_id: int
    next_steps: Optional[str] = None


class AIChangeRequest(_Payload):
    feedback_text: str = Field(min_length=1)
    project_name: str = Field(min_length=1)
    estimated_cost: float = Field(ge=0)
