"""
DATA MODELS MODULE
==================

Pydantic models for the domain (profile, sessions, messages, career goals,
quiz items), the request/response bodies of the HTTP API, and the exceptions
the services raise.

Domain models are frozen: nobody mutates a session or message in place. The
stores replace whole objects, so every read sees a consistent snapshot.

MODELS:
  UserProfile   - The signed-in user's profile (one per process).
  Message       - One chat message (user or assistant).
  StylePrefs    - Per-session rendering preferences for exports.
  ScheduledTask - One task of a career roadmap (day number + text + done flag).
  DailyLog      - One logged "win" for a calendar day.
  CareerGoal    - A career-copilot roadmap: goal, tasks, logs, start date.
  ChatSession   - One conversational workspace (resume, cover letter, ...).
  QuizItem      - One multiple-choice question from the knowledge hub.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import (
    CAREER_PLAN_DAYS,
    DEFAULT_BULLET,
    DEFAULT_FONT_FAMILY,
    MAX_MESSAGE_LENGTH,
    QUIZ_DEFAULT_COUNT,
)

SessionType = Literal["resume", "cover-letter", "resignation-letter", "career-copilot"]
Role = Literal["user", "assistant"]


# ==============================================================================
# EXCEPTIONS
# ==============================================================================

class SessionNotFoundError(LookupError):
    """Raised when an operation that needs an existing session gets an unknown id."""


class TurnInProgressError(RuntimeError):
    """Raised when a chat turn or sculpt is started on a session that already has one running."""


class StructuredOutputError(ValueError):
    """The provider's JSON could not be parsed or did not match the expected shape."""


class RemoteStoreError(RuntimeError):
    """A call to the remote store failed (network error or non-2xx response)."""


# ==============================================================================
# DOMAIN MODELS
# ==============================================================================

class UserProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_name: str = ""
    title: str = ""
    email: str = ""
    phone: str = ""
    location: str = ""
    linkedin: str = ""
    website: str = ""
    base_resume_text: str = ""
    daily_availability: int = Field(default=1, ge=0)  # hours per day
    voice_id: str = ""
    avatar_url: str = ""


class Message(BaseModel):
    """
    A single chat message. Assistant messages start empty while a reply is
    streaming and are replaced (never mutated) as fragments arrive.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    role: Role
    content: str = ""
    timestamp: int  # milliseconds since epoch


class StylePrefs(BaseModel):
    model_config = ConfigDict(frozen=True)

    font_family: str = DEFAULT_FONT_FAMILY
    bullet: str = DEFAULT_BULLET
    template: Optional[str] = None


class ScheduledTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    day_number: int = Field(..., ge=1)
    task: str
    completed: bool = False


class DailyLog(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str  # YYYY-MM-DD
    win: str = ""
    completed: bool = True


class CareerGoal(BaseModel):
    model_config = ConfigDict(frozen=True)

    main_goal: str
    scheduled_tasks: List[ScheduledTask] = Field(default_factory=list)
    logs: List[DailyLog] = Field(default_factory=list)
    start_date: str  # YYYY-MM-DD


class ChatSession(BaseModel):
    """
    One chat workspace. `type` and `id` never change after creation.

    Extra fields are allowed so callers can keep local-only data on a session;
    they are never sent to the remote store (see remote_store.SESSION_REMOTE_FIELDS).
    `show_preview` is UI state: True after a successful sculpt, local-only.
    """
    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    title: str
    type: SessionType
    messages: List[Message] = Field(default_factory=list)
    job_description: Optional[str] = None
    resume_text: Optional[str] = None
    final_resume: Optional[str] = None
    career_goal_data: Optional[CareerGoal] = None
    style_prefs: Optional[StylePrefs] = None
    show_preview: bool = False
    last_updated: int


class QuizItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: str = Field(..., min_length=1)
    options: List[str] = Field(..., min_length=4, max_length=4)
    correct_index: int


class AuthUser(BaseModel):
    """The signed-in user as returned by the auth provider."""
    id: str
    email: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    access_token: str = ""


class AudioPayload(BaseModel):
    """A recorded voice note attached to a chat turn."""
    data: bytes
    filename: str = "voice-note.webm"
    mime_type: str = "audio/webm"


# ==============================================================================
# API REQUEST / RESPONSE MODELS
# ==============================================================================

class LoginRequest(BaseModel):
    email: str
    password: str


class ProfileUpdate(BaseModel):
    """Body of PATCH /profile. Only the fields that are sent are changed."""
    full_name: Optional[str] = None
    title: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    linkedin: Optional[str] = None
    website: Optional[str] = None
    base_resume_text: Optional[str] = None
    daily_availability: Optional[int] = Field(default=None, ge=0)
    voice_id: Optional[str] = None
    avatar_url: Optional[str] = None


class ProfileResponse(BaseModel):
    profile: UserProfile
    is_saving: bool


class CreateSessionRequest(BaseModel):
    type: SessionType
    job_title: Optional[str] = None
    company: Optional[str] = None
    job_description: Optional[str] = None
    resume_text: Optional[str] = None


class SessionUpdate(BaseModel):
    """Body of PATCH /sessions/{id}. Unknown keys are kept (local-only fields)."""
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    job_description: Optional[str] = None
    resume_text: Optional[str] = None
    final_resume: Optional[str] = None
    show_preview: Optional[bool] = None


class RenameRequest(BaseModel):
    title: str = Field(..., min_length=1)


class StyleUpdate(BaseModel):
    font_family: Optional[str] = None
    bullet: Optional[str] = None
    template: Optional[str] = None


class ChatRequest(BaseModel):
    """
    Body of the chat endpoints. `message` may be empty only when a voice note
    is attached (audio_base64).
    """
    message: str = Field(default="", max_length=MAX_MESSAGE_LENGTH)
    audio_base64: Optional[str] = None
    audio_mime_type: str = "audio/webm"
    model: Optional[str] = None


class ChatResponse(BaseModel):
    session_id: str
    message: Optional[Message] = None
    error: Optional[str] = None


class SculptRequest(BaseModel):
    model: Optional[str] = None


class SculptResponse(BaseModel):
    session_id: str
    document: Optional[str] = None
    error: Optional[str] = None


class CareerPlanRequest(BaseModel):
    main_goal: str = Field(..., min_length=1)
    days: int = Field(default=CAREER_PLAN_DAYS, ge=1, le=90)


class LogWinRequest(BaseModel):
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    win: str = ""


class QuizRequest(BaseModel):
    topic: str = Field(..., min_length=1)
    count: int = Field(default=QUIZ_DEFAULT_COUNT, ge=1, le=20)


class QuizResponse(BaseModel):
    topic: str
    items: List[QuizItem]
    flashcards: List[Dict[str, str]] = Field(default_factory=list)
