"""Pydantic models shared by the parsers, the aggregator and the API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agentviz.date_utils import parse_timestamp

SOURCE_AGENT_TASK = "agent-task"
SOURCE_LOCAL_COPILOT = "local-copilot"

SessionSourceTag = Literal["agent-task", "local-copilot"]

_TRUTHY = {"1", "true", "yes", "on", "y"}


def _coerce_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        # Content may arrive as a list of text parts.
        chunks: list[str] = []
        for block in value:
            if isinstance(block, str):
                chunks.append(block)
            elif isinstance(block, dict) and isinstance(block.get("text"), str):
                chunks.append(block["text"])
        return "\n".join(chunks) if chunks else None
    return None


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return False


# ── Raw source records ─────────────────────────────────────────────

class ConversationEntry(BaseModel):
    """One conversation_history item; every field is optional."""

    role: Optional[str] = None
    content: Optional[str] = None
    timestamp: Optional[datetime] = None

    @field_validator("role", "content", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _coerce_text(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _time(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    @property
    def normalized_role(self) -> str:
        return (self.role or "").strip().lower()


class WorkspaceDescriptor(BaseModel):
    """Typed view of a local ``workspace.yaml`` file."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    session_id: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    start_time: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    status: str = ""
    repository: str = ""
    branch: str = ""
    title: str = ""
    summary: str = ""
    awaiting_user_input: bool = False
    needs_human_input: bool = False
    waiting_for_user: bool = False
    conversation_history: list[ConversationEntry] = Field(default_factory=list)

    @field_validator("id", "session_id", "status", "repository", "branch", "title", "summary", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return (_coerce_text(value) or "").strip()

    @field_validator("created_at", "updated_at", "start_time", "last_activity", mode="before")
    @classmethod
    def _time(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    @field_validator("awaiting_user_input", "needs_human_input", "waiting_for_user", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return _coerce_flag(value)

    @field_validator("conversation_history", mode="before")
    @classmethod
    def _history(cls, value: Any) -> list[dict[str, Any]]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @property
    def session_key(self) -> str:
        return self.id or self.session_id

    @property
    def awaiting_input(self) -> bool:
        return self.awaiting_user_input or self.needs_human_input or self.waiting_for_user


class AgentTask(BaseModel):
    """Remote agent task as reported by ``gh agent-task list --json``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str = ""
    title: str = ""
    repository: str = ""
    branch: str = ""
    prUrl: str = ""
    prNumber: int = 0
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @field_validator("id", "status", "title", "repository", "branch", "prUrl", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return (_coerce_text(value) or "").strip()

    @field_validator("prNumber", mode="before")
    @classmethod
    def _number(cls, value: Any) -> int:
        if isinstance(value, bool):
            return 0
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            token = value.strip().lstrip("#")
            return int(token) if token.isdigit() else 0
        return 0

    @field_validator("createdAt", "updatedAt", mode="before")
    @classmethod
    def _time(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)


class SessionEvent(BaseModel):
    """One parsed line of a local session's ``events.jsonl``."""

    type: str
    timestamp: str = ""
    role: str = ""  # "user" | "assistant" for message events
    content: str = ""
    toolName: str = ""


# ── Canonical session model ────────────────────────────────────────

class ConversationActivity(BaseModel):
    durationSeconds: int = 0
    conversationTurns: int = 0
    userMessages: int = 0
    assistantMessages: int = 0


class SessionTelemetry(BaseModel):
    model: str = ""
    modelDisplayName: str = ""
    inputTokens: int = 0
    outputTokens: int = 0
    cachedTokens: int = 0
    modelCalls: int = 0


class Session(BaseModel):
    """Source-agnostic session; rebuilt from scratch on every refresh."""

    model_config = ConfigDict(frozen=True)

    id: str
    status: str = "unknown"
    title: str = ""
    repository: str = ""
    branch: str = ""
    prUrl: Optional[str] = None
    prNumber: Optional[int] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    source: SessionSourceTag
    telemetry: Optional[SessionTelemetry] = None
    activity: Optional[ConversationActivity] = None
    hasLog: bool = False


class TokenUsage(BaseModel):
    """Token accounting accumulated across log records for one session."""

    sessionId: str
    model: str = ""
    inputTokens: int = 0
    outputTokens: int = 0
    cachedTokens: int = 0
    calls: int = 0


# ── Aggregated view ────────────────────────────────────────────────

class FilterCounts(BaseModel):
    all: int = 0
    attention: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0


class SourceFailure(BaseModel):
    source: str
    message: str


class BoardEntry(BaseModel):
    session: Session
    quietDuplicate: bool = False
    needsAttention: bool = False


class BoardSnapshot(BaseModel):
    entries: list[BoardEntry] = Field(default_factory=list)
    counts: FilterCounts = Field(default_factory=FilterCounts)
    statusFilter: str = "all"
    warnings: list[SourceFailure] = Field(default_factory=list)
    generatedAt: Optional[datetime] = None

    @property
    def sessions(self) -> list[Session]:
        return [entry.session for entry in self.entries]


# ── Org metrics ────────────────────────────────────────────────────

class CopilotOrgMetrics(BaseModel):
    model_config = ConfigDict(extra="ignore")

    date: str = ""
    total_active_users: int = 0
    total_engaged_users: int = 0


class OrgMetricsResult(BaseModel):
    available: bool = False
    metrics: list[CopilotOrgMetrics] = Field(default_factory=list)  # most recent first
    error: str = ""  # user-facing reason when a real failure occurred
