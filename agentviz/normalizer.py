"""Convert source records into canonical ``Session`` models."""
from __future__ import annotations

from datetime import datetime

from agentviz import status as session_status
from agentviz.models import (
    SOURCE_AGENT_TASK,
    SOURCE_LOCAL_COPILOT,
    AgentTask,
    ConversationActivity,
    Session,
    WorkspaceDescriptor,
)
from agentviz.parsers.workspace import (
    ParseResult,
    QuestionDetector,
    awaiting_input,
    derive_title,
    looks_like_question,
    parse_descriptor,
)

# Remote-only spellings the hosted API uses for finished work.
_REMOTE_STATUS_ALIASES = {"ready for review": session_status.COMPLETED}


def _remote_status(raw: str, updated_at: datetime | None, now: datetime | None) -> str:
    alias = _REMOTE_STATUS_ALIASES.get((raw or "").strip().lower())
    if alias:
        return alias
    return session_status.classify_status(raw, updated_at, now)


def from_agent_task(task: AgentTask, now: datetime | None = None) -> Session:
    return Session(
        id=task.id,
        status=_remote_status(task.status, task.updatedAt, now),
        title=task.title,
        repository=task.repository,
        branch=task.branch,
        prUrl=task.prUrl or None,
        prNumber=task.prNumber or None,
        createdAt=task.createdAt,
        updatedAt=task.updatedAt,
        source=SOURCE_AGENT_TASK,
    )


def _conversation_activity(
    descriptor: WorkspaceDescriptor,
    created_at: datetime | None,
    updated_at: datetime | None,
) -> ConversationActivity:
    user_messages = 0
    assistant_messages = 0
    for entry in descriptor.conversation_history:
        if entry.normalized_role == "user":
            user_messages += 1
        elif entry.normalized_role == "assistant":
            assistant_messages += 1

    duration = 0
    if created_at and updated_at and updated_at > created_at:
        duration = int((updated_at - created_at).total_seconds())

    return ConversationActivity(
        durationSeconds=duration,
        conversationTurns=user_messages + assistant_messages,
        userMessages=user_messages,
        assistantMessages=assistant_messages,
    )


def from_workspace(
    descriptor: WorkspaceDescriptor,
    *,
    now: datetime | None = None,
    question_detector: QuestionDetector = looks_like_question,
    has_log: bool = False,
) -> Session:
    """Build a local session from a descriptor that carries an ID.

    A pending question or an explicit awaiting-input flag forces
    ``needs-input`` before the declared status is considered.
    """
    created_at = descriptor.created_at or descriptor.start_time
    updated_at = descriptor.updated_at or descriptor.last_activity or created_at

    if awaiting_input(descriptor, question_detector):
        status = session_status.NEEDS_INPUT
    else:
        status = session_status.classify_status(descriptor.status, updated_at, now)

    return Session(
        id=descriptor.session_key,
        status=status,
        title=derive_title(descriptor),
        repository=descriptor.repository,
        branch=descriptor.branch,
        createdAt=created_at,
        updatedAt=updated_at,
        source=SOURCE_LOCAL_COPILOT,
        activity=_conversation_activity(descriptor, created_at, updated_at),
        hasLog=has_log,
    )


def parse_local_session(
    data: bytes | str,
    *,
    now: datetime | None = None,
    question_detector: QuestionDetector = looks_like_question,
    has_log: bool = False,
) -> ParseResult:
    """Parse raw descriptor bytes into a ``ParseResult`` carrying a session."""
    result = parse_descriptor(data)
    if not result.ok or result.descriptor is None:
        return result
    session = from_workspace(
        result.descriptor,
        now=now,
        question_detector=question_detector,
        has_log=has_log,
    )
    return result.with_session(session)
