"""Tolerant parsing of local ``workspace.yaml`` session descriptors.

Descriptors are written by several generations of the Copilot CLI and are
occasionally truncated or hand-edited. Two parsers share one contract
(bytes in, ``ParseResult`` out) and are tried in order:

1. ``parse_structured`` loads the document with PyYAML.
2. ``parse_line_fallback`` runs only when the structural parse fails and
   scans ``key: value`` lines for a fixed set of fields.

A record is rejected only when neither parser can recover a session ID.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

import yaml
from pydantic import ValidationError

from agentviz.models import ConversationEntry, Session, WorkspaceDescriptor

logger = logging.getLogger("agentviz.parsers")

TITLE_MAX_LENGTH = 100

_FALLBACK_FIELDS = {
    "id",
    "session_id",
    "title",
    "summary",
    "repository",
    "branch",
    "status",
    "created_at",
    "updated_at",
    "last_activity",
    "awaiting_user_input",
    "needs_human_input",
    "waiting_for_user",
}
_KEY_VALUE_PATTERN = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*:\s*(.*)$")
_EMPTY_SCALARS = {"", "~", "null", "|", ">", "|-", ">-"}

_CHOICE_PROMPTS = (
    "please choose",
    "which option",
    "what would you like",
    "can you confirm",
    "please provide",
    "pick one",
    "let me know",
)
_TRAILING_DECORATION = "*_`\"') \t\n"

QuestionDetector = Callable[[str], bool]


@dataclass(frozen=True)
class ParseResult:
    """Outcome of one descriptor parse attempt.

    ``try_next`` marks structural failures that the next parser in the chain
    may still recover from.
    """

    descriptor: Optional[WorkspaceDescriptor] = None
    session: Optional[Session] = None
    parser: str = ""
    error: str = ""
    try_next: bool = False

    @property
    def ok(self) -> bool:
        return self.descriptor is not None and not self.error

    @classmethod
    def success(cls, descriptor: WorkspaceDescriptor, parser: str) -> "ParseResult":
        return cls(descriptor=descriptor, parser=parser)

    @classmethod
    def failure(cls, parser: str, error: str, try_next: bool = False) -> "ParseResult":
        return cls(parser=parser, error=error, try_next=try_next)

    def with_session(self, session: Session) -> "ParseResult":
        return replace(self, session=session)


def _decode(data: bytes | str) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def _require_id(descriptor: WorkspaceDescriptor, parser: str) -> ParseResult:
    if not descriptor.session_key:
        return ParseResult.failure(parser, "no session identifier found in descriptor")
    return ParseResult.success(descriptor, parser)


def parse_structured(data: bytes | str) -> ParseResult:
    """Parse the descriptor as a YAML mapping."""
    try:
        document = yaml.safe_load(_decode(data))
    except yaml.YAMLError as exc:
        return ParseResult.failure("yaml", f"invalid YAML: {exc}", try_next=True)
    except (ValueError, TypeError, RecursionError) as exc:
        # PyYAML builds timestamps eagerly, so "2025-13-01" fails here.
        return ParseResult.failure("yaml", f"unconvertible YAML value: {exc}", try_next=True)
    if not isinstance(document, dict):
        return ParseResult.failure("yaml", "descriptor is not a mapping", try_next=True)
    try:
        descriptor = WorkspaceDescriptor.model_validate(document)
    except ValidationError as exc:
        return ParseResult.failure("yaml", f"unexpected descriptor shape: {exc}", try_next=True)
    return _require_id(descriptor, "yaml")


def _clean_scalar(raw: str) -> str:
    value = raw.strip().strip("\"' ")
    if value.lower() in _EMPTY_SCALARS:
        return ""
    return value


def parse_line_fallback(data: bytes | str) -> ParseResult:
    """Best-effort ``key: value`` extraction for descriptors YAML rejects.

    The first occurrence of a field wins, so nested keys further down the
    file cannot override the top-level ones. Unrecognized lines are ignored.
    """
    fields: dict[str, Any] = {}
    for line in _decode(data).splitlines():
        match = _KEY_VALUE_PATTERN.match(line.strip())
        if not match:
            continue
        key, raw_value = match.group(1), match.group(2)
        if key not in _FALLBACK_FIELDS or key in fields:
            continue
        value = _clean_scalar(raw_value)
        if value:
            fields[key] = value

    try:
        descriptor = WorkspaceDescriptor.model_validate(fields)
    except ValidationError as exc:
        return ParseResult.failure("fallback", f"unusable descriptor fields: {exc}")
    return _require_id(descriptor, "fallback")


_PARSERS: tuple[Callable[[bytes | str], ParseResult], ...] = (parse_structured, parse_line_fallback)


def parse_descriptor(data: bytes | str) -> ParseResult:
    """Run the parser chain until one succeeds or a failure is final."""
    result = ParseResult.failure("none", "no parser attempted")
    for parser in _PARSERS:
        result = parser(data)
        if result.ok or not result.try_next:
            break
        logger.debug("Descriptor parser %s failed (%s); trying next", result.parser, result.error)
    return result


# ── Descriptor interpretation ──────────────────────────────────────

def truncate_title(value: str) -> str:
    text = " ".join((value or "").strip().split())
    if len(text) <= TITLE_MAX_LENGTH:
        return text
    return text[: TITLE_MAX_LENGTH - 3] + "..."


def looks_like_question(content: str) -> bool:
    """Default heuristic for an assistant message that waits on the user."""
    trimmed = (content or "").strip()
    if not trimmed:
        return False
    if trimmed.rstrip(_TRAILING_DECORATION).endswith("?"):
        return True
    lowered = trimmed.lower()
    return any(prompt in lowered for prompt in _CHOICE_PROMPTS)


def _pending_assistant_message(history: list[ConversationEntry]) -> Optional[ConversationEntry]:
    """The latest assistant message, unless the user has answered since."""
    for entry in reversed(history):
        role = entry.normalized_role
        if role == "user":
            return None
        if role == "assistant":
            return entry
    return None


def awaiting_input(
    descriptor: WorkspaceDescriptor,
    question_detector: QuestionDetector = looks_like_question,
) -> bool:
    if descriptor.awaiting_input:
        return True
    pending = _pending_assistant_message(descriptor.conversation_history)
    if pending is None or not pending.content:
        return False
    return question_detector(pending.content)


def derive_title(descriptor: WorkspaceDescriptor) -> str:
    if descriptor.title:
        return truncate_title(descriptor.title)
    if descriptor.summary:
        return truncate_title(descriptor.summary)
    for entry in descriptor.conversation_history:
        if entry.normalized_role == "user" and entry.content and entry.content.strip():
            return truncate_title(entry.content)
    return f"Session {truncate_title(descriptor.session_key)}"
