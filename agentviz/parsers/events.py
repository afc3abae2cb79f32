"""Parse a local session's ``events.jsonl`` conversation log."""
from __future__ import annotations

import json
from typing import Any

from agentviz.date_utils import parse_timestamp
from agentviz.models import SessionEvent

LOG_CONTENT_LIMIT = 500
EMPTY_LOG_MESSAGE = "No conversation events recorded for this session."


def _data_text(data: Any, key: str) -> str:
    if not isinstance(data, dict):
        return ""
    value = data.get(key)
    return value if isinstance(value, str) else ""


def parse_session_events(text: str) -> list[SessionEvent]:
    """Parse JSONL events; malformed lines and untyped records are skipped."""
    events: list[SessionEvent] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            raw = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(raw, dict):
            continue
        event_type = raw.get("type")
        if not isinstance(event_type, str) or not event_type:
            continue
        timestamp = raw.get("timestamp")
        data = raw.get("data")

        event = SessionEvent(type=event_type, timestamp=timestamp if isinstance(timestamp, str) else "")
        if event_type == "user.message":
            event.role = "user"
            event.content = _data_text(data, "content")
        elif event_type == "assistant.message":
            event.role = "assistant"
            event.content = _data_text(data, "content")
        elif event_type == "tool.execution_start":
            event.toolName = _data_text(data, "toolName")
        events.append(event)
    return events


def _clock(timestamp: str) -> str:
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return timestamp
    return parsed.strftime("%H:%M:%S")


def _truncate(content: str, limit: int = LOG_CONTENT_LIMIT) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + "\n\n_(truncated)_"


def format_event(event: SessionEvent) -> str:
    ts = _clock(event.timestamp)
    if event.type == "session.start":
        return f"**{ts}** - Session started\n"
    if event.type == "user.message" and event.content:
        return f"**{ts}** - **User**\n\n{_truncate(event.content)}\n"
    if event.type == "assistant.message" and event.content:
        return f"**{ts}** - **Assistant**\n\n{_truncate(event.content)}\n"
    if event.type == "tool.execution_start" and event.toolName:
        return f"`{ts}` tool: {event.toolName}"
    if event.type == "abort":
        return f"**{ts}** - Aborted\n"
    if event.type == "assistant.turn_start":
        return f"---\n**{ts}** - _Turn started_"
    return ""


def format_event_log(events: list[SessionEvent]) -> str:
    """Render events as a readable markdown conversation log."""
    lines = [line for line in (format_event(event) for event in events) if line]
    if not lines:
        return EMPTY_LOG_MESSAGE
    return "# Session Event Log\n\n" + "\n".join(lines)
