"""Local Copilot CLI sessions from ``~/.copilot/session-state``."""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from agentviz import config
from agentviz.date_utils import utc_now
from agentviz.errors import SourceError
from agentviz.models import SOURCE_LOCAL_COPILOT, Session, SessionEvent
from agentviz.normalizer import parse_local_session
from agentviz.observability import record_parser_failure
from agentviz.parsers.events import format_event_log, parse_session_events
from agentviz.parsers.workspace import QuestionDetector, looks_like_question

logger = logging.getLogger("agentviz.sources")

WORKSPACE_FILE = "workspace.yaml"
EVENTS_FILE = "events.jsonl"


def _has_events(session_dir: Path) -> bool:
    try:
        return (session_dir / EVENTS_FILE).stat().st_size > 0
    except OSError:
        return False


class LocalSessionSource:
    """Scans one directory per session, each holding a ``workspace.yaml``."""

    name = SOURCE_LOCAL_COPILOT

    def __init__(
        self,
        state_dir: Path | None = None,
        repo: str = "",
        question_detector: QuestionDetector = looks_like_question,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.state_dir = state_dir if state_dir is not None else config.SESSION_STATE_DIR
        self.repo = repo
        self.question_detector = question_detector
        self.clock = clock

    def fetch_sessions(self) -> list[Session]:
        # A missing directory just means no local sessions yet.
        if not self.state_dir.exists():
            return []
        try:
            entries = sorted(self.state_dir.iterdir())
        except OSError as exc:
            raise SourceError(self.name, f"failed to read session directory: {exc}") from exc

        now = self.clock()
        sessions: list[Session] = []
        for entry in entries:
            if not entry.is_dir():
                continue
            workspace = entry / WORKSPACE_FILE
            try:
                data = workspace.read_bytes()
            except OSError as exc:
                logger.debug("Skipping %s: %s", workspace, exc)
                continue

            try:
                result = parse_local_session(
                    data,
                    now=now,
                    question_detector=self.question_detector,
                    has_log=_has_events(entry),
                )
            except Exception as exc:
                logger.warning("Failed to parse %s: %s", workspace, exc)
                record_parser_failure("workspace")
                continue
            if not result.ok or result.session is None:
                logger.debug("Dropping descriptor %s: %s", workspace, result.error)
                record_parser_failure("workspace")
                continue
            if result.parser != "yaml":
                logger.debug("Recovered %s with the %s parser", workspace, result.parser)
            if self.repo and result.session.repository != self.repo:
                continue
            sessions.append(result.session)

        return sessions

    def _events_path(self, session_id: str) -> Path:
        token = (session_id or "").strip()
        if not token or Path(token).name != token or token in {".", ".."}:
            raise SourceError(self.name, "a valid session ID is required")
        return self.state_dir / token / EVENTS_FILE

    def fetch_events(self, session_id: str) -> list[SessionEvent]:
        path = self._events_path(session_id)
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise SourceError(self.name, "no event log found for this session") from exc
        return parse_session_events(text)

    def fetch_event_log(self, session_id: str) -> str:
        return format_event_log(self.fetch_events(session_id))
