"""Extract per-session token usage from Copilot CLI process logs.

The CLI interleaves plain log lines with debug dumps of model responses::

    ... [INFO] Flushed 5 events to session abc12345-1234-1234-1234-abcdef123456
    ... [DEBUG] response (Request-ID: req-123)
    ... [DEBUG] data: {"id":"chatcmpl-1"}
    ... [DEBUG] {"model":"claude-opus-4.5","usage":{"total_tokens":5100, ...}}

``TokenUsageScanner`` walks those lines with an explicit state machine:

    IDLE --response line--> IN_RESPONSE
    IN_RESPONSE --data line--> IN_RESPONSE
    IN_RESPONSE --complete JSON object--> IDLE (usage merged)
    IN_RESPONSE --opening of a multi-line object--> COLLECTING_JSON
    COLLECTING_JSON --braces balanced--> IDLE (usage merged)
    IN_RESPONSE / COLLECTING_JSON --anything else--> IDLE, line re-evaluated

Usage is attributed to the session named by the most recent flush marker.
"""
from __future__ import annotations

import json
import logging
import re
import time
from enum import Enum
from pathlib import Path
from typing import Any

from agentviz.model_identity import normalize_model_name
from agentviz.models import TokenUsage

logger = logging.getLogger("agentviz.parsers")

UNKNOWN_SESSION = "_unknown"
LOG_FILE_GLOB = "process-*.log"
MAX_JSON_CONTINUATION_LINES = 500

_FLUSH_PATTERN = re.compile(r"Flushed \d+ events? to session `?([0-9a-fA-F-]{36})`?", re.IGNORECASE)
_RESPONSE_START_PATTERN = re.compile(r"(?:^|\]\s*)response\b")
_DATA_LINE_PATTERN = re.compile(r"(?:^|\]\s*)data:")
_LOG_PREFIX_PATTERN = re.compile(r"^[^\[{]*\[(?:TRACE|DEBUG|INFO|WARN|WARNING|ERROR)\]\s?")


class ScanState(Enum):
    IDLE = "idle"
    IN_RESPONSE = "in_response"
    COLLECTING_JSON = "collecting_json"


def _strip_log_prefix(line: str) -> str:
    match = _LOG_PREFIX_PATTERN.match(line)
    return line[match.end():] if match else line


def _json_payload(line: str) -> str | None:
    body = _strip_log_prefix(line).strip()
    return body if body.startswith("{") else None


def _brace_delta(text: str) -> int:
    return text.count("{") - text.count("}")


def _as_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float):
        return max(0, int(value))
    return 0


class TokenUsageScanner:
    """Stateful line scanner; one instance per log file."""

    def __init__(self, results: dict[str, TokenUsage] | None = None):
        self.results: dict[str, TokenUsage] = results if results is not None else {}
        self.state = ScanState.IDLE
        self.current_session_id = ""
        self.skipped_blocks = 0
        self._buffer: list[str] = []
        self._depth = 0
        self._continuation_lines = 0

    def scan(self, text: str) -> dict[str, TokenUsage]:
        for line in text.splitlines():
            self.feed(line)
        return self.results

    def feed(self, line: str) -> None:
        # A reset transition hands the same line back for evaluation in IDLE.
        while not self._step(line):
            pass

    def _step(self, line: str) -> bool:
        """Advance the state machine; False means the line was not consumed."""
        if self.state is ScanState.IDLE:
            return self._step_idle(line)
        if self.state is ScanState.IN_RESPONSE:
            return self._step_in_response(line)
        return self._step_collecting(line)

    def _step_idle(self, line: str) -> bool:
        flush = _FLUSH_PATTERN.search(line)
        if flush:
            self.current_session_id = flush.group(1)
        elif _RESPONSE_START_PATTERN.search(line):
            self.state = ScanState.IN_RESPONSE
        return True

    def _step_in_response(self, line: str) -> bool:
        payload = _json_payload(line)
        if payload is not None:
            depth = _brace_delta(payload)
            if depth <= 0:
                self._finish_block(payload)
            else:
                self._buffer = [payload]
                self._depth = depth
                self._continuation_lines = 0
                self.state = ScanState.COLLECTING_JSON
            return True
        if _DATA_LINE_PATTERN.search(line):
            return True
        self._reset()
        return False

    def _step_collecting(self, line: str) -> bool:
        self._continuation_lines += 1
        if (
            self._continuation_lines > MAX_JSON_CONTINUATION_LINES
            or _FLUSH_PATTERN.search(line)
            or _RESPONSE_START_PATTERN.search(line)
        ):
            logger.debug("Abandoning unterminated usage block after %d lines", self._continuation_lines)
            self.skipped_blocks += 1
            self._reset()
            return False
        content = _strip_log_prefix(line)
        self._buffer.append(content)
        self._depth += _brace_delta(content)
        if self._depth <= 0:
            self._finish_block("\n".join(self._buffer))
        return True

    def _reset(self) -> None:
        self.state = ScanState.IDLE
        self._buffer = []
        self._depth = 0
        self._continuation_lines = 0

    def _finish_block(self, payload: str) -> None:
        self._reset()
        try:
            block = json.loads(payload)
        except json.JSONDecodeError:
            self.skipped_blocks += 1
            logger.debug("Skipping malformed usage block in session %s", self.current_session_id or UNKNOWN_SESSION)
            return
        if not isinstance(block, dict):
            return
        usage = block.get("usage")
        if not isinstance(usage, dict) or _as_count(usage.get("total_tokens")) == 0:
            return
        self._merge(block, usage)

    def _merge(self, block: dict[str, Any], usage: dict[str, Any]) -> None:
        session_id = self.current_session_id or UNKNOWN_SESSION
        entry = self.results.get(session_id)
        if entry is None:
            entry = TokenUsage(sessionId=session_id)
            self.results[session_id] = entry

        details = usage.get("prompt_tokens_details")
        cached = _as_count(details.get("cached_tokens")) if isinstance(details, dict) else 0

        entry.inputTokens += _as_count(usage.get("prompt_tokens"))
        entry.outputTokens += _as_count(usage.get("completion_tokens"))
        entry.cachedTokens += cached
        entry.calls += 1

        raw_model = block.get("model")
        model = normalize_model_name(raw_model) if isinstance(raw_model, str) else ""
        if model:
            entry.model = model


def scan_log_text(text: str, results: dict[str, TokenUsage] | None = None) -> dict[str, TokenUsage]:
    """Scan the text of one log file, merging into *results* when given."""
    return TokenUsageScanner(results).scan(text)


def scan_log_dir(
    log_dir: Path | None,
    window_days: int = 7,
    now: float | None = None,
) -> dict[str, TokenUsage]:
    """Aggregate usage from ``process-*.log`` files modified inside the window.

    Files outside the trailing window are never opened; unreadable files are
    skipped.
    """
    results: dict[str, TokenUsage] = {}
    if log_dir is None or not log_dir.is_dir():
        return results

    cutoff = (now if now is not None else time.time()) - window_days * 24 * 60 * 60
    for path in sorted(log_dir.glob(LOG_FILE_GLOB)):
        try:
            if path.stat().st_mtime < cutoff:
                continue
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.debug("Skipping unreadable log file %s: %s", path, exc)
            continue
        scan_log_text(text, results)

    return results
