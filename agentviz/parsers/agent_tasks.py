"""Parse ``gh agent-task`` and ``gh api`` output into typed records."""
from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from agentviz.date_utils import parse_timestamp
from agentviz.models import AgentTask, CopilotOrgMetrics, OrgMetricsResult

logger = logging.getLogger("agentviz.parsers")

# Output fragments that mean "you cannot see this", not "something broke".
# Matched case-sensitively; a lowercase "not found" is a real failure.
DENIAL_SIGNATURES = (
    "HTTP 403",
    "HTTP 404",
    "403 Forbidden",
    "404 Not Found",
    "Not Found",
    "admin rights",
    "Resource not accessible",
    "Must have admin",
)
UNKNOWN_JSON_FLAG = "unknown flag: --json"
SESSION_ID_REQUIRED = "session ID is required"


def _decode(output: bytes | str) -> str:
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


def is_denial(output: bytes | str) -> bool:
    text = _decode(output)
    return any(signature in text for signature in DENIAL_SIGNATURES)


def _task_from_item(item: Any) -> AgentTask | None:
    if not isinstance(item, dict):
        return None
    try:
        task = AgentTask.model_validate(item)
    except ValidationError as exc:
        logger.debug("Skipping agent task record: %s", exc)
        return None
    return task if task.id else None


def parse_agent_tasks_json(output: bytes | str) -> list[AgentTask]:
    """Parse ``gh agent-task list --json``; records without an ID are dropped.

    Raises ``ValueError`` when the payload is not a JSON array.
    """
    try:
        payload = json.loads(_decode(output) or "[]")
    except json.JSONDecodeError as exc:
        raise ValueError(f"failed to parse agent tasks: {exc}") from exc
    if not isinstance(payload, list):
        raise ValueError("failed to parse agent tasks: expected a JSON array")

    tasks: list[AgentTask] = []
    for item in payload:
        task = _task_from_item(item)
        if task is not None:
            tasks.append(task)
    return tasks


def parse_agent_task_detail_json(output: bytes | str) -> AgentTask | None:
    try:
        payload = json.loads(_decode(output))
    except json.JSONDecodeError:
        return None
    return _task_from_item(payload)


def parse_agent_task_table(output: bytes | str, repo: str = "") -> list[AgentTask]:
    """Parse the tab-separated listing older CLI versions print without --json.

    Columns: title, #number, repository, status, updated-at.
    """
    tasks: list[AgentTask] = []
    for line in _decode(output).strip().splitlines():
        if not line.strip():
            continue
        fields = [field.strip() for field in line.split("\t")]
        if len(fields) < 5:
            continue
        title, number, task_repo, status, updated = fields[:5]
        if repo and task_repo != repo:
            continue
        task_id = number.lstrip("#")
        if not task_id:
            continue
        pr_number = int(task_id) if task_id.isdigit() else 0
        tasks.append(
            AgentTask(
                id=task_id,
                status=status,
                title=title,
                repository=task_repo,
                prUrl=f"https://github.com/{task_repo}/pull/{pr_number}" if task_repo and pr_number else "",
                prNumber=pr_number,
                updatedAt=parse_timestamp(updated),
            )
        )
    return tasks


def parse_pr_view_json(output: bytes | str, task_id: str, repo: str = "") -> AgentTask | None:
    """Build a task from ``gh pr view --json`` when session detail is unavailable."""
    try:
        payload = json.loads(_decode(output))
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    return _task_from_item(
        {
            "id": task_id,
            "status": payload.get("state"),
            "title": payload.get("title"),
            "repository": repo,
            "branch": payload.get("headRefName"),
            "prUrl": payload.get("url"),
            "prNumber": payload.get("number"),
            "createdAt": payload.get("createdAt"),
            "updatedAt": payload.get("updatedAt"),
        }
    )


def parse_org_metrics(output: bytes | str, succeeded: bool) -> OrgMetricsResult:
    """Interpret ``gh api /orgs/<org>/copilot/metrics`` output.

    Denials (no admin access, unknown org) hide the feature silently; any
    other failure carries the CLI message for display.
    """
    text = _decode(output).strip()
    if not succeeded:
        if is_denial(text):
            return OrgMetricsResult(available=False)
        return OrgMetricsResult(available=False, error=text)

    try:
        payload = json.loads(text or "[]")
    except json.JSONDecodeError:
        return OrgMetricsResult(available=False, error="failed to parse metrics response")
    if not isinstance(payload, list):
        return OrgMetricsResult(available=False, error="failed to parse metrics response")

    metrics: list[CopilotOrgMetrics] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        try:
            metrics.append(CopilotOrgMetrics.model_validate(item))
        except ValidationError as exc:
            logger.debug("Skipping org metrics record: %s", exc)
    if not metrics:
        return OrgMetricsResult(available=False)
    metrics.sort(key=lambda entry: entry.date, reverse=True)
    return OrgMetricsResult(available=True, metrics=metrics)
