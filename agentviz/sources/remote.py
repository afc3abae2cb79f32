"""Remote Copilot coding-agent tasks via the GitHub CLI."""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from agentviz import config
from agentviz.date_utils import utc_now
from agentviz.errors import SourceError, SourceUnavailableError
from agentviz.models import SOURCE_AGENT_TASK, AgentTask, OrgMetricsResult, Session
from agentviz.normalizer import from_agent_task
from agentviz.parsers.agent_tasks import (
    SESSION_ID_REQUIRED,
    UNKNOWN_JSON_FLAG,
    is_denial,
    parse_agent_task_detail_json,
    parse_agent_task_table,
    parse_agent_tasks_json,
    parse_org_metrics,
    parse_pr_view_json,
)

logger = logging.getLogger("agentviz.sources")

# Exit code shells use for "command not found".
COMMAND_NOT_FOUND = 127
COMMAND_TIMED_OUT = 124
PR_VIEW_FIELDS = "number,title,headRefName,url,state,createdAt,updatedAt"


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


CommandRunner = Callable[[list[str]], CommandResult]


def run_gh(args: list[str], binary: str | None = None, timeout: int | None = None) -> CommandResult:
    """Run the GitHub CLI and capture its output without raising."""
    command = [binary or config.GH_BINARY, *args]
    logger.debug("Running %s", " ".join(command))
    try:
        completed = subprocess.run(
            command,
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout or config.GH_TIMEOUT_SECONDS,
        )
    except FileNotFoundError:
        return CommandResult(COMMAND_NOT_FOUND, stderr=f"{command[0]}: command not found")
    except subprocess.TimeoutExpired:
        return CommandResult(COMMAND_TIMED_OUT, stderr=f"{command[0]} timed out")
    logger.debug("%s exited with %s", command[0], completed.returncode)
    return CommandResult(completed.returncode, completed.stdout or "", completed.stderr or "")


class AgentTaskSource:
    """Lists coding-agent tasks with ``gh agent-task``."""

    name = SOURCE_AGENT_TASK

    def __init__(
        self,
        repo: str = "",
        runner: CommandRunner | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repo = repo
        self.runner = runner or run_gh
        self.clock = clock

    def _repo_args(self) -> list[str]:
        return ["-R", self.repo] if self.repo else []

    def _fail(self, result: CommandResult, action: str) -> SourceError:
        message = result.output or f"exit status {result.returncode}"
        if result.returncode == COMMAND_NOT_FOUND or is_denial(message):
            return SourceUnavailableError(self.name, message)
        return SourceError(self.name, f"{action}: {message}")

    def fetch_tasks(self) -> list[AgentTask]:
        result = self.runner(["agent-task", "list", "--json", *self._repo_args()])
        if result.ok:
            try:
                return parse_agent_tasks_json(result.stdout)
            except ValueError as exc:
                raise SourceError(self.name, str(exc)) from exc

        if UNKNOWN_JSON_FLAG not in result.output:
            raise self._fail(result, "failed to list agent tasks")

        # Older CLI builds only print a tab-separated table.
        logger.debug("gh agent-task does not support --json, falling back to table output")
        fallback = self.runner(["agent-task", "list", *self._repo_args()])
        if not fallback.ok:
            raise self._fail(fallback, "failed to list agent tasks")
        return parse_agent_task_table(fallback.stdout, self.repo)

    def fetch_sessions(self) -> list[Session]:
        now = self.clock()
        return [from_agent_task(task, now) for task in self.fetch_tasks()]

    def fetch_task_detail(self, task_id: str) -> Session:
        """Load one task, falling back to its pull request when detail is unsupported."""
        if not task_id:
            raise SourceError(self.name, "a task ID is required")

        result = self.runner(["agent-task", "view", task_id, "--json", *self._repo_args()])
        if result.ok:
            task = parse_agent_task_detail_json(result.stdout)
        elif UNKNOWN_JSON_FLAG in result.output or SESSION_ID_REQUIRED in result.output:
            logger.debug("gh agent-task view cannot describe %s, using its pull request", task_id)
            pr_result = self.runner(["pr", "view", task_id, "--json", PR_VIEW_FIELDS, *self._repo_args()])
            if not pr_result.ok:
                raise self._fail(pr_result, "failed to fetch task details")
            task = parse_pr_view_json(pr_result.stdout, task_id, self.repo)
        else:
            raise self._fail(result, "failed to fetch task details")
        if task is None:
            raise SourceError(self.name, f"failed to parse details for task {task_id}")
        return from_agent_task(task, self.clock())

    def fetch_task_log(self, task_id: str) -> str:
        if not task_id:
            raise SourceError(self.name, "a task ID is required")
        result = self.runner(["agent-task", "view", task_id, "--log", *self._repo_args()])
        if not result.ok:
            raise self._fail(result, "failed to fetch task log")
        return result.stdout

    def fetch_org_metrics(self, org: str) -> OrgMetricsResult:
        """Organization-level Copilot metrics; unavailable rather than failed on denial."""
        if not org:
            return OrgMetricsResult(available=False)
        result = self.runner(["api", f"/orgs/{org}/copilot/metrics"])
        return parse_org_metrics(result.stdout if result.ok else result.output, result.ok)
