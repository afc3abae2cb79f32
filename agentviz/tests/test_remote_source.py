import json
import subprocess
import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from agentviz.errors import SourceError, SourceUnavailableError
from agentviz.sources.remote import COMMAND_NOT_FOUND, AgentTaskSource, CommandResult, run_gh

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class _ScriptedRunner:
    """Returns canned results in order and records every invocation."""

    def __init__(self, *results: CommandResult):
        self.results = list(results)
        self.calls: list[list[str]] = []

    def __call__(self, args: list[str]) -> CommandResult:
        self.calls.append(list(args))
        return self.results.pop(0)


def _source(runner: _ScriptedRunner, repo: str = "") -> AgentTaskSource:
    return AgentTaskSource(repo=repo, runner=runner, clock=lambda: NOW)


class AgentTaskSourceTests(unittest.TestCase):
    def test_json_listing_is_normalized(self) -> None:
        payload = json.dumps(
            [
                {"id": "42", "status": "in progress", "title": "Add retries", "repository": "octo/app"},
                {"id": "7", "status": "Ready for review", "title": "Docs", "repository": "octo/app"},
            ]
        )
        runner = _ScriptedRunner(CommandResult(0, stdout=payload))

        sessions = _source(runner, repo="octo/app").fetch_sessions()

        self.assertEqual(runner.calls, [["agent-task", "list", "--json", "-R", "octo/app"]])
        self.assertEqual([(s.id, s.status, s.source) for s in sessions], [
            ("42", "running", "agent-task"),
            ("7", "completed", "agent-task"),
        ])

    def test_old_cli_falls_back_to_table_output(self) -> None:
        runner = _ScriptedRunner(
            CommandResult(1, stderr="unknown flag: --json"),
            CommandResult(0, stdout="Add retries\t#42\tocto/app\tQueued\t2026-01-15T11:00:00Z\n"),
        )

        sessions = _source(runner).fetch_sessions()

        self.assertEqual(runner.calls[1], ["agent-task", "list"])
        self.assertEqual(len(sessions), 1)
        self.assertEqual(sessions[0].status, "queued")
        self.assertEqual(sessions[0].prNumber, 42)

    def test_denial_means_unavailable(self) -> None:
        runner = _ScriptedRunner(CommandResult(1, stderr="HTTP 403: Resource not accessible by integration"))
        with self.assertRaises(SourceUnavailableError):
            _source(runner).fetch_sessions()

    def test_missing_cli_means_unavailable(self) -> None:
        runner = _ScriptedRunner(CommandResult(COMMAND_NOT_FOUND, stderr="gh: command not found"))
        with self.assertRaises(SourceUnavailableError):
            _source(runner).fetch_sessions()

    def test_other_failures_are_source_errors(self) -> None:
        runner = _ScriptedRunner(CommandResult(1, stderr="error connecting to api.github.com"))

        with self.assertRaises(SourceError) as ctx:
            _source(runner).fetch_sessions()

        self.assertNotIsInstance(ctx.exception, SourceUnavailableError)
        self.assertIn("error connecting", ctx.exception.message)
        self.assertEqual(ctx.exception.source, "agent-task")

    def test_unparseable_json_is_a_source_error(self) -> None:
        runner = _ScriptedRunner(CommandResult(0, stdout="<html>"))
        with self.assertRaises(SourceError):
            _source(runner).fetch_sessions()

    def test_task_detail_falls_back_to_pull_request(self) -> None:
        pr = json.dumps({"number": 42, "title": "Add retries", "state": "OPEN", "headRefName": "copilot/retries"})
        runner = _ScriptedRunner(
            CommandResult(1, stderr="session ID is required"),
            CommandResult(0, stdout=pr),
        )

        session = _source(runner, repo="octo/app").fetch_task_detail("42")

        self.assertEqual(runner.calls[1][:3], ["pr", "view", "42"])
        self.assertEqual(session.id, "42")
        self.assertEqual(session.status, "running")
        self.assertEqual(session.branch, "copilot/retries")

    def test_task_detail_failures_keep_their_message(self) -> None:
        runner = _ScriptedRunner(CommandResult(1, stderr="error connecting to api.github.com"))

        with self.assertRaises(SourceError) as ctx:
            _source(runner).fetch_task_detail("42")

        self.assertEqual(len(runner.calls), 1)
        self.assertNotIsInstance(ctx.exception, SourceUnavailableError)
        self.assertIn("error connecting", ctx.exception.message)

    def test_unparseable_task_detail_does_not_fall_back(self) -> None:
        runner = _ScriptedRunner(CommandResult(0, stdout="not json"))

        with self.assertRaises(SourceError):
            _source(runner).fetch_task_detail("42")

        self.assertEqual(len(runner.calls), 1)

    def test_lowercase_not_found_is_not_a_denial(self) -> None:
        runner = _ScriptedRunner(CommandResult(1, stderr='unknown command "agent-task" for "gh": extension not found'))

        with self.assertRaises(SourceError) as ctx:
            _source(runner).fetch_sessions()

        self.assertNotIsInstance(ctx.exception, SourceUnavailableError)

    def test_task_log_failure_is_reported(self) -> None:
        runner = _ScriptedRunner(CommandResult(1, stderr="HTTP 404: Not Found"))
        with self.assertRaises(SourceUnavailableError):
            _source(runner).fetch_task_log("42")

    def test_org_metrics_denial_hides_feature(self) -> None:
        runner = _ScriptedRunner(CommandResult(1, stderr="HTTP 403: Must have admin rights"))

        result = _source(runner).fetch_org_metrics("octo")

        self.assertEqual(runner.calls, [["api", "/orgs/octo/copilot/metrics"]])
        self.assertFalse(result.available)
        self.assertEqual(result.error, "")


class RunGhTests(unittest.TestCase):
    def test_missing_binary_is_reported_as_not_found(self) -> None:
        with patch("agentviz.sources.remote.subprocess.run", side_effect=FileNotFoundError()):
            result = run_gh(["agent-task", "list"], binary="gh")
        self.assertEqual(result.returncode, COMMAND_NOT_FOUND)
        self.assertFalse(result.ok)

    def test_timeout_is_a_failed_result(self) -> None:
        with patch(
            "agentviz.sources.remote.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="gh", timeout=1),
        ):
            result = run_gh(["agent-task", "list"], binary="gh", timeout=1)
        self.assertFalse(result.ok)
        self.assertIn("timed out", result.output)

    def test_output_is_captured(self) -> None:
        completed = subprocess.CompletedProcess(args=["gh"], returncode=0, stdout="[]", stderr="")
        with patch("agentviz.sources.remote.subprocess.run", return_value=completed) as run:
            result = run_gh(["agent-task", "list", "--json"], binary="gh", timeout=5)
        self.assertTrue(result.ok)
        self.assertEqual(result.stdout, "[]")
        self.assertEqual(run.call_args.args[0], ["gh", "agent-task", "list", "--json"])
        self.assertEqual(run.call_args.kwargs["timeout"], 5)


if __name__ == "__main__":
    unittest.main()
