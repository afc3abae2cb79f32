import json
import unittest
from datetime import datetime, timezone

from agentviz.parsers.agent_tasks import (
    is_denial,
    parse_agent_task_table,
    parse_agent_tasks_json,
    parse_org_metrics,
    parse_pr_view_json,
)


class AgentTaskJsonTests(unittest.TestCase):
    def test_records_without_id_are_dropped(self) -> None:
        payload = json.dumps(
            [
                {
                    "id": "42",
                    "status": "In Progress",
                    "title": "Add retries",
                    "repository": "octo/app",
                    "prNumber": "#42",
                    "updatedAt": "2026-01-15T10:00:00Z",
                    "unexpected": {"nested": True},
                },
                {"title": "missing id"},
                {"id": None, "title": "null id"},
                "not a record",
            ]
        )

        tasks = parse_agent_tasks_json(payload)

        self.assertEqual([task.id for task in tasks], ["42"])
        self.assertEqual(tasks[0].prNumber, 42)
        self.assertEqual(tasks[0].updatedAt, datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc))

    def test_empty_output_is_an_empty_list(self) -> None:
        self.assertEqual(parse_agent_tasks_json(b""), [])

    def test_non_array_payload_raises(self) -> None:
        with self.assertRaises(ValueError):
            parse_agent_tasks_json('{"id": "1"}')
        with self.assertRaises(ValueError):
            parse_agent_tasks_json("not json")


class AgentTaskTableTests(unittest.TestCase):
    TABLE = (
        "Add retries\t#42\tocto/app\tIn progress\t2026-01-15T10:00:00Z\n"
        "Docs pass\t#7\tocto/docs\tCompleted\t2026-01-14T08:00:00Z\n"
        "malformed line without tabs\n"
    )

    def test_tab_separated_rows_are_parsed(self) -> None:
        tasks = parse_agent_task_table(self.TABLE)

        self.assertEqual([task.id for task in tasks], ["42", "7"])
        first = tasks[0]
        self.assertEqual(first.title, "Add retries")
        self.assertEqual(first.status, "In progress")
        self.assertEqual(first.prNumber, 42)
        self.assertEqual(first.prUrl, "https://github.com/octo/app/pull/42")

    def test_repository_filter_applies(self) -> None:
        tasks = parse_agent_task_table(self.TABLE, repo="octo/docs")
        self.assertEqual([task.id for task in tasks], ["7"])


class DenialTests(unittest.TestCase):
    def test_denial_signatures(self) -> None:
        self.assertTrue(is_denial("HTTP 403: Must have admin rights to Repository."))
        self.assertTrue(is_denial(b"gh: Not Found (HTTP 404)"))
        self.assertTrue(is_denial("Resource not accessible by integration"))
        self.assertFalse(is_denial("connection reset by peer"))

    def test_lowercase_not_found_is_a_failure(self) -> None:
        self.assertFalse(is_denial('unknown command "agent-task" for "gh": extension not found'))
        self.assertFalse(is_denial("git: not found"))

    def test_org_metrics_denial_is_silent(self) -> None:
        result = parse_org_metrics("HTTP 403: Must have admin rights", succeeded=False)
        self.assertFalse(result.available)
        self.assertEqual(result.error, "")

    def test_org_metrics_failure_carries_message(self) -> None:
        result = parse_org_metrics("dial tcp: lookup api.github.com: no such host", succeeded=False)
        self.assertFalse(result.available)
        self.assertIn("no such host", result.error)

    def test_org_metrics_are_sorted_newest_first(self) -> None:
        payload = json.dumps(
            [
                {"date": "2026-01-13", "total_active_users": 3, "total_engaged_users": 2},
                {"date": "2026-01-14", "total_active_users": 5, "total_engaged_users": 4},
            ]
        )

        result = parse_org_metrics(payload, succeeded=True)

        self.assertTrue(result.available)
        self.assertEqual([entry.date for entry in result.metrics], ["2026-01-14", "2026-01-13"])


class PullRequestFallbackTests(unittest.TestCase):
    def test_pr_view_maps_to_task(self) -> None:
        payload = json.dumps(
            {
                "number": 42,
                "title": "Add retries",
                "headRefName": "copilot/add-retries",
                "url": "https://github.com/octo/app/pull/42",
                "state": "MERGED",
                "updatedAt": "2026-01-15T10:00:00Z",
            }
        )

        task = parse_pr_view_json(payload, "42", "octo/app")

        self.assertEqual(task.id, "42")
        self.assertEqual(task.status, "MERGED")
        self.assertEqual(task.branch, "copilot/add-retries")
        self.assertEqual(task.repository, "octo/app")

    def test_invalid_pr_payload_returns_none(self) -> None:
        self.assertIsNone(parse_pr_view_json("oops", "42"))


if __name__ == "__main__":
    unittest.main()
