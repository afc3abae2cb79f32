import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from fastapi import HTTPException

from agentviz.dismissed import DismissedStore
from agentviz.errors import AllSourcesFailedError, SourceError, SourceUnavailableError
from agentviz.models import BoardSnapshot, OrgMetricsResult, SessionEvent
from agentviz.routers import sessions as sessions_router


class _FakeAggregator:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[frozenset, str]] = []

    async def refresh(self, dismissed, status_filter):
        self.calls.append((dismissed, status_filter))
        if self.error is not None:
            raise self.error
        return BoardSnapshot(statusFilter=status_filter)


class _FakeLocalSource:
    def fetch_events(self, session_id):
        if session_id != "s1":
            raise SourceError("local-copilot", "no event log found for this session")
        return [SessionEvent(type="user.message", timestamp="2026-01-15T11:00:00Z", role="user", content="hi")]


class _FakeTaskSource:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error

    def fetch_task_log(self, task_id):
        if self.error is not None:
            raise self.error
        return f"log for {task_id}"

    def fetch_org_metrics(self, org):
        return OrgMetricsResult(available=False)


class SessionsRouterTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.store = DismissedStore(Path(tmpdir.name) / "dismissed.json")
        self.store.add("gone")

    async def test_list_sessions_passes_dismissed_snapshot_and_filter(self) -> None:
        aggregator = _FakeAggregator()
        with patch.object(sessions_router, "get_aggregator", return_value=aggregator), patch.object(sessions_router, "get_dismissed_store", return_value=self.store):
            response = await sessions_router.list_sessions(status="Attention")

        self.assertEqual(response.statusFilter, "attention")
        self.assertEqual(aggregator.calls, [(frozenset({"gone"}), "attention")])

    async def test_list_sessions_defaults_to_auto(self) -> None:
        aggregator = _FakeAggregator()
        with patch.object(sessions_router, "get_aggregator", return_value=aggregator), patch.object(sessions_router, "get_dismissed_store", return_value=self.store), patch.object(sessions_router.config, "DEFAULT_STATUS_FILTER", ""):
            await sessions_router.list_sessions(status=None)

        self.assertEqual(aggregator.calls[0][1], "auto")

    async def test_list_sessions_rejects_unknown_filter(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await sessions_router.list_sessions(status="everything")
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_list_sessions_502_when_all_sources_fail(self) -> None:
        aggregator = _FakeAggregator(error=AllSourcesFailedError([SourceError("agent-task", "boom")]))
        with patch.object(sessions_router, "get_aggregator", return_value=aggregator), patch.object(sessions_router, "get_dismissed_store", return_value=self.store):
            with self.assertRaises(HTTPException) as ctx:
                await sessions_router.list_sessions(status="all")

        self.assertEqual(ctx.exception.status_code, 502)
        self.assertIn("boom", ctx.exception.detail)

    async def test_dismiss_session_persists(self) -> None:
        with patch.object(sessions_router, "get_dismissed_store", return_value=self.store):
            first = await sessions_router.dismiss_session("s1")
            second = await sessions_router.dismiss_session("s1")

        self.assertTrue(first.dismissed)
        self.assertFalse(first.alreadyDismissed)
        self.assertTrue(second.alreadyDismissed)
        self.assertIn("s1", self.store.snapshot())

    async def test_session_events_render_markdown(self) -> None:
        with patch.object(sessions_router, "get_local_source", return_value=_FakeLocalSource()):
            response = await sessions_router.get_session_events("s1")

        self.assertEqual(response.sessionId, "s1")
        self.assertEqual(len(response.events), 1)
        self.assertIn("**User**", response.markdown)

    async def test_session_events_404_when_missing(self) -> None:
        with patch.object(sessions_router, "get_local_source", return_value=_FakeLocalSource()):
            with self.assertRaises(HTTPException) as ctx:
                await sessions_router.get_session_events("s-missing")

        self.assertEqual(ctx.exception.status_code, 404)

    async def test_agent_task_log_maps_source_errors(self) -> None:
        with patch.object(sessions_router, "get_agent_task_source", return_value=_FakeTaskSource()):
            response = await sessions_router.get_agent_task_log("42")
        self.assertEqual(response.log, "log for 42")

        denied = _FakeTaskSource(error=SourceUnavailableError("agent-task", "HTTP 404: Not Found"))
        with patch.object(sessions_router, "get_agent_task_source", return_value=denied):
            with self.assertRaises(HTTPException) as ctx:
                await sessions_router.get_agent_task_log("42")
        self.assertEqual(ctx.exception.status_code, 404)

        broken = _FakeTaskSource(error=SourceError("agent-task", "timed out"))
        with patch.object(sessions_router, "get_agent_task_source", return_value=broken):
            with self.assertRaises(HTTPException) as ctx:
                await sessions_router.get_agent_task_log("42")
        self.assertEqual(ctx.exception.status_code, 502)

    async def test_org_metrics_passthrough(self) -> None:
        with patch.object(sessions_router, "get_agent_task_source", return_value=_FakeTaskSource()):
            result = await sessions_router.get_org_metrics("octo")
        self.assertFalse(result.available)


if __name__ == "__main__":
    unittest.main()
