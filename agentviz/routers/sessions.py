"""API routers for the session board, dismissals and event logs."""
from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from agentviz import config
from agentviz.aggregator import AUTO_FILTER, STATUS_FILTERS, SessionAggregator, default_aggregator
from agentviz.dismissed import DismissedStore
from agentviz.errors import AllSourcesFailedError, SourceError, SourceUnavailableError
from agentviz.models import BoardSnapshot, OrgMetricsResult, Session, SessionEvent
from agentviz.parsers.events import format_event_log
from agentviz.sources import AgentTaskSource, LocalSessionSource

logger = logging.getLogger("agentviz")

_aggregator: SessionAggregator | None = None
_dismissed_store: DismissedStore | None = None
_local_source: LocalSessionSource | None = None
_agent_task_source: AgentTaskSource | None = None


def get_aggregator() -> SessionAggregator:
    global _aggregator
    if _aggregator is None:
        _aggregator = default_aggregator()
    return _aggregator


def get_dismissed_store() -> DismissedStore:
    global _dismissed_store
    if _dismissed_store is None:
        _dismissed_store = DismissedStore()
    return _dismissed_store


def get_local_source() -> LocalSessionSource:
    global _local_source
    if _local_source is None:
        _local_source = LocalSessionSource(repo=config.REPO_FILTER)
    return _local_source


def get_agent_task_source() -> AgentTaskSource:
    global _agent_task_source
    if _agent_task_source is None:
        _agent_task_source = AgentTaskSource(repo=config.REPO_FILTER)
    return _agent_task_source


class DismissResponse(BaseModel):
    id: str
    dismissed: bool
    alreadyDismissed: bool = False


class SessionEventLog(BaseModel):
    sessionId: str
    events: list[SessionEvent] = Field(default_factory=list)
    markdown: str = ""


class AgentTaskLog(BaseModel):
    taskId: str
    log: str = ""


# ── Sessions router ─────────────────────────────────────────────────

sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@sessions_router.get("", response_model=BoardSnapshot)
async def list_sessions(
    status: str | None = Query(None, description="Tab filter: auto, all, attention, active or an exact status"),
):
    """Refresh every source and return the prioritized board."""
    status_filter = (status or config.DEFAULT_STATUS_FILTER or AUTO_FILTER).strip().lower()
    if status_filter not in STATUS_FILTERS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown status filter '{status_filter}'. Expected one of: {', '.join(STATUS_FILTERS)}",
        )

    dismissed = get_dismissed_store().snapshot()
    try:
        return await get_aggregator().refresh(dismissed, status_filter)
    except AllSourcesFailedError as e:
        logger.error("Board refresh failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))


@sessions_router.post("/{session_id}/dismiss", response_model=DismissResponse)
async def dismiss_session(session_id: str):
    session_id = session_id.strip()
    if not session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")
    store = get_dismissed_store()
    try:
        added = await asyncio.to_thread(store.add, session_id)
    except OSError as e:
        logger.error("Failed to persist dismissal of %s: %s", session_id, e)
        raise HTTPException(status_code=500, detail="Failed to save dismissed sessions")
    return DismissResponse(id=session_id, dismissed=True, alreadyDismissed=not added)


@sessions_router.get("/{session_id}/events", response_model=SessionEventLog)
async def get_session_events(session_id: str):
    """Conversation events of a local session, plus a markdown rendering."""
    source = get_local_source()
    try:
        events = await asyncio.to_thread(source.fetch_events, session_id)
    except SourceError as e:
        raise HTTPException(status_code=404, detail=f"Session {session_id}: {e.message}")
    return SessionEventLog(sessionId=session_id, events=events, markdown=format_event_log(events))


# ── Agent tasks router ──────────────────────────────────────────────

agent_tasks_router = APIRouter(prefix="/api/agent-tasks", tags=["agent-tasks"])


def _http_error(e: SourceError) -> HTTPException:
    if isinstance(e, SourceUnavailableError):
        return HTTPException(status_code=404, detail=e.message)
    return HTTPException(status_code=502, detail=e.message)


@agent_tasks_router.get("/{task_id}", response_model=Session)
async def get_agent_task(task_id: str):
    try:
        return await asyncio.to_thread(get_agent_task_source().fetch_task_detail, task_id)
    except SourceError as e:
        raise _http_error(e)


@agent_tasks_router.get("/{task_id}/log", response_model=AgentTaskLog)
async def get_agent_task_log(task_id: str):
    try:
        log = await asyncio.to_thread(get_agent_task_source().fetch_task_log, task_id)
    except SourceError as e:
        raise _http_error(e)
    return AgentTaskLog(taskId=task_id, log=log)


@agent_tasks_router.get("/orgs/{org}/metrics", response_model=OrgMetricsResult)
async def get_org_metrics(org: str):
    return await asyncio.to_thread(get_agent_task_source().fetch_org_metrics, org)
