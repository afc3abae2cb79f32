"""Merge sessions from every source into one prioritized board.

``build_board`` is the pure part: dismissal, dedup, telemetry merge,
counts, filtering and ordering over already-fetched data.
``SessionAggregator.refresh`` fetches from the sources concurrently and
feeds the results through it.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from agentviz import config
from agentviz import status as session_status
from agentviz.date_utils import age_seconds, utc_now
from agentviz.errors import AllSourcesFailedError, SourceError, SourceUnavailableError
from agentviz.model_identity import model_display_name
from agentviz.models import (
    BoardEntry,
    BoardSnapshot,
    FilterCounts,
    Session,
    SessionTelemetry,
    SourceFailure,
    TokenUsage,
)
from agentviz.observability import record_refresh, record_source_failure, record_token_usage, start_span
from agentviz.sources.base import SessionSource, UsageSource

logger = logging.getLogger("agentviz.aggregator")

# "auto" picks a tab from the counts, see smart_default_filter.
AUTO_FILTER = "auto"
STATUS_FILTERS = (AUTO_FILTER, "all", "attention", "active", *session_status.STATUSES)


class EngineSettings(BaseModel):
    """Thresholds the board applies; tests construct these explicitly."""

    model_config = ConfigDict(frozen=True)

    attention_stale_after: timedelta = timedelta(minutes=20)
    # None disables the abandoned-session cutoff.
    attention_stale_max: Optional[timedelta] = None
    fresh_window: timedelta = timedelta(minutes=20)
    quiet_duplicate_window: timedelta = timedelta(minutes=60)

    @classmethod
    def from_config(cls) -> "EngineSettings":
        stale_max = config.ATTENTION_STALE_MAX_MINUTES
        return cls(
            attention_stale_after=timedelta(minutes=max(0, config.ATTENTION_STALE_MINUTES)),
            attention_stale_max=timedelta(minutes=stale_max) if stale_max > 0 else None,
            fresh_window=timedelta(minutes=max(0, config.FRESH_WINDOW_MINUTES)),
            quiet_duplicate_window=timedelta(minutes=max(0, config.QUIET_DUPLICATE_MINUTES)),
        )


def _session_key(session: Session) -> tuple[str, str]:
    return (session.source, session.id)


def _updated_ts(session: Session) -> float:
    """Sort helper; unknown times sort as the oldest."""
    return session.updatedAt.timestamp() if session.updatedAt else float("-inf")


def is_attention(session: Session, settings: EngineSettings, now: datetime) -> bool:
    return session_status.needs_attention(
        session.status,
        session.updatedAt,
        stale_after=settings.attention_stale_after,
        stale_max=settings.attention_stale_max,
        now=now,
    )


def exclude_dismissed(sessions: Iterable[Session], dismissed: frozenset[str]) -> list[Session]:
    return [session for session in sessions if session.id not in dismissed]


def collapse_exact_duplicates(sessions: Iterable[Session]) -> list[Session]:
    """Keep one record per ``(source, id)``, the most recently updated one."""
    kept: dict[tuple[str, str], Session] = {}
    for session in sessions:
        key = _session_key(session)
        current = kept.get(key)
        if current is None or _updated_ts(session) > _updated_ts(current):
            kept[key] = session
    return list(kept.values())


def attach_token_usage(sessions: Iterable[Session], usage: dict[str, TokenUsage]) -> list[Session]:
    merged: list[Session] = []
    for session in sessions:
        entry = usage.get(session.id)
        if entry is None:
            merged.append(session)
            continue
        telemetry = SessionTelemetry(
            model=entry.model,
            modelDisplayName=model_display_name(entry.model),
            inputTokens=entry.inputTokens,
            outputTokens=entry.outputTokens,
            cachedTokens=entry.cachedTokens,
            modelCalls=entry.calls,
        )
        merged.append(session.model_copy(update={"telemetry": telemetry}))
    return merged


def compute_counts(sessions: Sequence[Session], settings: EngineSettings, now: datetime) -> FilterCounts:
    counts = FilterCounts(all=len(sessions))
    for session in sessions:
        if is_attention(session, settings, now):
            counts.attention += 1
        if session_status.is_active_status(session.status):
            counts.active += 1
        elif session.status == session_status.COMPLETED:
            counts.completed += 1
        elif session.status == session_status.FAILED:
            counts.failed += 1
    return counts


def apply_status_filter(
    sessions: Iterable[Session],
    status_filter: str,
    settings: EngineSettings,
    now: datetime,
) -> list[Session]:
    return [
        session
        for session in sessions
        if session_status.matches_filter(session.status, status_filter, is_attention(session, settings, now))
    ]


def find_quiet_duplicates(
    sessions: Sequence[Session],
    settings: EngineSettings,
    now: datetime,
) -> set[tuple[str, str]]:
    """Older siblings of a ``(repository, branch, title)`` group that have gone quiet.

    The most recently updated member is canonical and never flagged; a
    member with an unknown update time counts as quiet.
    """
    groups: dict[tuple[str, str, str], list[Session]] = defaultdict(list)
    for session in sessions:
        groups[(session.repository, session.branch, session.title)].append(session)

    window = settings.quiet_duplicate_window.total_seconds()
    quiet: set[tuple[str, str]] = set()
    for members in groups.values():
        if len(members) < 2:
            continue
        canonical = max(members, key=_updated_ts)
        newest = _updated_ts(canonical)
        for member in members:
            if member is canonical or _updated_ts(member) >= newest:
                continue
            age = age_seconds(member.updatedAt, now)
            if age is None or age > window:
                quiet.add(_session_key(member))
    return quiet


def order_for_display(
    sessions: Sequence[Session],
    settings: EngineSettings,
    now: datetime,
) -> list[BoardEntry]:
    """Group active, failed, then done; rank needs-input, fresh, then recency."""
    quiet = find_quiet_duplicates(sessions, settings, now)
    fresh_window = settings.fresh_window.total_seconds()

    def sort_key(session: Session) -> tuple[Any, ...]:
        age = age_seconds(session.updatedAt, now)
        fresh = age is not None and age <= fresh_window
        return (
            session_status.status_group(session.status),
            _session_key(session) in quiet,
            session.status != session_status.NEEDS_INPUT,
            not fresh,
            -_updated_ts(session),
        )

    return [
        BoardEntry(
            session=session,
            quietDuplicate=_session_key(session) in quiet,
            needsAttention=is_attention(session, settings, now),
        )
        for session in sorted(sessions, key=sort_key)
    ]


def smart_default_filter(counts: FilterCounts) -> str:
    if counts.active > 0:
        return "active"
    if counts.attention > 0:
        return "attention"
    return "all"


def build_board(
    sessions: Iterable[Session],
    *,
    usage: dict[str, TokenUsage] | None = None,
    dismissed: frozenset[str] = frozenset(),
    status_filter: str = "all",
    settings: EngineSettings | None = None,
    now: datetime | None = None,
    warnings: Sequence[SourceFailure] = (),
) -> BoardSnapshot:
    settings = settings or EngineSettings()
    now = now or utc_now()
    status_filter = (status_filter or "all").strip().lower()

    visible = collapse_exact_duplicates(exclude_dismissed(sessions, dismissed))
    visible = attach_token_usage(visible, usage or {})
    counts = compute_counts(visible, settings, now)
    if status_filter == AUTO_FILTER:
        status_filter = smart_default_filter(counts)
    shown = apply_status_filter(visible, status_filter, settings, now)

    return BoardSnapshot(
        entries=order_for_display(shown, settings, now),
        counts=counts,
        statusFilter=status_filter,
        warnings=list(warnings),
        generatedAt=now,
    )


class SessionAggregator:
    """Fetches every source concurrently and builds a ``BoardSnapshot``."""

    def __init__(
        self,
        sources: Sequence[SessionSource],
        usage_source: UsageSource | None = None,
        settings: EngineSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sources = list(sources)
        self.usage_source = usage_source
        self.settings = settings or EngineSettings.from_config()
        self.clock = clock
        self._token_watermarks: dict[str, tuple[int, int]] = {}

    def _record_token_growth(self, usage: dict[str, TokenUsage]) -> None:
        # Usage is recomputed from the logs every refresh; counters only see the growth.
        for session_id, entry in usage.items():
            seen_in, seen_out = self._token_watermarks.get(session_id, (0, 0))
            record_token_usage(entry.model, entry.inputTokens - seen_in, entry.outputTokens - seen_out)
            self._token_watermarks[session_id] = (entry.inputTokens, entry.outputTokens)

    def _source_failure(self, name: str, exc: Exception) -> SourceFailure:
        message = exc.message if isinstance(exc, SourceError) else str(exc) or type(exc).__name__
        logger.warning("Session source %s failed: %s", name, message)
        record_source_failure(name)
        return SourceFailure(source=name, message=message)

    async def collect(self) -> tuple[list[Session], dict[str, TokenUsage], list[SourceFailure]]:
        calls = [asyncio.to_thread(source.fetch_sessions) for source in self.sources]
        if self.usage_source is not None:
            calls.append(asyncio.to_thread(self.usage_source.fetch_usage))
        results = await asyncio.gather(*calls, return_exceptions=True)

        sessions: list[Session] = []
        warnings: list[SourceFailure] = []
        failures: list[SourceError] = []
        for source, result in zip(self.sources, results):
            name = getattr(source, "name", type(source).__name__)
            if isinstance(result, SourceUnavailableError):
                logger.info("Session source %s unavailable: %s", name, result.message)
                continue
            if isinstance(result, Exception):
                warnings.append(self._source_failure(name, result))
                failures.append(result if isinstance(result, SourceError) else SourceError(name, str(result)))
                continue
            if isinstance(result, BaseException):
                raise result
            sessions.extend(result)

        if self.sources and len(failures) == len(self.sources):
            raise AllSourcesFailedError(failures)

        usage: dict[str, TokenUsage] = {}
        if self.usage_source is not None:
            usage_result = results[-1]
            if isinstance(usage_result, Exception):
                warnings.append(self._source_failure("token-usage", usage_result))
            elif isinstance(usage_result, BaseException):
                raise usage_result
            else:
                usage = usage_result
        return sessions, usage, warnings

    async def refresh(
        self,
        dismissed: frozenset[str] = frozenset(),
        status_filter: str = "all",
    ) -> BoardSnapshot:
        started = time.perf_counter()
        with start_span("agentviz.refresh", {"status_filter": status_filter}):
            try:
                sessions, usage, warnings = await self.collect()
            except AllSourcesFailedError:
                record_refresh("failed", (time.perf_counter() - started) * 1000)
                raise
            board = build_board(
                sessions,
                usage=usage,
                dismissed=dismissed,
                status_filter=status_filter,
                settings=self.settings,
                now=self.clock(),
                warnings=warnings,
            )

        self._record_token_growth(usage)
        record_refresh("partial" if warnings else "ok", (time.perf_counter() - started) * 1000)
        logger.debug(
            "Refreshed board: %d shown of %d sessions, %d warnings",
            len(board.entries),
            board.counts.all,
            len(warnings),
        )
        return board

    def refresh_sync(self, dismissed: frozenset[str] = frozenset(), status_filter: str = "all") -> BoardSnapshot:
        return asyncio.run(self.refresh(dismissed, status_filter))


def default_aggregator() -> SessionAggregator:
    """Wire the sources the environment configuration asks for."""
    from agentviz.sources import AgentTaskSource, LocalSessionSource, LogUsageSource

    sources: list[SessionSource] = [LocalSessionSource(repo=config.REPO_FILTER)]
    if config.REMOTE_ENABLED:
        sources.insert(0, AgentTaskSource(repo=config.REPO_FILTER))
    return SessionAggregator(sources, usage_source=LogUsageSource())
