#!/usr/bin/env python3
"""Print the current session board without starting the API server.

Usage:
  python -m agentviz.scripts.board_snapshot
  python -m agentviz.scripts.board_snapshot --filter attention
  python -m agentviz.scripts.board_snapshot --repo owner/name --local-only --json
"""
from __future__ import annotations

import argparse
import logging
from datetime import datetime, timedelta
from typing import Callable

from agentviz import config
from agentviz.aggregator import AUTO_FILTER, STATUS_FILTERS, SessionAggregator
from agentviz.date_utils import age_seconds, utc_now
from agentviz.dismissed import DismissedStore
from agentviz.errors import AllSourcesFailedError
from agentviz.models import BoardEntry, BoardSnapshot
from agentviz.sources import AgentTaskSource, LocalSessionSource, LogUsageSource

_STATUS_ICONS = {
    "needs-input": "?",
    "running": ">",
    "queued": "~",
    "failed": "x",
    "completed": "+",
}


def format_token_count(count: int) -> str:
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def format_duration(delta: timedelta) -> str:
    seconds = max(0, int(delta.total_seconds()))
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    hours, minutes = divmod(seconds // 60, 60)
    if hours >= 24:
        days, hours = divmod(hours, 24)
        return f"{days}d {hours}h" if hours else f"{days}d"
    return f"{hours}h {minutes}m" if minutes else f"{hours}h"


def _describe(entry: BoardEntry, now: datetime) -> str:
    session = entry.session
    icon = _STATUS_ICONS.get(session.status, " ")
    age = age_seconds(session.updatedAt, now)
    updated = format_duration(timedelta(seconds=age)) + " ago" if age is not None else "unknown"
    flags = []
    if entry.needsAttention:
        flags.append("attention")
    if entry.quietDuplicate:
        flags.append("quiet duplicate")
    line = f"[{icon}] {session.title}  ({session.status}, {session.source}, {updated})"
    if flags:
        line += f"  [{', '.join(flags)}]"
    details = " ".join(part for part in (session.repository, session.branch) if part)
    if details:
        line += f"\n    {details}"
    if session.telemetry is not None:
        telemetry = session.telemetry
        line += (
            f"\n    {telemetry.modelDisplayName or 'unknown model'}: "
            f"{format_token_count(telemetry.inputTokens)} in, "
            f"{format_token_count(telemetry.outputTokens)} out, "
            f"{format_token_count(telemetry.cachedTokens)} cached ({telemetry.modelCalls} calls)"
        )
    return line


def render_board(board: BoardSnapshot, now: Callable[[], datetime] = utc_now) -> str:
    current = now()
    counts = board.counts
    lines = [
        f"Filter: {board.statusFilter}",
        (
            f"All {counts.all} | Attention {counts.attention} | Active {counts.active} | "
            f"Completed {counts.completed} | Failed {counts.failed}"
        ),
        "",
    ]
    for warning in board.warnings:
        lines.append(f"warning: {warning.source}: {warning.message}")
    if board.warnings:
        lines.append("")
    if not board.entries:
        lines.append("No sessions.")
    for entry in board.entries:
        lines.append(_describe(entry, current))
    return "\n".join(lines)


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--filter", default=AUTO_FILTER, choices=STATUS_FILTERS, help="Tab filter (default: auto)")
    parser.add_argument("--repo", default=config.REPO_FILTER, help="Only show sessions for owner/name")
    parser.add_argument("--local-only", action="store_true", help="Skip remote agent tasks")
    parser.add_argument("--json", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    sources = [LocalSessionSource(repo=args.repo)]
    if not args.local_only and config.REMOTE_ENABLED:
        sources.insert(0, AgentTaskSource(repo=args.repo))
    aggregator = SessionAggregator(sources, usage_source=LogUsageSource())

    try:
        board = aggregator.refresh_sync(DismissedStore().snapshot(), args.filter)
    except AllSourcesFailedError as exc:
        print(str(exc))
        return 1

    if args.json:
        print(board.model_dump_json(indent=2))
        return 0

    print(render_board(board))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
