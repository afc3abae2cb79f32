"""Lifecycle status classification.

Every session status that leaves the normalizer is one of ``STATUSES``.
Explicit synonyms always win; time-based inference only applies to
blank or unrecognized raw statuses.
"""
from __future__ import annotations

from datetime import datetime, timedelta

from agentviz.date_utils import age_seconds

COMPLETED = "completed"
RUNNING = "running"
NEEDS_INPUT = "needs-input"
FAILED = "failed"
QUEUED = "queued"
UNKNOWN = "unknown"

STATUSES = (COMPLETED, RUNNING, NEEDS_INPUT, FAILED, QUEUED, UNKNOWN)

STALE_AFTER = timedelta(hours=24)

_SYNONYMS: dict[str, str] = {}
for _status, _aliases in (
    (COMPLETED, ("completed", "finished", "done", "merged", "closed")),
    (NEEDS_INPUT, ("needs-input", "needs input", "awaiting user input", "waiting for user", "input required")),
    (RUNNING, ("running", "in progress", "active", "open")),
    (FAILED, ("failed", "error", "cancelled", "canceled")),
    (QUEUED, ("queued", "pending", "waiting")),
):
    for _alias in _aliases:
        _SYNONYMS[_alias] = _status

_ACTIVE_STATUSES = {"running", "queued", "active", "open", "in progress"}

# Display groups, most actionable first.
GROUP_ACTIVE = 0
GROUP_FAILED = 1
GROUP_DONE = 2


def _normalize(raw: str | None) -> str:
    return (raw or "").strip().lower()


def classify_status(raw_status: str | None, last_activity: datetime | None, now: datetime | None = None) -> str:
    """Map a raw status plus last-activity time onto a normalized status."""
    normalized = _normalize(raw_status)
    mapped = _SYNONYMS.get(normalized)
    if mapped:
        return mapped

    age = age_seconds(last_activity, now)
    if age is None:
        return UNKNOWN
    if age > STALE_AFTER.total_seconds():
        return COMPLETED
    return RUNNING


def is_active_status(status: str | None) -> bool:
    """True for running/queued/active/open statuses and for needs-input."""
    normalized = _normalize(status)
    return normalized in _ACTIVE_STATUSES or normalized == NEEDS_INPUT


def needs_attention(
    status: str | None,
    updated_at: datetime | None,
    *,
    stale_after: timedelta,
    stale_max: timedelta | None = None,
    now: datetime | None = None,
) -> bool:
    """Whether a session requires operator action.

    Sessions waiting on input or that failed always qualify. Active sessions
    qualify once they have been quiet longer than *stale_after*; with
    *stale_max* set, sessions idle beyond it count as abandoned instead.
    """
    normalized = _normalize(status)
    if normalized in (NEEDS_INPUT, FAILED):
        return True
    if not is_active_status(normalized):
        return False
    age = age_seconds(updated_at, now)
    if age is None:
        return False
    if age <= stale_after.total_seconds():
        return False
    if stale_max is not None and age > stale_max.total_seconds():
        return False
    return True


def status_group(status: str | None) -> int:
    normalized = _normalize(status)
    if is_active_status(normalized):
        return GROUP_ACTIVE
    if normalized in ("failed", "cancelled", "canceled", "error"):
        return GROUP_FAILED
    return GROUP_DONE


def matches_filter(status: str | None, status_filter: str, attention: bool) -> bool:
    """Apply a tab filter: ``all``, ``attention``, ``active`` or an exact status."""
    wanted = _normalize(status_filter) or "all"
    if wanted == "all":
        return True
    if wanted == "attention":
        return attention
    if wanted == "active":
        return is_active_status(status)
    return _normalize(status) == wanted
