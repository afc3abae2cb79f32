"""Interfaces the aggregator expects from its collaborators."""
from __future__ import annotations

from typing import Protocol

from agentviz.models import Session, TokenUsage


class SessionSource(Protocol):
    """Produces normalized sessions for one provenance.

    ``fetch_sessions`` raises ``SourceUnavailableError`` when the source is
    not accessible to the user and ``SourceError`` for genuine failures.
    """

    name: str

    def fetch_sessions(self) -> list[Session]: ...


class UsageSource(Protocol):
    def fetch_usage(self) -> dict[str, TokenUsage]: ...
