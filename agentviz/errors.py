"""Exception types shared by sources and the aggregator."""
from __future__ import annotations


class AgentVizError(Exception):
    """Base class for agentviz errors."""


class SourceError(AgentVizError):
    """A session source failed for a reason worth surfacing to the user."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class SourceUnavailableError(SourceError):
    """The source is not accessible to this user (permission denied, not found).

    Treated as "feature unavailable" rather than as a failure.
    """


class AllSourcesFailedError(AgentVizError):
    def __init__(self, failures: list[SourceError]):
        joined = "; ".join(str(failure) for failure in failures) or "no session sources configured"
        super().__init__(f"all session sources failed: {joined}")
        self.failures = failures
